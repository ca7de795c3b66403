"""Reactive entry points that turn domain events into execution records."""

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.automation.dtos import (
    Channel,
    ExecutionStatus,
    FlowStatus,
    HandlerReport,
    NotificationType,
    RsvpStatus,
    TriggerKind,
    UpsertOutcome,
)
from src.automation.repository.read_models import ANCHOR_NOTIFICATION_TYPES, AutomationReadModel
from src.automation.repository.write_models import ExecutionWriteModel
from src.automation.state_machine import RSVP_ADVANCE_FROM, is_terminal
from src.automation.triggers import (
    as_utc,
    evaluate,
    event_trigger_for_status,
    is_event_based,
    is_no_response,
    notification_channel,
    scheduled_time,
)

if TYPE_CHECKING:
    from src.automation.processor import ExecutionRunner

logger = logging.getLogger(__name__)

NO_RESPONSE_TRIGGERS = [trigger for trigger in TriggerKind if is_no_response(trigger)]


class AutomationEventHandlers:
    def __init__(
        self,
        read_model: AutomationReadModel,
        execution_write_model: ExecutionWriteModel,
        runner: "ExecutionRunner",
    ):
        self._read_model = read_model
        self._executions = execution_write_model
        self._runner = runner

    async def on_rsvp_status_changed(
        self,
        guest_id: UUID,
        event_id: UUID,
        new_status: RsvpStatus,
        previous_status: RsvpStatus | None = None,
        now: datetime | None = None,
    ) -> HandlerReport:
        """
        Fire RSVP_CONFIRMED / RSVP_DECLINED flows right away and drop the
        guest's pending no-response reminders.
        """
        report = HandlerReport()
        if new_status == previous_status:
            return report
        trigger = event_trigger_for_status(new_status)
        if trigger is None:
            return report

        now = as_utc(now or datetime.now(UTC))

        # The guest answered, pending "did you forget" nudges are moot
        try:
            report.skipped += await self._executions.skip_pending_for_guest(
                guest_id,
                NO_RESPONSE_TRIGGERS,
                reason=f"guest responded: {new_status.value}",
                at=now,
            )
        except Exception:
            logger.exception("Failed to skip no-response executions for guest %s", guest_id)
            report.failed += 1

        flows = await self._read_model.list_active_flows(event_id, [trigger])
        for flow in flows:
            try:
                execution_id = await self._executions.create_if_absent(
                    flow.id, guest_id, status=ExecutionStatus.PROCESSING, now=now
                )
                if execution_id is not None:
                    report.created += 1
                else:
                    execution_id = await self._advance_existing(flow.id, guest_id, now)
                    if execution_id is None:
                        continue

                result = await self._runner.run_claimed(execution_id)
                if result.success:
                    report.executed += 1
                else:
                    report.failed += 1
            except Exception:
                logger.exception(
                    "Failed to run flow %s for guest %s after RSVP change", flow.id, guest_id
                )
                report.failed += 1
        return report

    async def _advance_existing(
        self, flow_id: UUID, guest_id: UUID, now: datetime
    ) -> UUID | None:
        existing = await self._read_model.get_execution_for(flow_id, guest_id)
        if existing is None:
            return None
        if is_terminal(existing.status) or not await self._executions.claim(
            existing.id, RSVP_ADVANCE_FROM, now
        ):
            logger.debug(
                "Execution %s for flow %s is %s, leaving it alone",
                existing.id,
                flow_id,
                existing.status.value,
            )
            return None
        return existing.id

    async def on_notification_sent(
        self,
        guest_id: UUID,
        event_id: UUID,
        notification_type: NotificationType,
        sent_at: datetime,
        channel: Channel | None = None,
        now: datetime | None = None,
    ) -> HandlerReport:
        """Arm (or re-arm) the no-response flows after an invite or reminder went out."""
        report = HandlerReport()
        if notification_type not in ANCHOR_NOTIFICATION_TYPES:
            return report

        now = as_utc(now or datetime.now(UTC))
        context = await self._read_model.get_guest_context(guest_id)
        if context is None or context.rsvp_status != RsvpStatus.PENDING:
            logger.debug("Guest %s is not pending, no reminders to schedule", guest_id)
            return report

        flows = await self._read_model.list_active_flows(event_id, NO_RESPONSE_TRIGGERS)
        for flow in flows:
            listens_to = notification_channel(flow.trigger)
            # Channel-specific flows only follow notifications on their own channel
            if listens_to is not None and listens_to != channel:
                continue
            try:
                scheduled_for = scheduled_time(
                    flow.trigger,
                    context.event_datetime,
                    last_notification_at=sent_at,
                    delay_hours=flow.delay_hours,
                    event_timezone=context.event_timezone,
                    now=now,
                )
                if scheduled_for is None or scheduled_for <= now:
                    report.skipped += 1
                    continue

                outcome = await self._executions.upsert_pending(flow.id, guest_id, scheduled_for)
                if outcome == UpsertOutcome.CREATED:
                    report.created += 1
                elif outcome == UpsertOutcome.RESCHEDULED:
                    report.updated += 1
                else:
                    report.skipped += 1
            except Exception:
                logger.exception(
                    "Failed to schedule flow %s for guest %s after notification", flow.id, guest_id
                )
                report.failed += 1
        return report

    async def on_flow_activated(
        self, flow_id: UUID, now: datetime | None = None, refresh_pending: bool = False
    ) -> HandlerReport:
        """
        Create a PENDING record for every guest currently eligible for a time-based flow.

        With ``refresh_pending`` the scheduled time of records that are still PENDING
        is recomputed too, for when the flow's trigger or delay was edited.
        """
        report = HandlerReport()
        flow = await self._read_model.get_flow(flow_id)
        if flow is None or flow.status != FlowStatus.ACTIVE:
            return report
        # Event-based flows fire on the next matching RSVP change
        if is_event_based(flow.trigger):
            return report

        now = as_utc(now or datetime.now(UTC))
        contexts = await self._read_model.list_guest_contexts(flow.event_id, flow.trigger)
        for context in contexts:
            try:
                check = evaluate(flow.trigger, context, flow.delay_hours, now=now)
                if not check.eligible:
                    report.skipped += 1
                    continue
                scheduled_for = scheduled_time(
                    flow.trigger,
                    context.event_datetime,
                    last_notification_at=context.last_notification_at,
                    delay_hours=flow.delay_hours,
                    event_timezone=context.event_timezone,
                    now=now,
                )
                if scheduled_for is None or scheduled_for <= now:
                    report.skipped += 1
                    continue

                if refresh_pending:
                    outcome = await self._executions.upsert_pending(
                        flow.id, context.guest_id, scheduled_for
                    )
                    if outcome == UpsertOutcome.CREATED:
                        report.created += 1
                    elif outcome == UpsertOutcome.RESCHEDULED:
                        report.updated += 1
                    else:
                        report.skipped += 1
                    continue

                created = await self._executions.create_if_absent(
                    flow.id, context.guest_id, scheduled_for=scheduled_for
                )
                if created is not None:
                    report.created += 1
                else:
                    report.skipped += 1
            except Exception:
                logger.exception(
                    "Failed to schedule flow %s for guest %s on activation", flow.id, context.guest_id
                )
                report.failed += 1

        logger.info(
            "Flow %s activated: %s scheduled, %s skipped, %s failed",
            flow_id,
            report.created,
            report.skipped,
            report.failed,
        )
        return report
