"""Runs claimed executions, the periodic sweep and the operator commands."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from uuid import UUID

from src.automation.dtos import (
    ErrorCode,
    ExecutionNotFoundError,
    ExecutionRecordDTO,
    ExecutionResult,
    ExecutionStatus,
    FlowNotFoundError,
    GuestPreviewDTO,
    InvalidTransitionError,
    ProcessResult,
)
from src.automation.executor import ActionExecutor
from src.automation.repository.read_models import ANCHOR_NOTIFICATION_TYPES, AutomationReadModel
from src.automation.repository.write_models import ExecutionWriteModel
from src.automation.state_machine import RETRY_FROM, RUN_NOW_FROM, SWEEP_FROM, can_transition
from src.automation.triggers import NO_NOTIFICATION_REASON, as_utc, evaluate
from src.config.settings import settings

logger = logging.getLogger(__name__)

NotificationListener = Callable[..., Awaitable[object]]


class ExecutionRunner:
    """Executes a record that is already PROCESSING and closes it.

    The transport call happens here, after the claim has been committed and
    outside of any store transaction.
    """

    def __init__(
        self,
        read_model: AutomationReadModel,
        execution_write_model: ExecutionWriteModel,
        executor: ActionExecutor,
        notification_listener: NotificationListener | None = None,
    ):
        self._read_model = read_model
        self._executions = execution_write_model
        self._executor = executor
        self.notification_listener = notification_listener

    async def run_claimed(self, execution_id: UUID) -> ExecutionResult:
        resolved = await self._read_model.resolve_execution(execution_id)
        if resolved is None:
            result = ExecutionResult(
                success=False,
                message="Guest, event or flow no longer exists",
                error_code=ErrorCode.NOT_FOUND.value,
            )
            await self._executions.fail(
                execution_id, datetime.now(UTC), result.message, result.error_code
            )
            return result

        try:
            result = await self._executor.execute(resolved.flow.action, resolved.action_context)
        except Exception as e:
            logger.exception("Executing %s for execution %s raised", resolved.flow.action, execution_id)
            result = ExecutionResult(
                success=False,
                message=str(e) or e.__class__.__name__,
                error_code=ErrorCode.SEND_FAILED.value,
            )

        finished_at = datetime.now(UTC)
        if not result.success:
            logger.warning(
                "Execution %s failed (%s): %s", execution_id, result.error_code, result.message
            )
            await self._executions.fail(
                execution_id, finished_at, result.message, result.error_code
            )
            return result

        await self._executions.complete(execution_id, finished_at)

        # A sent invite or reminder restarts the no-response clock of the other flows
        if self.notification_listener and result.notification_type in ANCHOR_NOTIFICATION_TYPES:
            try:
                await self.notification_listener(
                    guest_id=resolved.action_context.guest_id,
                    event_id=resolved.action_context.event_id,
                    notification_type=result.notification_type,
                    sent_at=result.sent_at or finished_at,
                    channel=result.channel,
                )
            except Exception:
                logger.exception("Re-arming no-response flows after %s failed", execution_id)
        return result


class AutomationProcessor:
    def __init__(
        self,
        read_model: AutomationReadModel,
        execution_write_model: ExecutionWriteModel,
        runner: ExecutionRunner,
        batch_size: int = settings.automation_sweep_batch_size,
        processing_timeout_minutes: int | None = settings.automation_processing_timeout_minutes,
    ):
        self._read_model = read_model
        self._executions = execution_write_model
        self._runner = runner
        self._batch_size = batch_size
        self._processing_timeout_minutes = processing_timeout_minutes

    async def process_due_executions(
        self, now: datetime | None = None, batch_size: int | None = None
    ) -> ProcessResult:
        """Sweep one batch of due PENDING records on ACTIVE flows."""
        now = as_utc(now or datetime.now(UTC))
        result = ProcessResult()
        result.timed_out = await self.reap_stale_processing(now)

        due = await self._read_model.list_due_executions(now, batch_size or self._batch_size)
        for record in due:
            result.processed += 1
            try:
                await self._process_one(record, now, result)
            except Exception:
                logger.exception("Error processing execution %s", record.id)
                result.failed += 1

        logger.info(
            "Sweep done: %s processed, %s succeeded, %s failed, %s skipped, %s rescheduled",
            result.processed,
            result.succeeded,
            result.failed,
            result.skipped,
            result.rescheduled,
        )
        return result

    async def _process_one(
        self, record: ExecutionRecordDTO, now: datetime, result: ProcessResult
    ) -> None:
        resolved = await self._read_model.resolve_execution(record.id)
        if resolved is not None:
            # Conditions may have changed since the record was scheduled
            check = evaluate(
                resolved.flow.trigger,
                resolved.guest_context,
                resolved.flow.delay_hours,
                now=now,
            )
            if not check.should_trigger:
                if check.scheduled_for and check.scheduled_for > now:
                    if await self._executions.reschedule(record.id, check.scheduled_for):
                        result.rescheduled += 1
                    return
                if not check.eligible and check.reason != NO_NOTIFICATION_REASON:
                    if await self._executions.skip(record.id, check.reason, now):
                        result.skipped += 1
                    return

        if not await self._executions.claim(record.id, SWEEP_FROM, now):
            logger.debug("Execution %s was claimed by another caller", record.id)
            return

        outcome = await self._runner.run_claimed(record.id)
        if outcome.success:
            result.succeeded += 1
        else:
            result.failed += 1

    async def reap_stale_processing(self, now: datetime | None = None) -> int:
        """Fail records stuck in PROCESSING longer than the configured timeout."""
        if not self._processing_timeout_minutes:
            return 0
        now = as_utc(now or datetime.now(UTC))
        timed_out = await self._executions.fail_stale_processing(
            started_before=now - timedelta(minutes=self._processing_timeout_minutes),
            error_message=(
                f"Execution did not finish within {self._processing_timeout_minutes} minutes"
            ),
            at=now,
        )
        if timed_out:
            logger.warning("Marked %s stuck executions as FAILED", timed_out)
        return timed_out

    async def _require_flow(self, flow_id: UUID):
        flow = await self._read_model.get_flow(flow_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        return flow

    async def retry_failed(self, flow_id: UUID, now: datetime | None = None) -> ProcessResult:
        """Run every FAILED record of a flow again, right away."""
        await self._require_flow(flow_id)
        now = as_utc(now or datetime.now(UTC))
        result = ProcessResult()
        failed = await self._read_model.list_executions(
            flow_id, status=ExecutionStatus.FAILED, limit=None
        )
        for record in failed:
            if not await self._executions.claim(record.id, RETRY_FROM, now):
                continue
            result.processed += 1
            try:
                outcome = await self._runner.run_claimed(record.id)
            except Exception:
                logger.exception("Error retrying execution %s", record.id)
                result.failed += 1
                continue
            if outcome.success:
                result.succeeded += 1
            else:
                result.failed += 1
        return result

    async def cancel_pending(self, flow_id: UUID, now: datetime | None = None) -> int:
        await self._require_flow(flow_id)
        now = as_utc(now or datetime.now(UTC))
        cancelled = await self._executions.cancel_pending_for_flow(
            flow_id, reason="cancelled by operator", at=now
        )
        logger.info("Cancelled %s pending executions of flow %s", cancelled, flow_id)
        return cancelled

    async def run_now(self, execution_id: UUID, now: datetime | None = None) -> ExecutionResult:
        """Run a single PENDING or FAILED record immediately, ignoring its schedule."""
        record = await self._read_model.get_execution(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if not can_transition(record.status, ExecutionStatus.PROCESSING):
            raise InvalidTransitionError(record.status, ExecutionStatus.PROCESSING)

        now = as_utc(now or datetime.now(UTC))
        if not await self._executions.claim(execution_id, RUN_NOW_FROM, now):
            current = await self._read_model.get_execution(execution_id)
            raise InvalidTransitionError(
                current.status if current else record.status, ExecutionStatus.PROCESSING
            )
        return await self._runner.run_claimed(execution_id)

    async def trigger_for_guests(
        self, flow_id: UUID, guest_ids: Iterable[UUID], now: datetime | None = None
    ) -> int:
        """Queue the flow for selected guests. The next sweep runs them."""
        flow = await self._require_flow(flow_id)
        now = as_utc(now or datetime.now(UTC))
        created = 0
        for guest_id in guest_ids:
            context = await self._read_model.get_guest_context(guest_id)
            if context is None or context.event_id != flow.event_id:
                logger.warning("Guest %s is not part of event %s", guest_id, flow.event_id)
                continue
            if await self._executions.create_if_absent(flow.id, guest_id, scheduled_for=now):
                created += 1
        return created

    async def preview_flow(
        self, flow_id: UUID, now: datetime | None = None
    ) -> list[GuestPreviewDTO]:
        """Dry run: evaluate the flow's trigger for every guest of its event.

        Nothing is created, claimed or sent.
        """
        flow = await self._require_flow(flow_id)
        now = as_utc(now or datetime.now(UTC))
        preview = []
        for context in await self._read_model.list_guest_contexts(flow.event_id, flow.trigger):
            check = evaluate(flow.trigger, context, flow.delay_hours, now=now)
            existing = await self._read_model.get_execution_for(flow.id, context.guest_id)
            preview.append(
                GuestPreviewDTO(
                    guest_id=context.guest_id,
                    should_trigger=check.should_trigger,
                    eligible=check.eligible,
                    reason=check.reason,
                    scheduled_for=check.scheduled_for,
                    execution_status=existing.status if existing else None,
                )
            )
        return preview
