"""Entry points for changes made outside the automation engine.

The RSVP page and the bulk messaging screens report here so RSVP flows fire
and no-response flows get armed from invites the engine did not send.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from src.automation.dtos import Channel, HandlerReport, NotificationType, RsvpStatus
from src.automation.engine import get_automation_engine
from src.automation.handlers import AutomationEventHandlers
from src.automation.repository.read_models import AutomationReadModel
from src.automation.urls import EVENT_NOTIFICATION_SENT_URL, EVENT_RSVP_CHANGED_URL

router = APIRouter()


class RsvpChanged(BaseModel):
    guest_id: UUID
    new_status: RsvpStatus
    previous_status: RsvpStatus | None = None


class NotificationSent(BaseModel):
    guest_id: UUID
    notification_type: NotificationType
    channel: Channel | None = None
    sent_at: datetime | None = None


class HandlerReportResponse(BaseModel):
    created: int
    updated: int
    executed: int
    skipped: int
    failed: int

    @classmethod
    def from_report(cls, report: HandlerReport) -> "HandlerReportResponse":
        return cls(
            created=report.created,
            updated=report.updated,
            executed=report.executed,
            skipped=report.skipped,
            failed=report.failed,
        )


def get_automation_handlers() -> AutomationEventHandlers:
    """Dependency to get the automation event handlers."""
    return get_automation_engine().handlers


def get_automation_read_model() -> AutomationReadModel:
    """Dependency to get the automation read model."""
    return get_automation_engine().read_model


async def _require_guest(read_model: AutomationReadModel, event_id: UUID, guest_id: UUID) -> None:
    context = await read_model.get_guest_context(guest_id)
    if context is None or context.event_id != event_id:
        raise HTTPException(
            status_code=404, detail=f"Guest {guest_id} not found for event {event_id}"
        )


@router.post(EVENT_RSVP_CHANGED_URL, response_model=HandlerReportResponse)
async def rsvp_changed(
    event_id: UUID,
    change: RsvpChanged,
    handlers: AutomationEventHandlers = Depends(get_automation_handlers),
    read_model: AutomationReadModel = Depends(get_automation_read_model),
) -> HandlerReportResponse:
    """
    Report a guest's new RSVP status.
    Confirmation / decline flows run right away and pending reminders are dropped.
    """
    await _require_guest(read_model, event_id, change.guest_id)
    report = await handlers.on_rsvp_status_changed(
        guest_id=change.guest_id,
        event_id=event_id,
        new_status=change.new_status,
        previous_status=change.previous_status,
    )
    return HandlerReportResponse.from_report(report)


@router.post(EVENT_NOTIFICATION_SENT_URL, response_model=HandlerReportResponse)
async def notification_sent(
    event_id: UUID,
    notification: NotificationSent,
    handlers: AutomationEventHandlers = Depends(get_automation_handlers),
    read_model: AutomationReadModel = Depends(get_automation_read_model),
) -> HandlerReportResponse:
    await _require_guest(read_model, event_id, notification.guest_id)
    report = await handlers.on_notification_sent(
        guest_id=notification.guest_id,
        event_id=event_id,
        notification_type=notification.notification_type,
        sent_at=notification.sent_at or datetime.now(UTC),
        channel=notification.channel,
    )
    return HandlerReportResponse.from_report(report)
