from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.automation.dtos import ActionKind, ExecutionStatus, RsvpStatus, TriggerKind
from src.automation.features.domain_events.router import (
    get_automation_handlers,
    get_automation_read_model,
)
from src.automation.tests.inmemory_models import (
    InMemoryStore,
    RecordingTransport,
    build_inmemory_engine,
)
from src.automation.urls import EVENT_NOTIFICATION_SENT_URL, EVENT_RSVP_CHANGED_URL

EVENT_AT = datetime.now(UTC) + timedelta(days=30)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def event(store):
    return store.add_event(EVENT_AT)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def overrides(store, transport):
    engine = build_inmemory_engine(store, transport=transport)
    return {
        get_automation_handlers: lambda: engine.handlers,
        get_automation_read_model: lambda: engine.read_model,
    }


@pytest.mark.asyncio
async def test_rsvp_changed_runs_thank_you_flow(client_factory, overrides, store, event, transport):
    guest = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    reminder_flow = store.add_flow(
        event, TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_WHATSAPP_REMINDER
    )
    reminder = store.add_execution(
        reminder_flow, guest, scheduled_for=datetime.now(UTC) + timedelta(hours=3)
    )
    thanks_flow = store.add_flow(
        event,
        TriggerKind.RSVP_CONFIRMED,
        ActionKind.SEND_CUSTOM_WHATSAPP,
        custom_message="Thanks {guestName}, see you there!",
    )

    async with client_factory(overrides) as client:
        response = await client.post(
            EVENT_RSVP_CHANGED_URL.format(event_id=event.id),
            json={"guest_id": str(guest.id), "new_status": "ACCEPTED", "previous_status": "PENDING"},
        )

    assert response.status_code == 200
    assert response.json() == {
        "created": 1,
        "updated": 0,
        "executed": 1,
        "skipped": 1,
        "failed": 0,
    }
    assert store.execution_for(thanks_flow.id, guest.id).status == ExecutionStatus.COMPLETED
    assert store.executions[reminder.id].status == ExecutionStatus.SKIPPED
    assert [message.body for message in transport.sent] == ["Thanks Avi, see you there!"]


@pytest.mark.asyncio
async def test_rsvp_changed_errors(client_factory, overrides, store, event):
    guest = store.add_guest(event)
    other_event = store.add_event(EVENT_AT, name="Other wedding")

    async with client_factory(overrides) as client:
        unknown_guest = await client.post(
            EVENT_RSVP_CHANGED_URL.format(event_id=event.id),
            json={"guest_id": str(uuid4()), "new_status": "ACCEPTED"},
        )
        wrong_event = await client.post(
            EVENT_RSVP_CHANGED_URL.format(event_id=other_event.id),
            json={"guest_id": str(guest.id), "new_status": "ACCEPTED"},
        )
        bad_status = await client.post(
            EVENT_RSVP_CHANGED_URL.format(event_id=event.id),
            json={"guest_id": str(guest.id), "new_status": "SOMETIMES"},
        )

    assert unknown_guest.status_code == 404
    assert wrong_event.status_code == 404
    assert bad_status.status_code == 422


@pytest.mark.asyncio
async def test_notification_sent_arms_no_response_flow(client_factory, overrides, store, event):
    guest = store.add_guest(event)
    flow = store.add_flow(event, TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_SMS_REMINDER)
    sent_at = datetime.now(UTC) - timedelta(hours=1)

    async with client_factory(overrides) as client:
        response = await client.post(
            EVENT_NOTIFICATION_SENT_URL.format(event_id=event.id),
            json={
                "guest_id": str(guest.id),
                "notification_type": "INVITE",
                "channel": "WHATSAPP",
                "sent_at": sent_at.isoformat(),
            },
        )

    assert response.status_code == 200
    assert response.json()["created"] == 1
    record = store.execution_for(flow.id, guest.id)
    assert record.status == ExecutionStatus.PENDING
    assert record.scheduled_for == sent_at + timedelta(hours=24)


@pytest.mark.asyncio
async def test_notification_sent_ignores_other_notification_types(
    client_factory, overrides, store, event
):
    guest = store.add_guest(event)
    store.add_flow(event, TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_SMS_REMINDER)

    async with client_factory(overrides) as client:
        response = await client.post(
            EVENT_NOTIFICATION_SENT_URL.format(event_id=event.id),
            json={"guest_id": str(guest.id), "notification_type": "TABLE_ASSIGNMENT"},
        )
        missing = await client.post(
            EVENT_NOTIFICATION_SENT_URL.format(event_id=event.id),
            json={"guest_id": str(uuid4()), "notification_type": "INVITE"},
        )

    assert response.status_code == 200
    assert response.json()["created"] == 0
    assert store.executions == {}
    assert missing.status_code == 404
