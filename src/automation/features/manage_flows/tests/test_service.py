from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.automation.dtos import (
    ActionKind,
    EventNotFoundError,
    ExecutionStatus,
    FlowAlreadyExistsError,
    FlowNotFoundError,
    FlowStatus,
    FlowValidationError,
    RsvpStatus,
    TriggerKind,
)
from src.automation.features.manage_flows.dtos import FlowChanges
from src.automation.tests.inmemory_models import InMemoryStore, build_inmemory_engine

# Flows schedule against the wall clock, keep the event well in the future
EVENT_AT = (datetime.now(UTC) + timedelta(days=30)).replace(
    hour=18, minute=0, second=0, microsecond=0
)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def event(store):
    return store.add_event(EVENT_AT)


@pytest.fixture
def service(store):
    return build_inmemory_engine(store).flow_service


@pytest.mark.asyncio
async def test_create_flow_starts_as_draft(service, event):
    flow = await service.create_flow(
        event.id, "Venue details", TriggerKind.BEFORE_EVENT, ActionKind.SEND_CUSTOM_SMS, delay_hours=3
    )

    assert flow.status == FlowStatus.DRAFT
    assert flow.delay_hours == 3
    assert (await service.get_flow(flow.id)) == flow


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "trigger, delay_hours",
    [
        (TriggerKind.NO_RESPONSE, None),
        (TriggerKind.AFTER_EVENT, None),
        (TriggerKind.NO_RESPONSE_SMS, 0),
        (TriggerKind.NO_RESPONSE_24H, -4),
    ],
)
async def test_create_flow_validates_delay(service, event, trigger, delay_hours):
    with pytest.raises(FlowValidationError):
        await service.create_flow(
            event.id, "Invalid", trigger, ActionKind.SEND_SMS_REMINDER, delay_hours=delay_hours
        )


@pytest.mark.asyncio
async def test_one_flow_per_trigger_and_event(service, event):
    await service.create_flow(
        event.id, "Chaser", TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_WHATSAPP_REMINDER
    )

    with pytest.raises(FlowAlreadyExistsError):
        await service.create_flow(
            event.id, "Chaser again", TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_SMS_REMINDER
        )


@pytest.mark.asyncio
async def test_create_flow_for_unknown_event(service):
    with pytest.raises(EventNotFoundError):
        await service.create_flow(
            uuid4(), "Chaser", TriggerKind.NO_RESPONSE_24H, ActionKind.SEND_WHATSAPP_REMINDER
        )


@pytest.mark.asyncio
async def test_create_from_template(service, event):
    flow = await service.create_from_template(event.id, "location-reminder")

    assert flow.name == "Location Reminder"
    assert flow.trigger == TriggerKind.BEFORE_EVENT
    assert flow.action == ActionKind.SEND_WHATSAPP_EVENT_DAY
    assert flow.delay_hours == 2

    with pytest.raises(FlowValidationError):
        await service.create_from_template(event.id, "no-such-template")


@pytest.mark.asyncio
async def test_activation_schedules_eligible_guests(service, store, event):
    confirmed = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    store.add_guest(event, first_name="Noa")
    flow = await service.create_from_template(event.id, "location-reminder")

    activated, report = await service.set_status(flow.id, FlowStatus.ACTIVE)

    assert activated.status == FlowStatus.ACTIVE
    assert report.created == 1
    record = store.execution_for(flow.id, confirmed.id)
    assert record.scheduled_for == EVENT_AT - timedelta(hours=2)


@pytest.mark.asyncio
async def test_same_status_is_a_no_op(service, store, event):
    store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    _, report = await service.set_status(flow.id, FlowStatus.ACTIVE)

    assert report.created == 0
    assert len(store.executions) == 1


@pytest.mark.asyncio
async def test_pause_keeps_pending_and_resume_reuses_them(service, store, event):
    store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    paused, report = await service.set_status(flow.id, FlowStatus.PAUSED)
    assert paused.status == FlowStatus.PAUSED
    assert report.skipped == 0
    [record] = store.executions.values()
    assert record.status == ExecutionStatus.PENDING

    _, resumed = await service.set_status(flow.id, FlowStatus.ACTIVE)
    assert resumed.created == 0
    assert len(store.executions) == 1


@pytest.mark.asyncio
async def test_archive_cancels_pending(service, store, event):
    guest = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    other = store.add_guest(event, first_name="Noa", rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)
    sent = store.execution_for(flow.id, other.id)
    store.executions[sent.id] = replace(sent, status=ExecutionStatus.COMPLETED)

    _, report = await service.set_status(flow.id, FlowStatus.ARCHIVED)

    assert report.skipped == 1
    assert store.execution_for(flow.id, guest.id).status == ExecutionStatus.SKIPPED


@pytest.mark.asyncio
async def test_delay_change_on_active_flow_moves_pending_records(service, store, event):
    guest = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    updated = await service.update_flow(
        flow.id, FlowChanges(fields_set=frozenset({"delay_hours"}), delay_hours=5)
    )

    assert updated.delay_hours == 5
    assert store.execution_for(flow.id, guest.id).scheduled_for == EVENT_AT - timedelta(hours=5)


@pytest.mark.asyncio
async def test_delay_change_on_draft_flow_touches_nothing(service, store, event):
    store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")

    await service.update_flow(
        flow.id, FlowChanges(fields_set=frozenset({"delay_hours"}), delay_hours=5)
    )

    assert store.executions == {}


@pytest.mark.asyncio
async def test_update_validates_merged_config(service, event):
    flow = await service.create_from_template(event.id, "location-reminder")

    with pytest.raises(FlowValidationError):
        await service.update_flow(
            flow.id, FlowChanges(fields_set=frozenset({"delay_hours"}), delay_hours=None)
        )


@pytest.mark.asyncio
async def test_update_only_applies_fields_set(service, event):
    flow = await service.create_flow(
        event.id,
        "Custom",
        TriggerKind.RSVP_DECLINED,
        ActionKind.SEND_CUSTOM_SMS,
        custom_message="Sorry to miss you",
    )

    updated = await service.update_flow(
        flow.id, FlowChanges(fields_set=frozenset({"name"}), name="Renamed")
    )

    assert updated.name == "Renamed"
    assert updated.custom_message == "Sorry to miss you"


@pytest.mark.asyncio
async def test_delete_flow_removes_executions(service, store, event):
    store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    await service.delete_flow(flow.id)

    assert store.executions == {}
    with pytest.raises(FlowNotFoundError):
        await service.get_flow(flow.id)


@pytest.mark.asyncio
async def test_list_flows_reports_counts(service, store, event):
    store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    [stats] = await service.list_flows(event.id)

    assert stats.flow.id == flow.id
    assert stats.total == stats.pending == 1


@pytest.mark.asyncio
async def test_trigger_change_to_rsvp_flow_drops_scheduled_reminders(store, event):
    engine = build_inmemory_engine(store)
    guest = store.add_guest(event)
    flow = store.add_flow(
        event,
        TriggerKind.NO_RESPONSE_24H,
        ActionKind.SEND_CUSTOM_WHATSAPP,
        custom_message="Thanks for confirming {guestName}!",
    )
    store.add_execution(flow, guest, scheduled_for=datetime.now(UTC) - timedelta(minutes=5))

    await engine.flow_service.update_flow(
        flow.id, FlowChanges(fields_set=frozenset({"trigger"}), trigger=TriggerKind.RSVP_CONFIRMED)
    )
    result = await engine.processor.process_due_executions()

    assert store.executions == {}
    assert result.processed == 0


@pytest.mark.asyncio
async def test_trigger_change_reschedules_for_new_trigger(service, store, event):
    guest = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)

    await service.update_flow(
        flow.id,
        FlowChanges(
            fields_set=frozenset({"trigger", "delay_hours"}),
            trigger=TriggerKind.EVENT_DAY_MORNING,
            delay_hours=None,
        ),
    )

    record = store.execution_for(flow.id, guest.id)
    assert record.status == ExecutionStatus.PENDING
    assert record.scheduled_for == EVENT_AT.replace(hour=9)


@pytest.mark.asyncio
async def test_trigger_change_keeps_finished_records(service, store, event):
    guest = store.add_guest(event, rsvp_status=RsvpStatus.ACCEPTED)
    flow = await service.create_from_template(event.id, "location-reminder")
    await service.set_status(flow.id, FlowStatus.ACTIVE)
    sent = store.execution_for(flow.id, guest.id)
    store.executions[sent.id] = replace(sent, status=ExecutionStatus.COMPLETED)

    await service.update_flow(
        flow.id,
        FlowChanges(fields_set=frozenset({"trigger"}), trigger=TriggerKind.RSVP_CONFIRMED),
    )

    assert store.executions[sent.id].status == ExecutionStatus.COMPLETED
