from datetime import UTC, datetime
from uuid import uuid4

import pytest

from src.automation.dtos import GuestContext, RsvpStatus, TriggerFamily, TriggerKind
from src.automation.triggers import (
    ALREADY_RESPONDED_REASON,
    EVENT_BASED_REASON,
    NO_NOTIFICATION_REASON,
    NOT_CONFIRMED_REASON,
    PAST_WINDOW_REASON,
    evaluate,
    event_trigger_for_status,
    requires_delay_hours,
    resolve_delay_hours,
    scheduled_time,
    trigger_family,
)

EVENT_AT = datetime(2025, 6, 10, 18, 0, tzinfo=UTC)
NOTIFIED_AT = datetime(2025, 6, 8, 10, 0, tzinfo=UTC)


def make_context(
    rsvp_status: RsvpStatus = RsvpStatus.PENDING,
    last_notification_at: datetime | None = NOTIFIED_AT,
    event_datetime: datetime = EVENT_AT,
    event_timezone: str = "UTC",
) -> GuestContext:
    return GuestContext(
        guest_id=uuid4(),
        event_id=uuid4(),
        rsvp_status=rsvp_status,
        event_datetime=event_datetime,
        last_notification_at=last_notification_at,
        event_timezone=event_timezone,
    )


@pytest.mark.parametrize("trigger", list(TriggerKind))
def test_every_trigger_has_a_family(trigger):
    assert isinstance(trigger_family(trigger), TriggerFamily)


def test_delay_hours_defaults_and_fixed_offsets():
    assert resolve_delay_hours(TriggerKind.NO_RESPONSE) == 24
    assert resolve_delay_hours(TriggerKind.NO_RESPONSE, 36) == 36
    assert resolve_delay_hours(TriggerKind.BEFORE_EVENT) == 2
    assert resolve_delay_hours(TriggerKind.AFTER_EVENT) == 12
    # Legacy triggers ignore the flow's delay
    assert resolve_delay_hours(TriggerKind.NO_RESPONSE_48H, 5) == 48
    assert resolve_delay_hours(TriggerKind.HOURS_BEFORE_EVENT_2, 5) == 2
    assert resolve_delay_hours(TriggerKind.EVENT_DAY_MORNING) is None


def test_flexible_triggers_require_delay_hours():
    assert requires_delay_hours(TriggerKind.NO_RESPONSE_SMS)
    assert requires_delay_hours(TriggerKind.BEFORE_EVENT)
    assert not requires_delay_hours(TriggerKind.NO_RESPONSE_24H)
    assert not requires_delay_hours(TriggerKind.RSVP_CONFIRMED)


def test_event_trigger_for_status():
    assert event_trigger_for_status(RsvpStatus.ACCEPTED) == TriggerKind.RSVP_CONFIRMED
    assert event_trigger_for_status(RsvpStatus.DECLINED) == TriggerKind.RSVP_DECLINED
    assert event_trigger_for_status(RsvpStatus.MAYBE) is None


@pytest.mark.parametrize("trigger", [TriggerKind.RSVP_CONFIRMED, TriggerKind.RSVP_DECLINED])
def test_event_based_triggers_never_fire_from_evaluator(trigger):
    result = evaluate(trigger, make_context(RsvpStatus.ACCEPTED), now=EVENT_AT)

    assert result.should_trigger is False
    assert result.reason == EVENT_BASED_REASON
    assert scheduled_time(trigger, EVENT_AT, NOTIFIED_AT, now=NOTIFIED_AT) is None


# No-response family


def test_no_response_scheduled_from_last_notification():
    scheduled = scheduled_time(
        TriggerKind.NO_RESPONSE, EVENT_AT, NOTIFIED_AT, delay_hours=24, now=NOTIFIED_AT
    )

    assert scheduled == datetime(2025, 6, 9, 10, 0, tzinfo=UTC)


def test_no_response_fires_after_delay():
    result = evaluate(
        TriggerKind.NO_RESPONSE,
        make_context(),
        delay_hours=24,
        now=datetime(2025, 6, 9, 10, 5, tzinfo=UTC),
    )

    assert result.should_trigger is True
    assert result.eligible is True
    assert result.reason == "24 hours passed since last notification"


def test_no_response_before_delay_reports_target():
    result = evaluate(
        TriggerKind.NO_RESPONSE,
        make_context(),
        delay_hours=24,
        now=datetime(2025, 6, 9, 9, 0, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.eligible is True
    assert result.reason == "only 23 hours passed"
    assert result.scheduled_for == datetime(2025, 6, 9, 10, 0, tzinfo=UTC)


def test_no_response_not_eligible_once_guest_answered():
    result = evaluate(
        TriggerKind.NO_RESPONSE,
        make_context(RsvpStatus.ACCEPTED),
        delay_hours=24,
        now=datetime(2025, 6, 9, 10, 5, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.eligible is False
    assert result.reason == ALREADY_RESPONDED_REASON
    assert result.scheduled_for is None


def test_no_response_needs_a_notification():
    result = evaluate(
        TriggerKind.NO_RESPONSE_24H,
        make_context(last_notification_at=None),
        now=datetime(2025, 6, 9, 10, 5, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.eligible is False
    assert result.reason == NO_NOTIFICATION_REASON
    assert scheduled_time(TriggerKind.NO_RESPONSE_24H, EVENT_AT, None) is None


def test_no_response_instant_returned_even_when_due():
    now = datetime(2025, 6, 12, 0, 0, tzinfo=UTC)

    scheduled = scheduled_time(TriggerKind.NO_RESPONSE_48H, EVENT_AT, NOTIFIED_AT, now=now)

    assert scheduled == datetime(2025, 6, 10, 10, 0, tzinfo=UTC)


def test_naive_notification_time_is_treated_as_utc():
    scheduled = scheduled_time(
        TriggerKind.NO_RESPONSE_72H,
        EVENT_AT,
        datetime(2025, 6, 8, 10, 0),
        now=NOTIFIED_AT,
    )

    assert scheduled == datetime(2025, 6, 11, 10, 0, tzinfo=UTC)


# Offset from the event


def test_before_event_fires_inside_window():
    result = evaluate(
        TriggerKind.BEFORE_EVENT,
        make_context(RsvpStatus.ACCEPTED),
        delay_hours=2,
        now=datetime(2025, 6, 10, 16, 10, tzinfo=UTC),
    )

    assert result.should_trigger is True
    assert result.reason == "2 hours before event"


def test_before_event_early_reports_target():
    result = evaluate(
        TriggerKind.BEFORE_EVENT,
        make_context(RsvpStatus.ACCEPTED),
        delay_hours=2,
        now=datetime(2025, 6, 10, 13, 0, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.scheduled_for == datetime(2025, 6, 10, 16, 0, tzinfo=UTC)
    assert result.reason == "3 hours until trigger"


def test_before_event_past_window():
    result = evaluate(
        TriggerKind.HOURS_BEFORE_EVENT_2,
        make_context(RsvpStatus.ACCEPTED),
        now=datetime(2025, 6, 10, 16, 45, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.eligible is True
    assert result.reason == PAST_WINDOW_REASON


def test_before_event_only_for_confirmed_guests():
    result = evaluate(
        TriggerKind.BEFORE_EVENT,
        make_context(RsvpStatus.PENDING),
        delay_hours=2,
        now=datetime(2025, 6, 10, 16, 10, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.eligible is False
    assert result.reason == NOT_CONFIRMED_REASON


def test_after_event_fires_inside_window():
    result = evaluate(
        TriggerKind.AFTER_EVENT,
        make_context(RsvpStatus.ACCEPTED),
        delay_hours=12,
        now=datetime(2025, 6, 11, 6, 20, tzinfo=UTC),
    )

    assert result.should_trigger is True
    assert result.reason == "12 hours after event"


def test_event_anchored_instant_in_the_past_is_none():
    now = datetime(2025, 6, 10, 17, 0, tzinfo=UTC)

    assert scheduled_time(TriggerKind.BEFORE_EVENT, EVENT_AT, delay_hours=2, now=now) is None
    assert scheduled_time(
        TriggerKind.AFTER_EVENT, EVENT_AT, delay_hours=12, now=now
    ) == datetime(2025, 6, 11, 6, 0, tzinfo=UTC)


# Morning windows


def test_event_day_morning_fires_between_nine_and_ten():
    result = evaluate(
        TriggerKind.EVENT_DAY_MORNING,
        make_context(RsvpStatus.ACCEPTED),
        now=datetime(2025, 6, 10, 9, 30, tzinfo=UTC),
    )

    assert result.should_trigger is True
    assert result.reason == "event morning (9:00-10:00)"


def test_event_day_morning_outside_window():
    result = evaluate(
        TriggerKind.EVENT_MORNING,
        make_context(RsvpStatus.ACCEPTED),
        now=datetime(2025, 6, 10, 11, 0, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.reason == "outside event morning window"


def test_event_day_morning_on_another_day():
    result = evaluate(
        TriggerKind.EVENT_DAY_MORNING,
        make_context(RsvpStatus.ACCEPTED),
        now=datetime(2025, 6, 9, 9, 30, tzinfo=UTC),
    )

    assert result.should_trigger is False
    assert result.reason == "not the event day"
    assert result.scheduled_for == datetime(2025, 6, 10, 9, 0, tzinfo=UTC)


def test_day_after_morning():
    now = datetime(2025, 6, 1, tzinfo=UTC)

    assert scheduled_time(TriggerKind.DAY_AFTER_MORNING, EVENT_AT, now=now) == datetime(
        2025, 6, 11, 11, 0, tzinfo=UTC
    )
    result = evaluate(
        TriggerKind.DAY_AFTER_EVENT,
        make_context(RsvpStatus.ACCEPTED),
        now=datetime(2025, 6, 11, 11, 15, tzinfo=UTC),
    )
    assert result.should_trigger is True


def test_morning_window_uses_event_timezone():
    # 18:00 in Jerusalem (UTC+3 in June)
    event_at = datetime(2025, 6, 10, 15, 0, tzinfo=UTC)
    context = make_context(
        RsvpStatus.ACCEPTED, event_datetime=event_at, event_timezone="Asia/Jerusalem"
    )

    scheduled = scheduled_time(
        TriggerKind.EVENT_DAY_MORNING,
        event_at,
        event_timezone="Asia/Jerusalem",
        now=datetime(2025, 6, 1, tzinfo=UTC),
    )
    result = evaluate(
        TriggerKind.EVENT_DAY_MORNING, context, now=datetime(2025, 6, 10, 6, 30, tzinfo=UTC)
    )

    assert scheduled == datetime(2025, 6, 10, 6, 0, tzinfo=UTC)
    assert result.should_trigger is True


def test_unknown_timezone_falls_back_to_utc():
    scheduled = scheduled_time(
        TriggerKind.EVENT_DAY_MORNING,
        EVENT_AT,
        event_timezone="Not/AZone",
        now=datetime(2025, 6, 1, tzinfo=UTC),
    )

    assert scheduled == datetime(2025, 6, 10, 9, 0, tzinfo=UTC)
