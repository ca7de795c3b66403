"""Trigger evaluation and scheduled-time arithmetic.

Both functions are pure: they never touch the store and take ``now`` as an
argument so callers (and tests) control the clock.
"""

from datetime import UTC, date, datetime, time, timedelta
from typing import assert_never
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.automation.dtos import (
    Channel,
    GuestContext,
    RsvpStatus,
    TriggerCheckResult,
    TriggerFamily,
    TriggerKind,
)

EVENT_BASED_REASON = "event-based, not time-based"
NOT_ELIGIBLE = "not eligible"
ALREADY_RESPONDED_REASON = f"{NOT_ELIGIBLE}: guest already responded"
NOT_CONFIRMED_REASON = f"{NOT_ELIGIBLE}: guest not confirmed"
NO_NOTIFICATION_REASON = f"{NOT_ELIGIBLE}: no notification sent yet"
PAST_WINDOW_REASON = "past trigger window"

# Tolerance band for the relative before/after event triggers
OFFSET_WINDOW = timedelta(minutes=30)
EVENT_DAY_MORNING_HOUR = 9
DAY_AFTER_MORNING_HOUR = 11

DEFAULT_NO_RESPONSE_DELAY = 24
DEFAULT_BEFORE_EVENT_DELAY = 2
DEFAULT_AFTER_EVENT_DELAY = 12


def trigger_family(trigger: TriggerKind) -> TriggerFamily:
    match trigger:
        case TriggerKind.RSVP_CONFIRMED | TriggerKind.RSVP_DECLINED:
            return TriggerFamily.EVENT_BASED
        case (
            TriggerKind.NO_RESPONSE
            | TriggerKind.NO_RESPONSE_WHATSAPP
            | TriggerKind.NO_RESPONSE_SMS
            | TriggerKind.NO_RESPONSE_24H
            | TriggerKind.NO_RESPONSE_48H
            | TriggerKind.NO_RESPONSE_72H
        ):
            return TriggerFamily.NO_RESPONSE
        case TriggerKind.BEFORE_EVENT | TriggerKind.HOURS_BEFORE_EVENT_2:
            return TriggerFamily.BEFORE_EVENT
        case TriggerKind.AFTER_EVENT:
            return TriggerFamily.AFTER_EVENT
        case TriggerKind.EVENT_DAY_MORNING | TriggerKind.EVENT_MORNING:
            return TriggerFamily.EVENT_DAY_MORNING
        case TriggerKind.DAY_AFTER_MORNING | TriggerKind.DAY_AFTER_EVENT:
            return TriggerFamily.DAY_AFTER_MORNING
        case _:
            assert_never(trigger)


def is_event_based(trigger: TriggerKind) -> bool:
    return trigger_family(trigger) == TriggerFamily.EVENT_BASED


def is_no_response(trigger: TriggerKind) -> bool:
    return trigger_family(trigger) == TriggerFamily.NO_RESPONSE


def requires_delay_hours(trigger: TriggerKind) -> bool:
    """Flexible triggers take their offset from the flow's ``delay_hours``."""
    return trigger in (
        TriggerKind.NO_RESPONSE,
        TriggerKind.NO_RESPONSE_WHATSAPP,
        TriggerKind.NO_RESPONSE_SMS,
        TriggerKind.BEFORE_EVENT,
        TriggerKind.AFTER_EVENT,
    )


def notification_channel(trigger: TriggerKind) -> Channel | None:
    """Channel whose notifications anchor a no-response trigger, None means any."""
    if trigger == TriggerKind.NO_RESPONSE_WHATSAPP:
        return Channel.WHATSAPP
    if trigger == TriggerKind.NO_RESPONSE_SMS:
        return Channel.SMS
    return None


def event_trigger_for_status(status: RsvpStatus) -> TriggerKind | None:
    if status == RsvpStatus.ACCEPTED:
        return TriggerKind.RSVP_CONFIRMED
    if status == RsvpStatus.DECLINED:
        return TriggerKind.RSVP_DECLINED
    return None


def resolve_delay_hours(trigger: TriggerKind, delay_hours: int | None = None) -> int | None:
    """Offset in hours for a trigger, None for triggers without one."""
    match trigger:
        case TriggerKind.NO_RESPONSE | TriggerKind.NO_RESPONSE_WHATSAPP | TriggerKind.NO_RESPONSE_SMS:
            return delay_hours or DEFAULT_NO_RESPONSE_DELAY
        case TriggerKind.BEFORE_EVENT:
            return delay_hours or DEFAULT_BEFORE_EVENT_DELAY
        case TriggerKind.AFTER_EVENT:
            return delay_hours or DEFAULT_AFTER_EVENT_DELAY
        case TriggerKind.NO_RESPONSE_24H:
            return 24
        case TriggerKind.NO_RESPONSE_48H:
            return 48
        case TriggerKind.NO_RESPONSE_72H:
            return 72
        case TriggerKind.HOURS_BEFORE_EVENT_2:
            return 2
        case (
            TriggerKind.RSVP_CONFIRMED
            | TriggerKind.RSVP_DECLINED
            | TriggerKind.EVENT_DAY_MORNING
            | TriggerKind.EVENT_MORNING
            | TriggerKind.DAY_AFTER_MORNING
            | TriggerKind.DAY_AFTER_EVENT
        ):
            return None
        case _:
            assert_never(trigger)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _zone(event_timezone: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(event_timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _local_event_date(event_datetime: datetime, event_timezone: str | None) -> date:
    return as_utc(event_datetime).astimezone(_zone(event_timezone)).date()


def morning_window_start(
    event_datetime: datetime,
    event_timezone: str | None,
    days_after_event: int,
    hour: int,
) -> datetime:
    """Start of a morning band in event-local time, returned in UTC."""
    local_day = _local_event_date(event_datetime, event_timezone) + timedelta(days=days_after_event)
    start = datetime.combine(local_day, time(hour), tzinfo=_zone(event_timezone))
    return start.astimezone(UTC)


def _not_eligible(reason: str) -> TriggerCheckResult:
    return TriggerCheckResult(should_trigger=False, reason=reason, eligible=False)


def _check_no_response(context: GuestContext, hours: int, now: datetime) -> TriggerCheckResult:
    if context.rsvp_status != RsvpStatus.PENDING:
        return _not_eligible(ALREADY_RESPONDED_REASON)
    if context.last_notification_at is None:
        return _not_eligible(NO_NOTIFICATION_REASON)

    last_sent = as_utc(context.last_notification_at)
    target = last_sent + timedelta(hours=hours)
    if now >= target:
        return TriggerCheckResult(
            should_trigger=True, reason=f"{hours} hours passed since last notification"
        )
    hours_passed = int((now - last_sent).total_seconds() // 3600)
    return TriggerCheckResult(
        should_trigger=False,
        reason=f"only {hours_passed} hours passed",
        scheduled_for=target,
    )


def _check_offset(target: datetime, label: str, now: datetime) -> TriggerCheckResult:
    if target <= now <= target + OFFSET_WINDOW:
        return TriggerCheckResult(should_trigger=True, reason=label)
    if now < target:
        hours_left = int((target - now).total_seconds() // 3600)
        return TriggerCheckResult(
            should_trigger=False,
            reason=f"{hours_left} hours until trigger",
            scheduled_for=target,
        )
    return TriggerCheckResult(should_trigger=False, reason=PAST_WINDOW_REASON)


def _check_morning(
    context: GuestContext,
    days_after_event: int,
    hour: int,
    label: str,
    now: datetime,
) -> TriggerCheckResult:
    start = morning_window_start(
        context.event_datetime, context.event_timezone, days_after_event, hour
    )
    local_now = now.astimezone(_zone(context.event_timezone))
    local_start = start.astimezone(_zone(context.event_timezone))

    if local_now.date() != local_start.date():
        return TriggerCheckResult(
            should_trigger=False, reason=f"not the {label} day", scheduled_for=start
        )
    if hour <= local_now.hour < hour + 1:
        return TriggerCheckResult(
            should_trigger=True, reason=f"{label} morning ({hour}:00-{hour + 1}:00)"
        )
    return TriggerCheckResult(
        should_trigger=False, reason=f"outside {label} morning window", scheduled_for=start
    )


def evaluate(
    trigger: TriggerKind,
    context: GuestContext,
    delay_hours: int | None = None,
    now: datetime | None = None,
) -> TriggerCheckResult:
    """Decide whether ``trigger`` fires for the guest right now.

    Eligibility is checked before timing: an ineligible guest never gets a
    ``scheduled_for``. Event-based triggers are resolved by the RSVP handler
    and never fire from here.
    """
    now = as_utc(now or datetime.now(UTC))
    hours = resolve_delay_hours(trigger, delay_hours)
    family = trigger_family(trigger)

    match family:
        case TriggerFamily.EVENT_BASED:
            return TriggerCheckResult(should_trigger=False, reason=EVENT_BASED_REASON)
        case TriggerFamily.NO_RESPONSE:
            return _check_no_response(context, hours, now)
        case TriggerFamily.BEFORE_EVENT:
            if context.rsvp_status != RsvpStatus.ACCEPTED:
                return _not_eligible(NOT_CONFIRMED_REASON)
            target = as_utc(context.event_datetime) - timedelta(hours=hours)
            return _check_offset(target, f"{hours} hours before event", now)
        case TriggerFamily.AFTER_EVENT:
            if context.rsvp_status != RsvpStatus.ACCEPTED:
                return _not_eligible(NOT_CONFIRMED_REASON)
            target = as_utc(context.event_datetime) + timedelta(hours=hours)
            return _check_offset(target, f"{hours} hours after event", now)
        case TriggerFamily.EVENT_DAY_MORNING:
            if context.rsvp_status != RsvpStatus.ACCEPTED:
                return _not_eligible(NOT_CONFIRMED_REASON)
            return _check_morning(context, 0, EVENT_DAY_MORNING_HOUR, "event", now)
        case TriggerFamily.DAY_AFTER_MORNING:
            if context.rsvp_status != RsvpStatus.ACCEPTED:
                return _not_eligible(NOT_CONFIRMED_REASON)
            return _check_morning(context, 1, DAY_AFTER_MORNING_HOUR, "day-after", now)
        case _:
            assert_never(family)


def scheduled_time(
    trigger: TriggerKind,
    event_datetime: datetime,
    last_notification_at: datetime | None = None,
    delay_hours: int | None = None,
    event_timezone: str | None = "UTC",
    now: datetime | None = None,
) -> datetime | None:
    """Absolute instant at which a time-based trigger should fire.

    Returns None for event-based triggers and when the anchor is missing.
    Event-anchored instants that are not in the future also give None. The
    no-response instant is per guest and is returned even when already due,
    so the next sweep picks it up.
    """
    now = as_utc(now or datetime.now(UTC))
    hours = resolve_delay_hours(trigger, delay_hours)
    family = trigger_family(trigger)

    match family:
        case TriggerFamily.EVENT_BASED:
            return None
        case TriggerFamily.NO_RESPONSE:
            if last_notification_at is None:
                return None
            return as_utc(last_notification_at) + timedelta(hours=hours)
        case TriggerFamily.BEFORE_EVENT:
            instant = as_utc(event_datetime) - timedelta(hours=hours)
        case TriggerFamily.AFTER_EVENT:
            instant = as_utc(event_datetime) + timedelta(hours=hours)
        case TriggerFamily.EVENT_DAY_MORNING:
            instant = morning_window_start(event_datetime, event_timezone, 0, EVENT_DAY_MORNING_HOUR)
        case TriggerFamily.DAY_AFTER_MORNING:
            instant = morning_window_start(event_datetime, event_timezone, 1, DAY_AFTER_MORNING_HOUR)
        case _:
            assert_never(family)

    return instant if instant > now else None
