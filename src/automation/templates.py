import re
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.automation.dtos import ExecutionContext

UNASSIGNED_TABLE = "Not yet assigned"


@dataclass
class MessageTemplates:
    # Free-form bodies used when no approved WhatsApp template is configured
    TABLE_ASSIGNMENT = (
        "Hi {guestName}!\n\n"
        "We're looking forward to seeing you today.\n\n"
        "Your table: {tableName}\n"
        "Location: {venue} {address}\n\n"
        "See you soon!"
    )
    SMS_REMINDER = (
        "Hi {guestName}, a reminder about the event on {eventDate} at {eventTime}. "
        "Please RSVP here: {rsvpLink}"
    )


def _zone(event_timezone: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(event_timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def format_event_date(context: ExecutionContext) -> str:
    return context.event_date.astimezone(_zone(context.event_timezone)).strftime("%d/%m/%Y")


def format_event_time(context: ExecutionContext) -> str:
    if context.event_time:
        return context.event_time
    return context.event_date.astimezone(_zone(context.event_timezone)).strftime("%H:%M")


def render_message(template: str, context: ExecutionContext) -> str:
    """Substitute the ``{placeholder}`` variables with guest and event values.

    Unknown placeholders are left as-is, so ``str.format`` is not used.
    """
    values = {
        "guestName": context.guest_name or "",
        "eventDate": format_event_date(context),
        "eventTime": format_event_time(context),
        "venue": context.event_venue or "",
        "address": context.event_address or context.event_location or "",
        "guestCount": str(context.guest_count or 1),
        "tableName": context.table_name or "",
        "rsvpLink": context.rsvp_link or "",
    }
    message = template
    for key, value in values.items():
        message = message.replace("{" + key + "}", value)
    return message


def format_phone_number(phone: str, default_country_code: str = "972") -> str:
    """Normalise a phone number to E.164.

    Local numbers with a leading 0 (e.g. ``050-123-4567``) get the default
    country code.
    """
    cleaned = re.sub(r"[^\d+]", "", phone)

    if cleaned.startswith("+") and len(cleaned) >= 10:
        return cleaned

    cleaned = cleaned.lstrip("+")

    if cleaned.startswith("0") and 9 <= len(cleaned) <= 10:
        return f"+{default_country_code}{cleaned[1:]}"

    return f"+{cleaned}"


def rsvp_link(frontend_url: str, rsvp_token: str) -> str:
    return f"{frontend_url.rstrip('/')}/rsvp/{rsvp_token}"


def event_local_time(event_date: datetime, event_timezone: str | None) -> str:
    return event_date.astimezone(_zone(event_timezone)).strftime("%H:%M")
