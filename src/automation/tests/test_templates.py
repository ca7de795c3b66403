from datetime import UTC, datetime
from uuid import uuid4

import pytest

from src.automation.dtos import ExecutionContext
from src.automation.templates import format_phone_number, render_message, rsvp_link


def make_context(**kwargs) -> ExecutionContext:
    values = {
        "guest_id": uuid4(),
        "event_id": uuid4(),
        "guest_name": "Avi Cohen",
        "event_date": datetime(2025, 6, 10, 15, 0, tzinfo=UTC),
        "event_title": "Dana & Noam",
        "event_timezone": "Asia/Jerusalem",
        "event_venue": "Villa Rosa",
        "event_address": "1 Harbour Road, Haifa",
        "table_name": "Table 7",
        "guest_count": 3,
        "rsvp_link": "https://wedding.test/rsvp/abc",
    }
    values.update(kwargs)
    return ExecutionContext(**values)


def test_render_message_substitutes_all_variables():
    template = (
        "{guestName}|{eventDate}|{eventTime}|{venue}|{address}|{guestCount}|{tableName}|{rsvpLink}"
    )

    message = render_message(template, make_context())

    assert message == (
        "Avi Cohen|10/06/2025|18:00|Villa Rosa|1 Harbour Road, Haifa|3|Table 7"
        "|https://wedding.test/rsvp/abc"
    )


def test_render_message_leaves_unknown_placeholders():
    assert render_message("Hi {guestName}, {unknown}", make_context()) == "Hi Avi Cohen, {unknown}"


def test_render_message_blank_for_missing_values():
    message = render_message("[{tableName}]", make_context(table_name=None))

    assert message == "[]"


@pytest.mark.parametrize(
    "phone,expected",
    [
        ("052-123-4567", "+972521234567"),
        ("0521234567", "+972521234567"),
        ("+972 52 123 4567", "+972521234567"),
        ("972521234567", "+972521234567"),
        ("+1 (415) 555-0000", "+14155550000"),
    ],
)
def test_format_phone_number(phone, expected):
    assert format_phone_number(phone) == expected


def test_format_phone_number_with_other_country_code():
    assert format_phone_number("0612345678", default_country_code="31") == "+31612345678"


def test_rsvp_link():
    assert rsvp_link("https://wedding.test/", "abc") == "https://wedding.test/rsvp/abc"
