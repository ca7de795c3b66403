from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class FlowNotFoundError(Exception):
    """Raised when an automation flow does not exist."""

    def __init__(self, flow_id: UUID) -> None:
        self.flow_id = flow_id
        super().__init__(f"Automation flow '{flow_id}' not found")


class FlowAlreadyExistsError(Exception):
    """Raised when an event already has a flow for the requested trigger."""

    def __init__(self, event_id: UUID, trigger: "TriggerKind") -> None:
        self.event_id = event_id
        self.trigger = trigger
        super().__init__(f"A flow with trigger '{trigger.value}' already exists for this event")


class FlowValidationError(ValueError):
    """Raised when a flow configuration is incomplete or inconsistent."""


class EventNotFoundError(Exception):
    def __init__(self, event_id: UUID) -> None:
        self.event_id = event_id
        super().__init__(f"Event '{event_id}' not found")


class ExecutionNotFoundError(Exception):
    def __init__(self, execution_id: UUID) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found")


class InvalidTransitionError(Exception):
    """Raised when an operator command targets a record in the wrong state."""

    def __init__(self, current: "ExecutionStatus", target: "ExecutionStatus") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move execution from {current.value} to {target.value}")


class RsvpStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    MAYBE = "MAYBE"


class TriggerKind(str, Enum):
    # Event-based
    RSVP_CONFIRMED = "RSVP_CONFIRMED"
    RSVP_DECLINED = "RSVP_DECLINED"
    # Flexible, time-based (use the flow's delay_hours)
    NO_RESPONSE = "NO_RESPONSE"
    NO_RESPONSE_WHATSAPP = "NO_RESPONSE_WHATSAPP"
    NO_RESPONSE_SMS = "NO_RESPONSE_SMS"
    BEFORE_EVENT = "BEFORE_EVENT"
    AFTER_EVENT = "AFTER_EVENT"
    # Presets
    EVENT_DAY_MORNING = "EVENT_DAY_MORNING"
    DAY_AFTER_MORNING = "DAY_AFTER_MORNING"
    # Legacy presets
    NO_RESPONSE_24H = "NO_RESPONSE_24H"
    NO_RESPONSE_48H = "NO_RESPONSE_48H"
    NO_RESPONSE_72H = "NO_RESPONSE_72H"
    EVENT_MORNING = "EVENT_MORNING"
    HOURS_BEFORE_EVENT_2 = "HOURS_BEFORE_EVENT_2"
    DAY_AFTER_EVENT = "DAY_AFTER_EVENT"


class TriggerFamily(str, Enum):
    EVENT_BASED = "EVENT_BASED"
    NO_RESPONSE = "NO_RESPONSE"
    BEFORE_EVENT = "BEFORE_EVENT"
    AFTER_EVENT = "AFTER_EVENT"
    EVENT_DAY_MORNING = "EVENT_DAY_MORNING"
    DAY_AFTER_MORNING = "DAY_AFTER_MORNING"


class ActionKind(str, Enum):
    SEND_WHATSAPP_INVITE = "SEND_WHATSAPP_INVITE"
    SEND_WHATSAPP_REMINDER = "SEND_WHATSAPP_REMINDER"
    SEND_WHATSAPP_CONFIRMATION = "SEND_WHATSAPP_CONFIRMATION"
    SEND_WHATSAPP_GUEST_COUNT = "SEND_WHATSAPP_GUEST_COUNT"
    SEND_WHATSAPP_EVENT_DAY = "SEND_WHATSAPP_EVENT_DAY"
    SEND_WHATSAPP_THANK_YOU = "SEND_WHATSAPP_THANK_YOU"
    SEND_WHATSAPP_TEMPLATE = "SEND_WHATSAPP_TEMPLATE"  # legacy, uses the reminder template
    SEND_TABLE_ASSIGNMENT = "SEND_TABLE_ASSIGNMENT"
    SEND_CUSTOM_WHATSAPP = "SEND_CUSTOM_WHATSAPP"
    SEND_CUSTOM_SMS = "SEND_CUSTOM_SMS"
    SEND_SMS_REMINDER = "SEND_SMS_REMINDER"


class FlowStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class ExecutionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class Channel(str, Enum):
    WHATSAPP = "WHATSAPP"
    SMS = "SMS"


class NotificationType(str, Enum):
    INVITE = "INVITE"
    REMINDER = "REMINDER"
    CONFIRMATION = "CONFIRMATION"
    EVENT_DAY = "EVENT_DAY"
    THANK_YOU = "THANK_YOU"
    TABLE_ASSIGNMENT = "TABLE_ASSIGNMENT"
    GUEST_COUNT_REQUEST = "GUEST_COUNT_REQUEST"


class WhatsAppTemplateType(str, Enum):
    INVITE = "INVITE"
    REMINDER = "REMINDER"
    CONFIRMATION = "CONFIRMATION"
    GUEST_COUNT_LIST = "GUEST_COUNT_LIST"
    EVENT_DAY = "EVENT_DAY"
    THANK_YOU = "THANK_YOU"
    TABLE_ASSIGNMENT = "TABLE_ASSIGNMENT"


class ErrorCode(str, Enum):
    NO_PHONE = "NO_PHONE"
    NO_MESSAGE = "NO_MESSAGE"
    WHATSAPP_DISABLED = "WHATSAPP_DISABLED"
    SMS_DISABLED = "SMS_DISABLED"
    NO_TEMPLATE = "NO_TEMPLATE"
    NO_CREDENTIALS = "NO_CREDENTIALS"
    NOT_FOUND = "NOT_FOUND"
    SEND_FAILED = "SEND_FAILED"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"


class UpsertOutcome(str, Enum):
    CREATED = "CREATED"
    RESCHEDULED = "RESCHEDULED"
    UNCHANGED = "UNCHANGED"


@dataclass(frozen=True)
class GuestContext:
    """Read-only snapshot consumed by the trigger evaluator. Never cached."""

    guest_id: UUID
    event_id: UUID
    rsvp_status: RsvpStatus
    event_datetime: datetime
    last_notification_at: datetime | None = None
    has_table_assignment: bool = False
    event_timezone: str = "UTC"


@dataclass(frozen=True)
class TriggerCheckResult:
    should_trigger: bool
    reason: str
    scheduled_for: datetime | None = None
    # False only when the guest does not qualify for the trigger at all
    eligible: bool = True


@dataclass(frozen=True)
class FlowDTO:
    id: UUID
    event_id: UUID
    name: str
    trigger: TriggerKind
    action: ActionKind
    status: FlowStatus
    delay_hours: int | None = None
    custom_message: str | None = None


@dataclass(frozen=True)
class ExecutionRecordDTO:
    id: UUID
    flow_id: UUID
    guest_id: UUID
    status: ExecutionStatus
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    executed_at: datetime | None = None
    error_message: str | None = None
    error_code: str | None = None
    retry_count: int = 0


@dataclass(frozen=True)
class ExecutionContext:
    """Everything the action executor needs to compose and send one message."""

    guest_id: UUID
    event_id: UUID
    guest_name: str
    event_date: datetime
    event_title: str = ""
    event_timezone: str = "UTC"
    guest_phone: str | None = None
    rsvp_status: RsvpStatus | None = None
    table_name: str | None = None
    event_time: str | None = None
    event_location: str | None = None
    event_venue: str | None = None
    event_address: str | None = None
    guest_count: int = 1
    custom_message: str | None = None
    rsvp_link: str | None = None
    execution_id: UUID | None = None


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    message: str
    error_code: str | None = None
    delivery_id: str | None = None
    notification_type: NotificationType | None = None
    channel: Channel | None = None
    sent_at: datetime | None = None


@dataclass(frozen=True)
class ResolvedExecution:
    """An execution record joined with its flow and guest/event snapshots."""

    record: ExecutionRecordDTO
    flow: FlowDTO
    guest_context: GuestContext
    action_context: ExecutionContext


@dataclass
class HandlerReport:
    created: int = 0
    updated: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class ProcessResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    rescheduled: int = 0
    timed_out: int = 0


@dataclass(frozen=True)
class GuestPreviewDTO:
    """What the sweep would decide for one guest, without touching any record."""

    guest_id: UUID
    should_trigger: bool
    eligible: bool
    reason: str
    scheduled_for: datetime | None = None
    execution_status: ExecutionStatus | None = None


@dataclass(frozen=True)
class FlowStatsDTO:
    flow: FlowDTO
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class FlowTemplate:
    key: str
    name: str
    description: str
    trigger: TriggerKind
    action: ActionKind
    delay_hours: int | None = None


FLOW_TEMPLATES: list[FlowTemplate] = [
    FlowTemplate(
        key="the-chaser",
        name="The Chaser",
        description="Automatically reminds guests who haven't responded within 24 hours",
        trigger=TriggerKind.NO_RESPONSE_24H,
        action=ActionKind.SEND_WHATSAPP_REMINDER,
    ),
    FlowTemplate(
        key="the-concierge",
        name="The Concierge",
        description="Sends table assignment and location on the morning of the event",
        trigger=TriggerKind.EVENT_DAY_MORNING,
        action=ActionKind.SEND_TABLE_ASSIGNMENT,
    ),
    FlowTemplate(
        key="thank-you",
        name="Thank You",
        description="Sends a thank you message when a guest confirms attendance",
        trigger=TriggerKind.RSVP_CONFIRMED,
        action=ActionKind.SEND_WHATSAPP_CONFIRMATION,
    ),
    FlowTemplate(
        key="second-chance",
        name="Second Chance",
        description="Final reminder for guests who haven't responded within 48 hours",
        trigger=TriggerKind.NO_RESPONSE_48H,
        action=ActionKind.SEND_WHATSAPP_REMINDER,
    ),
    FlowTemplate(
        key="location-reminder",
        name="Location Reminder",
        description="Sends venue details 2 hours before the event",
        trigger=TriggerKind.BEFORE_EVENT,
        action=ActionKind.SEND_WHATSAPP_EVENT_DAY,
        delay_hours=2,
    ),
]

