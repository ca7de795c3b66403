from datetime import datetime
from uuid import UUID

from sqlalchemy import Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy_utils import UUIDType

from src.automation.dtos import (
    ActionKind,
    Channel,
    ExecutionStatus,
    FlowStatus,
    NotificationType,
    RsvpStatus,
    TriggerKind,
)
from src.config.table_names import TableNames
from src.models.base import Base, TimeStamp, UTCDateTime


def _enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda x: [e.value for e in x],
        native_enum=False,
        length=64,
    )


class Event(Base, TimeStamp):
    __tablename__ = TableNames.EVENTS.value

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # Street address
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Venue name
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    guests: Mapped[list["Guest"]] = relationship(
        "Guest", back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Event {self.name} on {self.date}>"


class SeatingTable(Base, TimeStamp):
    __tablename__ = TableNames.SEATING_TABLES.value

    event_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<SeatingTable {self.name}>"


class Guest(Base, TimeStamp):
    __tablename__ = TableNames.GUESTS.value

    event_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    rsvp_status: Mapped[RsvpStatus] = mapped_column(
        _enum(RsvpStatus, "rsvp_status_enum"),
        nullable=False,
        default=RsvpStatus.PENDING,
    )
    rsvp_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    table_id: Mapped[UUID | None] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.SEATING_TABLES.value}.uuid", ondelete="SET NULL"),
        nullable=True,
    )

    event: Mapped["Event"] = relationship("Event", back_populates="guests")
    table: Mapped["SeatingTable | None"] = relationship("SeatingTable")

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Guest {self.name} - {self.rsvp_status}>"


class NotificationLog(Base, TimeStamp):
    __tablename__ = TableNames.NOTIFICATION_LOGS.value

    guest_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.GUESTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    execution_id: Mapped[UUID | None] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.AUTOMATION_EXECUTIONS.value}.uuid", ondelete="SET NULL"),
        nullable=True,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        _enum(NotificationType, "notification_type_enum"), nullable=False
    )
    channel: Mapped[Channel] = mapped_column(_enum(Channel, "channel_enum"), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum("pending", "sent", "failed", name="notification_status_enum", native_enum=False),
        default="pending",
        nullable=False,
        index=True,
    )
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<NotificationLog {self.notification_type} via {self.channel} status={self.status}>"


class AutomationFlow(Base, TimeStamp):
    __tablename__ = TableNames.AUTOMATION_FLOWS.value

    event_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger: Mapped[TriggerKind] = mapped_column(
        _enum(TriggerKind, "automation_trigger_enum"), nullable=False
    )
    action: Mapped[ActionKind] = mapped_column(
        _enum(ActionKind, "automation_action_enum"), nullable=False
    )
    # Required by flexible triggers
    delay_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[FlowStatus] = mapped_column(
        _enum(FlowStatus, "automation_flow_status_enum"),
        nullable=False,
        default=FlowStatus.DRAFT,
        index=True,
    )

    executions: Mapped[list["AutomationExecution"]] = relationship(
        "AutomationExecution",
        back_populates="flow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<AutomationFlow {self.name} {self.trigger} -> {self.action} ({self.status})>"


class AutomationExecution(Base, TimeStamp):
    __tablename__ = TableNames.AUTOMATION_EXECUTIONS.value
    __table_args__ = (
        UniqueConstraint("flow_id", "guest_id", name="uq_automation_executions_flow_guest"),
    )

    flow_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.AUTOMATION_FLOWS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    guest_id: Mapped[UUID] = mapped_column(
        UUIDType,
        ForeignKey(f"{TableNames.GUESTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ExecutionStatus] = mapped_column(
        _enum(ExecutionStatus, "automation_execution_status_enum"),
        nullable=False,
        default=ExecutionStatus.PENDING,
        index=True,
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    flow: Mapped["AutomationFlow"] = relationship("AutomationFlow", back_populates="executions")

    def __repr__(self) -> str:
        return f"<AutomationExecution flow={self.flow_id} guest={self.guest_id} {self.status}>"
