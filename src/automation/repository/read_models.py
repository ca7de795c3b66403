"""Automation read model. Returns DTOs, never ORM models."""

import abc
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.automation.dtos import (
    Channel,
    ExecutionContext,
    ExecutionRecordDTO,
    ExecutionStatus,
    FlowDTO,
    FlowStatsDTO,
    FlowStatus,
    GuestContext,
    NotificationType,
    ResolvedExecution,
    TriggerKind,
)
from src.automation.repository.orm_models import (
    AutomationExecution,
    AutomationFlow,
    Event,
    Guest,
    NotificationLog,
    SeatingTable,
)
from src.automation.templates import event_local_time, rsvp_link
from src.automation.triggers import notification_channel
from src.config.database import async_session_manager
from src.config.settings import settings

# Only sent invites and reminders anchor the no-response clock
ANCHOR_NOTIFICATION_TYPES = (NotificationType.INVITE, NotificationType.REMINDER)


def flow_to_dto(flow: AutomationFlow) -> FlowDTO:
    return FlowDTO(
        id=flow.uuid,
        event_id=flow.event_id,
        name=flow.name,
        trigger=TriggerKind(flow.trigger),
        action=flow.action,
        status=FlowStatus(flow.status),
        delay_hours=flow.delay_hours,
        custom_message=flow.custom_message,
    )


def execution_to_dto(execution: AutomationExecution) -> ExecutionRecordDTO:
    return ExecutionRecordDTO(
        id=execution.uuid,
        flow_id=execution.flow_id,
        guest_id=execution.guest_id,
        status=ExecutionStatus(execution.status),
        scheduled_for=execution.scheduled_for,
        started_at=execution.started_at,
        executed_at=execution.executed_at,
        error_message=execution.error_message,
        error_code=execution.error_code,
        retry_count=execution.retry_count,
    )


def _guest_context(guest: Guest, event: Event, last_sent_at: datetime | None) -> GuestContext:
    return GuestContext(
        guest_id=guest.uuid,
        event_id=event.uuid,
        rsvp_status=guest.rsvp_status,
        event_datetime=event.date,
        last_notification_at=last_sent_at,
        has_table_assignment=guest.table_id is not None,
        event_timezone=event.timezone or "UTC",
    )


def _last_sent_subquery(channel: Channel | None):
    stmt = select(
        NotificationLog.guest_id,
        func.max(NotificationLog.sent_at).label("last_sent_at"),
    ).where(
        NotificationLog.status == "sent",
        NotificationLog.notification_type.in_(ANCHOR_NOTIFICATION_TYPES),
    )
    if channel is not None:
        stmt = stmt.where(NotificationLog.channel == channel)
    return stmt.group_by(NotificationLog.guest_id).subquery()


class AutomationReadModel(abc.ABC):
    @abc.abstractmethod
    async def get_flow(self, flow_id: UUID) -> FlowDTO | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_flows(self, event_id: UUID) -> list[FlowDTO]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_active_flows(
        self, event_id: UUID, triggers: Iterable[TriggerKind]
    ) -> list[FlowDTO]:
        """ACTIVE flows of an event whose trigger is one of ``triggers``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_guest_context(
        self, guest_id: UUID, trigger: TriggerKind | None = None
    ) -> GuestContext | None:
        """
        Fresh snapshot of a guest. The last-notification instant only counts
        notifications on the channel ``trigger`` listens to.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def list_guest_contexts(
        self, event_id: UUID, trigger: TriggerKind | None = None
    ) -> list[GuestContext]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_execution(self, execution_id: UUID) -> ExecutionRecordDTO | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_execution_for(self, flow_id: UUID, guest_id: UUID) -> ExecutionRecordDTO | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_executions(
        self,
        flow_id: UUID,
        status: ExecutionStatus | None = None,
        limit: int | None = 50,
        offset: int = 0,
    ) -> list[ExecutionRecordDTO]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_due_executions(self, now: datetime, limit: int) -> list[ExecutionRecordDTO]:
        """PENDING records on ACTIVE flows due at ``now`` (or never scheduled)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def resolve_execution(self, execution_id: UUID) -> ResolvedExecution | None:
        """
        Join a record with its flow, guest and event.
        Returns None when any of them no longer exists.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def flow_stats(self, event_id: UUID) -> list[FlowStatsDTO]:
        raise NotImplementedError


class SqlAutomationReadModel(AutomationReadModel):
    """SQL implementation of the automation read model."""

    def __init__(
        self,
        session_overwrite: AsyncSession | None = None,
        session_factory: async_sessionmaker | None = None,
        frontend_url: str = settings.frontend_url,
    ):
        self._session_overwrite = session_overwrite
        self._session_factory = session_factory
        self._frontend_url = frontend_url

    def _session(self):
        return async_session_manager(
            session_overwrite=self._session_overwrite,
            session_factory=self._session_factory,
        )

    async def get_flow(self, flow_id: UUID) -> FlowDTO | None:
        async with self._session() as session:
            flow = await session.get(AutomationFlow, flow_id)
            return flow_to_dto(flow) if flow else None

    async def list_flows(self, event_id: UUID) -> list[FlowDTO]:
        async with self._session() as session:
            result = await session.execute(
                select(AutomationFlow)
                .where(AutomationFlow.event_id == event_id)
                .order_by(AutomationFlow.created_at)
            )
            return [flow_to_dto(flow) for flow in result.scalars().all()]

    async def list_active_flows(
        self, event_id: UUID, triggers: Iterable[TriggerKind]
    ) -> list[FlowDTO]:
        triggers = list(triggers)
        if not triggers:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(AutomationFlow).where(
                    AutomationFlow.event_id == event_id,
                    AutomationFlow.status == FlowStatus.ACTIVE,
                    AutomationFlow.trigger.in_(triggers),
                )
            )
            return [flow_to_dto(flow) for flow in result.scalars().all()]

    async def get_guest_context(
        self, guest_id: UUID, trigger: TriggerKind | None = None
    ) -> GuestContext | None:
        last_sent = _last_sent_subquery(notification_channel(trigger) if trigger else None)
        async with self._session() as session:
            result = await session.execute(
                select(Guest, Event, last_sent.c.last_sent_at)
                .join(Event, Guest.event_id == Event.uuid)
                .outerjoin(last_sent, last_sent.c.guest_id == Guest.uuid)
                .where(Guest.uuid == guest_id)
            )
            row = result.one_or_none()
            if row is None:
                return None
            guest, event, last_sent_at = row
            return _guest_context(guest, event, last_sent_at)

    async def list_guest_contexts(
        self, event_id: UUID, trigger: TriggerKind | None = None
    ) -> list[GuestContext]:
        last_sent = _last_sent_subquery(notification_channel(trigger) if trigger else None)
        async with self._session() as session:
            result = await session.execute(
                select(Guest, Event, last_sent.c.last_sent_at)
                .join(Event, Guest.event_id == Event.uuid)
                .outerjoin(last_sent, last_sent.c.guest_id == Guest.uuid)
                .where(Guest.event_id == event_id)
                .order_by(Guest.created_at)
            )
            return [
                _guest_context(guest, event, last_sent_at)
                for guest, event, last_sent_at in result.all()
            ]

    async def get_execution(self, execution_id: UUID) -> ExecutionRecordDTO | None:
        async with self._session() as session:
            execution = await session.get(AutomationExecution, execution_id)
            return execution_to_dto(execution) if execution else None

    async def get_execution_for(self, flow_id: UUID, guest_id: UUID) -> ExecutionRecordDTO | None:
        async with self._session() as session:
            result = await session.execute(
                select(AutomationExecution).where(
                    AutomationExecution.flow_id == flow_id,
                    AutomationExecution.guest_id == guest_id,
                )
            )
            execution = result.scalar_one_or_none()
            return execution_to_dto(execution) if execution else None

    async def list_executions(
        self,
        flow_id: UUID,
        status: ExecutionStatus | None = None,
        limit: int | None = 50,
        offset: int = 0,
    ) -> list[ExecutionRecordDTO]:
        stmt = (
            select(AutomationExecution)
            .where(AutomationExecution.flow_id == flow_id)
            .order_by(AutomationExecution.created_at.desc())
            .offset(offset)
        )
        if status is not None:
            stmt = stmt.where(AutomationExecution.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [execution_to_dto(execution) for execution in result.scalars().all()]

    async def list_due_executions(self, now: datetime, limit: int) -> list[ExecutionRecordDTO]:
        async with self._session() as session:
            result = await session.execute(
                select(AutomationExecution)
                .join(AutomationFlow, AutomationExecution.flow_id == AutomationFlow.uuid)
                .where(
                    AutomationExecution.status == ExecutionStatus.PENDING,
                    AutomationFlow.status == FlowStatus.ACTIVE,
                    or_(
                        AutomationExecution.scheduled_for <= now,
                        AutomationExecution.scheduled_for.is_(None),
                    ),
                )
                .order_by(AutomationExecution.scheduled_for)
                .limit(limit)
            )
            return [execution_to_dto(execution) for execution in result.scalars().all()]

    async def resolve_execution(self, execution_id: UUID) -> ResolvedExecution | None:
        async with self._session() as session:
            result = await session.execute(
                select(AutomationExecution, AutomationFlow, Guest, Event, SeatingTable.name)
                .join(AutomationFlow, AutomationExecution.flow_id == AutomationFlow.uuid)
                .join(Guest, AutomationExecution.guest_id == Guest.uuid)
                .join(Event, AutomationFlow.event_id == Event.uuid)
                .outerjoin(SeatingTable, Guest.table_id == SeatingTable.uuid)
                .where(AutomationExecution.uuid == execution_id)
            )
            row = result.one_or_none()
            if row is None:
                return None
            execution, flow, guest, event, table_name = row

        guest_context = await self.get_guest_context(guest.uuid, TriggerKind(flow.trigger))
        if guest_context is None:
            return None

        action_context = ExecutionContext(
            guest_id=guest.uuid,
            event_id=event.uuid,
            guest_name=guest.name,
            guest_phone=guest.phone,
            rsvp_status=guest.rsvp_status,
            table_name=table_name,
            event_title=event.name,
            event_date=event.date,
            event_timezone=event.timezone or "UTC",
            event_time=event_local_time(event.date, event.timezone),
            event_location=event.location,
            event_venue=event.venue,
            event_address=event.location,
            guest_count=guest.party_size or 1,
            custom_message=flow.custom_message,
            rsvp_link=rsvp_link(self._frontend_url, guest.rsvp_token),
            execution_id=execution.uuid,
        )
        return ResolvedExecution(
            record=execution_to_dto(execution),
            flow=flow_to_dto(flow),
            guest_context=guest_context,
            action_context=action_context,
        )

    async def flow_stats(self, event_id: UUID) -> list[FlowStatsDTO]:
        flows = await self.list_flows(event_id)
        if not flows:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(
                    AutomationExecution.flow_id,
                    AutomationExecution.status,
                    func.count(AutomationExecution.uuid),
                )
                .where(AutomationExecution.flow_id.in_([flow.id for flow in flows]))
                .group_by(AutomationExecution.flow_id, AutomationExecution.status)
            )
            counts: dict[UUID, dict[ExecutionStatus, int]] = {}
            for flow_id, status, count in result.all():
                counts.setdefault(flow_id, {})[ExecutionStatus(status)] = count

        return [build_flow_stats(flow, counts.get(flow.id, {})) for flow in flows]


def build_flow_stats(flow: FlowDTO, counts: dict[ExecutionStatus, int]) -> FlowStatsDTO:
    return FlowStatsDTO(
        flow=flow,
        total=sum(counts.values()),
        pending=counts.get(ExecutionStatus.PENDING, 0),
        processing=counts.get(ExecutionStatus.PROCESSING, 0),
        completed=counts.get(ExecutionStatus.COMPLETED, 0),
        failed=counts.get(ExecutionStatus.FAILED, 0),
        skipped=counts.get(ExecutionStatus.SKIPPED, 0),
    )
