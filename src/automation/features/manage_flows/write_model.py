"""Write model for automation flows. Returns DTOs, never ORM models."""

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.automation.dtos import (
    ActionKind,
    EventNotFoundError,
    FlowAlreadyExistsError,
    FlowDTO,
    FlowNotFoundError,
    FlowStatus,
    TriggerKind,
)
from src.automation.features.manage_flows.dtos import FlowChanges
from src.automation.repository.orm_models import AutomationFlow, Event
from src.automation.repository.read_models import flow_to_dto
from src.config.database import async_session_manager


class FlowWriteModel(ABC):
    @abstractmethod
    async def create_flow(
        self,
        event_id: UUID,
        name: str,
        trigger: TriggerKind,
        action: ActionKind,
        delay_hours: int | None = None,
        custom_message: str | None = None,
    ) -> FlowDTO:
        """
        Create a DRAFT flow.

        Raises:
            EventNotFoundError: the event does not exist
            FlowAlreadyExistsError: the event already has a flow for ``trigger``
        """
        raise NotImplementedError

    @abstractmethod
    async def update_flow(self, flow_id: UUID, changes: FlowChanges) -> FlowDTO:
        raise NotImplementedError

    @abstractmethod
    async def set_status(self, flow_id: UUID, status: FlowStatus) -> FlowDTO:
        raise NotImplementedError

    @abstractmethod
    async def delete_flow(self, flow_id: UUID) -> None:
        """Delete a flow. Its execution records go with it."""
        raise NotImplementedError


class SqlFlowWriteModel(FlowWriteModel):
    """SQL implementation of flow write operations."""

    def __init__(
        self,
        session_overwrite: AsyncSession | None = None,
        session_factory: async_sessionmaker | None = None,
    ):
        self._session_overwrite = session_overwrite
        self._session_factory = session_factory

    def _session(self):
        return async_session_manager(
            session_overwrite=self._session_overwrite,
            session_factory=self._session_factory,
        )

    async def _get_flow(self, session: AsyncSession, flow_id: UUID) -> AutomationFlow:
        flow = await session.get(AutomationFlow, flow_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        return flow

    async def _ensure_trigger_free(
        self,
        session: AsyncSession,
        event_id: UUID,
        trigger: TriggerKind,
        exclude_flow_id: UUID | None = None,
    ) -> None:
        stmt = select(AutomationFlow.uuid).where(
            AutomationFlow.event_id == event_id,
            AutomationFlow.trigger == trigger,
        )
        if exclude_flow_id is not None:
            stmt = stmt.where(AutomationFlow.uuid != exclude_flow_id)
        result = await session.execute(stmt.limit(1))
        if result.scalar_one_or_none() is not None:
            raise FlowAlreadyExistsError(event_id, trigger)

    async def create_flow(
        self,
        event_id: UUID,
        name: str,
        trigger: TriggerKind,
        action: ActionKind,
        delay_hours: int | None = None,
        custom_message: str | None = None,
    ) -> FlowDTO:
        async with self._session() as session:
            if await session.get(Event, event_id) is None:
                raise EventNotFoundError(event_id)
            await self._ensure_trigger_free(session, event_id, trigger)

            flow = AutomationFlow(
                event_id=event_id,
                name=name,
                trigger=trigger,
                action=action,
                delay_hours=delay_hours,
                custom_message=custom_message,
                status=FlowStatus.DRAFT,
            )
            session.add(flow)
            await session.flush()
            return flow_to_dto(flow)

    async def update_flow(self, flow_id: UUID, changes: FlowChanges) -> FlowDTO:
        async with self._session() as session:
            flow = await self._get_flow(session, flow_id)

            if changes.has("trigger") and changes.trigger and changes.trigger != flow.trigger:
                await self._ensure_trigger_free(
                    session, flow.event_id, changes.trigger, exclude_flow_id=flow.uuid
                )
                flow.trigger = changes.trigger
            if changes.has("name") and changes.name:
                flow.name = changes.name
            if changes.has("action") and changes.action:
                flow.action = changes.action
            if changes.has("delay_hours"):
                flow.delay_hours = changes.delay_hours
            if changes.has("custom_message"):
                flow.custom_message = changes.custom_message

            await session.flush()
            return flow_to_dto(flow)

    async def set_status(self, flow_id: UUID, status: FlowStatus) -> FlowDTO:
        async with self._session() as session:
            flow = await self._get_flow(session, flow_id)
            flow.status = status
            await session.flush()
            return flow_to_dto(flow)

    async def delete_flow(self, flow_id: UUID) -> None:
        async with self._session() as session:
            flow = await self._get_flow(session, flow_id)
            await session.delete(flow)
