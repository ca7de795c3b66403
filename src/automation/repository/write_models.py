"""Execution record write model.

Each operation is its own short unit of work. Creation goes through an
atomic insert-if-absent keyed on (flow_id, guest_id) and every status change
is a compare-and-swap on the current status, so concurrent callers never
need a lock and a lost race is simply a no-op.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.automation.dtos import ErrorCode, ExecutionStatus, TriggerKind, UpsertOutcome
from src.automation.repository.orm_models import AutomationExecution, AutomationFlow
from src.config.database import async_session_manager

logger = logging.getLogger(__name__)

_CONFLICT_COLUMNS = ["flow_id", "guest_id"]


class ExecutionWriteModel(ABC):
    @abstractmethod
    async def create_if_absent(
        self,
        flow_id: UUID,
        guest_id: UUID,
        status: ExecutionStatus = ExecutionStatus.PENDING,
        scheduled_for: datetime | None = None,
        now: datetime | None = None,
    ) -> UUID | None:
        """
        Insert a record for (flow_id, guest_id) unless one already exists.
        Returns the new record's id, or None when another caller got there first.
        """
        raise NotImplementedError

    @abstractmethod
    async def upsert_pending(
        self, flow_id: UUID, guest_id: UUID, scheduled_for: datetime
    ) -> UpsertOutcome:
        """Create a PENDING record, or refresh ``scheduled_for`` while it is still PENDING."""
        raise NotImplementedError

    @abstractmethod
    async def claim(
        self,
        execution_id: UUID,
        from_statuses: Iterable[ExecutionStatus],
        now: datetime,
    ) -> bool:
        """Move a record to PROCESSING if it is in one of ``from_statuses``."""
        raise NotImplementedError

    @abstractmethod
    async def complete(self, execution_id: UUID, executed_at: datetime) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def fail(
        self,
        execution_id: UUID,
        executed_at: datetime,
        error_message: str,
        error_code: str | None = None,
    ) -> bool:
        """PROCESSING -> FAILED. Increments ``retry_count``."""
        raise NotImplementedError

    @abstractmethod
    async def reschedule(self, execution_id: UUID, scheduled_for: datetime) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def skip(self, execution_id: UUID, reason: str, at: datetime) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def skip_pending_for_guest(
        self,
        guest_id: UUID,
        triggers: Iterable[TriggerKind],
        reason: str,
        at: datetime,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def cancel_pending_for_flow(self, flow_id: UUID, reason: str, at: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    async def discard_pending_for_flow(self, flow_id: UUID) -> int:
        """Delete PENDING records, which have not sent anything yet."""
        raise NotImplementedError

    @abstractmethod
    async def fail_stale_processing(
        self, started_before: datetime, error_message: str, at: datetime
    ) -> int:
        raise NotImplementedError


class SqlExecutionWriteModel(ExecutionWriteModel):
    """Write operations for execution records. Returns ids and flags, never ORM models."""

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

    async def _insert_if_absent(self, session: AsyncSession, values: dict) -> UUID | None:
        dialect = session.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                insert(AutomationExecution)
                .values(**values)
                .on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
                .returning(AutomationExecution.uuid)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

        # Dialects without ON CONFLICT: let the unique constraint decide inside a savepoint
        try:
            async with session.begin_nested():
                session.add(AutomationExecution(**values))
        except IntegrityError:
            return None
        return values["uuid"]

    async def _update(self, session: AsyncSession, stmt) -> int:
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    async def create_if_absent(
        self,
        flow_id: UUID,
        guest_id: UUID,
        status: ExecutionStatus = ExecutionStatus.PENDING,
        scheduled_for: datetime | None = None,
        now: datetime | None = None,
    ) -> UUID | None:
        values = {
            "uuid": uuid4(),
            "flow_id": flow_id,
            "guest_id": guest_id,
            "status": status,
            "scheduled_for": scheduled_for,
            "started_at": now if status == ExecutionStatus.PROCESSING else None,
            "retry_count": 0,
        }
        async with self._session() as session:
            execution_id = await self._insert_if_absent(session, values)
        if execution_id is None:
            logger.debug("Execution for flow %s guest %s already exists", flow_id, guest_id)
        return execution_id

    async def upsert_pending(
        self, flow_id: UUID, guest_id: UUID, scheduled_for: datetime
    ) -> UpsertOutcome:
        async with self._session() as session:
            created = await self._insert_if_absent(
                session,
                {
                    "uuid": uuid4(),
                    "flow_id": flow_id,
                    "guest_id": guest_id,
                    "status": ExecutionStatus.PENDING,
                    "scheduled_for": scheduled_for,
                    "retry_count": 0,
                },
            )
            if created is not None:
                return UpsertOutcome.CREATED

            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.flow_id == flow_id,
                    AutomationExecution.guest_id == guest_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                )
                .values(scheduled_for=scheduled_for),
            )
            return UpsertOutcome.RESCHEDULED if updated else UpsertOutcome.UNCHANGED

    async def claim(
        self,
        execution_id: UUID,
        from_statuses: Iterable[ExecutionStatus],
        now: datetime,
    ) -> bool:
        async with self._session() as session:
            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.uuid == execution_id,
                    AutomationExecution.status.in_(list(from_statuses)),
                )
                .values(
                    status=ExecutionStatus.PROCESSING,
                    started_at=now,
                    error_message=None,
                    error_code=None,
                ),
            )
        return updated == 1

    async def complete(self, execution_id: UUID, executed_at: datetime) -> bool:
        async with self._session() as session:
            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.uuid == execution_id,
                    AutomationExecution.status == ExecutionStatus.PROCESSING,
                )
                .values(status=ExecutionStatus.COMPLETED, executed_at=executed_at),
            )
        return updated == 1

    async def fail(
        self,
        execution_id: UUID,
        executed_at: datetime,
        error_message: str,
        error_code: str | None = None,
    ) -> bool:
        async with self._session() as session:
            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.uuid == execution_id,
                    AutomationExecution.status == ExecutionStatus.PROCESSING,
                )
                .values(
                    status=ExecutionStatus.FAILED,
                    executed_at=executed_at,
                    error_message=error_message,
                    error_code=error_code,
                    retry_count=AutomationExecution.retry_count + 1,
                ),
            )
        return updated == 1

    async def reschedule(self, execution_id: UUID, scheduled_for: datetime) -> bool:
        async with self._session() as session:
            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.uuid == execution_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                )
                .values(scheduled_for=scheduled_for),
            )
        return updated == 1

    async def skip(self, execution_id: UUID, reason: str, at: datetime) -> bool:
        async with self._session() as session:
            updated = await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.uuid == execution_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                )
                .values(status=ExecutionStatus.SKIPPED, executed_at=at, error_message=reason),
            )
        return updated == 1

    async def skip_pending_for_guest(
        self,
        guest_id: UUID,
        triggers: Iterable[TriggerKind],
        reason: str,
        at: datetime,
    ) -> int:
        flow_ids = select(AutomationFlow.uuid).where(AutomationFlow.trigger.in_(list(triggers)))
        async with self._session() as session:
            return await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.guest_id == guest_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                    AutomationExecution.flow_id.in_(flow_ids),
                )
                .values(status=ExecutionStatus.SKIPPED, executed_at=at, error_message=reason),
            )

    async def cancel_pending_for_flow(self, flow_id: UUID, reason: str, at: datetime) -> int:
        async with self._session() as session:
            return await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.flow_id == flow_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                )
                .values(status=ExecutionStatus.SKIPPED, executed_at=at, error_message=reason),
            )

    async def discard_pending_for_flow(self, flow_id: UUID) -> int:
        async with self._session() as session:
            return await self._update(
                session,
                delete(AutomationExecution).where(
                    AutomationExecution.flow_id == flow_id,
                    AutomationExecution.status == ExecutionStatus.PENDING,
                ),
            )

    async def fail_stale_processing(
        self, started_before: datetime, error_message: str, at: datetime
    ) -> int:
        async with self._session() as session:
            return await self._update(
                session,
                update(AutomationExecution)
                .where(
                    AutomationExecution.status == ExecutionStatus.PROCESSING,
                    AutomationExecution.started_at < started_before,
                )
                .values(
                    status=ExecutionStatus.FAILED,
                    executed_at=at,
                    error_message=error_message,
                    error_code=ErrorCode.PROCESSING_TIMEOUT.value,
                    retry_count=AutomationExecution.retry_count + 1,
                ),
            )
