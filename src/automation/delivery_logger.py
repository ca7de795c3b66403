from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import async_sessionmaker

from src.automation.dtos import Channel, NotificationType
from src.automation.repository.orm_models import NotificationLog
from src.config.database import async_session_manager


class DeliveryLogger(ABC):
    """Abstract base class for recording outbound message deliveries."""

    @abstractmethod
    async def log_attempt(
        self,
        guest_id: UUID,
        notification_type: NotificationType,
        channel: Channel,
        body: str | None = None,
        execution_id: UUID | None = None,
    ) -> UUID:
        """
        Log a delivery attempt before calling the transport.

        Returns:
            UUID of the created log entry
        """
        pass

    @abstractmethod
    async def log_success(
        self,
        log_uuid: UUID,
        provider_message_id: str,
        sent_at: datetime,
    ) -> None:
        """Mark the entry as sent. Sent entries anchor no-response triggers."""
        pass

    @abstractmethod
    async def log_failure(
        self,
        log_uuid: UUID,
        error_message: str,
    ) -> None:
        pass


class SQLDeliveryLogger(DeliveryLogger):
    """SQL database implementation of DeliveryLogger."""

    def __init__(self, session_factory: async_sessionmaker | None = None):
        self._session_factory = session_factory

    async def log_attempt(
        self,
        guest_id: UUID,
        notification_type: NotificationType,
        channel: Channel,
        body: str | None = None,
        execution_id: UUID | None = None,
    ) -> UUID:
        notification_log = NotificationLog(
            guest_id=guest_id,
            execution_id=execution_id,
            notification_type=notification_type,
            channel=channel,
            body=body,
            status="pending",
        )

        async with async_session_manager(session_factory=self._session_factory) as session:
            session.add(notification_log)
            await session.flush()
            return notification_log.uuid

    async def log_success(
        self,
        log_uuid: UUID,
        provider_message_id: str,
        sent_at: datetime,
    ) -> None:
        async with async_session_manager(session_factory=self._session_factory) as session:
            notification_log = await session.get(NotificationLog, log_uuid)
            if notification_log:
                notification_log.provider_message_id = provider_message_id
                notification_log.status = "sent"
                notification_log.sent_at = sent_at

    async def log_failure(
        self,
        log_uuid: UUID,
        error_message: str,
    ) -> None:
        async with async_session_manager(session_factory=self._session_factory) as session:
            notification_log = await session.get(NotificationLog, log_uuid)
            if notification_log:
                notification_log.status = "failed"
                notification_log.error_message = error_message


class NoOpDeliveryLogger(DeliveryLogger):
    """No-op implementation for testing or when logging is disabled."""

    async def log_attempt(
        self,
        guest_id: UUID,
        notification_type: NotificationType,
        channel: Channel,
        body: str | None = None,
        execution_id: UUID | None = None,
    ) -> UUID:
        return uuid4()

    async def log_success(
        self,
        log_uuid: UUID,
        provider_message_id: str,
        sent_at: datetime,
    ) -> None:
        pass

    async def log_failure(
        self,
        log_uuid: UUID,
        error_message: str,
    ) -> None:
        pass
