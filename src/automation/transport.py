import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from src.automation.dtos import Channel
from src.config.settings import settings

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the messaging provider rejects or fails a send."""


class TwilioConfig(Protocol):
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_api_url: str
    whatsapp_from_number: str
    sms_from_number: str
    sms_messaging_service_sid: str
    transport_timeout_seconds: float


@dataclass(frozen=True)
class OutboundMessage:
    channel: Channel
    to: str
    body: str | None = None
    template_id: str | None = None
    variables: dict[str, str] = field(default_factory=dict)


class MessageTransport(ABC):
    @abstractmethod
    async def send(self, message: OutboundMessage) -> str:
        """
        Send one message.

        Returns:
            The provider's message id

        Raises:
            TransportError: when the provider call fails or times out
        """
        raise NotImplementedError


class TwilioMessageTransport(MessageTransport):
    """Sends WhatsApp and SMS messages through the Twilio Messages REST API."""

    def __init__(
        self,
        http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
        config: TwilioConfig = settings,
    ):
        self._http_client_class = http_client_class
        self._config = config

    def _messages_url(self) -> str:
        return (
            f"{self._config.twilio_api_url.rstrip('/')}"
            f"/Accounts/{self._config.twilio_account_sid}/Messages.json"
        )

    def _form_data(self, message: OutboundMessage) -> dict[str, str]:
        if message.channel == Channel.WHATSAPP:
            data = {
                "From": f"whatsapp:{self._config.whatsapp_from_number}",
                "To": f"whatsapp:{message.to}",
            }
        else:
            data = {"To": message.to}
            if self._config.sms_messaging_service_sid:
                data["MessagingServiceSid"] = self._config.sms_messaging_service_sid
            else:
                data["From"] = self._config.sms_from_number

        if message.template_id:
            data["ContentSid"] = message.template_id
            data["ContentVariables"] = json.dumps(message.variables)
        else:
            data["Body"] = message.body or ""
        return data

    async def send(self, message: OutboundMessage) -> str:
        try:
            async with self._http_client_class(
                timeout=self._config.transport_timeout_seconds
            ) as client:
                response = await client.post(
                    self._messages_url(),
                    auth=(self._config.twilio_account_sid, self._config.twilio_auth_token),
                    data=self._form_data(message),
                )
                response.raise_for_status()
                message_id = response.json().get("sid")
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Twilio rejected %s message: %s", message.channel.value, e.response.text
            )
            raise TransportError(f"Provider returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            # Covers connect/read timeouts, so a hung call never blocks an execution
            raise TransportError(f"Provider call failed: {e!r}") from e

        if not message_id:
            raise TransportError("Provider response did not include a message id")
        return message_id
