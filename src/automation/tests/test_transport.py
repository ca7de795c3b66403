"""Unit tests for TwilioMessageTransport, mocking the HTTP client."""

import json
from dataclasses import dataclass

import httpx
import pytest

from src.automation.dtos import Channel
from src.automation.transport import OutboundMessage, TransportError, TwilioMessageTransport

MESSAGES_URL = "https://api.twilio.test/2010-04-01/Accounts/AC123/Messages.json"


class MockResponse:
    def __init__(self, *, json_data=None, text="", status_code=201):
        self._json_data = json_data
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"HTTP {self.status_code}",
                request=httpx.Request("POST", MESSAGES_URL),
                response=httpx.Response(self.status_code, text=self.text),
            )

    def json(self):
        return self._json_data


class MockHttpClient:
    """
    Replaces httpx.AsyncClient as the http_client_class.

    The transport calls self._http_client_class(timeout=...) and uses the
    result as an async context manager, so __call__ returns self.
    """

    def __init__(self, response: MockResponse | None = None, error: Exception | None = None):
        self.post_calls: list[dict] = []
        self.client_kwargs: dict = {}
        self._response = response or MockResponse(json_data={"sid": "SM0001"})
        self._error = error

    async def post(self, url: str, **kwargs) -> MockResponse:
        self.post_calls.append({"url": url, **kwargs})
        if self._error:
            raise self._error
        return self._response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass

    def __call__(self, **kwargs):
        self.client_kwargs = kwargs
        return self


@dataclass
class MockTwilioConfig:
    twilio_account_sid: str = "AC123"
    twilio_auth_token: str = "secret"
    twilio_api_url: str = "https://api.twilio.test/2010-04-01/"
    whatsapp_from_number: str = "+14155238886"
    sms_from_number: str = "+14155550000"
    sms_messaging_service_sid: str = ""
    transport_timeout_seconds: float = 5.0


@pytest.mark.asyncio
async def test_whatsapp_free_form_message():
    client = MockHttpClient()
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    message_id = await transport.send(
        OutboundMessage(channel=Channel.WHATSAPP, to="+972521234567", body="Hello")
    )

    assert message_id == "SM0001"
    [call] = client.post_calls
    assert call["url"] == MESSAGES_URL
    assert call["auth"] == ("AC123", "secret")
    assert call["data"] == {
        "From": "whatsapp:+14155238886",
        "To": "whatsapp:+972521234567",
        "Body": "Hello",
    }
    assert client.client_kwargs == {"timeout": 5.0}


@pytest.mark.asyncio
async def test_whatsapp_template_message_sends_content_variables():
    client = MockHttpClient()
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    await transport.send(
        OutboundMessage(
            channel=Channel.WHATSAPP,
            to="+972521234567",
            template_id="HX-reminder",
            variables={"1": "Avi", "2": "Dana & Noam"},
        )
    )

    data = client.post_calls[0]["data"]
    assert data["ContentSid"] == "HX-reminder"
    assert json.loads(data["ContentVariables"]) == {"1": "Avi", "2": "Dana & Noam"}
    assert "Body" not in data


@pytest.mark.asyncio
async def test_sms_uses_from_number():
    client = MockHttpClient()
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    await transport.send(OutboundMessage(channel=Channel.SMS, to="+972521234567", body="Hi"))

    assert client.post_calls[0]["data"] == {
        "To": "+972521234567",
        "From": "+14155550000",
        "Body": "Hi",
    }


@pytest.mark.asyncio
async def test_sms_prefers_messaging_service():
    client = MockHttpClient()
    config = MockTwilioConfig(sms_messaging_service_sid="MG999")
    transport = TwilioMessageTransport(http_client_class=client, config=config)

    await transport.send(OutboundMessage(channel=Channel.SMS, to="+972521234567", body="Hi"))

    data = client.post_calls[0]["data"]
    assert data["MessagingServiceSid"] == "MG999"
    assert "From" not in data


@pytest.mark.asyncio
async def test_http_error_becomes_transport_error():
    client = MockHttpClient(response=MockResponse(status_code=400, text='{"code": 21211}'))
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    with pytest.raises(TransportError, match="Provider returned HTTP 400"):
        await transport.send(OutboundMessage(channel=Channel.SMS, to="+1", body="Hi"))


@pytest.mark.asyncio
async def test_timeout_becomes_transport_error():
    client = MockHttpClient(error=httpx.ReadTimeout("timed out"))
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    with pytest.raises(TransportError, match="Provider call failed"):
        await transport.send(OutboundMessage(channel=Channel.SMS, to="+1", body="Hi"))


@pytest.mark.asyncio
async def test_missing_message_id():
    client = MockHttpClient(response=MockResponse(json_data={"status": "queued"}))
    transport = TwilioMessageTransport(http_client_class=client, config=MockTwilioConfig())

    with pytest.raises(TransportError, match="did not include a message id"):
        await transport.send(OutboundMessage(channel=Channel.SMS, to="+1", body="Hi"))
