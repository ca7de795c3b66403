import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, assert_never
from urllib.parse import quote

from src.automation.delivery_logger import DeliveryLogger, NoOpDeliveryLogger
from src.automation.dtos import (
    ActionKind,
    Channel,
    ErrorCode,
    ExecutionContext,
    ExecutionResult,
    NotificationType,
    WhatsAppTemplateType,
)
from src.automation.templates import (
    UNASSIGNED_TABLE,
    MessageTemplates,
    format_phone_number,
    render_message,
)
from src.automation.transport import MessageTransport, OutboundMessage

logger = logging.getLogger(__name__)


class MessagingConfig(Protocol):
    whatsapp_enabled: bool
    sms_enabled: bool
    twilio_account_sid: str
    twilio_auth_token: str
    whatsapp_from_number: str
    sms_from_number: str
    sms_messaging_service_sid: str
    whatsapp_template_sids: dict[str, str]
    default_country_code: str


@dataclass(frozen=True)
class ActionRecipe:
    channel: Channel
    notification_type: NotificationType
    # Approved WhatsApp template the action sends, if any
    template_type: WhatsAppTemplateType | None = None
    # Body comes from the flow's custom message and is required
    custom: bool = False
    # Free-form body used when no template is configured
    fallback_body: str | None = None


def action_recipe(action: ActionKind) -> ActionRecipe:
    match action:
        case ActionKind.SEND_WHATSAPP_INVITE:
            return ActionRecipe(
                Channel.WHATSAPP, NotificationType.INVITE, WhatsAppTemplateType.INVITE
            )
        case ActionKind.SEND_WHATSAPP_REMINDER | ActionKind.SEND_WHATSAPP_TEMPLATE:
            return ActionRecipe(
                Channel.WHATSAPP, NotificationType.REMINDER, WhatsAppTemplateType.REMINDER
            )
        case ActionKind.SEND_WHATSAPP_CONFIRMATION:
            return ActionRecipe(
                Channel.WHATSAPP, NotificationType.CONFIRMATION, WhatsAppTemplateType.CONFIRMATION
            )
        case ActionKind.SEND_WHATSAPP_GUEST_COUNT:
            return ActionRecipe(
                Channel.WHATSAPP,
                NotificationType.GUEST_COUNT_REQUEST,
                WhatsAppTemplateType.GUEST_COUNT_LIST,
            )
        case ActionKind.SEND_WHATSAPP_EVENT_DAY:
            return ActionRecipe(
                Channel.WHATSAPP, NotificationType.EVENT_DAY, WhatsAppTemplateType.EVENT_DAY
            )
        case ActionKind.SEND_WHATSAPP_THANK_YOU:
            return ActionRecipe(
                Channel.WHATSAPP, NotificationType.THANK_YOU, WhatsAppTemplateType.THANK_YOU
            )
        case ActionKind.SEND_TABLE_ASSIGNMENT:
            return ActionRecipe(
                Channel.WHATSAPP,
                NotificationType.TABLE_ASSIGNMENT,
                WhatsAppTemplateType.TABLE_ASSIGNMENT,
                fallback_body=MessageTemplates.TABLE_ASSIGNMENT,
            )
        case ActionKind.SEND_CUSTOM_WHATSAPP:
            return ActionRecipe(Channel.WHATSAPP, NotificationType.REMINDER, custom=True)
        case ActionKind.SEND_CUSTOM_SMS:
            return ActionRecipe(Channel.SMS, NotificationType.REMINDER, custom=True)
        case ActionKind.SEND_SMS_REMINDER:
            return ActionRecipe(
                Channel.SMS, NotificationType.REMINDER, fallback_body=MessageTemplates.SMS_REMINDER
            )
        case _:
            assert_never(action)


def _failure(code: ErrorCode, message: str) -> ExecutionResult:
    return ExecutionResult(success=False, message=message, error_code=code.value)


def _template_variables(
    template_type: WhatsAppTemplateType, context: ExecutionContext
) -> dict[str, str]:
    variables = {"1": context.guest_name, "2": context.event_title}
    if template_type == WhatsAppTemplateType.TABLE_ASSIGNMENT:
        variables["3"] = context.table_name or UNASSIGNED_TABLE
    elif template_type == WhatsAppTemplateType.EVENT_DAY:
        venue = ", ".join(
            part
            for part in (context.event_venue, context.event_address or context.event_location)
            if part
        )
        variables["3"] = context.table_name or UNASSIGNED_TABLE
        variables["4"] = venue
        variables["5"] = (
            f"https://waze.com/ul?q={quote(venue)}&navigate=yes" if venue else ""
        )
    else:
        variables["3"] = context.rsvp_link or ""
    return variables


class ActionExecutor:
    """Composes and sends the message for one automation action.

    Every failure, including transport exceptions, comes back as an
    ``ExecutionResult`` with an error code. The executor never retries.
    """

    def __init__(
        self,
        transport: MessageTransport,
        config: MessagingConfig,
        delivery_logger: DeliveryLogger | None = None,
    ):
        self._transport = transport
        self._config = config
        self.delivery_logger = delivery_logger or NoOpDeliveryLogger()

    def _channel_enabled(self, channel: Channel) -> bool:
        if channel == Channel.WHATSAPP:
            return self._config.whatsapp_enabled
        return self._config.sms_enabled

    def _has_credentials(self, channel: Channel) -> bool:
        if not self._config.twilio_account_sid or not self._config.twilio_auth_token:
            return False
        if channel == Channel.WHATSAPP:
            return bool(self._config.whatsapp_from_number)
        return bool(self._config.sms_from_number or self._config.sms_messaging_service_sid)

    async def execute(self, action: ActionKind, context: ExecutionContext) -> ExecutionResult:
        recipe = action_recipe(action)

        if not context.guest_phone:
            return _failure(ErrorCode.NO_PHONE, "Guest has no phone number")

        if recipe.custom and not context.custom_message:
            return _failure(
                ErrorCode.NO_MESSAGE, "No custom message configured for this flow"
            )

        if not self._channel_enabled(recipe.channel):
            if recipe.channel == Channel.WHATSAPP:
                return _failure(ErrorCode.WHATSAPP_DISABLED, "WhatsApp messaging not enabled")
            return _failure(ErrorCode.SMS_DISABLED, "SMS messaging not enabled")

        if not self._has_credentials(recipe.channel):
            return _failure(
                ErrorCode.NO_CREDENTIALS,
                f"{recipe.channel.value.capitalize()} credentials not configured",
            )

        template_id = None
        variables: dict[str, str] = {}
        body = None
        if recipe.custom:
            body = render_message(context.custom_message, context)
        else:
            if recipe.template_type:
                template_id = self._config.whatsapp_template_sids.get(recipe.template_type.value)
            if template_id:
                variables = _template_variables(recipe.template_type, context)
            elif recipe.fallback_body:
                body = render_message(context.custom_message or recipe.fallback_body, context)
            else:
                return _failure(
                    ErrorCode.NO_TEMPLATE,
                    f"No WhatsApp template configured for {recipe.template_type.value}",
                )

        return await self._send(
            recipe,
            context,
            OutboundMessage(
                channel=recipe.channel,
                to=format_phone_number(context.guest_phone, self._config.default_country_code),
                body=body,
                template_id=template_id,
                variables=variables,
            ),
        )

    async def _send(
        self, recipe: ActionRecipe, context: ExecutionContext, message: OutboundMessage
    ) -> ExecutionResult:
        log_uuid = await self.delivery_logger.log_attempt(
            guest_id=context.guest_id,
            notification_type=recipe.notification_type,
            channel=recipe.channel,
            body=message.body,
            execution_id=context.execution_id,
        )

        try:
            delivery_id = await self._transport.send(message)
        except Exception as e:
            logger.warning(
                "Sending %s to guest %s failed: %s",
                recipe.notification_type.value,
                context.guest_id,
                e,
            )
            try:
                await self.delivery_logger.log_failure(log_uuid=log_uuid, error_message=str(e))
            except Exception:
                logger.exception("Failed to update delivery log %s", log_uuid)
            return ExecutionResult(
                success=False,
                message=str(e) or "Failed to send message",
                error_code=ErrorCode.SEND_FAILED.value,
                notification_type=recipe.notification_type,
                channel=recipe.channel,
            )

        sent_at = datetime.now(UTC)
        # Delivered: a failing log write must not mark the execution as failed
        try:
            await self.delivery_logger.log_success(
                log_uuid=log_uuid, provider_message_id=delivery_id, sent_at=sent_at
            )
        except Exception:
            logger.exception("Failed to update delivery log %s", log_uuid)
        logger.info(
            "Sent %s via %s to guest %s (%s)",
            recipe.notification_type.value,
            recipe.channel.value,
            context.guest_id,
            delivery_id,
        )
        return ExecutionResult(
            success=True,
            message=f"{recipe.channel.value.capitalize()} sent: {delivery_id}",
            delivery_id=delivery_id,
            notification_type=recipe.notification_type,
            channel=recipe.channel,
            sent_at=sent_at,
        )
