import logging
from uuid import UUID

from src.automation.dtos import (
    FLOW_TEMPLATES,
    ActionKind,
    FlowDTO,
    FlowNotFoundError,
    FlowStatsDTO,
    FlowStatus,
    FlowTemplate,
    FlowValidationError,
    HandlerReport,
    TriggerKind,
)
from src.automation.features.manage_flows.dtos import FlowChanges, validate_flow_config
from src.automation.features.manage_flows.write_model import FlowWriteModel
from src.automation.handlers import AutomationEventHandlers
from src.automation.processor import AutomationProcessor
from src.automation.repository.read_models import AutomationReadModel
from src.automation.repository.write_models import ExecutionWriteModel

logger = logging.getLogger(__name__)


def get_flow_template(key: str) -> FlowTemplate:
    for template in FLOW_TEMPLATES:
        if template.key == key:
            return template
    raise FlowValidationError(f"Unknown flow template '{key}'")


class FlowService:
    """Flow CRUD plus the side effects a status change has on execution records."""

    def __init__(
        self,
        read_model: AutomationReadModel,
        flow_write_model: FlowWriteModel,
        execution_write_model: ExecutionWriteModel,
        handlers: AutomationEventHandlers,
        processor: AutomationProcessor,
    ):
        self._read_model = read_model
        self._flows = flow_write_model
        self._executions = execution_write_model
        self._handlers = handlers
        self._processor = processor

    async def list_flows(self, event_id: UUID) -> list[FlowStatsDTO]:
        return await self._read_model.flow_stats(event_id)

    async def get_flow(self, flow_id: UUID) -> FlowDTO:
        flow = await self._read_model.get_flow(flow_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        return flow

    async def create_flow(
        self,
        event_id: UUID,
        name: str,
        trigger: TriggerKind,
        action: ActionKind,
        delay_hours: int | None = None,
        custom_message: str | None = None,
    ) -> FlowDTO:
        validate_flow_config(trigger, delay_hours)
        flow = await self._flows.create_flow(
            event_id=event_id,
            name=name,
            trigger=trigger,
            action=action,
            delay_hours=delay_hours,
            custom_message=custom_message,
        )
        logger.info("Created flow %s (%s -> %s)", flow.id, trigger.value, action.value)
        return flow

    async def create_from_template(self, event_id: UUID, template_key: str) -> FlowDTO:
        template = get_flow_template(template_key)
        return await self.create_flow(
            event_id=event_id,
            name=template.name,
            trigger=template.trigger,
            action=template.action,
            delay_hours=template.delay_hours,
        )

    async def update_flow(self, flow_id: UUID, changes: FlowChanges) -> FlowDTO:
        current = await self.get_flow(flow_id)
        trigger = changes.trigger if changes.has("trigger") and changes.trigger else current.trigger
        delay_hours = changes.delay_hours if changes.has("delay_hours") else current.delay_hours
        validate_flow_config(trigger, delay_hours)

        updated = await self._flows.update_flow(flow_id, changes)
        if updated.trigger != current.trigger:
            # Pending records were scheduled for the old trigger's conditions
            discarded = await self._executions.discard_pending_for_flow(flow_id)
            logger.info(
                "Flow %s trigger changed to %s, discarded %s pending executions",
                flow_id,
                updated.trigger.value,
                discarded,
            )
        schedule_changed = (
            updated.trigger != current.trigger or updated.delay_hours != current.delay_hours
        )
        if updated.status == FlowStatus.ACTIVE and schedule_changed:
            await self._handlers.on_flow_activated(flow_id, refresh_pending=True)
        return updated

    async def set_status(self, flow_id: UUID, status: FlowStatus) -> tuple[FlowDTO, HandlerReport]:
        """
        Change a flow's status.

        Activating schedules the eligible guests, archiving cancels what is
        still pending. Pausing leaves PENDING records where they are; the
        sweep only looks at ACTIVE flows.
        """
        current = await self.get_flow(flow_id)
        flow = await self._flows.set_status(flow_id, status)
        report = HandlerReport()
        if status == current.status:
            return flow, report

        if status == FlowStatus.ACTIVE:
            report = await self._handlers.on_flow_activated(flow_id)
        elif status == FlowStatus.ARCHIVED:
            report.skipped = await self._processor.cancel_pending(flow_id)
        logger.info("Flow %s moved from %s to %s", flow_id, current.status.value, status.value)
        return flow, report

    async def delete_flow(self, flow_id: UUID) -> None:
        await self._flows.delete_flow(flow_id)
        logger.info("Deleted flow %s", flow_id)
