"""Wires the automation components together."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from src.automation.delivery_logger import DeliveryLogger, SQLDeliveryLogger
from src.automation.executor import ActionExecutor
from src.automation.features.manage_flows.service import FlowService
from src.automation.features.manage_flows.write_model import FlowWriteModel, SqlFlowWriteModel
from src.automation.handlers import AutomationEventHandlers
from src.automation.processor import AutomationProcessor, ExecutionRunner
from src.automation.repository.read_models import AutomationReadModel, SqlAutomationReadModel
from src.automation.repository.write_models import ExecutionWriteModel, SqlExecutionWriteModel
from src.automation.transport import MessageTransport, TwilioMessageTransport
from src.config.settings import Settings, settings


@dataclass
class AutomationEngine:
    read_model: AutomationReadModel
    executions: ExecutionWriteModel
    flows: FlowWriteModel
    executor: ActionExecutor
    runner: ExecutionRunner
    handlers: AutomationEventHandlers
    processor: AutomationProcessor
    flow_service: FlowService


def assemble_automation_engine(
    read_model: AutomationReadModel,
    executions: ExecutionWriteModel,
    flows: FlowWriteModel,
    executor: ActionExecutor,
    config: Settings = settings,
) -> AutomationEngine:
    runner = ExecutionRunner(read_model, executions, executor)
    handlers = AutomationEventHandlers(read_model, executions, runner)
    # A delivered invite or reminder re-arms the no-response flows
    runner.notification_listener = handlers.on_notification_sent
    processor = AutomationProcessor(
        read_model,
        executions,
        runner,
        batch_size=config.automation_sweep_batch_size,
        processing_timeout_minutes=config.automation_processing_timeout_minutes,
    )
    return AutomationEngine(
        read_model=read_model,
        executions=executions,
        flows=flows,
        executor=executor,
        runner=runner,
        handlers=handlers,
        processor=processor,
        flow_service=FlowService(read_model, flows, executions, handlers, processor),
    )


def build_automation_engine(
    session_factory: async_sessionmaker | None = None,
    transport: MessageTransport | None = None,
    delivery_logger: DeliveryLogger | None = None,
    config: Settings = settings,
) -> AutomationEngine:
    """Engine backed by the SQL store and the Twilio transport."""
    executor = ActionExecutor(
        transport=transport or TwilioMessageTransport(config=config),
        config=config,
        delivery_logger=delivery_logger or SQLDeliveryLogger(session_factory=session_factory),
    )
    return assemble_automation_engine(
        read_model=SqlAutomationReadModel(
            session_factory=session_factory, frontend_url=config.frontend_url
        ),
        executions=SqlExecutionWriteModel(session_factory=session_factory),
        flows=SqlFlowWriteModel(session_factory=session_factory),
        executor=executor,
        config=config,
    )


def get_automation_engine() -> AutomationEngine:
    """Dependency to get the automation engine."""
    return build_automation_engine()
