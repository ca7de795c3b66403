from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.automation.dtos import (
    FLOW_TEMPLATES,
    ActionKind,
    EventNotFoundError,
    FlowAlreadyExistsError,
    FlowDTO,
    FlowNotFoundError,
    FlowStatsDTO,
    FlowStatus,
    FlowValidationError,
    TriggerKind,
)
from src.automation.engine import get_automation_engine
from src.automation.features.manage_flows.dtos import FlowChanges
from src.automation.features.manage_flows.service import FlowService
from src.automation.urls import (
    EVENT_FLOW_FROM_TEMPLATE_URL,
    EVENT_FLOWS_URL,
    FLOW_STATUS_URL,
    FLOW_TEMPLATES_URL,
    FLOW_URL,
)

router = APIRouter()


class FlowCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    trigger: TriggerKind
    action: ActionKind
    delay_hours: int | None = None
    custom_message: str | None = None


class FlowFromTemplate(BaseModel):
    template: str


class FlowUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    trigger: TriggerKind | None = None
    action: ActionKind | None = None
    delay_hours: int | None = None
    custom_message: str | None = None


class FlowStatusUpdate(BaseModel):
    status: FlowStatus


class FlowResponse(BaseModel):
    id: UUID
    event_id: UUID
    name: str
    trigger: TriggerKind
    action: ActionKind
    status: FlowStatus
    delay_hours: int | None
    custom_message: str | None

    @classmethod
    def from_dto(cls, flow: FlowDTO) -> "FlowResponse":
        return cls(
            id=flow.id,
            event_id=flow.event_id,
            name=flow.name,
            trigger=flow.trigger,
            action=flow.action,
            status=flow.status,
            delay_hours=flow.delay_hours,
            custom_message=flow.custom_message,
        )


class FlowStatsResponse(BaseModel):
    flow: FlowResponse
    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    skipped: int

    @classmethod
    def from_dto(cls, stats: FlowStatsDTO) -> "FlowStatsResponse":
        return cls(
            flow=FlowResponse.from_dto(stats.flow),
            total=stats.total,
            pending=stats.pending,
            processing=stats.processing,
            completed=stats.completed,
            failed=stats.failed,
            skipped=stats.skipped,
        )


class FlowStatusResponse(BaseModel):
    flow: FlowResponse
    scheduled: int
    cancelled: int


class FlowTemplateResponse(BaseModel):
    key: str
    name: str
    description: str
    trigger: TriggerKind
    action: ActionKind
    delay_hours: int | None


def get_flow_service() -> FlowService:
    """Dependency to get the flow service."""
    return get_automation_engine().flow_service


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (FlowNotFoundError, EventNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, FlowAlreadyExistsError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=422, detail=str(e))


_FLOW_ERRORS = (FlowNotFoundError, EventNotFoundError, FlowAlreadyExistsError, FlowValidationError)


@router.get(FLOW_TEMPLATES_URL, response_model=list[FlowTemplateResponse])
async def list_flow_templates() -> list[FlowTemplateResponse]:
    return [
        FlowTemplateResponse(
            key=template.key,
            name=template.name,
            description=template.description,
            trigger=template.trigger,
            action=template.action,
            delay_hours=template.delay_hours,
        )
        for template in FLOW_TEMPLATES
    ]


@router.get(EVENT_FLOWS_URL, response_model=list[FlowStatsResponse])
async def list_flows(
    event_id: UUID,
    service: FlowService = Depends(get_flow_service),
) -> list[FlowStatsResponse]:
    """List the flows of an event with per-status execution counts."""
    return [FlowStatsResponse.from_dto(stats) for stats in await service.list_flows(event_id)]


@router.post(EVENT_FLOWS_URL, response_model=FlowResponse, status_code=201)
async def create_flow(
    event_id: UUID,
    flow_data: FlowCreate,
    service: FlowService = Depends(get_flow_service),
) -> FlowResponse:
    try:
        flow = await service.create_flow(
            event_id=event_id,
            name=flow_data.name,
            trigger=flow_data.trigger,
            action=flow_data.action,
            delay_hours=flow_data.delay_hours,
            custom_message=flow_data.custom_message,
        )
    except _FLOW_ERRORS as e:
        raise _http_error(e)
    return FlowResponse.from_dto(flow)


@router.post(
    EVENT_FLOW_FROM_TEMPLATE_URL,
    response_model=FlowResponse,
    status_code=201,
)
async def create_flow_from_template(
    event_id: UUID,
    template_data: FlowFromTemplate,
    service: FlowService = Depends(get_flow_service),
) -> FlowResponse:
    """Create a DRAFT flow from one of the built-in templates."""
    try:
        flow = await service.create_from_template(event_id, template_data.template)
    except _FLOW_ERRORS as e:
        raise _http_error(e)
    return FlowResponse.from_dto(flow)


@router.get(FLOW_URL, response_model=FlowResponse)
async def get_flow(
    flow_id: UUID,
    service: FlowService = Depends(get_flow_service),
) -> FlowResponse:
    try:
        flow = await service.get_flow(flow_id)
    except FlowNotFoundError as e:
        raise _http_error(e)
    return FlowResponse.from_dto(flow)


@router.patch(FLOW_URL, response_model=FlowResponse)
async def update_flow(
    flow_id: UUID,
    flow_data: FlowUpdate,
    service: FlowService = Depends(get_flow_service),
) -> FlowResponse:
    changes = FlowChanges(
        fields_set=frozenset(flow_data.model_fields_set),
        name=flow_data.name,
        trigger=flow_data.trigger,
        action=flow_data.action,
        delay_hours=flow_data.delay_hours,
        custom_message=flow_data.custom_message,
    )
    try:
        flow = await service.update_flow(flow_id, changes)
    except _FLOW_ERRORS as e:
        raise _http_error(e)
    return FlowResponse.from_dto(flow)


@router.put(FLOW_STATUS_URL, response_model=FlowStatusResponse)
async def set_flow_status(
    flow_id: UUID,
    status_data: FlowStatusUpdate,
    service: FlowService = Depends(get_flow_service),
) -> FlowStatusResponse:
    """
    Activate, pause or archive a flow.
    Activation schedules every eligible guest, archiving cancels pending executions.
    """
    try:
        flow, report = await service.set_status(flow_id, status_data.status)
    except FlowNotFoundError as e:
        raise _http_error(e)

    cancelled = report.skipped if status_data.status == FlowStatus.ARCHIVED else 0
    return FlowStatusResponse(
        flow=FlowResponse.from_dto(flow),
        scheduled=report.created,
        cancelled=cancelled,
    )


@router.delete(FLOW_URL, status_code=204)
async def delete_flow(
    flow_id: UUID,
    service: FlowService = Depends(get_flow_service),
) -> None:
    try:
        await service.delete_flow(flow_id)
    except FlowNotFoundError as e:
        raise _http_error(e)
