from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.automation.dtos import (
    ExecutionNotFoundError,
    ExecutionRecordDTO,
    ExecutionStatus,
    FlowNotFoundError,
    GuestPreviewDTO,
    InvalidTransitionError,
)
from src.automation.engine import get_automation_engine
from src.automation.processor import AutomationProcessor
from src.automation.repository.read_models import AutomationReadModel
from src.automation.urls import (
    EXECUTION_RUN_URL,
    FLOW_CANCEL_PENDING_URL,
    FLOW_EXECUTIONS_URL,
    FLOW_PREVIEW_URL,
    FLOW_RETRY_FAILED_URL,
    FLOW_TRIGGER_URL,
)

router = APIRouter()


class ExecutionResponse(BaseModel):
    id: UUID
    flow_id: UUID
    guest_id: UUID
    status: ExecutionStatus
    scheduled_for: datetime | None
    started_at: datetime | None
    executed_at: datetime | None
    error_message: str | None
    error_code: str | None
    retry_count: int

    @classmethod
    def from_dto(cls, record: ExecutionRecordDTO) -> "ExecutionResponse":
        return cls(
            id=record.id,
            flow_id=record.flow_id,
            guest_id=record.guest_id,
            status=record.status,
            scheduled_for=record.scheduled_for,
            started_at=record.started_at,
            executed_at=record.executed_at,
            error_message=record.error_message,
            error_code=record.error_code,
            retry_count=record.retry_count,
        )


class RetryResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int


class CancelResponse(BaseModel):
    cancelled: int


class TriggerRequest(BaseModel):
    guest_ids: list[UUID] = Field(min_length=1)


class TriggerResponse(BaseModel):
    queued: int


class RunResponse(BaseModel):
    success: bool
    message: str
    error_code: str | None = None
    delivery_id: str | None = None


class GuestPreviewResponse(BaseModel):
    guest_id: UUID
    should_trigger: bool
    eligible: bool
    reason: str
    scheduled_for: datetime | None
    execution_status: ExecutionStatus | None

    @classmethod
    def from_dto(cls, entry: GuestPreviewDTO) -> "GuestPreviewResponse":
        return cls(
            guest_id=entry.guest_id,
            should_trigger=entry.should_trigger,
            eligible=entry.eligible,
            reason=entry.reason,
            scheduled_for=entry.scheduled_for,
            execution_status=entry.execution_status,
        )


def get_automation_processor() -> AutomationProcessor:
    """Dependency to get the automation processor."""
    return get_automation_engine().processor


def get_automation_read_model() -> AutomationReadModel:
    """Dependency to get the automation read model."""
    return get_automation_engine().read_model


@router.get(FLOW_EXECUTIONS_URL, response_model=list[ExecutionResponse])
async def list_executions(
    flow_id: UUID,
    status: ExecutionStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    read_model: AutomationReadModel = Depends(get_automation_read_model),
) -> list[ExecutionResponse]:
    if await read_model.get_flow(flow_id) is None:
        raise HTTPException(status_code=404, detail=str(FlowNotFoundError(flow_id)))
    records = await read_model.list_executions(flow_id, status=status, limit=limit, offset=offset)
    return [ExecutionResponse.from_dto(record) for record in records]


@router.post(FLOW_RETRY_FAILED_URL, response_model=RetryResponse)
async def retry_failed(
    flow_id: UUID,
    processor: AutomationProcessor = Depends(get_automation_processor),
) -> RetryResponse:
    """Run every FAILED execution of the flow again."""
    try:
        result = await processor.retry_failed(flow_id)
    except FlowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RetryResponse(
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
    )


@router.post(FLOW_CANCEL_PENDING_URL, response_model=CancelResponse)
async def cancel_pending(
    flow_id: UUID,
    processor: AutomationProcessor = Depends(get_automation_processor),
) -> CancelResponse:
    try:
        cancelled = await processor.cancel_pending(flow_id)
    except FlowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CancelResponse(cancelled=cancelled)


@router.post(FLOW_TRIGGER_URL, response_model=TriggerResponse)
async def trigger_for_guests(
    flow_id: UUID,
    trigger_data: TriggerRequest,
    processor: AutomationProcessor = Depends(get_automation_processor),
) -> TriggerResponse:
    """Queue the flow for the selected guests. The next sweep sends it."""
    try:
        queued = await processor.trigger_for_guests(flow_id, trigger_data.guest_ids)
    except FlowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return TriggerResponse(queued=queued)


@router.post(EXECUTION_RUN_URL, response_model=RunResponse)
async def run_execution(
    execution_id: UUID,
    processor: AutomationProcessor = Depends(get_automation_processor),
) -> RunResponse:
    try:
        result = await processor.run_now(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return RunResponse(
        success=result.success,
        message=result.message,
        error_code=result.error_code,
        delivery_id=result.delivery_id,
    )


@router.get(FLOW_PREVIEW_URL, response_model=list[GuestPreviewResponse])
async def preview_flow(
    flow_id: UUID,
    processor: AutomationProcessor = Depends(get_automation_processor),
) -> list[GuestPreviewResponse]:
    """Show what the flow would do for each guest right now. Nothing is sent."""
    try:
        preview = await processor.preview_flow(flow_id)
    except FlowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [GuestPreviewResponse.from_dto(entry) for entry in preview]
