"""FastAPI routes for resident care tasks."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query

from api.schemas import (
    CareStatusResponse,
    ChangeGroupRequest,
    CompletionRateResponse,
    DayNightCheckAnalysis,
    HandoverResponse,
    MarkTaskDueRequest,
    MealAnalysis,
    MealEntry,
    PadCheckAnalysis,
    ProgressPoint,
    ResolveTaskRequest,
    SleepAnalysisResponse,
    TaskHistoryResponse,
)
from core.clock import wall_clock
from core.errors import (
    CareTaskError,
    ConcurrencyConflict,
    DomainRuleViolation,
    InvalidArgumentError,
    NotFoundError,
)
from core.handover import HandoverService
from core.models import Resident, ResidentCreate, ResidentUpdate, ResidentView
from core.progress import ProgressService
from core.resident_service import ResidentService
from db.storage import get_storage
from settings import load_settings

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["residents"])

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidArgumentError: 400,
    DomainRuleViolation: 422,
    ConcurrencyConflict: 409,
}


def to_http_error(error: CareTaskError) -> HTTPException:
    """Map a care task error to an HTTP error with a clear reason."""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=f"Storage failure: {error}")


# Dependency injection for services
async def get_resident_service() -> ResidentService:
    """Get resident service instance."""
    return ResidentService(
        storage=get_storage(),
        clock=wall_clock(load_settings().timezone)
    )


async def get_handover_service(
    resident_service: ResidentService = Depends(get_resident_service)
) -> HandoverService:
    """Get handover service instance."""
    return HandoverService(storage=resident_service.storage, resident_service=resident_service)


async def get_progress_service(
    resident_service: ResidentService = Depends(get_resident_service)
) -> ProgressService:
    """Get progress service instance."""
    return ProgressService(storage=resident_service.storage)


@router.post("/residents", response_model=Resident, status_code=201)
async def create_resident(
    request: ResidentCreate,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """
    Create a resident.

    Every personal-care task and medication starts with one not-due status
    per timing; a task without timings gets a single any-time slot.
    """
    try:
        return await service.create_resident(request)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}", response_model=Resident)
async def get_resident(
    resident_id: UUID,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """Get a resident document."""
    try:
        return await service.get_resident(resident_id)
    except CareTaskError as e:
        raise to_http_error(e)


@router.patch("/residents/{resident_id}", response_model=Resident)
async def update_resident(
    resident_id: UUID,
    request: ResidentUpdate,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """Partially update a resident."""
    try:
        return await service.update_resident(resident_id, request)
    except CareTaskError as e:
        raise to_http_error(e)


@router.put("/residents/{resident_id}/group", response_model=Resident)
async def change_resident_group(
    resident_id: UUID,
    request: ChangeGroupRequest,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """Move a resident to another group."""
    try:
        return await service.change_resident_group(resident_id, request.group_id)
    except CareTaskError as e:
        raise to_http_error(e)


@router.delete("/residents/{resident_id}", status_code=204)
async def delete_resident(
    resident_id: UUID,
    service: ResidentService = Depends(get_resident_service)
) -> None:
    """Delete a resident. Task history is retained."""
    try:
        await service.delete_resident(resident_id)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/homes/{home_id}/residents", response_model=List[ResidentView])
async def get_residents_for_home(
    home_id: str,
    service: ResidentService = Depends(get_resident_service)
) -> List[ResidentView]:
    """List a home's residents with their currently due tasks."""
    try:
        return await service.get_residents_for_home(home_id)
    except CareTaskError as e:
        raise to_http_error(e)


@router.post("/residents/{resident_id}/tasks/resolve", response_model=Resident)
async def resolve_task(
    resident_id: UUID,
    request: ResolveTaskRequest,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """
    Resolve a task slot.

    - **task_type**: personalCare or medications
    - **task_key**: Personal-care category or medication name
    - **task_index**: Slot position within the task's timings
    - **resolved_by**: Acting user id

    Returns 422 when the slot's resolution window has not opened yet.
    """
    try:
        return await service.resolve_task(
            resident_id,
            request.task_type,
            request.task_key,
            request.task_index,
            request.description,
            request.resolved_by,
            additional_data=request.additional_data,
            task_data=request.task_data
        )
    except CareTaskError as e:
        raise to_http_error(e)


@router.post("/residents/{resident_id}/tasks/due", response_model=Resident)
async def mark_task_as_due(
    resident_id: UUID,
    request: MarkTaskDueRequest,
    service: ResidentService = Depends(get_resident_service)
) -> Resident:
    """Flag a task slot as due."""
    try:
        return await service.mark_task_as_due(
            resident_id,
            request.task_type,
            request.task_key,
            request.task_index
        )
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/care-status", response_model=CareStatusResponse)
async def get_current_care_status(
    resident_id: UUID,
    service: ResidentService = Depends(get_resident_service)
) -> CareStatusResponse:
    """Per-slot status of every task and the resident's completion percentage."""
    try:
        return CareStatusResponse(**await service.get_current_care_status(resident_id))
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/task-history", response_model=TaskHistoryResponse)
async def get_task_history(
    resident_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: ResidentService = Depends(get_resident_service)
) -> TaskHistoryResponse:
    """Task history, newest first; defaults to the current month."""
    try:
        return TaskHistoryResponse(**await service.get_task_history(resident_id, start, end))
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/homes/{home_id}/handover", response_model=HandoverResponse)
async def get_handover_data(
    home_id: str,
    actor_id: str = Query(..., min_length=1),
    service: HandoverService = Depends(get_handover_service)
) -> HandoverResponse:
    """
    Due tasks across a home.

    Due slots are recorded as missed and acknowledged on behalf of the actor;
    the response lists them as they were before acknowledgement.
    """
    try:
        return HandoverResponse(**await service.get_handover_data(home_id, actor_id))
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress", response_model=List[ProgressPoint])
async def get_progress_data(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    task_key: Optional[str] = None,
    service: ProgressService = Depends(get_progress_service)
) -> List[ProgressPoint]:
    """Per-record progress values in a date range."""
    try:
        return await service.get_progress_data(resident_id, start, end, task_key)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/completion-rate", response_model=CompletionRateResponse)
async def get_task_completion_rate(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    task_key: Optional[str] = None,
    service: ProgressService = Depends(get_progress_service)
) -> CompletionRateResponse:
    """Percentage of tasks scheduled in a date range that were resolved."""
    try:
        rate = await service.get_task_completion_rate(resident_id, start, end, task_key)
        return CompletionRateResponse(resident_id=resident_id, completion_rate=rate)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/pad-checks", response_model=PadCheckAnalysis)
async def get_pad_check_analysis(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    service: ProgressService = Depends(get_progress_service)
) -> PadCheckAnalysis:
    """Stool type and clothing condition distribution with insights."""
    try:
        return await service.get_pad_check_analysis(resident_id, start, end)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/meals", response_model=MealAnalysis)
async def get_meal_analysis(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    service: ProgressService = Depends(get_progress_service)
) -> MealAnalysis:
    """Meal type distribution and intake averages."""
    try:
        return await service.get_meal_analysis(resident_id, start, end)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/meals/series", response_model=List[MealEntry])
async def get_meal_progress_data(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    service: ProgressService = Depends(get_progress_service)
) -> List[MealEntry]:
    """Meal intake per resolved meal."""
    try:
        return await service.get_meal_progress_data(resident_id, start, end)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/sleep", response_model=SleepAnalysisResponse)
async def get_sleep_analysis(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    service: ProgressService = Depends(get_progress_service)
) -> SleepAnalysisResponse:
    """Sleep periods reconstructed from day and night checks."""
    try:
        return await service.get_sleep_analysis(resident_id, start, end)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/residents/{resident_id}/progress/day-night-checks", response_model=DayNightCheckAnalysis)
async def get_day_night_check_analysis(
    resident_id: UUID,
    start: datetime,
    end: datetime,
    service: ProgressService = Depends(get_progress_service)
) -> DayNightCheckAnalysis:
    """Day and night check status counts with sleep insights."""
    try:
        return await service.get_day_night_check_analysis(resident_id, start, end)
    except CareTaskError as e:
        raise to_http_error(e)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "care-task-scheduler",
        "version": "1.0.0"
    }
