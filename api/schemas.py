"""API request/response schemas."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from uuid import UUID

from core.models import DueTask, Resident, TaskHistoryRecord, TaskType


class ResolveTaskRequest(BaseModel):
    """Request to resolve one task slot."""

    task_type: TaskType
    task_key: str = Field(..., min_length=1)
    task_index: int = Field(default=0, ge=0)
    description: str = ""
    resolved_by: str = Field(..., min_length=1)
    additional_data: Optional[Dict[str, Any]] = None
    task_data: Optional[Dict[str, Any]] = None


class MarkTaskDueRequest(BaseModel):
    """Request to flag one task slot as due."""

    task_type: TaskType
    task_key: str = Field(..., min_length=1)
    task_index: int = Field(default=0, ge=0)


class ChangeGroupRequest(BaseModel):
    """Request to move a resident to another group."""

    group_id: str = Field(..., min_length=1)


class HandoverResponse(BaseModel):
    """Due tasks across a home at handover time."""

    due_tasks: List[DueTask]


class TaskHistoryResponse(BaseModel):
    """A resident with its task history, newest first."""

    resident: Resident
    task_history: List[TaskHistoryRecord]


class CareSlotStatus(BaseModel):
    """One slot in a care status listing."""

    task_type: TaskType
    key: str
    task_index: int
    timing: Optional[Any] = None
    opens_at: Optional[datetime] = None
    any_time: bool
    is_due: bool
    last_due_time: Optional[datetime] = None
    last_resolved_time: Optional[datetime] = None
    last_resolved_description: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    task_data: Optional[Dict[str, Any]] = None


class CareStatusResponse(BaseModel):
    """Every slot of a resident plus the cached completion percentage."""

    resident_id: UUID
    current_status: int
    slots: List[CareSlotStatus]
    due_tasks: List[DueTask]


class ProgressPoint(BaseModel):
    """Value derived from one history record."""

    date: str
    value: float
    details: Dict[str, Any] = Field(default_factory=dict)


class CompletionRateResponse(BaseModel):
    """Share of history records in a window that were resolved."""

    resident_id: UUID
    completion_rate: float


class PadCheckAnalysis(BaseModel):
    """Distribution of pad check observations with insights."""

    stool_type_analysis: Dict[str, int]
    clothing_condition_analysis: Dict[str, int]
    health_insights: List[str]


class MealEntry(BaseModel):
    """One recorded meal."""

    date: str
    meal_type: str
    amount_eaten: float
    drink_amount: float


class MealAnalysis(BaseModel):
    """Meal type distribution and intake averages."""

    meal_type_distribution: Dict[str, int]
    average_amount_eaten: float
    average_fluid_intake: float
    meal_data: List[MealEntry]


class SleepAnalysis(BaseModel):
    """Sleep reconstructed from one kind of check."""

    total_sleep_hours: float = 0.0
    longest_sleep_period: float = 0.0
    shortest_sleep_period: float = 0.0
    average_sleep_period: float = 0.0
    sleep_periods: List[float] = Field(default_factory=list)
    status_counts: Dict[str, int] = Field(default_factory=dict)


class OverallSleepAnalysis(BaseModel):
    """Day and night sleep combined."""

    total_sleep_hours: float = 0.0
    average_daily_sleep_hours: float = 0.0
    longest_sleep_period: float = 0.0
    shortest_sleep_period: float = 0.0
    average_sleep_period: float = 0.0
    daytime_sleep_percentage: float = 0.0
    nighttime_sleep_percentage: float = 0.0


class SleepAnalysisResponse(BaseModel):
    """Day, night and overall sleep analysis."""

    day_analysis: SleepAnalysis
    night_analysis: SleepAnalysis
    overall_analysis: OverallSleepAnalysis


class DayNightCheckAnalysis(BaseModel):
    """Status counts of day and night checks with sleep insights."""

    day_status_analysis: Dict[str, int]
    night_status_analysis: Dict[str, int]
    health_insights: List[str]
