"""Pydantic domain models for the Care Task Scheduler."""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime
import re
from enum import Enum
from typing import Optional, Dict, Any, List, Union
from uuid import UUID, uuid4


DAYS_OF_WEEK = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def check_clock(value: str) -> str:
    """Validate an "HH:mm" 24-hour time."""
    value = value.strip()
    if not CLOCK_PATTERN.match(value):
        raise ValueError(f"Time must be HH:mm, got {value!r}")
    return value


class FrequencyPer(str, Enum):
    """Cadence of a recurring care task."""

    DAY = "day"
    WEEK = "week"
    NIGHT = "night"


class TaskType(str, Enum):
    """Where a task definition lives on the resident document."""

    PERSONAL_CARE = "personalCare"
    MEDICATIONS = "medications"


class DueTaskType(str, Enum):
    """Task type as reported in due-task listings."""

    PERSONAL_CARE = "personalCare"
    MEDICATION = "medication"


class HistoryStatus(str, Enum):
    """Status carried by a task history record."""

    DUE = "due"
    RESOLVED = "resolved"
    MISSED = "missed"


class ResidentType(str, Enum):
    """Residency type."""

    PERMANENT = "Permanent"
    TEMPORARY = "Temporary"
    RESPITE = "Respite"


class Frequency(BaseModel):
    """Semantic cadence: `times` occurrences per day, week or night."""

    per: FrequencyPer
    times: int = Field(default=1, ge=0)


class WeeklyTiming(BaseModel):
    """A weekly slot: day of week plus HH:mm."""

    day: str
    time: str

    @field_validator("day")
    @classmethod
    def check_day(cls, value: str) -> str:
        if value not in DAYS_OF_WEEK:
            raise ValueError(f"Unknown day of week: {value}")
        return value

    @field_validator("time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return check_clock(value)


Timing = Optional[Union[WeeklyTiming, str]]


class TaskStatus(BaseModel):
    """Status of one slot of a task definition."""

    is_due: bool = False
    last_due_time: Optional[datetime] = None
    last_resolved_time: Optional[datetime] = None
    last_resolved_description: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    task_data: Optional[Dict[str, Any]] = None


class TaskDefinition(BaseModel):
    """Schedule and per-slot status for one recurring care activity."""

    frequency: Optional[Frequency] = None
    timings: List[Timing] = Field(default_factory=list)
    statuses: List[TaskStatus] = Field(default_factory=list)

    @field_validator("timings")
    @classmethod
    def check_timings(cls, timings: List[Timing]) -> List[Timing]:
        # None and "" mark any-time slots
        return [
            check_clock(timing) if isinstance(timing, str) and timing.strip() else timing
            for timing in timings
        ]


class Medication(TaskDefinition):
    """Medication entry; its task key is the drug name."""

    name: str = Field(..., min_length=1)
    dosage: Optional[str] = None


class Resident(BaseModel):
    """Resident document owning its embedded task definitions."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    home_id: str = Field(..., min_length=1)
    group_id: Optional[str] = None
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    room_number: str = Field(..., min_length=1)
    resident_type: ResidentType = ResidentType.PERMANENT
    personal_care: Dict[str, TaskDefinition] = Field(default_factory=dict)
    medications: List[Medication] = Field(default_factory=list)
    current_status: int = Field(default=0, ge=0, le=100)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ResidentCreate(BaseModel):
    """Input for creating a resident."""

    home_id: str = Field(..., min_length=1)
    group_id: Optional[str] = None
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    room_number: str = Field(..., min_length=1)
    resident_type: ResidentType = ResidentType.PERMANENT
    personal_care: Dict[str, TaskDefinition] = Field(default_factory=dict)
    medications: List[Medication] = Field(default_factory=list)


class ResidentUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    room_number: Optional[str] = None
    resident_type: Optional[ResidentType] = None
    personal_care: Optional[Dict[str, TaskDefinition]] = None
    medications: Optional[List[Medication]] = None


class TaskHistoryRecord(BaseModel):
    """Immutable audit entry for a due, resolved or missed task event."""

    id: UUID = Field(default_factory=uuid4)
    resident_id: UUID
    task_type: TaskType
    task_key: str
    scheduled_time: Optional[datetime] = None
    resolved_time: Optional[datetime] = None
    status: HistoryStatus = HistoryStatus.RESOLVED
    description: Optional[str] = None
    resolved_by: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    task_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SlotEvaluation(BaseModel):
    """Result of evaluating a task slot at an instant."""

    is_due: bool = False
    minutes_past_due: int = 0
    task_time: str = ""
    task_index: int = 0


class DueTask(BaseModel):
    """Ephemeral view of a task slot that is currently due."""

    type: DueTaskType
    key: str
    minutes_past_due: int
    task_time: str
    task_index: int
    resident_id: Optional[UUID] = None


class ResidentView(Resident):
    """Resident as returned by reads, with its live due-task list."""

    due_tasks: List[DueTask] = Field(default_factory=list)
