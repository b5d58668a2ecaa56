"""In-process storage with the same surface as the PostgreSQL storage."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from core.errors import ConcurrencyConflict
from core.models import HistoryStatus, Resident, TaskHistoryRecord, TaskType
from db.repository import HISTORY_TIME_FIELDS

logger = logging.getLogger(__name__)


class InMemoryResidentRepository:
    """Resident documents kept as deep copies so callers never share state."""

    def __init__(self):
        self._documents: Dict[UUID, Resident] = {}

    async def insert(self, resident: Resident, conn=None) -> Resident:
        self._documents[resident.id] = resident.model_copy(deep=True)
        return resident

    async def get(
        self,
        resident_id: UUID,
        conn=None,
        for_update: bool = False
    ) -> Optional[Resident]:
        stored = self._documents.get(resident_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_for_home(self, home_id: str, conn=None) -> List[Resident]:
        residents = [r for r in self._documents.values() if r.home_id == home_id]
        residents.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in residents]

    async def save(self, resident: Resident, conn=None) -> Resident:
        stored = self._documents.get(resident.id)
        if stored is None or stored.version != resident.version:
            raise ConcurrencyConflict(f"Resident {resident.id} was modified concurrently")

        resident.version += 1
        self._documents[resident.id] = resident.model_copy(deep=True)
        return resident

    async def delete(self, resident_id: UUID, conn=None) -> bool:
        return self._documents.pop(resident_id, None) is not None


class InMemoryTaskHistoryRepository:
    """Append-only list of history records."""

    def __init__(self):
        self._records: List[TaskHistoryRecord] = []

    async def append(self, record: TaskHistoryRecord, conn=None) -> TaskHistoryRecord:
        self._records.append(record.model_copy(deep=True))
        return record

    async def find_one(
        self,
        resident_id: UUID,
        task_type: TaskType,
        task_key: str,
        scheduled_time: datetime,
        status: HistoryStatus,
        conn=None
    ) -> Optional[TaskHistoryRecord]:
        for record in self._records:
            if (
                record.resident_id == resident_id
                and record.task_type == task_type
                and record.task_key == task_key
                and record.scheduled_time == scheduled_time
                and record.status == status
            ):
                return record.model_copy(deep=True)
        return None

    async def list_for_resident(
        self,
        resident_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        task_keys: Optional[Iterable[str]] = None,
        exclude_status: Optional[HistoryStatus] = None,
        time_field: str = "resolved_time",
        descending: bool = False,
        conn=None
    ) -> List[TaskHistoryRecord]:
        if time_field not in HISTORY_TIME_FIELDS:
            raise ValueError(f"Unsupported time field: {time_field}")

        keys = set(task_keys) if task_keys is not None else None
        matches = []
        for record in self._records:
            moment = getattr(record, time_field)
            if record.resident_id != resident_id:
                continue
            if (start is not None or end is not None) and moment is None:
                continue
            if start is not None and moment < start:
                continue
            if end is not None and moment > end:
                continue
            if keys is not None and record.task_key not in keys:
                continue
            if exclude_status is not None and record.status == exclude_status:
                continue
            matches.append(record.model_copy(deep=True))

        matches.sort(
            key=lambda r: (getattr(r, time_field) or datetime.min, r.created_at),
            reverse=descending
        )
        return matches


class InMemoryStorage:
    """Storage for development and tests; state lives for the process lifetime."""

    atomic = False

    def __init__(self):
        self.residents = InMemoryResidentRepository()
        self.history = InMemoryTaskHistoryRepository()

    async def initialize(self):
        logger.info("Using in-memory storage")

    async def close(self):
        pass

    @asynccontextmanager
    async def transaction(self):
        yield None
