"""PostgreSQL document storage for residents and task history."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Iterable, List, Optional
from uuid import UUID

import asyncpg

from core.errors import ConcurrencyConflict, InfrastructureError
from core.models import HistoryStatus, Resident, TaskHistoryRecord, TaskType
from db.pool import DatabasePool, test_connection

logger = logging.getLogger(__name__)

HISTORY_TIME_FIELDS = ("resolved_time", "scheduled_time")


@asynccontextmanager
async def storage_errors(operation: str, **context: Any):
    """Translate driver failures into InfrastructureError with context."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        raise InfrastructureError(f"Storage failure during {operation} ({details}): {e}") from e


class _Repository:
    def __init__(self, db_pool: DatabasePool):
        self.db_pool = db_pool

    @asynccontextmanager
    async def _connection(self, conn=None):
        if conn is not None:
            yield conn
        else:
            async with self.db_pool.acquire() as acquired:
                yield acquired


def _resident_from_row(row) -> Resident:
    document = json.loads(row["document"]) if isinstance(row["document"], str) else row["document"]
    resident = Resident.model_validate(document)
    resident.version = row["version"]
    return resident


def _resident_document(resident: Resident) -> str:
    return json.dumps(resident.model_dump(mode="json"))


class ResidentRepository(_Repository):
    """Resident documents stored as JSONB with an optimistic version column."""

    async def insert(self, resident: Resident, conn=None) -> Resident:
        async with storage_errors("insert_resident", resident_id=resident.id):
            async with self._connection(conn) as c:
                await c.execute(
                    """
                    INSERT INTO residents
                    (id, home_id, group_id, document, version, created_at, updated_at)
                    VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7)
                    """,
                    resident.id,
                    resident.home_id,
                    resident.group_id,
                    _resident_document(resident),
                    resident.version,
                    resident.created_at,
                    resident.updated_at
                )
        return resident

    async def get(
        self,
        resident_id: UUID,
        conn=None,
        for_update: bool = False
    ) -> Optional[Resident]:
        """
        Load a resident document.

        Args:
            resident_id: Resident identifier
            conn: Connection to run on (required for for_update to be useful)
            for_update: Lock the row until the surrounding transaction ends

        Returns:
            Resident or None if absent
        """
        query = "SELECT document, version FROM residents WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"

        async with storage_errors("get_resident", resident_id=resident_id):
            async with self._connection(conn) as c:
                row = await c.fetchrow(query, resident_id)

        return _resident_from_row(row) if row else None

    async def list_for_home(self, home_id: str, conn=None) -> List[Resident]:
        async with storage_errors("list_residents", home_id=home_id):
            async with self._connection(conn) as c:
                rows = await c.fetch(
                    """
                    SELECT document, version FROM residents
                    WHERE home_id = $1
                    ORDER BY created_at
                    """,
                    home_id
                )
        return [_resident_from_row(row) for row in rows]

    async def save(self, resident: Resident, conn=None) -> Resident:
        """
        Write a resident back, bumping its version.

        Raises:
            ConcurrencyConflict: The stored version no longer matches
        """
        expected = resident.version
        resident.version = expected + 1

        async with storage_errors("save_resident", resident_id=resident.id):
            async with self._connection(conn) as c:
                new_version = await c.fetchval(
                    """
                    UPDATE residents
                    SET document = $2::jsonb, home_id = $3, group_id = $4,
                        version = $5, updated_at = $6
                    WHERE id = $1 AND version = $7
                    RETURNING version
                    """,
                    resident.id,
                    _resident_document(resident),
                    resident.home_id,
                    resident.group_id,
                    resident.version,
                    resident.updated_at,
                    expected
                )

        if new_version is None:
            resident.version = expected
            logger.warning(f"Version check failed saving resident {resident.id} (expected {expected})")
            raise ConcurrencyConflict(f"Resident {resident.id} was modified concurrently")
        return resident

    async def delete(self, resident_id: UUID, conn=None) -> bool:
        async with storage_errors("delete_resident", resident_id=resident_id):
            async with self._connection(conn) as c:
                result = await c.execute("DELETE FROM residents WHERE id = $1", resident_id)
        return result.endswith(" 1")


def _history_from_row(row) -> TaskHistoryRecord:
    def _json(value):
        if value is None:
            return None
        return json.loads(value) if isinstance(value, str) else value

    return TaskHistoryRecord(
        id=row["id"],
        resident_id=row["resident_id"],
        task_type=TaskType(row["task_type"]),
        task_key=row["task_key"],
        scheduled_time=row["scheduled_time"],
        resolved_time=row["resolved_time"],
        status=HistoryStatus(row["status"]),
        description=row["description"],
        resolved_by=row["resolved_by"],
        additional_data=_json(row["additional_data"]),
        task_data=_json(row["task_data"]),
        created_at=row["created_at"]
    )


class TaskHistoryRepository(_Repository):
    """Append-only task history."""

    async def append(self, record: TaskHistoryRecord, conn=None) -> TaskHistoryRecord:
        async with storage_errors(
            "append_history",
            resident_id=record.resident_id,
            task_key=record.task_key
        ):
            async with self._connection(conn) as c:
                await c.execute(
                    """
                    INSERT INTO task_history
                    (id, resident_id, task_type, task_key, scheduled_time, resolved_time,
                     status, description, resolved_by, additional_data, task_data, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11::jsonb, $12)
                    """,
                    record.id,
                    record.resident_id,
                    record.task_type.value,
                    record.task_key,
                    record.scheduled_time,
                    record.resolved_time,
                    record.status.value,
                    record.description,
                    record.resolved_by,
                    json.dumps(record.additional_data) if record.additional_data is not None else None,
                    json.dumps(record.task_data) if record.task_data is not None else None,
                    record.created_at
                )
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
        async with storage_errors("find_history", resident_id=resident_id, task_key=task_key):
            async with self._connection(conn) as c:
                row = await c.fetchrow(
                    """
                    SELECT * FROM task_history
                    WHERE resident_id = $1 AND task_type = $2 AND task_key = $3
                      AND scheduled_time = $4 AND status = $5
                    LIMIT 1
                    """,
                    resident_id,
                    task_type.value,
                    task_key,
                    scheduled_time,
                    status.value
                )
        return _history_from_row(row) if row else None

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
        """
        Query a resident's history within an inclusive time range.

        Args:
            resident_id: Resident identifier
            start: Lower bound on `time_field` (inclusive)
            end: Upper bound on `time_field` (inclusive)
            task_keys: Restrict to these task keys
            exclude_status: Drop records with this status
            time_field: "resolved_time" or "scheduled_time"
            descending: Newest first

        Returns:
            Matching history records ordered by `time_field`
        """
        if time_field not in HISTORY_TIME_FIELDS:
            raise ValueError(f"Unsupported time field: {time_field}")

        conditions = ["resident_id = $1"]
        params: List[Any] = [resident_id]

        if start is not None:
            params.append(start)
            conditions.append(f"{time_field} >= ${len(params)}")
        if end is not None:
            params.append(end)
            conditions.append(f"{time_field} <= ${len(params)}")
        if task_keys is not None:
            params.append(list(task_keys))
            conditions.append(f"task_key = ANY(${len(params)}::text[])")
        if exclude_status is not None:
            params.append(exclude_status.value)
            conditions.append(f"status <> ${len(params)}")

        order = "DESC" if descending else "ASC"
        query = (
            f"SELECT * FROM task_history WHERE {' AND '.join(conditions)} "
            f"ORDER BY {time_field} {order}, created_at {order}"
        )

        async with storage_errors("list_history", resident_id=resident_id):
            async with self._connection(conn) as c:
                rows = await c.fetch(query, *params)

        return [_history_from_row(row) for row in rows]


class PostgresStorage:
    """Residents and history sharing one pool; writes can share a transaction."""

    atomic = True

    def __init__(self, db_pool: DatabasePool):
        self.db_pool = db_pool
        self.residents = ResidentRepository(db_pool)
        self.history = TaskHistoryRepository(db_pool)

    async def initialize(self):
        async with storage_errors("initialize"):
            await self.db_pool.initialize()
        if not await test_connection(self.db_pool):
            raise InfrastructureError("Database connection test failed")

    async def close(self):
        await self.db_pool.close()

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection whose statements commit or roll back together."""
        async with storage_errors("transaction"):
            async with self.db_pool.transaction() as conn:
                yield conn
