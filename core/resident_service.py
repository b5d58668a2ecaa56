"""Resident care task state and the task resolution workflow."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from core.cascade import NightCheckCascade, night_check_cascade
from core.clock import Clock, DateLike, coerce_datetime
from core.errors import (
    DomainRuleViolation,
    InfrastructureError,
    InvalidArgumentError,
    NotFoundError,
)
from core.locks import KeyedLock, resident_locks
from core.models import (
    HistoryStatus,
    Resident,
    ResidentCreate,
    ResidentUpdate,
    ResidentView,
    TaskHistoryRecord,
    TaskType,
)
from core.schedule import (
    ANY_TIME_TASK_KEY,
    resolution_window_opens,
    scheduled_instant,
    timing_clock,
)
from core.task_state import (
    calculate_current_status,
    collect_due_tasks,
    iter_definitions,
    locate_slot,
    prepare_resident_tasks,
)

logger = logging.getLogger(__name__)

TOO_EARLY_MESSAGE = (
    "Task can only be completed within 10 minutes before and up to the scheduled time"
)


def _to_uuid(resident_id: Union[UUID, str]) -> UUID:
    if isinstance(resident_id, UUID):
        return resident_id
    try:
        return UUID(str(resident_id))
    except ValueError:
        raise NotFoundError("Resident not found")


class ResidentService:
    """Owns resident documents and every transition of their task slots."""

    def __init__(
        self,
        storage,
        clock: Optional[Clock] = None,
        locks: Optional[KeyedLock] = None,
        cascade: NightCheckCascade = night_check_cascade
    ):
        """
        Initialize resident service.

        Args:
            storage: PostgresStorage or InMemoryStorage
            clock: Returns the current wall-clock time (defaults to datetime.now)
            locks: Per-resident lock registry (defaults to the process-wide one)
            cascade: Transition applied when the night check is resolved
        """
        self.storage = storage
        self.clock = clock or datetime.now
        self.locks = locks if locks is not None else resident_locks
        self.cascade = cascade

    async def create_resident(
        self,
        data: Union[ResidentCreate, Dict[str, Any]]
    ) -> Resident:
        """
        Create a resident with every task slot initialised as not due.

        Raises:
            InvalidArgumentError: Required fields missing or malformed
        """
        try:
            if isinstance(data, dict):
                data = ResidentCreate.model_validate(data)
            resident = Resident.model_validate(data.model_dump())
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid resident data: {e}") from e

        for _, _, definition in iter_definitions(resident):
            definition.statuses = []
        prepare_resident_tasks(resident)
        resident.current_status = 0

        try:
            await self.storage.residents.insert(resident)
        except InfrastructureError as e:
            logger.error(f"Failed to create resident {resident.id}: {e}")
            raise

        logger.info(f"Created resident {resident.id} for home {resident.home_id}")
        return resident

    async def _load(self, resident_id: UUID, conn=None, for_update: bool = False) -> Resident:
        resident = await self.storage.residents.get(resident_id, conn=conn, for_update=for_update)
        if resident is None:
            raise NotFoundError("Resident not found")
        return resident

    async def get_resident(self, resident_id: Union[UUID, str]) -> Resident:
        """Load a resident; raises NotFoundError if absent."""
        resident_id = _to_uuid(resident_id)
        try:
            return await self._load(resident_id)
        except InfrastructureError as e:
            logger.error(f"Failed to get resident {resident_id}: {e}")
            raise

    async def get_residents_for_home(self, home_id: str) -> List[ResidentView]:
        """
        List a home's residents, each with its live due-task view.

        The view is computed at read time and never persisted; the cached
        current_status is returned as stored.
        """
        try:
            residents = await self.storage.residents.list_for_home(home_id)
        except InfrastructureError as e:
            logger.error(f"Failed to get residents for home {home_id}: {e}")
            raise

        now = self.clock()
        views = [
            ResidentView(**resident.model_dump(), due_tasks=collect_due_tasks(resident, now))
            for resident in residents
        ]
        logger.debug(
            f"Evaluated {len(views)} residents of home {home_id} at {now}: "
            f"{sum(len(v.due_tasks) for v in views)} due tasks"
        )
        return views

    async def update_resident(
        self,
        resident_id: Union[UUID, str],
        patch: Union[ResidentUpdate, Dict[str, Any]]
    ) -> Resident:
        """
        Apply a partial update and re-validate the whole document.

        Task definitions whose timings are unchanged keep their statuses;
        any other definition gets statuses aligned to its timings.

        Raises:
            NotFoundError: Resident does not exist
            InvalidArgumentError: The patched document is invalid
        """
        resident_id = _to_uuid(resident_id)
        try:
            if isinstance(patch, dict):
                patch = ResidentUpdate.model_validate(patch)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid resident update: {e}") from e

        changes = patch.model_dump(exclude_unset=True)

        async with self.locks.hold(resident_id):
            try:
                async with self.storage.transaction() as conn:
                    resident = await self._load(resident_id, conn=conn, for_update=True)

                    document = resident.model_dump()
                    document.update(changes)
                    try:
                        updated = Resident.model_validate(document)
                    except ValidationError as e:
                        raise InvalidArgumentError(f"Invalid resident update: {e}") from e

                    self._carry_statuses(resident, updated)
                    prepare_resident_tasks(updated)
                    updated.current_status = calculate_current_status(updated)
                    updated.updated_at = datetime.utcnow()
                    await self.storage.residents.save(updated, conn=conn)
            except InfrastructureError as e:
                logger.error(f"Failed to update resident {resident_id}: {e}")
                raise

        logger.info(f"Updated resident {resident_id} ({', '.join(changes) or 'no changes'})")
        return updated

    @staticmethod
    def _carry_statuses(previous: Resident, updated: Resident) -> None:
        old_definitions = {
            (task_type, key): definition
            for task_type, key, definition in iter_definitions(previous)
        }
        for task_type, key, definition in iter_definitions(updated):
            old = old_definitions.get((task_type, key))
            if old is None or definition.statuses:
                continue
            if old.timings == (definition.timings or [None]):
                definition.statuses = [s.model_copy(deep=True) for s in old.statuses]

    async def change_resident_group(
        self,
        resident_id: Union[UUID, str],
        new_group_id: str
    ) -> Resident:
        """Move a resident to another group; task state is untouched."""
        resident_id = _to_uuid(resident_id)
        async with self.locks.hold(resident_id):
            try:
                async with self.storage.transaction() as conn:
                    resident = await self._load(resident_id, conn=conn, for_update=True)
                    resident.group_id = new_group_id
                    resident.updated_at = datetime.utcnow()
                    await self.storage.residents.save(resident, conn=conn)
            except InfrastructureError as e:
                logger.error(f"Failed to change group of resident {resident_id}: {e}")
                raise

        logger.info(f"Moved resident {resident_id} to group {new_group_id}")
        return resident

    async def delete_resident(self, resident_id: Union[UUID, str]) -> None:
        """Remove a resident document. Task history is kept."""
        resident_id = _to_uuid(resident_id)
        async with self.locks.hold(resident_id):
            try:
                deleted = await self.storage.residents.delete(resident_id)
            except InfrastructureError as e:
                logger.error(f"Failed to delete resident {resident_id}: {e}")
                raise

        if not deleted:
            raise NotFoundError("Resident not found")
        logger.info(f"Deleted resident {resident_id}")

    async def resolve_task(
        self,
        resident_id: Union[UUID, str],
        task_type: Union[TaskType, str],
        task_key: str,
        slot_index: int,
        description: str,
        resolved_by: str,
        additional_data: Optional[Dict[str, Any]] = None,
        task_data: Optional[Dict[str, Any]] = None,
        record_history: bool = True
    ) -> Resident:
        """
        Resolve one task slot.

        Steps run strictly in order under the resident's lock: load, locate,
        check the resolution window, mutate the slot, apply the night check
        cascade, save, append history, recompute current_status, save.

        Args:
            resident_id: Resident identifier
            task_type: "personalCare" or "medications"
            task_key: Personal-care category or medication name
            slot_index: Position within the definition's timings
            description: Free text recorded on the slot and in history
            resolved_by: Acting user id
            additional_data: Stored verbatim on the slot and in history
            task_data: Structured observations stored verbatim
            record_history: Append a "resolved" history record

        Returns:
            The updated resident

        Raises:
            NotFoundError: Resident or task key does not exist
            InvalidArgumentError: Unsupported task type or slot index
            DomainRuleViolation: More than 10 minutes before the scheduled time
            InfrastructureError: Storage failure
        """
        resident_id = _to_uuid(resident_id)

        async with self.locks.hold(resident_id):
            now = self.clock()
            saved = False
            try:
                async with self.storage.transaction() as conn:
                    resident = await self._load(resident_id, conn=conn, for_update=True)
                    definition, status = locate_slot(resident, task_type, task_key, slot_index)
                    task_type = TaskType(task_type)

                    timing = definition.timings[slot_index]
                    scheduled = scheduled_instant(timing, now)
                    is_night_check = (
                        task_type == TaskType.PERSONAL_CARE and self.cascade.applies_to(task_key)
                    )

                    if not is_night_check and now < resolution_window_opens(scheduled):
                        raise DomainRuleViolation(TOO_EARLY_MESSAGE)

                    status.is_due = False
                    status.last_resolved_time = now
                    status.last_resolved_description = description
                    status.additional_data = additional_data
                    status.task_data = task_data

                    if is_night_check:
                        self.cascade.apply(resident, now)

                    resident.updated_at = datetime.utcnow()
                    await self.storage.residents.save(resident, conn=conn)
                    saved = True

                    if record_history:
                        await self.storage.history.append(
                            TaskHistoryRecord(
                                resident_id=resident_id,
                                task_type=task_type,
                                task_key=task_key,
                                scheduled_time=scheduled,
                                resolved_time=now,
                                status=HistoryStatus.RESOLVED,
                                description=description,
                                resolved_by=resolved_by,
                                additional_data=additional_data,
                                task_data=task_data
                            ),
                            conn=conn
                        )

                    resident.current_status = calculate_current_status(resident)
                    await self.storage.residents.save(resident, conn=conn)
            except InfrastructureError as e:
                if saved and not self.storage.atomic:
                    logger.error(
                        f"Resident {resident_id} saved but resolution of {task_type}.{task_key}"
                        f"[{slot_index}] did not complete; reconcile history/current_status: {e}"
                    )
                else:
                    logger.error(
                        f"Failed to resolve task {task_type}.{task_key}[{slot_index}] "
                        f"for resident {resident_id}: {e}"
                    )
                raise

        logger.info(
            f"Resolved {task_type.value}.{task_key}[{slot_index}] for resident {resident_id} "
            f"by {resolved_by}"
        )
        return resident

    async def mark_task_as_due(
        self,
        resident_id: Union[UUID, str],
        task_type: Union[TaskType, str],
        task_key: str,
        slot_index: int = 0
    ) -> Resident:
        """
        Flag a slot as due, record a "due" history event and refresh current_status.

        Raises:
            NotFoundError: Resident or task key does not exist
            InvalidArgumentError: Unsupported task type or slot index
        """
        resident_id = _to_uuid(resident_id)

        async with self.locks.hold(resident_id):
            now = self.clock()
            try:
                async with self.storage.transaction() as conn:
                    resident = await self._load(resident_id, conn=conn, for_update=True)
                    definition, status = locate_slot(resident, task_type, task_key, slot_index)
                    task_type = TaskType(task_type)

                    status.is_due = True
                    status.last_due_time = now
                    resident.current_status = calculate_current_status(resident)
                    resident.updated_at = datetime.utcnow()
                    await self.storage.residents.save(resident, conn=conn)

                    await self.storage.history.append(
                        TaskHistoryRecord(
                            resident_id=resident_id,
                            task_type=task_type,
                            task_key=task_key,
                            scheduled_time=scheduled_instant(definition.timings[slot_index], now),
                            status=HistoryStatus.DUE
                        ),
                        conn=conn
                    )
            except InfrastructureError as e:
                logger.error(
                    f"Failed to mark {task_type}.{task_key}[{slot_index}] due "
                    f"for resident {resident_id}: {e}"
                )
                raise

        logger.info(f"Marked {task_type.value}.{task_key}[{slot_index}] due for resident {resident_id}")
        return resident

    async def get_current_care_status(self, resident_id: Union[UUID, str]) -> Dict[str, Any]:
        """
        Flattened per-slot status of every task plus the cached current_status.
        """
        resident = await self.get_resident(resident_id)
        now = self.clock()

        slots = []
        for task_type, key, definition in iter_definitions(resident):
            for index, (timing, status) in enumerate(zip(definition.timings, definition.statuses)):
                any_time = timing_clock(timing) is None
                slots.append({
                    "task_type": task_type.value,
                    "key": key,
                    "task_index": index,
                    "timing": timing.model_dump() if hasattr(timing, "model_dump") else timing,
                    "opens_at": (
                        None if any_time
                        else resolution_window_opens(scheduled_instant(timing, now))
                    ),
                    "any_time": any_time or key == ANY_TIME_TASK_KEY,
                    **status.model_dump()
                })

        return {
            "resident_id": resident.id,
            "current_status": resident.current_status,
            "slots": slots,
            "due_tasks": collect_due_tasks(resident, now)
        }

    async def get_task_history(
        self,
        resident_id: Union[UUID, str],
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None
    ) -> Dict[str, Any]:
        """
        Task history of a resident, newest first.

        A missing bound defaults to the start or end of the current month.

        Raises:
            NotFoundError: Resident does not exist
            InvalidArgumentError: Unparseable dates or start after end
        """
        resident = await self.get_resident(resident_id)

        start_date = coerce_datetime(start)
        end_date = coerce_datetime(end, end_of_day=True)
        if start_date is None or end_date is None:
            now = self.clock()
            month_start = datetime(now.year, now.month, 1)
            next_month = (month_start + timedelta(days=32)).replace(day=1)
            if start_date is None:
                start_date = month_start
            if end_date is None:
                end_date = next_month - timedelta(microseconds=1)

        if start_date > end_date:
            raise InvalidArgumentError("start must not be after end")

        try:
            records = await self.storage.history.list_for_resident(
                resident.id,
                start=start_date,
                end=end_date,
                descending=True
            )
        except InfrastructureError as e:
            logger.error(f"Failed to get task history for resident {resident.id}: {e}")
            raise

        return {"resident": resident, "task_history": records}
