"""Shift handover: what is due across a home, and acknowledgement of missed tasks."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from core.clock import Clock
from core.errors import (
    ConcurrencyConflict,
    DomainRuleViolation,
    InfrastructureError,
    NotFoundError,
)
from core.models import (
    DueTask,
    DueTaskType,
    HistoryStatus,
    Resident,
    TaskHistoryRecord,
    TaskType,
)
from core.resident_service import ResidentService
from core.schedule import (
    ANY_TIME_TASK_KEY,
    evaluate_slot,
    scheduled_instant,
    start_of_day,
    timing_clock,
)

logger = logging.getLogger(__name__)


class HandoverService:
    """Builds handover due lists and sweeps the backlog they reveal."""

    def __init__(
        self,
        storage,
        resident_service: ResidentService,
        clock: Optional[Clock] = None
    ):
        self.storage = storage
        self.resident_service = resident_service
        self.clock = clock or resident_service.clock

    def due_slots(self, resident: Resident, now: datetime) -> List[DueTask]:
        """Every personal-care slot of a resident that is due at `now`."""
        due = []
        for key, definition in resident.personal_care.items():
            if key == ANY_TIME_TASK_KEY:
                indices = [0] if definition.statuses else []
            else:
                indices = range(len(definition.timings))

            for index in indices:
                evaluation = evaluate_slot(
                    definition,
                    index,
                    now,
                    any_time=key == ANY_TIME_TASK_KEY
                )
                if evaluation.is_due:
                    due.append(DueTask(
                        type=DueTaskType.PERSONAL_CARE,
                        key=key,
                        minutes_past_due=evaluation.minutes_past_due,
                        task_time=evaluation.task_time,
                        task_index=index,
                        resident_id=resident.id
                    ))
        return due

    async def get_handover_data(self, home_id: str, actor_id: str) -> Dict[str, List[DueTask]]:
        """
        List every due personal-care slot in a home and acknowledge the backlog.

        Each due slot (other than the night check) is passed to
        sweep_and_acknowledge_missed. The returned list is the view from
        before any acknowledgement.

        Args:
            home_id: Home whose residents are swept
            actor_id: User generating the handover; recorded as resolver

        Returns:
            {"due_tasks": [...]}
        """
        now = self.clock()
        try:
            residents = await self.storage.residents.list_for_home(home_id)
        except InfrastructureError as e:
            logger.error(f"Failed to load residents for handover of home {home_id}: {e}")
            raise

        due_tasks: List[DueTask] = []
        acknowledged = 0
        for resident in residents:
            resident_due = self.due_slots(resident, now)
            due_tasks.extend(resident_due)
            for due_task in resident_due:
                if due_task.key == ANY_TIME_TASK_KEY:
                    continue
                if await self.sweep_and_acknowledge_missed(resident, due_task, actor_id, now):
                    acknowledged += 1

        logger.info(
            f"Handover for home {home_id}: {len(due_tasks)} due, {acknowledged} acknowledged as missed"
        )
        return {"due_tasks": due_tasks}

    async def sweep_and_acknowledge_missed(
        self,
        resident: Resident,
        due_task: DueTask,
        actor_id: str,
        now: datetime
    ) -> bool:
        """
        Record a due slot as missed and resolve it on behalf of the actor.

        Nothing happens when a "missed" record already exists for the same
        resident, task and scheduled time.

        Returns:
            True if the slot was recorded as missed and acknowledged
        """
        definition = resident.personal_care[due_task.key]
        timing = definition.timings[due_task.task_index]
        if timing_clock(timing) is None:
            scheduled = start_of_day(now)
        else:
            scheduled = scheduled_instant(timing, now)

        try:
            existing = await self.storage.history.find_one(
                resident.id,
                TaskType.PERSONAL_CARE,
                due_task.key,
                scheduled,
                HistoryStatus.MISSED
            )
            if existing is not None:
                return False

            await self.storage.history.append(TaskHistoryRecord(
                resident_id=resident.id,
                task_type=TaskType.PERSONAL_CARE,
                task_key=due_task.key,
                scheduled_time=scheduled,
                resolved_time=now,
                status=HistoryStatus.MISSED
            ))
        except InfrastructureError as e:
            logger.error(
                f"Failed to record missed {due_task.key}[{due_task.task_index}] "
                f"for resident {resident.id}: {e}"
            )
            raise

        try:
            await self.resident_service.resolve_task(
                resident.id,
                TaskType.PERSONAL_CARE,
                due_task.key,
                due_task.task_index,
                "",
                actor_id
            )
        except (NotFoundError, DomainRuleViolation, ConcurrencyConflict) as e:
            logger.warning(
                f"Missed {due_task.key}[{due_task.task_index}] recorded for resident "
                f"{resident.id} but not acknowledged: {e}"
            )
            return False

        return True
