"""Helpers over the task definitions embedded in a resident document."""

from datetime import datetime
from typing import List, Tuple

from core.errors import InvalidArgumentError, NotFoundError
from core.models import (
    DueTask,
    DueTaskType,
    Resident,
    TaskDefinition,
    TaskStatus,
    TaskType,
)
from core.schedule import evaluate_task


def fresh_statuses(count: int) -> List[TaskStatus]:
    return [TaskStatus() for _ in range(count)]


def prepare_definition(definition: TaskDefinition) -> TaskDefinition:
    """
    Bring a definition into its stored shape.

    A definition without timings gets one any-time slot. Statuses are
    rebuilt whenever their length no longer matches the timings.
    """
    if not definition.timings:
        definition.timings = [None]
    if len(definition.statuses) != len(definition.timings):
        definition.statuses = fresh_statuses(len(definition.timings))
    return definition


def prepare_resident_tasks(resident: Resident) -> Resident:
    for definition in resident.personal_care.values():
        prepare_definition(definition)
    for medication in resident.medications:
        prepare_definition(medication)
    return resident


def iter_definitions(resident: Resident):
    """Yield (task_type, key, definition) for every embedded task."""
    for key, definition in resident.personal_care.items():
        yield TaskType.PERSONAL_CARE, key, definition
    for medication in resident.medications:
        yield TaskType.MEDICATIONS, medication.name, medication


def calculate_current_status(resident: Resident) -> int:
    """Percentage of slots not flagged due; 100 when there are no slots."""
    total = 0
    completed = 0
    for _, _, definition in iter_definitions(resident):
        total += len(definition.statuses)
        completed += sum(1 for status in definition.statuses if not status.is_due)

    if total == 0:
        return 100
    return round(100 * completed / total)


def collect_due_tasks(resident: Resident, now: datetime) -> List[DueTask]:
    """Evaluate every task of a resident and list those currently due."""
    due_tasks = []
    for task_type, key, definition in iter_definitions(resident):
        evaluation = evaluate_task(
            definition,
            now,
            key if task_type == TaskType.PERSONAL_CARE else None
        )
        if not evaluation.is_due:
            continue
        due_tasks.append(DueTask(
            type=(
                DueTaskType.PERSONAL_CARE
                if task_type == TaskType.PERSONAL_CARE
                else DueTaskType.MEDICATION
            ),
            key=key,
            minutes_past_due=evaluation.minutes_past_due,
            task_time=evaluation.task_time,
            task_index=evaluation.task_index,
            resident_id=resident.id
        ))
    return due_tasks


def locate_slot(
    resident: Resident,
    task_type: TaskType,
    task_key: str,
    slot_index: int
) -> Tuple[TaskDefinition, TaskStatus]:
    """
    Find a task slot on a resident.

    Raises:
        InvalidArgumentError: Unsupported task type or slot index out of range
        NotFoundError: No task with this key
    """
    try:
        task_type = TaskType(task_type)
    except ValueError:
        raise InvalidArgumentError(f"Unsupported taskType: {task_type}")

    if task_type == TaskType.PERSONAL_CARE:
        definition = resident.personal_care.get(task_key)
    else:
        definition = next(
            (med for med in resident.medications if med.name == task_key),
            None
        )

    if definition is None:
        raise NotFoundError(f"Task {task_key} not found in {task_type.value}")

    if not isinstance(slot_index, int) or not 0 <= slot_index < len(definition.statuses):
        raise InvalidArgumentError(f"Invalid task index: {slot_index}")

    return definition, definition.statuses[slot_index]
