"""
Schedule evaluation for recurring resident care tasks.

Pure functions only: every decision is made against an instant passed in by
the caller, never against the system clock.

Rules:
- A definition without a frequency is never due.
- Daily/night cadence: slots are checked in order and the first due slot is
  reported; when none is due the last slot is reported (not due) so callers
  always get a representative time.
- Weekly cadence: only the slot whose day matches today is evaluated.
- A timed slot opens GRACE_WINDOW before its time. From then on it is due
  until it is resolved at or after the window opened.
- An any-time slot (no timing, or the night check) is due until it has been
  resolved at some point today.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from core.models import (
    DAYS_OF_WEEK,
    FrequencyPer,
    SlotEvaluation,
    TaskDefinition,
    TaskStatus,
    Timing,
    WeeklyTiming,
)

GRACE_WINDOW = timedelta(minutes=10)

# Task key that may be resolved at any time and resets the day on resolution
ANY_TIME_TASK_KEY = "nightCheck"

ANY_TIME_LABEL = "Any time"


def day_name(moment: datetime) -> str:
    """Locale-independent weekday name."""
    return DAYS_OF_WEEK[moment.weekday()]


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def start_of_next_day(moment: datetime) -> datetime:
    return start_of_day(moment) + timedelta(days=1)


def parse_time(hhmm: str, on: date) -> datetime:
    """Combine an "HH:mm" string with a date."""
    hour, minute = (int(part) for part in hhmm.split(":")[:2])
    return datetime.combine(on, time(hour=hour, minute=minute))


def timing_clock(timing: Timing) -> Optional[str]:
    """The HH:mm part of a timing, or None for an any-time slot."""
    if isinstance(timing, WeeklyTiming):
        return timing.time or None
    if isinstance(timing, str) and timing.strip():
        return timing.strip()
    return None


def scheduled_instant(timing: Timing, now: datetime) -> datetime:
    """
    Instant that a slot is scheduled for, relative to `now`.

    Args:
        timing: Slot timing (HH:mm, weekly timing or None)
        now: Current wall-clock instant

    Returns:
        Today at HH:mm for daily slots; the matching weekday of the current
        Sunday-started week for weekly slots; `now` for any-time slots.
    """
    clock = timing_clock(timing)
    if clock is None:
        return now

    if isinstance(timing, WeeklyTiming):
        days_since_sunday = (now.weekday() + 1) % 7
        sunday = now.date() - timedelta(days=days_since_sunday)
        offset = (DAYS_OF_WEEK.index(timing.day) + 1) % 7
        return parse_time(clock, sunday + timedelta(days=offset))

    return parse_time(clock, now.date())


def resolution_window_opens(scheduled: datetime) -> datetime:
    """Earliest instant at which a slot scheduled for `scheduled` may be resolved."""
    return scheduled - GRACE_WINDOW


def _status_at(definition: TaskDefinition, index: int) -> Optional[TaskStatus]:
    if 0 <= index < len(definition.statuses):
        return definition.statuses[index]
    return None


def _check_any_time(
    status: Optional[TaskStatus],
    now: datetime,
    index: int
) -> SlotEvaluation:
    resolved = status.last_resolved_time if status else None
    is_due = resolved is None or resolved < start_of_day(now)
    return SlotEvaluation(
        is_due=is_due,
        minutes_past_due=0,
        task_time=ANY_TIME_LABEL,
        task_index=index
    )


def _check_timing(
    clock: Optional[str],
    status: Optional[TaskStatus],
    now: datetime,
    index: int
) -> SlotEvaluation:
    if clock is None:
        return _check_any_time(status, now, index)

    grace_start = resolution_window_opens(parse_time(clock, now.date()))
    if now < grace_start:
        return SlotEvaluation(task_time=clock, task_index=index)

    resolved = status.last_resolved_time if status else None
    if resolved is None or resolved < grace_start:
        minutes_past_due = max(0, int((now - grace_start).total_seconds() // 60))
        return SlotEvaluation(
            is_due=True,
            minutes_past_due=minutes_past_due,
            task_time=clock,
            task_index=index
        )

    return SlotEvaluation(task_time=clock, task_index=index)


def evaluate_slot(
    definition: TaskDefinition,
    slot_index: int,
    now: datetime,
    any_time: bool = False
) -> SlotEvaluation:
    """
    Evaluate a single slot of a task definition.

    Args:
        definition: Task definition holding timings and statuses
        slot_index: Position within timings/statuses
        now: Current wall-clock instant (its weekday is the current day)
        any_time: Treat the slot as an any-time slot regardless of its timing

    Returns:
        Whether the slot is due, minutes past the grace-window start and the
        slot's display time
    """
    if definition.frequency is None:
        return SlotEvaluation(task_index=slot_index)

    status = _status_at(definition, slot_index)
    if any_time:
        return _check_any_time(status, now, slot_index)

    timing = definition.timings[slot_index] if 0 <= slot_index < len(definition.timings) else None

    if definition.frequency.per == FrequencyPer.WEEK:
        if not isinstance(timing, WeeklyTiming) or timing.day != day_name(now):
            return SlotEvaluation(task_index=slot_index)

    return _check_timing(timing_clock(timing), status, now, slot_index)


def evaluate_task(
    definition: TaskDefinition,
    now: datetime,
    task_key: Optional[str] = None
) -> SlotEvaluation:
    """
    Evaluate a whole task definition and pick the representative slot.

    Args:
        definition: Task definition to evaluate
        now: Current wall-clock instant
        task_key: Personal-care key, used to recognise the any-time task

    Returns:
        The first due slot, or for daily cadence the last slot when none is due
    """
    frequency = definition.frequency
    if frequency is None:
        return SlotEvaluation()

    if frequency.per in (FrequencyPer.DAY, FrequencyPer.NIGHT):
        if task_key == ANY_TIME_TASK_KEY:
            return _check_any_time(_status_at(definition, 0), now, 0)

        if not definition.timings:
            return SlotEvaluation()

        for index in range(len(definition.timings)):
            result = evaluate_slot(definition, index, now)
            if result.is_due:
                return result

        return evaluate_slot(definition, len(definition.timings) - 1, now)

    if frequency.per == FrequencyPer.WEEK:
        today = day_name(now)
        for index, timing in enumerate(definition.timings):
            if isinstance(timing, WeeklyTiming) and timing.day == today:
                return evaluate_slot(definition, index, now)

    return SlotEvaluation()
