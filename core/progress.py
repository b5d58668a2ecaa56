"""Read-only analytics over resident task history."""

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from api.schemas import (
    DayNightCheckAnalysis,
    MealAnalysis,
    MealEntry,
    OverallSleepAnalysis,
    PadCheckAnalysis,
    ProgressPoint,
    SleepAnalysis,
    SleepAnalysisResponse,
)
from core.clock import DateLike, coerce_datetime
from core.errors import InfrastructureError, InvalidArgumentError
from core.models import HistoryStatus, TaskHistoryRecord

logger = logging.getLogger(__name__)

PAD_CHECK_KEY = "padCheck"
FLUID_INTAKE_KEY = "fluidIntake"
REPOSITIONING_KEY = "repositioning"
DAY_CHECK_KEY = "dayCheck"
NIGHT_CHECK_KEY = "nightCheck"
MEAL_KEYS = ("breakfast", "lunch", "dinner", "snacks")

MAX_PAD_CHECK_SCORE = 5

SATURATION_VALUES = {"dry": 0, "damp": 1, "wet": 2}

MOBILITY_SCORES = {"none": 5, "minimal": 4, "moderate": 3, "full": 2}

SLEEP_STATUSES = ("awake", "asleep", "restless", "agitated")


def observations(record: TaskHistoryRecord) -> Dict[str, Any]:
    """Structured data captured with a record, preferring task_data."""
    return record.task_data or record.additional_data or {}


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def saturation_value(saturation: Any) -> int:
    if not isinstance(saturation, str):
        return 0
    return SATURATION_VALUES.get(saturation.lower(), 0)


def pad_check_score(data: Optional[Dict[str, Any]]) -> Tuple[int, Dict[str, Any]]:
    """
    Severity of a pad check: stool type, urine saturation and clothing.

    Stool type contributes up to 3 (type 1 contributes 0), saturation up to 2,
    soiled clothing 2; the total is capped at MAX_PAD_CHECK_SCORE.
    """
    if not data:
        return 0, {}

    stool_type = data.get("stoolType")
    urine_type = data.get("urineType")
    clothing_condition = data.get("clothingCondition")

    try:
        stool = max(0, min(int(stool_type) - 1, 3))
    except (TypeError, ValueError):
        stool = 0

    value = stool + saturation_value(urine_type)
    if clothing_condition == "Soiled":
        value += 2

    details = {
        "stoolType": stool_type,
        "urineType": urine_type,
        "clothingCondition": clothing_condition,
    }
    return min(value, MAX_PAD_CHECK_SCORE), details


def mobility_score(data: Dict[str, Any]) -> int:
    assistance = data.get("assistanceRequired")
    if not isinstance(assistance, str):
        return 1
    return MOBILITY_SCORES.get(assistance, 1)


def task_value(record: TaskHistoryRecord) -> Tuple[float, Dict[str, Any]]:
    data = observations(record)
    if record.task_key == PAD_CHECK_KEY:
        return pad_check_score(data)
    if record.task_key == FLUID_INTAKE_KEY:
        amount = _number(data.get("drinkAmount"))
        return amount, {"drinkAmount": data.get("drinkAmount")}
    if record.task_key == REPOSITIONING_KEY:
        return mobility_score(data), {"assistanceRequired": data.get("assistanceRequired")}
    return 1, {}


def most_frequent(counts: Dict[str, int]) -> Optional[str]:
    """Most common key; ties go to the key seen first."""
    if not counts:
        return None
    best = None
    for key, count in counts.items():
        if best is None or count > counts[best]:
            best = key
    return best


def stool_type_insight(stool_type: str) -> str:
    if stool_type in ("1", "2"):
        return "Stool is often hard and dry, indicating possible constipation."
    if stool_type in ("3", "4"):
        return "Stool consistency is generally normal."
    if stool_type == "5":
        return "Stool is often soft, which may indicate lack of fiber in diet."
    if stool_type in ("6", "7"):
        return "Stool is frequently loose or liquid, which may indicate diarrhea or inflammation."
    return "Stool type varies significantly."


def pad_check_insights(
    stool_types: Dict[str, int],
    clothing_conditions: Dict[str, int],
    total_checks: int
) -> List[str]:
    if total_checks == 0:
        return [
            "No pad check data available for the selected period.",
            "Consider reviewing the data collection process or the selected date range.",
        ]

    insights = []
    common = most_frequent(stool_types)
    if common is not None:
        insights.append(stool_type_insight(common))
    else:
        insights.append("No stool type data available for analysis.")

    constipation_rate = (stool_types.get("1", 0) + stool_types.get("2", 0)) / total_checks
    if constipation_rate > 0.3:
        insights.append(
            "There are signs of constipation. Consider increasing fiber intake and hydration."
        )

    diarrhea_rate = (stool_types.get("6", 0) + stool_types.get("7", 0)) / total_checks
    if diarrhea_rate > 0.3:
        insights.append(
            "There are signs of diarrhea or inflammation. "
            "Monitor hydration and consider dietary adjustments."
        )

    if clothing_conditions.get("Soiled", 0) / total_checks > 0.2:
        insights.append(
            "Frequent soiling observed. This may indicate issues with bowel control "
            "or pad changing frequency."
        )

    return insights


def analyze_sleep_data(checks: Sequence[TaskHistoryRecord]) -> SleepAnalysis:
    """
    Reconstruct sleep periods from chronologically ordered checks.

    Consecutive "asleep" checks form one continuous period whose length is
    the time between them; any other status closes the current period.
    Checks without a status or time are ignored.
    """
    status_counts = {status: 0 for status in SLEEP_STATUSES}
    periods: List[float] = []
    total = 0.0
    current = 0.0
    previous_status = ""
    previous_time: Optional[datetime] = None

    usable = [
        check for check in checks
        if check.resolved_time is not None and isinstance(observations(check).get("status"), str)
    ]

    for check in usable:
        status = observations(check)["status"].lower()
        moment = check.resolved_time
        status_counts[status] = status_counts.get(status, 0) + 1

        if status == "asleep" and previous_status == "asleep" and previous_time is not None:
            hours = (moment - previous_time).total_seconds() / 3600
            total += hours
            current += hours
        elif current > 0:
            periods.append(current)
            current = 0.0

        previous_status = status
        previous_time = moment

    if current > 0:
        periods.append(current)

    return SleepAnalysis(
        total_sleep_hours=total,
        longest_sleep_period=max(periods, default=0.0),
        shortest_sleep_period=min(periods, default=0.0),
        average_sleep_period=sum(periods) / len(periods) if periods else 0.0,
        sleep_periods=periods,
        status_counts=status_counts
    )


def overall_sleep_analysis(
    day: SleepAnalysis,
    night: SleepAnalysis,
    days_in_range: int
) -> OverallSleepAnalysis:
    total = day.total_sleep_hours + night.total_sleep_hours
    periods = day.sleep_periods + night.sleep_periods
    positive = [p for p in (day.shortest_sleep_period, night.shortest_sleep_period) if p > 0]

    return OverallSleepAnalysis(
        total_sleep_hours=total,
        average_daily_sleep_hours=total / max(1, days_in_range),
        longest_sleep_period=max(day.longest_sleep_period, night.longest_sleep_period),
        shortest_sleep_period=min(positive, default=0.0),
        average_sleep_period=sum(periods) / len(periods) if periods else 0.0,
        daytime_sleep_percentage=day.total_sleep_hours / total * 100 if total else 0.0,
        nighttime_sleep_percentage=night.total_sleep_hours / total * 100 if total else 0.0
    )


def _ratio(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def sleep_insights(
    overall: OverallSleepAnalysis,
    day: SleepAnalysis,
    night: SleepAnalysis
) -> List[str]:
    insights = []

    if overall.average_daily_sleep_hours < 6:
        insights.append(
            "Resident is getting less than the recommended amount of sleep. "
            "Consider reviewing sleep environment and routines."
        )
    elif overall.average_daily_sleep_hours > 10:
        insights.append(
            "Resident is sleeping more than average. This could be normal for some "
            "individuals, but may warrant a health check if it's a recent change."
        )

    if overall.daytime_sleep_percentage > 30:
        insights.append(
            "Significant daytime sleeping observed. Consider increasing daytime "
            "activities and exposure to natural light."
        )

    night_restless = night.status_counts.get("restless", 0)
    night_asleep = night.status_counts.get("asleep", 0)
    if _ratio(night_restless, night_asleep + night_restless) > 0.3:
        insights.append(
            "Frequent restlessness during night checks. Consider reviewing sleep "
            "environment for potential disturbances."
        )

    day_asleep = day.status_counts.get("asleep", 0)
    day_awake = day.status_counts.get("awake", 0)
    if _ratio(day_asleep, day_awake + day_asleep) > 0.4:
        insights.append(
            "High rate of daytime sleeping. Consider reviewing daily activities and "
            "circadian rhythm management."
        )

    if overall.longest_sleep_period < 3:
        insights.append(
            "Longest continuous sleep period is shorter than ideal. Consider strategies "
            "to promote longer, uninterrupted sleep."
        )

    if not insights:
        insights.append(
            "Sleep patterns appear to be within normal ranges. Continue monitoring for any changes."
        )
    return insights


class ProgressService:
    """Aggregates immutable task history into progress metrics."""

    def __init__(self, storage):
        self.storage = storage

    @staticmethod
    def _window(start: DateLike, end: DateLike) -> Tuple[datetime, datetime]:
        if start is None or end is None:
            raise InvalidArgumentError("start and end are required")
        start_date = coerce_datetime(start)
        end_date = coerce_datetime(end, end_of_day=True)
        if start_date > end_date:
            raise InvalidArgumentError("start must not be after end")
        return start_date, end_date

    async def _records(
        self,
        resident_id: UUID,
        start: datetime,
        end: datetime,
        **filters: Any
    ) -> List[TaskHistoryRecord]:
        try:
            return await self.storage.history.list_for_resident(
                resident_id,
                start=start,
                end=end,
                **filters
            )
        except InfrastructureError as e:
            logger.error(f"Failed to load task history for resident {resident_id}: {e}")
            raise

    async def get_progress_data(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike,
        task_key: Optional[str] = None
    ) -> List[ProgressPoint]:
        """
        One point per resolved record in the window, oldest first.

        Pad checks are scored for severity, fluid intake reports the drink
        amount, repositioning reports a mobility score; anything else counts 1.
        """
        start_date, end_date = self._window(start, end)
        records = await self._records(
            resident_id,
            start_date,
            end_date,
            task_keys=[task_key] if task_key else None
        )

        points = []
        for record in records:
            if record.status != HistoryStatus.RESOLVED:
                continue
            value, details = task_value(record)
            points.append(ProgressPoint(
                date=record.resolved_time.date().isoformat(),
                value=value,
                details=details
            ))
        return points

    async def get_task_completion_rate(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike,
        task_key: Optional[str] = None
    ) -> float:
        """
        Percentage of slots scheduled in the window that were completed.

        Records are grouped by slot (task type, key and scheduled time), since
        one slot can carry due, missed and resolved records. A slot counts as
        completed when it was resolved and never recorded as missed.

        Returns:
            completed slots / slots * 100, or 0 when the window is empty
        """
        start_date, end_date = self._window(start, end)
        records = await self._records(
            resident_id,
            start_date,
            end_date,
            task_keys=[task_key] if task_key else None,
            time_field="scheduled_time"
        )

        slots: Dict[Tuple[str, str, datetime], set] = {}
        for record in records:
            slot = (record.task_type.value, record.task_key, record.scheduled_time)
            slots.setdefault(slot, set()).add(record.status)

        if not slots:
            return 0
        completed = sum(
            1 for statuses in slots.values()
            if HistoryStatus.RESOLVED in statuses and HistoryStatus.MISSED not in statuses
        )
        return completed / len(slots) * 100

    async def get_pad_check_analysis(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike
    ) -> PadCheckAnalysis:
        start_date, end_date = self._window(start, end)
        records = await self._records(
            resident_id,
            start_date,
            end_date,
            task_keys=[PAD_CHECK_KEY],
            exclude_status=HistoryStatus.MISSED
        )

        stool_types: Counter = Counter()
        clothing_conditions: Counter = Counter()
        for record in records:
            data = observations(record)
            if not data:
                continue
            stool_types[str(data.get("stoolType"))] += 1
            clothing_conditions[str(data.get("clothingCondition"))] += 1

        return PadCheckAnalysis(
            stool_type_analysis=dict(stool_types),
            clothing_condition_analysis=dict(clothing_conditions),
            health_insights=pad_check_insights(
                dict(stool_types),
                dict(clothing_conditions),
                len(records)
            )
        )

    async def get_meal_analysis(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike
    ) -> MealAnalysis:
        meals = await self.get_meal_progress_data(resident_id, start, end)

        distribution: Counter = Counter(meal.meal_type for meal in meals)
        count = len(meals)
        return MealAnalysis(
            meal_type_distribution=dict(distribution),
            average_amount_eaten=sum(m.amount_eaten for m in meals) / count if count else 0.0,
            average_fluid_intake=sum(m.drink_amount for m in meals) / count if count else 0.0,
            meal_data=meals
        )

    async def get_meal_progress_data(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike
    ) -> List[MealEntry]:
        """Resolved meals in the window, oldest first."""
        start_date, end_date = self._window(start, end)
        records = await self._records(
            resident_id,
            start_date,
            end_date,
            task_keys=list(MEAL_KEYS),
            exclude_status=HistoryStatus.MISSED
        )

        meals = []
        for record in records:
            if record.status != HistoryStatus.RESOLVED:
                continue
            data = observations(record)
            meals.append(MealEntry(
                date=record.resolved_time.date().isoformat(),
                meal_type=str(data.get("mealType") or record.task_key),
                amount_eaten=_number(data.get("amountEaten")),
                drink_amount=_number(data.get("drinkAmount"))
            ))
        return meals

    async def get_sleep_analysis(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike
    ) -> SleepAnalysisResponse:
        """
        Sleep reconstructed separately from day and night checks, then combined.

        Missed checks are ignored. The overall daily average divides total
        sleep by the number of days the window spans.
        """
        start_date, end_date = self._window(start, end)
        records = await self._records(
            resident_id,
            start_date,
            end_date,
            task_keys=[DAY_CHECK_KEY, NIGHT_CHECK_KEY],
            exclude_status=HistoryStatus.MISSED
        )

        day = analyze_sleep_data([r for r in records if r.task_key == DAY_CHECK_KEY])
        night = analyze_sleep_data([r for r in records if r.task_key == NIGHT_CHECK_KEY])
        days_in_range = math.ceil((end_date - start_date) / timedelta(days=1))

        return SleepAnalysisResponse(
            day_analysis=day,
            night_analysis=night,
            overall_analysis=overall_sleep_analysis(day, night, days_in_range)
        )

    async def get_day_night_check_analysis(
        self,
        resident_id: UUID,
        start: DateLike,
        end: DateLike
    ) -> DayNightCheckAnalysis:
        sleep = await self.get_sleep_analysis(resident_id, start, end)
        return DayNightCheckAnalysis(
            day_status_analysis=sleep.day_analysis.status_counts,
            night_status_analysis=sleep.night_analysis.status_counts,
            health_insights=sleep_insights(
                sleep.overall_analysis,
                sleep.day_analysis,
                sleep.night_analysis
            )
        )
