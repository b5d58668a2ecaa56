"""Tests for progress analytics."""

import pytest
from datetime import datetime
from uuid import uuid4

from core.errors import InvalidArgumentError
from core.models import HistoryStatus, TaskHistoryRecord, TaskType
from core.progress import (
    MAX_PAD_CHECK_SCORE,
    analyze_sleep_data,
    most_frequent,
    pad_check_insights,
    pad_check_score,
)


def record(resident_id, key, moment, outcome=HistoryStatus.RESOLVED, **data):
    return TaskHistoryRecord(
        resident_id=resident_id,
        task_type=TaskType.PERSONAL_CARE,
        task_key=key,
        scheduled_time=moment,
        resolved_time=moment,
        status=outcome,
        task_data=data or None
    )


@pytest.fixture
def resident_id():
    return uuid4()


async def add(storage, *records):
    for entry in records:
        await storage.history.append(entry)


def test_pad_check_score_is_capped():
    value, details = pad_check_score({
        "stoolType": "7",
        "urineType": "Wet",
        "clothingCondition": "Soiled"
    })

    assert value == MAX_PAD_CHECK_SCORE
    assert details == {"stoolType": "7", "urineType": "Wet", "clothingCondition": "Soiled"}


def test_pad_check_score_components():
    assert pad_check_score(None) == (0, {})
    assert pad_check_score({"stoolType": "1", "urineType": "dry"})[0] == 0
    assert pad_check_score({"stoolType": "3", "urineType": "damp"})[0] == 3
    assert pad_check_score({"stoolType": "unknown", "clothingCondition": "Soiled"})[0] == 2


def test_most_frequent_prefers_first_on_ties():
    assert most_frequent({}) is None
    assert most_frequent({"4": 2, "6": 2, "1": 1}) == "4"


def test_pad_check_insights():
    assert pad_check_insights({}, {}, 0)[0] == "No pad check data available for the selected period."

    insights = pad_check_insights({"6": 3, "4": 1}, {"Soiled": 2, "Clean": 2}, 4)
    assert insights[0].startswith("Stool is frequently loose")
    assert any("diarrhea" in insight for insight in insights[1:])
    assert any("Frequent soiling" in insight for insight in insights)


def test_analyze_sleep_data_builds_periods(resident_id):
    checks = [
        record(resident_id, "nightCheck", datetime(2024, 3, 14, 22), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 0), status="Asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 1), status="awake"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 2), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 3), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 4)),
    ]

    analysis = analyze_sleep_data(checks)

    assert analysis.sleep_periods == [2.0, 1.0]
    assert analysis.total_sleep_hours == 3.0
    assert analysis.longest_sleep_period == 2.0
    assert analysis.shortest_sleep_period == 1.0
    assert analysis.average_sleep_period == 1.5
    assert analysis.status_counts["asleep"] == 4
    assert analysis.status_counts["awake"] == 1


def test_analyze_sleep_data_empty():
    analysis = analyze_sleep_data([])

    assert analysis.sleep_periods == []
    assert analysis.longest_sleep_period == 0.0
    assert analysis.status_counts == {"awake": 0, "asleep": 0, "restless": 0, "agitated": 0}


@pytest.mark.asyncio
async def test_completion_rate(progress_service, storage, resident_id):
    for hour in range(6):
        await add(storage, record(resident_id, "fluidIntake", datetime(2024, 3, 14, 8 + hour)))
    for hour in range(4):
        await add(storage, record(
            resident_id, "fluidIntake", datetime(2024, 3, 14, 15 + hour), HistoryStatus.MISSED
        ))
    # Outside the window
    await add(storage, record(resident_id, "fluidIntake", datetime(2024, 3, 20, 8)))

    rate = await progress_service.get_task_completion_rate(resident_id, "2024-03-14", "2024-03-14")

    assert rate == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_completion_rate_filters_and_empty_window(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "breakfast", datetime(2024, 3, 14, 8)),
        record(resident_id, "lunch", datetime(2024, 3, 14, 12), HistoryStatus.MISSED),
    )

    assert await progress_service.get_task_completion_rate(
        resident_id, "2024-03-14", "2024-03-14", task_key="breakfast"
    ) == 100.0
    assert await progress_service.get_task_completion_rate(
        resident_id, "2024-03-01", "2024-03-02"
    ) == 0


@pytest.mark.asyncio
async def test_progress_data_values(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "padCheck", datetime(2024, 3, 14, 9), stoolType="4", urineType="wet"),
        record(resident_id, "fluidIntake", datetime(2024, 3, 14, 10), drinkAmount="250"),
        record(resident_id, "repositioning", datetime(2024, 3, 14, 11), assistanceRequired="full"),
        record(resident_id, "breakfast", datetime(2024, 3, 14, 12)),
        record(resident_id, "lunch", datetime(2024, 3, 14, 13), HistoryStatus.MISSED),
    )

    points = await progress_service.get_progress_data(resident_id, "2024-03-14", "2024-03-14")

    assert [p.value for p in points] == [5, 250.0, 2, 1]
    assert points[0].date == "2024-03-14"
    assert points[1].details == {"drinkAmount": "250"}

    fluid = await progress_service.get_progress_data(
        resident_id, "2024-03-14", "2024-03-14", task_key="fluidIntake"
    )
    assert len(fluid) == 1


@pytest.mark.asyncio
async def test_pad_check_analysis(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "padCheck", datetime(2024, 3, 14, 9), stoolType="1", clothingCondition="Clean"),
        record(resident_id, "padCheck", datetime(2024, 3, 14, 13), stoolType="2", clothingCondition="Clean"),
        record(resident_id, "padCheck", datetime(2024, 3, 14, 17), stoolType="4", clothingCondition="Soiled"),
        record(resident_id, "padCheck", datetime(2024, 3, 14, 21), HistoryStatus.MISSED),
    )

    analysis = await progress_service.get_pad_check_analysis(resident_id, "2024-03-14", "2024-03-14")

    assert analysis.stool_type_analysis == {"1": 1, "2": 1, "4": 1}
    assert analysis.clothing_condition_analysis == {"Clean": 2, "Soiled": 1}
    assert analysis.health_insights[0].startswith("Stool is often hard and dry")
    assert any("constipation" in insight for insight in analysis.health_insights[1:])


@pytest.mark.asyncio
async def test_meal_analysis(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "breakfast", datetime(2024, 3, 14, 8), amountEaten=50, drinkAmount=200),
        record(resident_id, "lunch", datetime(2024, 3, 14, 12, 30), amountEaten=100, drinkAmount=300),
        record(resident_id, "dinner", datetime(2024, 3, 14, 18), HistoryStatus.MISSED),
        record(resident_id, "padCheck", datetime(2024, 3, 14, 9), stoolType="4"),
    )

    analysis = await progress_service.get_meal_analysis(resident_id, "2024-03-14", "2024-03-14")

    assert analysis.meal_type_distribution == {"breakfast": 1, "lunch": 1}
    assert analysis.average_amount_eaten == 75.0
    assert analysis.average_fluid_intake == 250.0
    assert [m.meal_type for m in analysis.meal_data] == ["breakfast", "lunch"]


@pytest.mark.asyncio
async def test_meal_analysis_without_meals(progress_service, resident_id):
    analysis = await progress_service.get_meal_analysis(resident_id, "2024-03-14", "2024-03-14")

    assert analysis.meal_type_distribution == {}
    assert analysis.average_amount_eaten == 0.0
    assert analysis.meal_data == []


@pytest.mark.asyncio
async def test_sleep_analysis_over_window(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "nightCheck", datetime(2024, 3, 14, 22), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 1), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 15, 2), status="restless"),
        record(resident_id, "dayCheck", datetime(2024, 3, 15, 13), status="asleep"),
        record(resident_id, "dayCheck", datetime(2024, 3, 15, 14), status="asleep"),
        record(resident_id, "dayCheck", datetime(2024, 3, 15, 15), HistoryStatus.MISSED, status="asleep"),
    )

    result = await progress_service.get_sleep_analysis(resident_id, "2024-03-14", "2024-03-15")

    assert result.night_analysis.total_sleep_hours == 3.0
    assert result.day_analysis.total_sleep_hours == 1.0
    overall = result.overall_analysis
    assert overall.total_sleep_hours == 4.0
    assert overall.average_daily_sleep_hours == 2.0
    assert overall.longest_sleep_period == 3.0
    assert overall.shortest_sleep_period == 1.0
    assert overall.daytime_sleep_percentage == 25.0
    assert overall.nighttime_sleep_percentage == 75.0


@pytest.mark.asyncio
async def test_sleep_analysis_without_sleep(progress_service, resident_id):
    result = await progress_service.get_sleep_analysis(resident_id, "2024-03-14", "2024-03-15")

    assert result.overall_analysis.daytime_sleep_percentage == 0.0
    assert result.overall_analysis.nighttime_sleep_percentage == 0.0


@pytest.mark.asyncio
async def test_day_night_check_analysis(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "nightCheck", datetime(2024, 3, 14, 22), status="asleep"),
        record(resident_id, "nightCheck", datetime(2024, 3, 14, 23), status="restless"),
        record(resident_id, "dayCheck", datetime(2024, 3, 14, 10), status="awake"),
    )

    analysis = await progress_service.get_day_night_check_analysis(
        resident_id, "2024-03-14", "2024-03-14"
    )

    assert analysis.day_status_analysis["awake"] == 1
    assert analysis.night_status_analysis["restless"] == 1
    assert analysis.health_insights[0].startswith("Resident is getting less than")
    assert any("restlessness" in insight for insight in analysis.health_insights)


@pytest.mark.asyncio
async def test_invalid_windows(progress_service, resident_id):
    with pytest.raises(InvalidArgumentError):
        await progress_service.get_progress_data(resident_id, None, "2024-03-14")

    with pytest.raises(InvalidArgumentError):
        await progress_service.get_meal_analysis(resident_id, "2024-03-15", "2024-03-14")

    with pytest.raises(InvalidArgumentError):
        await progress_service.get_sleep_analysis(resident_id, "last week", "2024-03-14")


@pytest.mark.asyncio
async def test_completion_rate_counts_slots_not_records(
    progress_service, handover_service, resident_service, resident, clock
):
    # Handover writes a missed and a resolved record for breakfast
    clock.at(9)
    await handover_service.get_handover_data("home_1", "carer_9")

    # Marking lunch due then resolving it writes a due and a resolved record
    clock.at(12)
    await resident_service.mark_task_as_due(resident.id, "personalCare", "lunch")
    clock.at(12, 31)
    await resident_service.resolve_task(resident.id, "personalCare", "lunch", 0, "", "carer_1")

    window = ("2024-03-14", "2024-03-14")
    assert await progress_service.get_task_completion_rate(
        resident.id, *window, task_key="breakfast"
    ) == 0
    assert await progress_service.get_task_completion_rate(
        resident.id, *window, task_key="lunch"
    ) == 100.0
    assert await progress_service.get_task_completion_rate(resident.id, *window) == 50.0


@pytest.mark.asyncio
async def test_progress_data_tolerates_malformed_fields(progress_service, storage, resident_id):
    await add(
        storage,
        record(resident_id, "repositioning", datetime(2024, 3, 14, 9), assistanceRequired=["full"]),
        record(resident_id, "repositioning", datetime(2024, 3, 14, 10), assistanceRequired={"level": 2}),
    )

    points = await progress_service.get_progress_data(resident_id, "2024-03-14", "2024-03-14")

    assert [p.value for p in points] == [1, 1]
