"""Tests for API endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_check(test_client):
    """Test health check endpoint."""
    response = await test_client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "care-task-scheduler"


@pytest.mark.asyncio
async def test_root_endpoint(test_client):
    """Test root endpoint."""
    response = await test_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "Care Task Scheduler API"
    assert data["version"] == "1.0.0"


@pytest.mark.asyncio
async def test_create_resident(test_client, resident_data):
    response = await test_client.post("/api/v1/residents", json=resident_data)

    assert response.status_code == 201
    data = response.json()
    assert data["current_status"] == 0
    assert data["personal_care"]["nightCheck"]["timings"] == [None]
    assert len(data["medications"][0]["statuses"]) == 2


@pytest.mark.asyncio
async def test_create_resident_validation(test_client, resident_data):
    """Missing required fields are rejected."""
    del resident_data["room_number"]

    response = await test_client.post("/api/v1/residents", json=resident_data)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_resolve_task_flow(test_client, resident, clock):
    clock.at(8, 3)

    response = await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/resolve",
        json={
            "task_type": "personalCare",
            "task_key": "breakfast",
            "task_index": 0,
            "description": "Ate well",
            "resolved_by": "carer_1"
        }
    )

    assert response.status_code == 200
    assert response.json()["current_status"] == 100

    history = await test_client.get(f"/api/v1/residents/{resident.id}/task-history")
    assert history.status_code == 200
    records = history.json()["task_history"]
    assert len(records) == 1
    assert records[0]["scheduled_time"] == "2024-03-14T08:00:00"


@pytest.mark.asyncio
async def test_resolve_too_early(test_client, resident, clock):
    clock.at(7, 30)

    response = await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/resolve",
        json={"task_type": "personalCare", "task_key": "breakfast", "resolved_by": "carer_1"}
    )

    assert response.status_code == 422
    assert "within 10 minutes" in response.json()["detail"]


@pytest.mark.asyncio
async def test_resolve_errors(test_client, resident):
    missing = await test_client.post(
        "/api/v1/residents/00000000-0000-0000-0000-000000000000/tasks/resolve",
        json={"task_type": "personalCare", "task_key": "breakfast", "resolved_by": "carer_1"}
    )
    assert missing.status_code == 404

    bad_index = await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/resolve",
        json={
            "task_type": "personalCare",
            "task_key": "breakfast",
            "task_index": 3,
            "resolved_by": "carer_1"
        }
    )
    assert bad_index.status_code == 400

    bad_type = await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/resolve",
        json={"task_type": "chores", "task_key": "breakfast", "resolved_by": "carer_1"}
    )
    assert bad_type.status_code == 422


@pytest.mark.asyncio
async def test_mark_due_and_care_status(test_client, resident):
    response = await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/due",
        json={"task_type": "personalCare", "task_key": "lunch"}
    )
    assert response.status_code == 200
    assert response.json()["current_status"] == 80

    status = await test_client.get(f"/api/v1/residents/{resident.id}/care-status")
    assert status.status_code == 200
    data = status.json()
    assert data["current_status"] == 80
    assert len(data["slots"]) == 5


@pytest.mark.asyncio
async def test_home_listing_and_handover(test_client, resident, clock):
    clock.at(8, 5)

    listing = await test_client.get("/api/v1/homes/home_1/residents")
    assert listing.status_code == 200
    due = {task["key"] for task in listing.json()[0]["due_tasks"]}
    assert due == {"breakfast", "nightCheck"}

    handover = await test_client.get("/api/v1/homes/home_1/handover", params={"actor_id": "carer_9"})
    assert handover.status_code == 200
    assert {task["key"] for task in handover.json()["due_tasks"]} == {"breakfast", "nightCheck"}

    missing_actor = await test_client.get("/api/v1/homes/home_1/handover")
    assert missing_actor.status_code == 422


@pytest.mark.asyncio
async def test_update_group_and_delete(test_client, resident):
    patched = await test_client.patch(
        f"/api/v1/residents/{resident.id}",
        json={"room_number": "14"}
    )
    assert patched.status_code == 200
    assert patched.json()["room_number"] == "14"

    moved = await test_client.put(
        f"/api/v1/residents/{resident.id}/group",
        json={"group_id": "group_b"}
    )
    assert moved.json()["group_id"] == "group_b"

    deleted = await test_client.delete(f"/api/v1/residents/{resident.id}")
    assert deleted.status_code == 204

    gone = await test_client.get(f"/api/v1/residents/{resident.id}")
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_completion_rate_endpoint(test_client, resident, clock):
    clock.at(8, 3)
    await test_client.post(
        f"/api/v1/residents/{resident.id}/tasks/resolve",
        json={"task_type": "personalCare", "task_key": "breakfast", "resolved_by": "carer_1"}
    )

    response = await test_client.get(
        f"/api/v1/residents/{resident.id}/progress/completion-rate",
        params={"start": "2024-03-14T00:00:00", "end": "2024-03-14T23:59:59"}
    )

    assert response.status_code == 200
    assert response.json()["completion_rate"] == 100.0


@pytest.mark.asyncio
async def test_progress_requires_window(test_client, resident):
    response = await test_client.get(f"/api/v1/residents/{resident.id}/progress/sleep")

    assert response.status_code == 422

    reversed_window = await test_client.get(
        f"/api/v1/residents/{resident.id}/progress/meals",
        params={"start": "2024-03-15T00:00:00", "end": "2024-03-14T00:00:00"}
    )
    assert reversed_window.status_code == 400


@pytest.mark.asyncio
async def test_create_resident_rejects_bad_timing(test_client, resident_data):
    resident_data["personal_care"]["lunch"]["timings"] = ["half past twelve"]

    response = await test_client.post("/api/v1/residents", json=resident_data)

    assert response.status_code == 422
