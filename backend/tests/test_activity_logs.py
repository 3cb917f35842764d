# tests/test_activity_logs.py — Activity feed endpoint
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_feed_newest_first(client: AsyncClient, admin_user):
    headers = get_auth_headers(admin_user)
    task = (await client.post("/api/v1/tasks", json={"title": "Logged"}, headers=headers)).json()
    await client.patch(f"/api/v1/tasks/{task['id']}", json={"priority": "High"}, headers=headers)

    resp = await client.get("/api/v1/activity-logs", headers=headers)
    assert resp.status_code == 200
    logs = resp.json()["logs"]
    assert [entry["action"] for entry in logs] == ["update", "create"]
    assert logs[0]["details"] == 'Task "Logged" updated: priority from "Medium" to "High".'
    assert logs[1]["details"] == 'Task "Logged" was created'
    assert logs[0]["performed_by"]["id"] == admin_user.id
    assert logs[0]["entity"] == "task"


@pytest.mark.asyncio
async def test_feed_is_capped(client: AsyncClient, admin_user):
    headers = get_auth_headers(admin_user)
    for n in range(27):
        await client.post("/api/v1/tasks", json={"title": f"Task {n}"}, headers=headers)

    resp = await client.get("/api/v1/activity-logs?limit=100", headers=headers)
    logs = resp.json()["logs"]
    assert len(logs) == 25
    assert 'Task "Task 0" was created' not in [entry["details"] for entry in logs]


@pytest.mark.asyncio
async def test_limit_bounds(client: AsyncClient, admin_user):
    headers = get_auth_headers(admin_user)
    assert (await client.get("/api/v1/activity-logs?limit=0", headers=headers)).status_code == 422
    assert (await client.get("/api/v1/activity-logs?limit=101", headers=headers)).status_code == 422


@pytest.mark.asyncio
async def test_user_sees_only_related_entries(client: AsyncClient, admin_user, test_user, second_user):
    headers = get_auth_headers(admin_user)
    await client.post("/api/v1/tasks", json={"title": "Uma's", "assignees": [test_user.id]}, headers=headers)
    await client.post("/api/v1/tasks", json={"title": "Victor's", "assignees": [second_user.id]}, headers=headers)

    resp = await client.get("/api/v1/activity-logs", headers=get_auth_headers(test_user))
    details = [entry["details"] for entry in resp.json()["logs"]]
    assert details == ['Task "Uma\'s" was created and assigned to Uma User']
