# tests/test_tasks.py — Task router tests
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


async def _create(client, user, **fields):
    resp = await client.post("/api/v1/tasks", json=fields, headers=get_auth_headers(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_task_as_admin(client: AsyncClient, admin_user, test_user):
    data = await _create(
        client, admin_user,
        title="Set up CI", description="GitHub actions", priority="High",
        due_date="2026-12-01T00:00:00Z", assignees=[test_user.id],
    )
    assert data["title"] == "Set up CI"
    assert data["status"] == "To Do"
    assert data["priority"] == "High"
    assert data["team"] is None
    assert [a["id"] for a in data["assignees"]] == [test_user.id]
    assert data["created_by"]["id"] == admin_user.id
    assert data["due_date"].startswith("2026-12-01")


@pytest.mark.asyncio
async def test_create_with_users_and_team_is_rejected(client: AsyncClient, admin_user, test_user):
    resp = await client.post("/api/v1/tasks", json={
        "title": "Both", "assignees": [test_user.id], "team_id": "some-team",
    }, headers=get_auth_headers(admin_user))
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "TH-VAL-001"
    assert "request_id" in body


@pytest.mark.asyncio
async def test_unknown_field_rejected(client: AsyncClient, admin_user):
    resp = await client.post("/api/v1/tasks", json={"title": "T", "colour": "red"}, headers=get_auth_headers(admin_user))
    assert resp.status_code == 400
    assert resp.json()["code"] == "TH-VAL-004"


@pytest.mark.asyncio
async def test_user_cannot_create_task(client: AsyncClient, test_user):
    resp = await client.post("/api/v1/tasks", json={"title": "Mine"}, headers=get_auth_headers(test_user))
    assert resp.status_code == 403
    assert resp.json()["code"] == "TH-AUTHZ-001"


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient):
    resp = await client.get("/api/v1/tasks")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_list_is_role_scoped(client: AsyncClient, admin_user, manager_user, test_user, second_user):
    await _create(client, admin_user, title="For Uma", assignees=[test_user.id])
    await _create(client, admin_user, title="For Victor", assignees=[second_user.id])
    await _create(client, manager_user, title="Manager's own")

    admin_view = (await client.get("/api/v1/tasks", headers=get_auth_headers(admin_user))).json()
    assert admin_view["total"] == 3

    manager_view = (await client.get("/api/v1/tasks", headers=get_auth_headers(manager_user))).json()
    assert [t["title"] for t in manager_view["tasks"]] == ["Manager's own"]

    user_view = (await client.get("/api/v1/tasks", headers=get_auth_headers(test_user))).json()
    assert [t["title"] for t in user_view["tasks"]] == ["For Uma"]


@pytest.mark.asyncio
async def test_list_filters_and_sorting(client: AsyncClient, admin_user, test_user):
    headers = get_auth_headers(admin_user)
    await _create(client, admin_user, title="Bravo", priority="Low")
    await _create(client, admin_user, title="Alpha", priority="High", assignees=[test_user.id])
    charlie = await _create(client, admin_user, title="Charlie", description="needle here")
    await client.patch(f"/api/v1/tasks/{charlie['id']}", json={"status": "Done"}, headers=headers)

    resp = await client.get("/api/v1/tasks?sort=title&order=asc", headers=headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["Alpha", "Bravo", "Charlie"]

    resp = await client.get("/api/v1/tasks?status=To Do,In Progress", headers=headers)
    assert {t["title"] for t in resp.json()["tasks"]} == {"Alpha", "Bravo"}

    resp = await client.get("/api/v1/tasks?priority=High", headers=headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["Alpha"]

    resp = await client.get(f"/api/v1/tasks?assignee={test_user.id}", headers=headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["Alpha"]

    resp = await client.get("/api/v1/tasks?search=needle", headers=headers)
    assert [t["title"] for t in resp.json()["tasks"]] == ["Charlie"]

    resp = await client.get("/api/v1/tasks?sort=priority&order=desc", headers=headers)
    assert resp.json()["tasks"][0]["title"] == "Alpha"

    resp = await client.get("/api/v1/tasks?limit=1&offset=1&sort=title&order=asc", headers=headers)
    page = resp.json()
    assert page["total"] == 3
    assert [t["title"] for t in page["tasks"]] == ["Bravo"]

    resp = await client.get("/api/v1/tasks?status=Blocked", headers=headers)
    assert resp.status_code == 400
    resp = await client.get("/api/v1/tasks?sort=colour", headers=headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_task_visibility(client: AsyncClient, admin_user, test_user, second_user):
    task = await _create(client, admin_user, title="Private", assignees=[test_user.id])

    resp = await client.get(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(test_user))
    assert resp.status_code == 200
    resp = await client.get(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(second_user))
    assert resp.status_code == 403
    resp = await client.get("/api/v1/tasks/does-not-exist", headers=get_auth_headers(admin_user))
    assert resp.status_code == 404
    assert resp.json()["code"] == "TH-NF-001"


@pytest.mark.asyncio
async def test_assignee_updates_status_only(client: AsyncClient, admin_user, test_user):
    task = await _create(client, admin_user, title="Do it", assignees=[test_user.id])
    headers = get_auth_headers(test_user)

    resp = await client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "Done"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Done"

    resp = await client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Renamed"}, headers=headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_priority_stats(client: AsyncClient, admin_user, test_user):
    await _create(client, admin_user, title="A", priority="High")
    await _create(client, admin_user, title="B", priority="High")
    await _create(client, admin_user, title="C", priority="Low", assignees=[test_user.id])

    resp = await client.get("/api/v1/tasks/stats/priority", headers=get_auth_headers(admin_user))
    assert resp.json() == {"low": 1, "medium": 0, "high": 2}

    resp = await client.get("/api/v1/tasks/stats/priority", headers=get_auth_headers(test_user))
    assert resp.json() == {"low": 1, "medium": 0, "high": 0}


@pytest.mark.asyncio
async def test_delete_task(client: AsyncClient, admin_user, manager_user):
    task = await _create(client, admin_user, title="Gone soon")

    resp = await client.delete(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(manager_user))
    assert resp.status_code == 403
    resp = await client.delete(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 200
    assert resp.json() == {"status": "deleted", "id": task["id"]}
    resp = await client.get(f"/api/v1/tasks/{task['id']}", headers=get_auth_headers(admin_user))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_assignment_notifies_online_assignee(client: AsyncClient, realtime, admin_user, test_user):
    channel = realtime.connect(test_user)
    task = await _create(client, admin_user, title="Ping me", assignees=[test_user.id])

    assert realtime.transport.kinds(channel) == ["taskAssigned"]
    _, _, payload = realtime.transport.sent[0]
    assert payload["task"]["id"] == task["id"]
    assert payload["message"] == 'Task "Ping me" has been assigned to you by Alice Admin'


@pytest.mark.asyncio
async def test_cross_tenant_task_not_found(client: AsyncClient, admin_user, foreign_admin):
    task = await _create(client, admin_user, title="Ours")
    resp = await client.patch(
        f"/api/v1/tasks/{task['id']}", json={"title": "Theirs"}, headers=get_auth_headers(foreign_admin),
    )
    assert resp.status_code == 404
