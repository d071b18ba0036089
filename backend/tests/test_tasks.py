# tests/test_tasks.py — Task cards, filters and activity history
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, create_task, list_column, invite


@pytest.mark.asyncio
class TestCreateTask:
    async def test_positions_follow_creation_order(self, client: AsyncClient, owner, board):
        first = await create_task(client, owner, board["id"], "First")
        second = await create_task(client, owner, board["id"], "Second")
        done = await create_task(client, owner, board["id"], "Shipped", status="Done")

        assert first["position"] == 0
        assert second["position"] == 1
        assert done["position"] == 0
        assert first["project_id"] == board["project_id"]
        assert first["created_by"] == owner.id
        assert first["priority"] == "Medium"
        assert first["status"] == "Todo"

    async def test_labels_and_due_date(self, client: AsyncClient, owner, board):
        task = await create_task(
            client, owner, board["id"], "Labelled",
            labels=[{"name": "bug", "color": "#ff0000"}],
            due_date="2026-11-01T10:00:00Z",
            priority="High",
        )
        assert task["labels"] == [{"name": "bug", "color": "#ff0000"}]
        assert task["due_date"].startswith("2026-11-01T10:00:00")
        assert task["priority"] == "High"

    async def test_missing_board(self, client: AsyncClient, owner):
        res = await client.post("/api/tasks", json={"title": "X", "board": "missing"}, headers=get_auth_headers(owner))
        assert res.status_code == 404

    async def test_project_must_match_board(self, client: AsyncClient, owner, board):
        res = await client.post("/api/tasks", json={
            "title": "X", "board": board["id"], "project": "another-project",
        }, headers=get_auth_headers(owner))
        assert res.status_code == 400

    async def test_unknown_assignee(self, client: AsyncClient, owner, board):
        res = await client.post("/api/tasks", json={
            "title": "X", "board": board["id"], "assigned_to": "nobody",
        }, headers=get_auth_headers(owner))
        assert res.status_code == 404

    async def test_title_required(self, client: AsyncClient, owner, board):
        res = await client.post("/api/tasks", json={"title": "   ", "board": board["id"]}, headers=get_auth_headers(owner))
        assert res.status_code == 400
        assert res.json()["errors"][0]["field"] == "title"

    async def test_outsider_forbidden(self, client: AsyncClient, outsider, board):
        res = await client.post("/api/tasks", json={"title": "X", "board": board["id"]}, headers=get_auth_headers(outsider))
        assert res.status_code == 403

    async def test_outsider_with_mismatched_project_forbidden(self, client: AsyncClient, outsider, board):
        """Access is checked before the board's project is compared"""
        res = await client.post("/api/tasks", json={
            "title": "X", "board": board["id"], "project": "another-project",
        }, headers=get_auth_headers(outsider))
        assert res.status_code == 403

    async def test_creation_logged(self, client: AsyncClient, owner, board):
        task = await create_task(client, owner, board["id"], "Logged")
        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        assert res.status_code == 200
        entries = res.json()["data"]["activity"]
        assert len(entries) == 1
        assert entries[0]["action"] == "Task created"
        assert entries[0]["performed_by"] == owner.id


@pytest.mark.asyncio
class TestListTasks:
    async def test_filters(self, client: AsyncClient, owner, member, project, board):
        await invite(client, project["id"], owner, member)
        await create_task(client, owner, board["id"], "Write docs", priority="Low")
        await create_task(client, owner, board["id"], "Fix login bug", priority="High", assigned_to=member.id)
        await create_task(client, owner, board["id"], "Deploy", status="Done", due_date="2026-11-01T09:30:00Z")

        headers = get_auth_headers(owner)
        url = f"/api/boards/{board['id']}/tasks"

        res = await client.get(url, params={"priority": "High"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Fix login bug"]

        res = await client.get(url, params={"assigned_to": member.id}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Fix login bug"]

        res = await client.get(url, params={"search": "LOGIN"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Fix login bug"]

        res = await client.get(url, params={"due_date": "2026-11-01"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Deploy"]

        res = await client.get(url, params={"due_date": "2026-11-02"}, headers=headers)
        assert res.json()["data"]["tasks"] == []

        res = await client.get(url, params={"status": "Done"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Deploy"]

    async def test_sort_by_priority(self, client: AsyncClient, owner, board):
        await create_task(client, owner, board["id"], "Mid")
        await create_task(client, owner, board["id"], "Top", priority="High")
        await create_task(client, owner, board["id"], "Bottom", priority="Low")

        res = await client.get(
            f"/api/boards/{board['id']}/tasks",
            params={"sort_by": "priority", "sort_order": "desc"},
            headers=get_auth_headers(owner),
        )
        assert [t["title"] for t in res.json()["data"]["tasks"]] == ["Top", "Mid", "Bottom"]

    async def test_pagination(self, client: AsyncClient, owner, board):
        for i in range(5):
            await create_task(client, owner, board["id"], f"T{i}")
        res = await client.get(
            f"/api/boards/{board['id']}/tasks", params={"page": 1, "limit": 2}, headers=get_auth_headers(owner),
        )
        data = res.json()["data"]
        assert [t["title"] for t in data["tasks"]] == ["T2", "T3"]
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}
        assert data["board"]["id"] == board["id"]

    async def test_invalid_sort_field(self, client: AsyncClient, owner, board):
        res = await client.get(
            f"/api/boards/{board['id']}/tasks", params={"sort_by": "password"}, headers=get_auth_headers(owner),
        )
        assert res.status_code == 400

    async def test_outsider_forbidden(self, client: AsyncClient, outsider, board):
        res = await client.get(f"/api/boards/{board['id']}/tasks", headers=get_auth_headers(outsider))
        assert res.status_code == 403


@pytest.mark.asyncio
class TestUpdateTask:
    async def test_partial_update_keeps_other_fields(self, client: AsyncClient, owner, board):
        task = await create_task(client, owner, board["id"], "Original", description="Keep me")
        res = await client.put(f"/api/tasks/{task['id']}", json={"title": "Renamed"}, headers=get_auth_headers(owner))
        assert res.status_code == 200
        updated = res.json()["data"]["task"]
        assert updated["title"] == "Renamed"
        assert updated["description"] == "Keep me"
        assert updated["version"] > task["version"]

    async def test_status_change_moves_to_end_of_column(self, client: AsyncClient, owner, board):
        a = await create_task(client, owner, board["id"], "A")
        await create_task(client, owner, board["id"], "B")
        await create_task(client, owner, board["id"], "Shipped", status="Done")

        res = await client.put(f"/api/tasks/{a['id']}", json={"status": "Done"}, headers=get_auth_headers(owner))
        assert res.status_code == 200
        assert res.json()["data"]["task"]["position"] == 1

        todo = await list_column(client, owner, board["id"], "Todo")
        assert [(t["title"], t["position"]) for t in todo] == [("B", 0)]

    async def test_position_change_renumbers(self, client: AsyncClient, owner, board):
        await create_task(client, owner, board["id"], "A")
        await create_task(client, owner, board["id"], "B")
        c = await create_task(client, owner, board["id"], "C")

        res = await client.put(f"/api/tasks/{c['id']}", json={"position": 0}, headers=get_auth_headers(owner))
        assert res.status_code == 200

        todo = await list_column(client, owner, board["id"], "Todo")
        assert [(t["title"], t["position"]) for t in todo] == [("C", 0), ("A", 1), ("B", 2)]

    async def test_changes_are_logged(self, client: AsyncClient, owner, member, project, board):
        await invite(client, project["id"], owner, member)
        task = await create_task(client, owner, board["id"], "Tracked")

        res = await client.put(f"/api/tasks/{task['id']}", json={
            "status": "In Progress",
            "priority": "High",
            "assigned_to": member.id,
        }, headers=get_auth_headers(member))
        assert res.status_code == 200

        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        entries = res.json()["data"]["activity"]
        by_action = {e["action"]: e for e in entries}
        assert entries[-1]["action"] == "Task created"
        assert by_action["Status changed"]["details"] == {"oldStatus": "Todo", "newStatus": "In Progress"}
        assert by_action["Priority changed"]["details"] == {"oldPriority": "Medium", "newPriority": "High"}
        assert by_action["Assignee changed"]["details"] == {"oldAssigned": None, "newAssigned": member.id}
        assert by_action["Status changed"]["performed_by"] == member.id

    async def test_title_only_update_not_logged(self, client: AsyncClient, owner, board):
        task = await create_task(client, owner, board["id"], "Quiet")
        await client.put(f"/api/tasks/{task['id']}", json={"title": "Still quiet"}, headers=get_auth_headers(owner))
        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        assert len(res.json()["data"]["activity"]) == 1

    async def test_missing_task(self, client: AsyncClient, owner):
        res = await client.put("/api/tasks/missing", json={"title": "X"}, headers=get_auth_headers(owner))
        assert res.status_code == 404

    async def test_outsider_forbidden(self, client: AsyncClient, owner, outsider, board):
        task = await create_task(client, owner, board["id"], "Private")
        res = await client.put(f"/api/tasks/{task['id']}", json={"title": "Mine now"}, headers=get_auth_headers(outsider))
        assert res.status_code == 403

        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        assert len(res.json()["data"]["activity"]) == 1

    async def test_outsider_cannot_read_activity(self, client: AsyncClient, owner, outsider, board):
        task = await create_task(client, owner, board["id"], "Private")
        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(outsider))
        assert res.status_code == 403

    async def test_negative_position_rejected(self, client: AsyncClient, owner, board):
        task = await create_task(client, owner, board["id"], "A")
        res = await client.put(f"/api/tasks/{task['id']}", json={"position": -1}, headers=get_auth_headers(owner))
        assert res.status_code == 400


@pytest.mark.asyncio
class TestDeleteTask:
    async def test_delete_compacts_column(self, client: AsyncClient, owner, board):
        await create_task(client, owner, board["id"], "A")
        b = await create_task(client, owner, board["id"], "B")
        await create_task(client, owner, board["id"], "C")

        res = await client.delete(f"/api/tasks/{b['id']}", headers=get_auth_headers(owner))
        assert res.status_code == 200

        todo = await list_column(client, owner, board["id"], "Todo")
        assert [(t["title"], t["position"]) for t in todo] == [("A", 0), ("C", 1)]

    async def test_delete_removes_comments_and_activity(self, client: AsyncClient, owner, board):
        task = await create_task(client, owner, board["id"], "Gone")
        await client.post("/api/comments", json={"content": "hi", "task": task["id"]}, headers=get_auth_headers(owner))

        await client.delete(f"/api/tasks/{task['id']}", headers=get_auth_headers(owner))

        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        assert res.status_code == 404
        res = await client.get(f"/api/tasks/{task['id']}/comments", headers=get_auth_headers(owner))
        assert res.status_code == 404

    async def test_outsider_cannot_delete(self, client: AsyncClient, owner, outsider, board):
        task = await create_task(client, owner, board["id"], "Safe")
        res = await client.delete(f"/api/tasks/{task['id']}", headers=get_auth_headers(outsider))
        assert res.status_code == 403


@pytest.mark.asyncio
async def test_sprint_scenario(client: AsyncClient, owner, member, outsider, project):
    """Owner plans, member moves the card, an outsider is kept out"""
    await invite(client, project["id"], owner, member)
    res = await client.post(
        "/api/boards", json={"name": "Sprint1", "project": project["id"]}, headers=get_auth_headers(owner),
    )
    sprint = res.json()["data"]["board"]

    task = await create_task(client, owner, sprint["id"], "Fix bug")
    assert (task["status"], task["position"]) == ("Todo", 0)

    res = await client.put(f"/api/tasks/{task['id']}", json={"status": "In Progress"}, headers=get_auth_headers(member))
    assert res.status_code == 200

    res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(member))
    status_entries = [e for e in res.json()["data"]["activity"] if e["action"] == "Status changed"]
    assert len(status_entries) == 1
    assert status_entries[0]["details"] == {"oldStatus": "Todo", "newStatus": "In Progress"}

    res = await client.get(f"/api/boards/{sprint['id']}/tasks", headers=get_auth_headers(outsider))
    assert res.status_code == 403
