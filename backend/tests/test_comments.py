# tests/test_comments.py — Comment threads
import pytest
import pytest_asyncio
from httpx import AsyncClient

from tests.conftest import get_auth_headers, create_task, invite


async def _comment(client, user, task_id, content, parent=None):
    payload = {"content": content, "task": task_id}
    if parent:
        payload["parent_comment"] = parent
    return await client.post("/api/comments", json=payload, headers=get_auth_headers(user))


@pytest_asyncio.fixture
async def task(client, owner, board):
    return await create_task(client, owner, board["id"], "Discuss me")


@pytest.mark.asyncio
class TestCreateComment:
    async def test_top_level_and_reply(self, client: AsyncClient, owner, task):
        res = await _comment(client, owner, task["id"], "First!")
        assert res.status_code == 201
        top = res.json()["data"]["comment"]
        assert top["parent_comment_id"] is None
        assert top["author_id"] == owner.id
        assert top["is_edited"] is False

        res = await _comment(client, owner, task["id"], "Reply", parent=top["id"])
        assert res.status_code == 201
        assert res.json()["data"]["comment"]["parent_comment_id"] == top["id"]

    async def test_replies_nest_one_level_only(self, client: AsyncClient, owner, task):
        top = (await _comment(client, owner, task["id"], "Top")).json()["data"]["comment"]
        reply = (await _comment(client, owner, task["id"], "Reply", parent=top["id"])).json()["data"]["comment"]

        res = await _comment(client, owner, task["id"], "Too deep", parent=reply["id"])
        assert res.status_code == 400

    async def test_parent_must_be_on_same_task(self, client: AsyncClient, owner, board, task):
        other = await create_task(client, owner, board["id"], "Other")
        top = (await _comment(client, owner, other["id"], "Elsewhere")).json()["data"]["comment"]

        res = await _comment(client, owner, task["id"], "Cross-thread", parent=top["id"])
        assert res.status_code == 400

    async def test_missing_parent(self, client: AsyncClient, owner, task):
        res = await _comment(client, owner, task["id"], "Orphan", parent="missing")
        assert res.status_code == 404

    async def test_content_limits(self, client: AsyncClient, owner, task):
        res = await _comment(client, owner, task["id"], "")
        assert res.status_code == 400
        res = await _comment(client, owner, task["id"], "x" * 1001)
        assert res.status_code == 400

    async def test_outsider_forbidden(self, client: AsyncClient, outsider, task):
        res = await _comment(client, outsider, task["id"], "Let me in")
        assert res.status_code == 403

    async def test_comment_logged_on_task(self, client: AsyncClient, owner, task):
        top = (await _comment(client, owner, task["id"], "Top")).json()["data"]["comment"]
        await _comment(client, owner, task["id"], "Reply", parent=top["id"])

        res = await client.get(f"/api/tasks/{task['id']}/activity", headers=get_auth_headers(owner))
        entries = [e for e in res.json()["data"]["activity"] if e["action"] == "Comment added"]
        assert [e["details"]["isReply"] for e in entries] == [True, False]
        assert entries[1]["details"]["commentId"] == top["id"]


@pytest.mark.asyncio
class TestListComments:
    async def test_threads_with_replies(self, client: AsyncClient, owner, member, project, task):
        await invite(client, project["id"], owner, member)
        first = (await _comment(client, owner, task["id"], "First")).json()["data"]["comment"]
        second = (await _comment(client, member, task["id"], "Second")).json()["data"]["comment"]
        await _comment(client, member, task["id"], "Re first 1", parent=first["id"])
        await _comment(client, owner, task["id"], "Re first 2", parent=first["id"])

        res = await client.get(f"/api/tasks/{task['id']}/comments", headers=get_auth_headers(member))
        assert res.status_code == 200
        data = res.json()["data"]
        assert [c["id"] for c in data["comments"]] == [second["id"], first["id"]]
        assert [r["content"] for r in data["comments"][1]["replies"]] == ["Re first 1", "Re first 2"]
        assert data["comments"][0]["replies"] == []
        assert data["pagination"]["total"] == 2

    async def test_outsider_forbidden(self, client: AsyncClient, outsider, task):
        res = await client.get(f"/api/tasks/{task['id']}/comments", headers=get_auth_headers(outsider))
        assert res.status_code == 403


@pytest.mark.asyncio
class TestEditAndDelete:
    async def test_author_edits(self, client: AsyncClient, owner, task):
        top = (await _comment(client, owner, task["id"], "Typo")).json()["data"]["comment"]
        res = await client.put(f"/api/comments/{top['id']}", json={"content": "Fixed"}, headers=get_auth_headers(owner))
        assert res.status_code == 200
        edited = res.json()["data"]["comment"]
        assert edited["content"] == "Fixed"
        assert edited["is_edited"] is True
        assert edited["edited_at"] is not None

    async def test_only_author_edits(self, client: AsyncClient, owner, member, project, task):
        await invite(client, project["id"], owner, member)
        top = (await _comment(client, member, task["id"], "Mine")).json()["data"]["comment"]
        res = await client.put(f"/api/comments/{top['id']}", json={"content": "Hijack"}, headers=get_auth_headers(owner))
        assert res.status_code == 403

    async def test_delete_top_level_removes_replies(self, client: AsyncClient, owner, task):
        top = (await _comment(client, owner, task["id"], "Top")).json()["data"]["comment"]
        await _comment(client, owner, task["id"], "R1", parent=top["id"])
        await _comment(client, owner, task["id"], "R2", parent=top["id"])

        res = await client.delete(f"/api/comments/{top['id']}", headers=get_auth_headers(owner))
        assert res.status_code == 200
        assert res.json()["data"]["deleted"] == 3

        res = await client.get(f"/api/tasks/{task['id']}/comments", headers=get_auth_headers(owner))
        assert res.json()["data"]["comments"] == []

    async def test_delete_reply_keeps_parent(self, client: AsyncClient, owner, task):
        top = (await _comment(client, owner, task["id"], "Top")).json()["data"]["comment"]
        reply = (await _comment(client, owner, task["id"], "R1", parent=top["id"])).json()["data"]["comment"]

        res = await client.delete(f"/api/comments/{reply['id']}", headers=get_auth_headers(owner))
        assert res.json()["data"]["deleted"] == 1

        res = await client.get(f"/api/tasks/{task['id']}/comments", headers=get_auth_headers(owner))
        comments = res.json()["data"]["comments"]
        assert [c["id"] for c in comments] == [top["id"]]
        assert comments[0]["replies"] == []

    async def test_member_may_delete_others_comment(self, client: AsyncClient, owner, member, project, task):
        await invite(client, project["id"], owner, member)
        top = (await _comment(client, owner, task["id"], "Owner's note")).json()["data"]["comment"]
        res = await client.delete(f"/api/comments/{top['id']}", headers=get_auth_headers(member))
        assert res.status_code == 200

    async def test_outsider_cannot_edit(self, client: AsyncClient, owner, outsider, task):
        top = (await _comment(client, owner, task["id"], "Note")).json()["data"]["comment"]
        res = await client.put(f"/api/comments/{top['id']}", json={"content": "Defaced"}, headers=get_auth_headers(outsider))
        assert res.status_code == 403

    async def test_outsider_cannot_delete(self, client: AsyncClient, owner, outsider, task):
        top = (await _comment(client, owner, task["id"], "Note")).json()["data"]["comment"]
        res = await client.delete(f"/api/comments/{top['id']}", headers=get_auth_headers(outsider))
        assert res.status_code == 403

    async def test_missing_comment(self, client: AsyncClient, owner):
        res = await client.delete("/api/comments/missing", headers=get_auth_headers(owner))
        assert res.status_code == 404
