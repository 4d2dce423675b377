# tests/test_comments.py — Task comments
import pytest
from httpx import AsyncClient

from models import TaskVisibility
from tests.conftest import get_auth_headers, make_task


@pytest.mark.asyncio
class TestComments:
    async def test_comment_notifies_assignee(self, client: AsyncClient, db_session, realtime, alice, bob):
        task = await make_task(db_session, alice, title="Write docs", assignee=bob)

        resp = await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "Any news?"},
                                 headers=get_auth_headers(alice))
        assert resp.status_code == 201
        comment = resp.json()
        assert comment["author"] == {"id": alice.id, "name": "Alice"}
        assert comment["task_id"] == task.id

        inbox = (await client.get("/api/v1/notifications", headers=get_auth_headers(bob))).json()
        assert inbox["notifications"][0]["message"] == "Alice commented on task: Write docs"
        assert [event for event, _ in realtime.for_user(bob.id)] == ["notification:new"]

    async def test_commenter_is_never_notified(self, client: AsyncClient, db_session, alice, bob):
        task = await make_task(db_session, alice, assignee=bob)
        await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "On it"},
                          headers=get_auth_headers(bob))
        # bob is the assignee, so nobody else hears about it
        assert (await client.get("/api/v1/notifications", headers=get_auth_headers(alice))).json()["unread_count"] == 0

        solo = await make_task(db_session, alice)
        await client.post(f"/api/v1/tasks/{solo.id}/comments", json={"content": "Note to self"},
                          headers=get_auth_headers(alice))
        assert (await client.get("/api/v1/notifications", headers=get_auth_headers(alice))).json()["unread_count"] == 0

    async def test_invisible_task_is_closed(self, client: AsyncClient, db_session, alice, carol):
        task = await make_task(db_session, alice)
        resp = await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "hi"},
                                 headers=get_auth_headers(carol))
        assert resp.status_code == 403
        resp = await client.get(f"/api/v1/tasks/{task.id}/comments", headers=get_auth_headers(carol))
        assert resp.status_code == 403
        resp = await client.get("/api/v1/tasks/missing/comments", headers=get_auth_headers(carol))
        assert resp.status_code == 404

    async def test_list_in_order(self, client: AsyncClient, db_session, alice, bob):
        task = await make_task(db_session, alice, assignee=bob)
        for author, text in ((alice, "first"), (bob, "second"), (alice, "third")):
            await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": text},
                              headers=get_auth_headers(author))
        resp = await client.get(f"/api/v1/tasks/{task.id}/comments", headers=get_auth_headers(bob))
        assert [c["content"] for c in resp.json()] == ["first", "second", "third"]

    async def test_only_author_edits_and_deletes(self, client: AsyncClient, db_session, alice, bob):
        task = await make_task(db_session, alice, assignee=bob)
        comment_id = (await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "draft"},
                                        headers=get_auth_headers(alice))).json()["id"]

        resp = await client.patch(f"/api/v1/tasks/comments/{comment_id}", json={"content": "hijack"},
                                  headers=get_auth_headers(bob))
        assert resp.status_code == 403
        resp = await client.delete(f"/api/v1/tasks/comments/{comment_id}", headers=get_auth_headers(bob))
        assert resp.status_code == 403

        resp = await client.patch(f"/api/v1/tasks/comments/{comment_id}", json={"content": "final"},
                                  headers=get_auth_headers(alice))
        assert resp.json()["content"] == "final"

        resp = await client.delete(f"/api/v1/tasks/comments/{comment_id}", headers=get_auth_headers(alice))
        assert resp.json() == {"status": "deleted", "id": comment_id}
        assert (await client.get(f"/api/v1/tasks/{task.id}/comments", headers=get_auth_headers(alice))).json() == []

    async def test_empty_comment_rejected(self, client: AsyncClient, db_session, alice):
        task = await make_task(db_session, alice)
        resp = await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": ""},
                                 headers=get_auth_headers(alice))
        assert resp.status_code == 422

    async def test_unassigned_task_notifies_creator(self, client: AsyncClient, db_session, org, alice, bob):
        task = await make_task(db_session, alice, title="Roadmap", organization=org,
                               visibility=TaskVisibility.ORGANIZATION)
        resp = await client.post(f"/api/v1/tasks/{task.id}/comments", json={"content": "Looks good"},
                                 headers=get_auth_headers(bob, org.id))
        assert resp.status_code == 201
        inbox = (await client.get("/api/v1/notifications", headers=get_auth_headers(alice))).json()
        assert inbox["notifications"][0]["message"] == "Bob commented on task: Roadmap"
