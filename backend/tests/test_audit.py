# tests/test_audit.py — Audit trail service and admin read endpoints
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, func

from audit_service import (
    AuditService, AuditActor, AuditLogFilters, BulkDeleteMetadata, BulkAssignMetadata,
    UserAdminMetadata, decode_metadata,
)
from models import AuditLog, AuditAction, utcnow
from tests.conftest import get_auth_headers, actor_for


@pytest.mark.asyncio
class TestAuditLog:
    async def test_log_stores_actor_and_metadata(self, db_session, admin_user):
        entry = await AuditService(db_session).log(
            "Task", "bulk", AuditAction.BULK_DELETE, actor_for(admin_user),
            metadata=BulkDeleteMetadata(task_ids=["a", "b"], count=2),
        )
        assert entry is not None
        stored = (await db_session.execute(select(AuditLog))).scalar_one()
        assert stored.action == "BULK_DELETE"
        assert stored.actor_email == admin_user.email
        assert stored.actor_ip == "127.0.0.1"
        # The discriminator lives in the action column, not in the blob
        assert stored.metadata_ == {"task_ids": ["a", "b"], "missing_ids": [], "count": 2}

    async def test_failed_write_is_swallowed(self, db_session, admin_user):
        # actor_id is NOT NULL, so this insert fails at flush time
        broken_actor = AuditActor(id=None, email=admin_user.email)
        result = await AuditService(db_session).log("User", admin_user.id, AuditAction.USER_UPDATED, broken_actor)
        assert result is None
        # The caller's session and its loaded rows are unaffected
        assert admin_user.email == "admin@taskflow.dev"
        total = (await db_session.execute(select(func.count(AuditLog.id)))).scalar()
        assert total == 0

    async def test_get_logs_filters_and_paginates(self, db_session, admin_user, alice):
        service = AuditService(db_session)
        for i in range(5):
            await service.log("User", f"u{i}", AuditAction.USER_UPDATED, actor_for(admin_user))
        await service.log("Task", "bulk", AuditAction.BULK_ARCHIVE, actor_for(alice))

        page = await service.get_logs(AuditLogFilters(entity_type="User"), page=2, limit=2)
        assert page["total"] == 5
        assert page["page"] == 2
        assert page["limit"] == 2
        assert page["total_pages"] == 3
        assert len(page["logs"]) == 2

        by_actor = await service.get_logs(AuditLogFilters(actor_id=alice.id))
        assert [log["action"] for log in by_actor["logs"]] == ["BULK_ARCHIVE"]

        by_action = await service.get_logs(AuditLogFilters(action="USER_UPDATED"))
        assert by_action["total"] == 5

        future = await service.get_logs(AuditLogFilters(start_date=utcnow() + timedelta(days=1)))
        assert future["total"] == 0
        assert future["total_pages"] == 0

    async def test_entity_history_is_newest_first(self, db_session, admin_user):
        service = AuditService(db_session)
        for action in (AuditAction.USER_CREATED, AuditAction.USER_SUSPENDED, AuditAction.USER_ACTIVATED):
            await service.log(
                "User", "target", action, actor_for(admin_user),
                metadata=UserAdminMetadata(action=action.value, target_email="t@taskflow.dev"),
            )
        await service.log("User", "other", AuditAction.USER_CREATED, actor_for(admin_user))

        history = await service.get_entity_history("User", "target", limit=2)
        assert len(history) == 2
        assert all(h["entity_id"] == "target" for h in history)
        assert history[0]["metadata"]["target_email"] == "t@taskflow.dev"


class TestMetadataDecoding:
    def test_decodes_by_action(self):
        decoded = decode_metadata("BULK_ASSIGN", {
            "task_ids": ["a"], "missing_ids": [], "count": 1,
            "assignee_id": "u1", "assignee_name": "Bob",
        })
        assert isinstance(decoded, BulkAssignMetadata)
        assert decoded.assignee_name == "Bob"

    def test_unknown_shape_passes_through(self):
        raw = {"something": "else"}
        assert decode_metadata("BULK_ASSIGN", raw) == raw
        assert decode_metadata("LEGACY_ACTION", raw) == raw

    def test_none_stays_none(self):
        assert decode_metadata("BULK_DELETE", None) is None


@pytest.mark.asyncio
class TestAuditRoutes:
    async def test_admin_reads_logs(self, client: AsyncClient, db_session, admin_user):
        await AuditService(db_session).log("User", "x", AuditAction.USER_CREATED, actor_for(admin_user))
        resp = await client.get("/api/v1/admin/audit-logs?entity_type=User", headers=get_auth_headers(admin_user))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        assert body["logs"][0]["actor_id"] == admin_user.id

    async def test_entity_history_route(self, client: AsyncClient, db_session, admin_user):
        await AuditService(db_session).log("User", "x", AuditAction.USER_CREATED, actor_for(admin_user))
        resp = await client.get("/api/v1/admin/audit-logs/User/x", headers=get_auth_headers(admin_user))
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    async def test_non_admin_blocked(self, client: AsyncClient, alice):
        resp = await client.get("/api/v1/admin/audit-logs", headers=get_auth_headers(alice))
        assert resp.status_code == 403
