# tests/test_templates.py — Task template tests
import pytest
from httpx import AsyncClient

from errors import ForbiddenError, NotFoundError
from models import TaskPriority
from template_service import TemplateService, TemplateCreate, TemplateUpdate
from tests.conftest import get_auth_headers, ctx_for


async def _template(db_session, user, name="Bug report", **extra):
    data = TemplateCreate(name=name, title=f"{name} title", description="Steps to reproduce", **extra)
    return await TemplateService(db_session).create(ctx_for(user), data)


@pytest.mark.asyncio
class TestTemplateService:
    async def test_create_defaults(self, db_session, alice):
        template = await _template(db_session, alice)
        assert template.creator_id == alice.id
        assert template.priority == TaskPriority.MEDIUM
        assert template.is_global is False
        assert template.creator.name == "Alice"

    async def test_list_own_and_global(self, db_session, alice, bob, admin_user):
        await _template(db_session, alice, "Zeta")
        await _template(db_session, alice, "Alpha")
        await _template(db_session, bob, "Private to bob")
        await _template(db_session, admin_user, "Release", is_global=True)

        names = [t.name for t in await TemplateService(db_session).list_for_user(alice.id)]
        assert names == ["Release", "Alpha", "Zeta"]

    async def test_only_admins_publish_global(self, db_session, alice):
        with pytest.raises(ForbiddenError, match="global"):
            await _template(db_session, alice, is_global=True)

    async def test_get_checks_access(self, db_session, alice, bob, admin_user):
        private = await _template(db_session, alice)
        shared = await _template(db_session, admin_user, "Shared", is_global=True)
        service = TemplateService(db_session)

        assert (await service.get(ctx_for(bob), shared.id)).id == shared.id
        with pytest.raises(ForbiddenError):
            await service.get(ctx_for(bob), private.id)
        with pytest.raises(NotFoundError, match="Template not found"):
            await service.get(ctx_for(alice), "missing")

    async def test_update_is_creator_only(self, db_session, alice, bob):
        template = await _template(db_session, alice)
        service = TemplateService(db_session)

        with pytest.raises(ForbiddenError, match="Only the template creator can update"):
            await service.update(ctx_for(bob), template.id, TemplateUpdate(title="Hijacked"))

        updated = await service.update(ctx_for(alice), template.id, TemplateUpdate(priority=TaskPriority.URGENT))
        assert updated.priority == TaskPriority.URGENT
        assert updated.title == "Bug report title"

    async def test_update_cannot_publish_without_admin(self, db_session, alice):
        template = await _template(db_session, alice)
        with pytest.raises(ForbiddenError):
            await TemplateService(db_session).update(ctx_for(alice), template.id, TemplateUpdate(is_global=True))

    async def test_delete_is_creator_only(self, db_session, alice, bob):
        template = await _template(db_session, alice)
        template_id = template.id
        service = TemplateService(db_session)

        with pytest.raises(ForbiddenError, match="Only the template creator can delete"):
            await service.delete(ctx_for(bob), template_id)
        await service.delete(ctx_for(alice), template_id)
        with pytest.raises(NotFoundError):
            await service.get(ctx_for(alice), template_id)


@pytest.mark.asyncio
class TestTemplateRoutes:
    async def test_crud(self, client: AsyncClient, alice, bob):
        headers = get_auth_headers(alice)
        resp = await client.post("/api/v1/templates", json={
            "name": "Standup", "title": "Daily standup notes", "priority": "LOW",
        }, headers=headers)
        assert resp.status_code == 201
        template = resp.json()
        assert template["priority"] == "LOW"
        assert template["creator"]["id"] == alice.id

        resp = await client.put(f"/api/v1/templates/{template['id']}", json={"name": "Standup v2"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Standup v2"

        resp = await client.get(f"/api/v1/templates/{template['id']}", headers=get_auth_headers(bob))
        assert resp.status_code == 403

        resp = await client.delete(f"/api/v1/templates/{template['id']}", headers=headers)
        assert resp.status_code == 200
        resp = await client.get("/api/v1/templates", headers=headers)
        assert resp.json() == []

    async def test_name_too_long_is_422(self, client: AsyncClient, alice):
        resp = await client.post("/api/v1/templates", json={"name": "x" * 51, "title": "t"},
                                 headers=get_auth_headers(alice))
        assert resp.status_code == 422
