# tests/test_teams.py — Team CRUD and team membership
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from models import Organization, Task, Team, TaskVisibility, OrgRole, TeamRole, PlanType
from tests.conftest import get_auth_headers, add_member, add_team_member, make_task


async def _reload_task(db_session, task_id):
    return (await db_session.execute(
        select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    )).scalar_one()


@pytest.mark.asyncio
class TestTeamCrud:
    async def test_create_makes_creator_leader(self, client: AsyncClient, org, bob):
        headers = get_auth_headers(bob, org.id)
        resp = await client.post("/api/v1/teams", json={"name": "Design", "description": "Pixels"}, headers=headers)
        assert resp.status_code == 201
        team = resp.json()
        assert team["organization_id"] == org.id
        assert team["member_count"] == 1

        members = (await client.get(f"/api/v1/teams/{team['id']}/members", headers=headers)).json()
        assert [(m["user_id"], m["role"]) for m in members] == [(bob.id, "LEADER")]

    async def test_duplicate_name_is_case_insensitive(self, client: AsyncClient, team, alice, org):
        resp = await client.post("/api/v1/teams", json={"name": "PLATFORM"}, headers=get_auth_headers(alice, org.id))
        assert resp.status_code == 409

    async def test_requires_organization_context(self, client: AsyncClient, alice):
        resp = await client.get("/api/v1/teams", headers=get_auth_headers(alice))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Organization context required"

    async def test_outsider_header_rejected(self, client: AsyncClient, org, carol):
        resp = await client.get("/api/v1/teams", headers=get_auth_headers(carol, org.id))
        assert resp.status_code == 403

    async def test_list_with_member_counts(self, client: AsyncClient, db_session, org, team, alice, bob):
        await add_team_member(db_session, team, bob)
        db_session.add(Team(name="Analytics", organization_id=org.id))
        await db_session.commit()

        resp = await client.get("/api/v1/teams", headers=get_auth_headers(alice, org.id))
        assert [(t["name"], t["member_count"]) for t in resp.json()] == [("Analytics", 0), ("Platform", 2)]

    async def test_team_of_other_org_is_not_found(self, client: AsyncClient, db_session, org, alice, carol):
        other = Organization(name="Globex", slug="globex", plan=PlanType.FREE)
        db_session.add(other)
        await db_session.commit()
        await add_member(db_session, other, carol, OrgRole.SUPER_ADMIN)
        foreign = Team(name="Secret", organization_id=other.id)
        db_session.add(foreign)
        await db_session.commit()

        resp = await client.get(f"/api/v1/teams/{foreign.id}", headers=get_auth_headers(alice, org.id))
        assert resp.status_code == 404

    async def test_update_needs_leader_or_manager(self, client: AsyncClient, db_session, org, team, alice, bob, carol):
        resp = await client.patch(f"/api/v1/teams/{team.id}", json={"name": "Core"},
                                  headers=get_auth_headers(bob, org.id))
        assert resp.status_code == 403

        resp = await client.patch(f"/api/v1/teams/{team.id}", json={"description": "Infra"},
                                  headers=get_auth_headers(alice, org.id))
        assert resp.status_code == 200
        assert resp.json()["description"] == "Infra"

        # An org manager may edit teams they do not lead
        await add_member(db_session, org, carol, OrgRole.MANAGER)
        resp = await client.patch(f"/api/v1/teams/{team.id}", json={"name": "Core"},
                                  headers=get_auth_headers(carol, org.id))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Core"

    async def test_delete_returns_tasks_to_private(self, client: AsyncClient, db_session, org, team, alice, bob):
        task = await make_task(db_session, alice, organization=org, team=team, visibility=TaskVisibility.TEAM)

        resp = await client.delete(f"/api/v1/teams/{team.id}", headers=get_auth_headers(bob, org.id))
        assert resp.status_code == 403

        resp = await client.delete(f"/api/v1/teams/{team.id}", headers=get_auth_headers(alice, org.id))
        assert resp.json() == {"status": "deleted", "id": team.id}

        reloaded = await _reload_task(db_session, task.id)
        assert reloaded.team_id is None
        assert reloaded.visibility == TaskVisibility.PRIVATE
        assert (await client.get("/api/v1/teams", headers=get_auth_headers(alice, org.id))).json() == []


@pytest.mark.asyncio
class TestTeamMembers:
    async def test_leader_adds_org_member(self, client: AsyncClient, org, team, alice, bob):
        resp = await client.post(f"/api/v1/teams/{team.id}/members", json={"user_id": bob.id},
                                 headers=get_auth_headers(alice, org.id))
        assert resp.status_code == 201
        assert resp.json()["role"] == "MEMBER"
        assert resp.json()["email"] == bob.email

        again = await client.post(f"/api/v1/teams/{team.id}/members", json={"user_id": bob.id},
                                  headers=get_auth_headers(alice, org.id))
        assert again.status_code == 409

    async def test_non_org_member_cannot_join(self, client: AsyncClient, org, team, alice, carol):
        resp = await client.post(f"/api/v1/teams/{team.id}/members", json={"user_id": carol.id},
                                 headers=get_auth_headers(alice, org.id))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "User is not a member of the organization"

    async def test_non_leader_cannot_manage(self, client: AsyncClient, db_session, org, team, bob, carol):
        await add_member(db_session, org, carol)
        await add_team_member(db_session, team, bob)
        resp = await client.post(f"/api/v1/teams/{team.id}/members", json={"user_id": carol.id},
                                 headers=get_auth_headers(bob, org.id))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Only team leaders can manage team membership"

    async def test_last_leader_is_protected(self, client: AsyncClient, org, team, alice):
        headers = get_auth_headers(alice, org.id)
        resp = await client.delete(f"/api/v1/teams/{team.id}/members/{alice.id}", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "A team must keep at least one leader"

        resp = await client.patch(f"/api/v1/teams/{team.id}/members/{alice.id}", json={"role": "MEMBER"},
                                  headers=headers)
        assert resp.status_code == 400

    async def test_promote_then_step_down(self, client: AsyncClient, db_session, org, team, alice, bob):
        await add_team_member(db_session, team, bob)
        headers = get_auth_headers(alice, org.id)

        resp = await client.patch(f"/api/v1/teams/{team.id}/members/{bob.id}", json={"role": "LEADER"},
                                  headers=headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "LEADER"

        resp = await client.patch(f"/api/v1/teams/{team.id}/members/{alice.id}", json={"role": "MEMBER"},
                                  headers=headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "MEMBER"

    async def test_remove_member(self, client: AsyncClient, db_session, org, team, alice, bob):
        await add_team_member(db_session, team, bob, TeamRole.MEMBER)
        headers = get_auth_headers(alice, org.id)

        resp = await client.delete(f"/api/v1/teams/{team.id}/members/{bob.id}", headers=headers)
        assert resp.json() == {"status": "removed", "user_id": bob.id}

        resp = await client.delete(f"/api/v1/teams/{team.id}/members/{bob.id}", headers=headers)
        assert resp.status_code == 404
