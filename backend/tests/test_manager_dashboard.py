# tests/test_manager_dashboard.py — Organization dashboard for managers
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient

from manager_dashboard_service import ManagerDashboardService
from models import Team, TaskHistory, TaskPriority, TaskStatus, OrgRole
from task_history import HistoryAction
from tests.conftest import get_auth_headers, make_task, add_member, add_team_member, days_ago


def _completion(task, user, when=None):
    return TaskHistory(
        task_id=task.id, user_id=user.id, action=HistoryAction.STATUS_CHANGED,
        field="status", old_value=TaskStatus.IN_PROGRESS.value, new_value=TaskStatus.COMPLETED.value,
        created_at=when or datetime.now(timezone.utc),
    )


async def _team(db_session, org, name):
    team = Team(name=name, organization_id=org.id)
    db_session.add(team)
    await db_session.commit()
    await db_session.refresh(team)
    return team


@pytest.mark.asyncio
class TestManagerDashboardService:
    async def test_overview(self, db_session, org, team, alice, bob, carol):
        await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
        await make_task(db_session, alice, organization=org, status=TaskStatus.IN_PROGRESS)
        await make_task(db_session, bob, organization=org)
        await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
        await make_task(db_session, carol)

        overview = await ManagerDashboardService(db_session).overview(org.id)
        assert overview["team_count"] == 1
        assert overview["member_count"] == 2
        assert overview["task_stats"] == {"TODO": 1, "IN_PROGRESS": 1, "REVIEW": 0, "COMPLETED": 2}
        assert overview["total_tasks"] == 4
        assert overview["completion_rate"] == 50

    async def test_overview_of_empty_org(self, db_session, org):
        overview = await ManagerDashboardService(db_session).overview(org.id)
        assert overview["total_tasks"] == 0
        assert overview["completion_rate"] == 0

    async def test_team_comparison_best_first(self, db_session, org, team, alice, bob):
        mobile = await _team(db_session, org, "Mobile")
        await add_team_member(db_session, mobile, bob)
        await make_task(db_session, alice, organization=org, team=team)
        await make_task(db_session, alice, organization=org, team=team, due_date=days_ago(2))
        await make_task(db_session, bob, organization=org, team=mobile, status=TaskStatus.COMPLETED)

        comparison = await ManagerDashboardService(db_session).team_comparison(org.id)
        assert [t["name"] for t in comparison] == ["Mobile", "Platform"]
        assert comparison[0]["stats"]["completion_rate"] == 100
        assert comparison[1]["stats"] == {
            "total": 2, "completed": 0, "in_progress": 0, "overdue": 1, "completion_rate": 0,
        }
        assert comparison[1]["member_count"] == 1

    async def test_trends_are_org_scoped(self, db_session, org, alice):
        inside = await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
        outside = await make_task(db_session, alice, status=TaskStatus.COMPLETED)
        db_session.add_all([_completion(inside, alice), _completion(outside, alice)])
        await db_session.commit()

        trend = await ManagerDashboardService(db_session).trends(org.id, days=3)
        assert len(trend) == 3
        assert [d["completed"] for d in trend] == [0, 0, 1]

    async def test_top_performers(self, db_session, org, alice, bob):
        for _ in range(2):
            task = await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
            db_session.add(_completion(task, bob))
        task = await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
        db_session.add(_completion(task, alice))
        stale = await make_task(db_session, alice, organization=org, status=TaskStatus.COMPLETED)
        db_session.add(_completion(stale, alice, when=days_ago(45)))
        await db_session.commit()

        performers = await ManagerDashboardService(db_session).top_performers(org.id)
        assert [(p["user"]["name"], p["completed_tasks"]) for p in performers] == [("Bob", 2), ("Alice", 1)]

        performers = await ManagerDashboardService(db_session).top_performers(org.id, limit=1)
        assert len(performers) == 1

    async def test_priority_distribution_skips_completed(self, db_session, org, alice):
        await make_task(db_session, alice, organization=org, priority=TaskPriority.URGENT)
        await make_task(db_session, alice, organization=org, priority=TaskPriority.URGENT,
                        status=TaskStatus.COMPLETED)
        await make_task(db_session, alice, priority=TaskPriority.LOW)

        dist = await ManagerDashboardService(db_session).priority_distribution(org.id)
        assert dist == {"low": 0, "medium": 0, "high": 0, "urgent": 1}


@pytest.mark.asyncio
class TestManagerDashboardRoutes:
    async def test_requires_org_manager(self, client: AsyncClient, db_session, org, alice, bob, carol):
        resp = await client.get("/api/v1/manager/dashboard", headers=get_auth_headers(bob, org.id))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient organization role"

        await add_member(db_session, org, carol, OrgRole.MANAGER)
        resp = await client.get("/api/v1/manager/dashboard", headers=get_auth_headers(carol, org.id))
        assert resp.status_code == 200

    async def test_requires_org_context(self, client: AsyncClient, alice):
        resp = await client.get("/api/v1/manager/dashboard", headers=get_auth_headers(alice))
        assert resp.status_code == 400

    async def test_all_panels(self, client: AsyncClient, org, alice):
        headers = get_auth_headers(alice, org.id)
        for path in ("", "/teams", "/trends?days=5", "/performers?limit=3", "/priority"):
            resp = await client.get(f"/api/v1/manager/dashboard{path}", headers=headers)
            assert resp.status_code == 200, path
