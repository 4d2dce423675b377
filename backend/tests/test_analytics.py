# tests/test_analytics.py — Task analytics, efficiency and insights
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from analytics_service import AnalyticsService, GLOBAL, _pct_change
from models import Task, TaskHistory, TaskPriority, TaskStatus
from task_history import HistoryAction
from tests.conftest import get_auth_headers, make_task, days_ago


async def _complete(db_session, task: Task, user, when: datetime = None):
    """Mark a task completed and log the transition as if it happened at `when`"""
    task.status = TaskStatus.COMPLETED
    db_session.add(TaskHistory(
        task_id=task.id, user_id=user.id, action=HistoryAction.STATUS_CHANGED,
        field="status", old_value=TaskStatus.TODO.value, new_value=TaskStatus.COMPLETED.value,
        created_at=when or datetime.now(timezone.utc),
    ))
    await db_session.commit()


async def _created(db_session, task: Task, user):
    db_session.add(TaskHistory(task_id=task.id, user_id=user.id, action=HistoryAction.CREATED))
    await db_session.commit()


@pytest.mark.asyncio
class TestAnalyticsService:
    async def test_trends_cover_each_day(self, db_session, alice):
        task = await make_task(db_session, alice, assignee=alice)
        await _created(db_session, task, alice)
        await _complete(db_session, task, alice)

        trend = await AnalyticsService(db_session).completion_trends(alice.id, days=7)
        assert len(trend) == 7
        today = trend[-1]
        assert today["date"] == datetime.now(timezone.utc).date().isoformat()
        assert (today["created"], today["completed"]) == (1, 1)
        assert sum(day["completed"] for day in trend[:-1]) == 0

    async def test_trends_are_personal_by_default(self, db_session, alice, bob):
        task = await make_task(db_session, bob, assignee=bob)
        await _complete(db_session, task, bob)
        service = AnalyticsService(db_session)
        assert sum(d["completed"] for d in await service.completion_trends(alice.id)) == 0
        assert sum(d["completed"] for d in await service.completion_trends(alice.id, scope=GLOBAL)) == 1

    async def test_priority_distribution_skips_completed(self, db_session, alice, bob):
        await make_task(db_session, alice, priority=TaskPriority.HIGH)
        await make_task(db_session, bob, assignee=alice, priority=TaskPriority.HIGH)
        await make_task(db_session, alice, priority=TaskPriority.LOW, status=TaskStatus.COMPLETED)
        await make_task(db_session, bob, priority=TaskPriority.URGENT)

        dist = await AnalyticsService(db_session).priority_distribution(alice.id)
        assert dist == {"low": 0, "medium": 0, "high": 2, "urgent": 0}

    async def test_productivity(self, db_session, alice):
        task = await make_task(db_session, alice, assignee=alice)
        task.created_at = days_ago(3)
        await db_session.commit()
        await _complete(db_session, task, alice)

        stats = await AnalyticsService(db_session).productivity(alice.id)
        assert stats["completed_this_period"] == 1
        assert stats["completed_previous_period"] == 0
        assert stats["avg_completion_days"] == 3.0
        assert stats["throughput_trend"] == 100
        assert stats["lead_time_trend"] == 0
        # velocity 1/7*400 + speed 2/3*300 + volume 1/20*300
        assert stats["performance_score"] == 272

    async def test_productivity_compares_periods(self, db_session, alice):
        older = await make_task(db_session, alice, assignee=alice)
        await _complete(db_session, older, alice, when=days_ago(10))
        stats = await AnalyticsService(db_session).productivity(alice.id)
        assert stats["completed_this_period"] == 0
        assert stats["completed_previous_period"] == 1
        assert stats["throughput_trend"] == -100
        assert stats["performance_score"] == 0

    async def test_heatmap_groups_by_day(self, db_session, alice):
        for when in (days_ago(2), days_ago(2), days_ago(120)):
            task = await make_task(db_session, alice, assignee=alice)
            await _complete(db_session, task, alice, when=when)

        cells = await AnalyticsService(db_session).heatmap(alice.id)
        assert cells == [{"date": days_ago(2).date().isoformat(), "count": 2}]

    async def test_overview(self, db_session, org, alice, bob):
        await make_task(db_session, alice, status=TaskStatus.IN_PROGRESS)
        await make_task(db_session, alice, status=TaskStatus.COMPLETED, due_date=days_ago(1))
        await make_task(db_session, bob, assignee=alice, due_date=days_ago(1))
        await make_task(db_session, alice, organization=org)
        await make_task(db_session, bob)

        service = AnalyticsService(db_session)
        assert await service.overview(alice.id) == {"total": 4, "completed": 1, "in_progress": 1, "overdue": 1}
        assert await service.overview(alice.id, org.id) == {"total": 1, "completed": 0, "in_progress": 0, "overdue": 0}

    async def test_efficiency_averages_time_in_status(self, db_session, alice, bob):
        task = await make_task(db_session, alice, assignee=alice, status=TaskStatus.COMPLETED)
        start = days_ago(10)
        for offset, action, new in ((0, HistoryAction.CREATED, "TODO"),
                                    (1, HistoryAction.STATUS_CHANGED, "IN_PROGRESS"),
                                    (3, HistoryAction.STATUS_CHANGED, "COMPLETED")):
            db_session.add(TaskHistory(
                task_id=task.id, user_id=alice.id, action=action, field="status",
                new_value=new, created_at=start + timedelta(days=offset),
            ))
        # Someone else's task stays out of the personal sample
        other = await make_task(db_session, bob, assignee=bob, status=TaskStatus.COMPLETED)
        db_session.add(TaskHistory(task_id=other.id, user_id=bob.id, action=HistoryAction.CREATED,
                                   field="status", new_value="TODO", created_at=start))
        await db_session.commit()

        rows = await AnalyticsService(db_session).efficiency(alice.id)
        assert rows == [
            {"status": "TODO", "avg_days": 1.0, "samples": 1},
            {"status": "IN_PROGRESS", "avg_days": 2.0, "samples": 1},
            {"status": "REVIEW", "avg_days": 0.0, "samples": 0},
        ]

    async def test_efficiency_without_completed_tasks(self, db_session, alice):
        rows = await AnalyticsService(db_session).efficiency(alice.id)
        assert [r["samples"] for r in rows] == [0, 0, 0]

    async def test_insights(self, db_session, alice):
        await make_task(db_session, alice, "late", due_date=days_ago(1))
        await make_task(db_session, alice, "fire", priority=TaskPriority.URGENT)
        done = await make_task(db_session, alice, assignee=alice)
        await _complete(db_session, done, alice)

        insights = await AnalyticsService(db_session).insights(alice.id)
        assert insights == [
            "You have 1 overdue task needing attention.",
            "Maintain momentum. 1 task completed this period.",
            "Urgent focus required: 1 urgent task still open.",
        ]

    async def test_insights_quiet_when_nothing_happened(self, db_session, alice):
        assert await AnalyticsService(db_session).insights(alice.id) == []

    async def test_global_insights_count_active_teammates(self, db_session, alice, bob):
        await make_task(db_session, alice, assignee=alice)
        await make_task(db_session, alice, assignee=bob)
        await make_task(db_session, bob, assignee=bob)

        insights = await AnalyticsService(db_session).insights(alice.id, scope=GLOBAL)
        assert insights == ["2 teammates currently working on open tasks."]


def test_pct_change():
    assert _pct_change(3, 0, 100) == 100
    assert _pct_change(0, 0, 0) == 0
    assert _pct_change(6, 4, 100) == 50
    assert _pct_change(1, 4, 100) == -75


@pytest.mark.asyncio
class TestAnalyticsRoutes:
    async def test_personal_scope(self, client: AsyncClient, alice):
        headers = get_auth_headers(alice)
        for path in ("trends", "priorities", "productivity", "heatmap", "overview", "efficiency", "insights"):
            resp = await client.get(f"/api/v1/analytics/{path}", headers=headers)
            assert resp.status_code == 200, path

    async def test_global_scope_is_admin_only(self, client: AsyncClient, alice, admin_user):
        resp = await client.get("/api/v1/analytics/trends?scope=global", headers=get_auth_headers(alice))
        assert resp.status_code == 403
        resp = await client.get("/api/v1/analytics/trends?scope=global", headers=get_auth_headers(admin_user))
        assert resp.status_code == 200

    async def test_unknown_scope_rejected(self, client: AsyncClient, alice):
        resp = await client.get("/api/v1/analytics/heatmap?scope=everyone", headers=get_auth_headers(alice))
        assert resp.status_code == 422
