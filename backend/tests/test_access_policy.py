# tests/test_access_policy.py — Visibility union and authorization rules
import pytest
import pytest_asyncio

from access_policy import (
    can_view_task, can_update_task, can_delete_task, can_manage_team_membership,
    is_role_at_least, is_org_role_at_least,
)
from models import UserRole, OrgRole, TeamRole, TaskVisibility
from task_service import TaskService
from tests.conftest import make_task, make_user, ctx_for


@pytest_asyncio.fixture
async def world(db_session, alice, bob, carol, org, team):
    """A mix of tasks covering every visibility grant"""
    tasks = {
        "alice_private": await make_task(db_session, alice, "alice private", organization=org),
        "bob_private": await make_task(db_session, bob, "bob private", organization=org),
        "bob_private_for_alice": await make_task(
            db_session, bob, "assigned to alice", assignee=alice, organization=org,
        ),
        "org_wide": await make_task(
            db_session, bob, "org wide", organization=org, visibility=TaskVisibility.ORGANIZATION,
        ),
        "platform_team": await make_task(
            db_session, bob, "team only", organization=org, team=team, visibility=TaskVisibility.TEAM,
        ),
        "alice_personal": await make_task(db_session, alice, "individual mode"),
        "carol_personal_for_alice": await make_task(db_session, carol, "carol asks alice", assignee=alice),
    }
    return tasks


async def _visible_titles(db_session, ctx):
    tasks = await TaskService(db_session).list_tasks(ctx)
    return {t.title for t in tasks}


@pytest.mark.asyncio
class TestVisibilityUnion:
    async def test_team_member_in_org(self, db_session, world, alice, org, team):
        ctx = ctx_for(alice, org, OrgRole.SUPER_ADMIN, teams=[team])
        assert await _visible_titles(db_session, ctx) == {
            "alice private", "assigned to alice", "org wide", "team only",
        }

    async def test_non_team_member_in_org(self, db_session, world, bob, org):
        # Creating a TEAM task does not grant visibility to a non-member creator
        ctx = ctx_for(bob, org, OrgRole.MEMBER)
        assert await _visible_titles(db_session, ctx) == {
            "bob private", "assigned to alice", "org wide",
        }

    async def test_individual_mode_sees_only_unscoped_tasks(self, db_session, world, alice):
        assert await _visible_titles(db_session, ctx_for(alice)) == {
            "individual mode", "carol asks alice",
        }

    async def test_outsider_claiming_org_without_grants_sees_org_wide_only(self, db_session, world, carol, org):
        assert await _visible_titles(db_session, ctx_for(carol, org, OrgRole.MEMBER)) == {"org wide"}

    async def test_row_rule_matches_query_rule(self, db_session, world, alice, bob, carol, org, team):
        contexts = [
            ctx_for(alice, org, OrgRole.SUPER_ADMIN, teams=[team]),
            ctx_for(alice),
            ctx_for(bob, org, OrgRole.MEMBER),
            ctx_for(bob),
            ctx_for(carol),
        ]
        for ctx in contexts:
            listed = {t.id for t in await TaskService(db_session).list_tasks(ctx)}
            for task in world.values():
                assert can_view_task(ctx, task) == (task.id in listed), (ctx.user_id, task.title)


@pytest.mark.asyncio
class TestMutationRules:
    async def test_update_allowed_for_creator_and_assignee(self, db_session, alice, bob, carol):
        task = await make_task(db_session, alice, assignee=bob)
        assert can_update_task(ctx_for(alice), task)
        assert can_update_task(ctx_for(bob), task)
        assert not can_update_task(ctx_for(carol), task)

    async def test_org_manager_may_update_org_tasks(self, db_session, alice, bob, carol, org):
        task = await make_task(db_session, bob, organization=org, visibility=TaskVisibility.ORGANIZATION)
        assert can_update_task(ctx_for(alice, org, OrgRole.SUPER_ADMIN), task)
        assert not can_update_task(ctx_for(carol, org, OrgRole.MEMBER), task)
        # Manager rank only counts inside the task's own organization
        assert not can_update_task(ctx_for(alice), task)

    async def test_delete_is_creator_only(self, db_session, alice, bob, org):
        task = await make_task(db_session, alice, assignee=bob, organization=org)
        assert can_delete_task(ctx_for(alice, org), task)
        assert not can_delete_task(ctx_for(bob, org), task)
        assert not can_delete_task(ctx_for(bob, org, OrgRole.SUPER_ADMIN), task)


class TestRoleHelpers:
    def test_role_hierarchy_is_ordered(self):
        assert is_role_at_least("SUPER_ADMIN", UserRole.ADMIN)
        assert is_role_at_least("ADMIN", UserRole.ADMIN)
        assert not is_role_at_least("MANAGER", UserRole.ADMIN)
        assert is_role_at_least("TEAM_LEAD", UserRole.USER)
        assert not is_role_at_least("nonsense", UserRole.USER)

    def test_org_role_hierarchy(self):
        assert is_org_role_at_least("SUPER_ADMIN", OrgRole.MANAGER)
        assert is_org_role_at_least("MANAGER", OrgRole.MANAGER)
        assert not is_org_role_at_least("MEMBER", OrgRole.MANAGER)
        assert not is_org_role_at_least(None, OrgRole.MEMBER)

    def test_only_leaders_manage_membership(self):
        assert can_manage_team_membership(TeamRole.LEADER)
        assert can_manage_team_membership("LEADER")
        assert not can_manage_team_membership(TeamRole.MEMBER)


@pytest.mark.asyncio
async def test_suspended_assignee_does_not_change_visibility(db_session, alice):
    # Visibility is about the requester, not the state of other users
    dave = await make_user(db_session, "dave2@taskflow.dev", "Dave", is_active=False)
    task = await make_task(db_session, alice, assignee=dave)
    assert can_view_task(ctx_for(alice), task)
    assert can_view_task(ctx_for(dave), task)
