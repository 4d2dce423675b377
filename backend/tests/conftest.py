# tests/conftest.py — Shared test fixtures
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import (  # noqa: E402
    Base, User, Organization, Membership, Team, TeamMembership, Task,
    UserRole, OrgRole, TeamRole, PlanType, TaskPriority, TaskStatus, TaskVisibility,
)
from access_policy import AccessContext  # noqa: E402
from audit_service import AuditActor  # noqa: E402
from auth import AuthService  # noqa: E402
from database import get_db_session  # noqa: E402
from realtime import get_realtime  # noqa: E402
from main import app  # noqa: E402

PASSWORD = "Password123!"
# Hashed once; bcrypt at 12 rounds is slow enough to matter per fixture
PASSWORD_HASH = AuthService.hash_password(PASSWORD)


class RecordingRealtime:
    """Real-time sink that remembers every push instead of sending it"""

    def __init__(self):
        self.events = []  # (user_id or None for broadcast, event, payload)

    async def emit(self, event, payload):
        self.events.append((None, event, payload))

    async def emit_to_user(self, user_id, event, payload):
        self.events.append((user_id, event, payload))

    def names(self):
        return [event for _, event, _ in self.events]

    def for_user(self, user_id):
        return [(event, payload) for target, event, payload in self.events if target == user_id]


# ============================================================
# DATABASE & CLIENT
# ============================================================

@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def realtime():
    return RecordingRealtime()


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, realtime):
    """HTTP test client with overridden DB and push-hub dependencies"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_realtime] = lambda: realtime
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================
# FACTORIES
# ============================================================

async def make_user(db, email: str, name: str, role: UserRole = UserRole.USER, is_active: bool = True) -> User:
    user = User(email=email, name=name, password_hash=PASSWORD_HASH, role=role, is_active=is_active)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_task(
    db,
    creator: User,
    title: str = "Task",
    assignee: Optional[User] = None,
    organization: Optional[Organization] = None,
    team: Optional[Team] = None,
    visibility: TaskVisibility = TaskVisibility.PRIVATE,
    status: TaskStatus = TaskStatus.TODO,
    priority: TaskPriority = TaskPriority.MEDIUM,
    due_date: Optional[datetime] = None,
) -> Task:
    task = Task(
        title=title,
        description="",
        creator_id=creator.id,
        assigned_to_id=assignee.id if assignee else None,
        organization_id=organization.id if organization else None,
        team_id=team.id if team else None,
        visibility=visibility,
        status=status,
        priority=priority,
        due_date=due_date,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


async def add_member(db, organization: Organization, user: User, role: OrgRole = OrgRole.MEMBER) -> Membership:
    membership = Membership(organization_id=organization.id, user_id=user.id, role=role)
    db.add(membership)
    await db.commit()
    return membership


async def add_team_member(db, team: Team, user: User, role: TeamRole = TeamRole.MEMBER) -> TeamMembership:
    membership = TeamMembership(team_id=team.id, user_id=user.id, role=role)
    db.add(membership)
    await db.commit()
    return membership


def ctx_for(user: User, organization: Optional[Organization] = None, org_role: Optional[OrgRole] = None,
            teams=()) -> AccessContext:
    return AccessContext(
        user_id=user.id,
        role=user.role.value,
        organization_id=organization.id if organization else None,
        org_role=org_role.value if org_role else None,
        team_ids=[t.id for t in teams],
    )


def actor_for(user: User) -> AuditActor:
    return AuditActor(id=user.id, email=user.email, ip="127.0.0.1", user_agent="pytest")


def days_ago(n: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=n)


def get_auth_headers(user: User, organization_id: Optional[str] = None) -> dict:
    """Generate auth headers for a user, optionally inside an organization"""
    token = AuthService.create_access_token({"sub": user.id, "email": user.email})
    headers = {"Authorization": f"Bearer {token}"}
    if organization_id:
        headers["X-Organization-ID"] = organization_id
    return headers


# ============================================================
# USERS, ORGANIZATION, TEAM
# ============================================================

@pytest_asyncio.fixture
async def alice(db_session):
    return await make_user(db_session, "alice@taskflow.dev", "Alice")


@pytest_asyncio.fixture
async def bob(db_session):
    return await make_user(db_session, "bob@taskflow.dev", "Bob")


@pytest_asyncio.fixture
async def carol(db_session):
    return await make_user(db_session, "carol@taskflow.dev", "Carol")


@pytest_asyncio.fixture
async def suspended_user(db_session):
    return await make_user(db_session, "dave@taskflow.dev", "Dave", is_active=False)


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await make_user(db_session, "admin@taskflow.dev", "Admin", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def super_admin(db_session):
    return await make_user(db_session, "root@taskflow.dev", "Root", role=UserRole.SUPER_ADMIN)


@pytest_asyncio.fixture
async def org(db_session, alice, bob):
    """Acme: alice is SUPER_ADMIN, bob is a MEMBER; carol is an outsider"""
    organization = Organization(name="Acme", slug="acme", plan=PlanType.TEAM)
    db_session.add(organization)
    await db_session.commit()
    await db_session.refresh(organization)
    await add_member(db_session, organization, alice, OrgRole.SUPER_ADMIN)
    await add_member(db_session, organization, bob, OrgRole.MEMBER)
    return organization


@pytest_asyncio.fixture
async def team(db_session, org, alice):
    """Platform team of Acme, led by alice"""
    platform = Team(name="Platform", organization_id=org.id)
    db_session.add(platform)
    await db_session.commit()
    await db_session.refresh(platform)
    await add_team_member(db_session, platform, alice, TeamRole.LEADER)
    return platform
