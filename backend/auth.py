# auth.py — Authentication & tenancy for TaskFlow
# Features:
# - JWT access tokens with JTI
# - 5-tier ordered role hierarchy (USER < TEAM_LEAD < MANAGER < ADMIN < SUPER_ADMIN)
# - Admin role auto-assigned on registration via ADMIN_EMAIL_PATTERN
# - Organization context from the X-Organization-ID header
# - Self-service profile, password change, account deletion

import os
import re
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError,
)
from models import User, Membership, TeamMembership, Team, UserRole, OrgRole, utcnow

logger = logging.getLogger("taskflow.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))
ADMIN_EMAIL_PATTERN = os.getenv("ADMIN_EMAIL_PATTERN", "^admin@")
MIN_PASSWORD_LENGTH = 6

security = HTTPBearer()


# ============================================================
# ROLE HIERARCHY
# ============================================================

ROLE_HIERARCHY = {
    UserRole.SUPER_ADMIN: 5,
    UserRole.ADMIN: 4,
    UserRole.MANAGER: 3,
    UserRole.TEAM_LEAD: 2,
    UserRole.USER: 1,
}

ORG_ROLE_HIERARCHY = {
    OrgRole.SUPER_ADMIN: 3,
    OrgRole.MANAGER: 2,
    OrgRole.MEMBER: 1,
}


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    name: str = Field(..., min_length=1, max_length=100)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class AccountDelete(BaseModel):
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    id: str
    email: str
    name: str
    role: str
    is_active: bool
    organization_id: Optional[str] = None
    org_role: Optional[str] = None
    team_ids: List[str] = []


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        "is_active": user.is_active,
        "manager_id": user.manager_id,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Credential handling and self-service account operations"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token expired")
        except JWTError:
            raise UnauthorizedError("Invalid token")

    @staticmethod
    def role_for_email(email: str) -> UserRole:
        if ADMIN_EMAIL_PATTERN and re.search(ADMIN_EMAIL_PATTERN, email, re.IGNORECASE):
            return UserRole.ADMIN
        return UserRole.USER

    @staticmethod
    def issue_token(user: User) -> TokenResponse:
        token = AuthService.create_access_token({"sub": user.id, "email": user.email})
        return TokenResponse(
            access_token=token,
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=user_to_dict(user),
        )

    @staticmethod
    async def get_user_by_email(email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        email = user_data.email.lower()
        if await AuthService.get_user_by_email(email, db):
            raise ConflictError("Email already registered")

        new_user = User(
            email=email,
            name=user_data.name,
            password_hash=AuthService.hash_password(user_data.password),
            role=AuthService.role_for_email(email),
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"Registered user {new_user.id} with role {new_user.role.value}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> User:
        user = await AuthService.get_user_by_email(email, db)
        if not user or not AuthService.verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid email or password")
        if not user.is_active:
            raise UnauthorizedError("Account is suspended")

        user.last_login_at = utcnow()
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_profile(user_id: str, db: AsyncSession) -> User:
        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def update_profile(user_id: str, data: ProfileUpdate, db: AsyncSession) -> User:
        user = await AuthService.get_profile(user_id, db)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("email"):
            email = updates["email"].lower()
            if email != user.email:
                existing = await AuthService.get_user_by_email(email, db)
                if existing and existing.id != user.id:
                    raise ConflictError("Email already taken")
            user.email = email
        if updates.get("name"):
            user.name = updates["name"]

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def change_password(user_id: str, data: PasswordChange, db: AsyncSession) -> None:
        user = await AuthService.get_profile(user_id, db)
        if not AuthService.verify_password(data.current_password, user.password_hash):
            raise UnauthorizedError("Current password is incorrect")
        if data.current_password == data.new_password:
            raise BadRequestError("New password must differ from the current password")
        user.password_hash = AuthService.hash_password(data.new_password)
        await db.commit()

    @staticmethod
    async def delete_account(user_id: str, password: str, db: AsyncSession) -> None:
        user = await AuthService.get_profile(user_id, db)
        if not AuthService.verify_password(password, user.password_hash):
            raise UnauthorizedError("Password is incorrect")
        await db.delete(user)
        await db.commit()
        logger.info(f"Deleted account {user_id}")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def load_tenant_context(user_id: str, organization_id: Optional[str], db: AsyncSession):
    """Resolve (org_role, team_ids) for a user inside an organization."""
    if not organization_id:
        return None, []

    membership = (await db.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
    )).scalar_one_or_none()
    if not membership:
        raise ForbiddenError("Not a member of this organization")

    team_rows = await db.execute(
        select(TeamMembership.team_id)
        .join(Team, Team.id == TeamMembership.team_id)
        .where(TeamMembership.user_id == user_id, Team.organization_id == organization_id)
    )
    return membership.role.value, [row[0] for row in team_rows.all()]


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    x_organization_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")

    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise ForbiddenError("Account is suspended")

    org_role, team_ids = await load_tenant_context(user.id, x_organization_id, db)

    return CurrentUser(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
        is_active=user.is_active,
        organization_id=x_organization_id or None,
        org_role=org_role,
        team_ids=team_ids,
    )


def require_min_role(min_role: UserRole):
    """Dependency factory: require user role level >= min_role"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        user_level = ROLE_HIERARCHY.get(UserRole(user.role), 0)
        required_level = ROLE_HIERARCHY.get(min_role, 0)
        if user_level < required_level:
            raise ForbiddenError("Insufficient role level")
        return user
    return _check


async def require_organization(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.organization_id:
        raise BadRequestError("Organization context required")
    return user


def require_min_org_role(min_role: OrgRole):
    """Dependency factory: organization context with org role level >= min_role"""
    async def _check(user: CurrentUser = Depends(require_organization)) -> CurrentUser:
        user_level = ORG_ROLE_HIERARCHY.get(OrgRole(user.org_role), 0) if user.org_role else 0
        if user_level < ORG_ROLE_HIERARCHY[min_role]:
            raise ForbiddenError("Insufficient organization role")
        return user
    return _check
