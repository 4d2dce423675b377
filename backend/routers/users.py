# routers/users.py — Directory of assignable users
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import User, Membership

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("")
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(default=100, ge=1, le=500),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Active users the caller can assign work to (organization members in org context)"""
    stmt = select(User).where(User.is_active.is_(True))
    if user.organization_id:
        stmt = stmt.join(Membership, Membership.user_id == User.id).where(
            Membership.organization_id == user.organization_id
        )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    stmt = stmt.order_by(User.name.asc()).limit(limit)

    result = await db.execute(stmt)
    return [{"id": u.id, "name": u.name, "email": u.email} for u in result.scalars().all()]
