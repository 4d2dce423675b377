# routers/admin.py — Admin surface: users, bulk task operations, audit log
# Every route requires ADMIN or above.
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admin_service import AdminService, AdminUserCreate, AdminUserUpdate, SuspendRequest
from audit_service import AuditService, AuditActor, AuditLogFilters, DEFAULT_PAGE_SIZE
from auth import require_min_role, CurrentUser, user_to_dict
from bulk_service import BulkService, BulkOperationRequest, BulkPreviewRequest, BulkOperationResult
from database import get_db_session
from models import UserRole
from realtime import get_realtime

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])

require_admin = require_min_role(UserRole.ADMIN)


# ============================================================
# DASHBOARD & USERS
# ============================================================

@router.get("/stats")
async def dashboard_stats(
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await AdminService(db).get_stats()


@router.get("/users")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await AdminService(db).list_users(page, limit, role, is_active, search)


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await AdminService(db).get_user(user_id)


@router.post("/users", status_code=201)
async def create_user(
    data: AdminUserCreate,
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    user = await AdminService(db).create_user(data, AuditActor.from_request(admin, request), admin.role)
    return user_to_dict(user)


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    data: AdminUserUpdate,
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    user = await AdminService(db).update_user(user_id, data, AuditActor.from_request(admin, request), admin.role)
    return user_to_dict(user)


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: str,
    request: Request,
    data: Optional[SuspendRequest] = None,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    user = await AdminService(db).suspend_user(
        user_id, AuditActor.from_request(admin, request), data.reason if data else None,
    )
    return user_to_dict(user)


@router.post("/users/{user_id}/activate")
async def activate_user(
    user_id: str,
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    user = await AdminService(db).activate_user(user_id, AuditActor.from_request(admin, request))
    return user_to_dict(user)


# ============================================================
# BULK OPERATIONS
# ============================================================

@router.post("/tasks/bulk", response_model=BulkOperationResult)
async def bulk_operation(
    data: BulkOperationRequest,
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    """Apply one action to many tasks; missing ids are reported, not fatal"""
    return await BulkService(db, realtime).execute(data, AuditActor.from_request(admin, request))


@router.post("/tasks/bulk/preview")
async def bulk_preview(
    data: BulkPreviewRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await BulkService(db).preview(data.task_ids)


# ============================================================
# AUDIT LOG
# ============================================================

@router.get("/audit-logs")
async def audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=200),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    filters = AuditLogFilters(
        entity_type=entity_type, entity_id=entity_id, actor_id=actor_id,
        action=action, start_date=start_date, end_date=end_date,
    )
    return await AuditService(db).get_logs(filters, page, limit)


@router.get("/audit-logs/{entity_type}/{entity_id}")
async def entity_audit_history(
    entity_type: str,
    entity_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await AuditService(db).get_entity_history(entity_type, entity_id, limit)
