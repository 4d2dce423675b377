# audit_service.py — Append-only audit trail
# - log(): written after the business mutation commits, on its own session
#   bound to the same engine; a failed write is rolled back and logged,
#   never raised to the caller, and leaves the caller's session untouched
# - get_logs(): filtered, offset-paginated read model for the admin surface
# - get_entity_history(): latest entries for one entity
# The metadata column is a tagged union keyed by action: each bulk action has
# one concrete shape, decoded when entries are read back.
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Union, Literal, Annotated

from fastapi import Request
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from models import AuditLog, AuditAction

logger = logging.getLogger("taskflow.audit")

DEFAULT_PAGE_SIZE = 50
ENTITY_HISTORY_LIMIT = 20


# ============================================================
# ACTOR
# ============================================================

@dataclass
class AuditActor:
    id: str
    email: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, user, request: Optional[Request] = None) -> "AuditActor":
        return cls(
            id=user.id,
            email=user.email,
            ip=request.client.host if request and request.client else None,
            user_agent=request.headers.get("user-agent") if request else None,
        )


# ============================================================
# METADATA SHAPES (one per action)
# ============================================================

class _BulkMetadata(BaseModel):
    task_ids: List[str]
    missing_ids: List[str] = []
    count: int


class BulkAssignMetadata(_BulkMetadata):
    action: Literal["BULK_ASSIGN"] = "BULK_ASSIGN"
    assignee_id: str
    assignee_name: str


class BulkStatusMetadata(_BulkMetadata):
    action: Literal["BULK_STATUS_UPDATE"] = "BULK_STATUS_UPDATE"
    new_status: str


class BulkPriorityMetadata(_BulkMetadata):
    action: Literal["BULK_PRIORITY_UPDATE"] = "BULK_PRIORITY_UPDATE"
    new_priority: str


class BulkDeleteMetadata(_BulkMetadata):
    action: Literal["BULK_DELETE"] = "BULK_DELETE"


class BulkArchiveMetadata(_BulkMetadata):
    action: Literal["BULK_ARCHIVE"] = "BULK_ARCHIVE"


class UserAdminMetadata(BaseModel):
    action: Literal["USER_CREATED", "USER_UPDATED", "USER_SUSPENDED", "USER_ACTIVATED"]
    target_email: str
    reason: Optional[str] = None


AuditMetadata = Annotated[
    Union[
        BulkAssignMetadata, BulkStatusMetadata, BulkPriorityMetadata,
        BulkDeleteMetadata, BulkArchiveMetadata, UserAdminMetadata,
    ],
    Field(discriminator="action"),
]

_metadata_adapter = TypeAdapter(AuditMetadata)


def decode_metadata(action: str, raw: Optional[Dict[str, Any]]):
    """Decode a stored metadata blob into its action-specific shape.

    Entries whose blob does not match any known shape are returned as-is.
    """
    if raw is None:
        return None
    try:
        return _metadata_adapter.validate_python({**raw, "action": action})
    except ValidationError:
        logger.warning(f"Audit metadata for {action} does not match a known shape")
        return raw


# ============================================================
# SCHEMAS
# ============================================================

class AuditLogFilters(BaseModel):
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    actor_id: Optional[str] = None
    action: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def audit_to_dict(entry: AuditLog) -> Dict[str, Any]:
    metadata = decode_metadata(entry.action, entry.metadata_)
    if isinstance(metadata, BaseModel):
        metadata = metadata.model_dump(mode="json")
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "actor_id": entry.actor_id,
        "actor_email": entry.actor_email,
        "actor_ip": entry.actor_ip,
        "user_agent": entry.user_agent,
        "changes": entry.changes,
        "metadata": metadata,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


# ============================================================
# SERVICE
# ============================================================

class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        entity_type: str,
        entity_id: str,
        action: Union[AuditAction, str],
        actor: AuditActor,
        changes: Optional[Dict[str, Any]] = None,
        metadata: Optional[Union[BaseModel, Dict[str, Any]]] = None,
    ) -> Optional[AuditLog]:
        action_name = action.value if isinstance(action, AuditAction) else action
        if isinstance(metadata, BaseModel):
            metadata = metadata.model_dump(mode="json", exclude={"action"})

        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action_name,
            actor_id=actor.id,
            actor_email=actor.email,
            actor_ip=actor.ip,
            user_agent=actor.user_agent,
            changes=changes,
            metadata_=metadata,
        )
        async with AsyncSession(self.db.bind, expire_on_commit=False) as audit_db:
            try:
                audit_db.add(entry)
                await audit_db.commit()
            except Exception:
                await audit_db.rollback()
                logger.exception(f"Audit write failed: {action_name} {entity_type}/{entity_id} by {actor.id}")
                return None
        logger.info(f"Audit: {action_name} {entity_type}/{entity_id} by {actor.email}")
        return entry

    async def get_logs(
        self,
        filters: Optional[AuditLogFilters] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        filters = filters or AuditLogFilters()
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if filters.entity_type:
            conditions.append(AuditLog.entity_type == filters.entity_type)
        if filters.entity_id:
            conditions.append(AuditLog.entity_id == filters.entity_id)
        if filters.actor_id:
            conditions.append(AuditLog.actor_id == filters.actor_id)
        if filters.action:
            conditions.append(AuditLog.action == filters.action)
        if filters.start_date:
            conditions.append(AuditLog.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(AuditLog.created_at <= filters.end_date)

        total = (await self.db.execute(
            select(func.count(AuditLog.id)).where(*conditions)
        )).scalar() or 0

        result = await self.db.execute(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "logs": [audit_to_dict(e) for e in result.scalars().all()],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    async def get_entity_history(
        self, entity_type: str, entity_id: str, limit: int = ENTITY_HISTORY_LIMIT,
    ) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return [audit_to_dict(e) for e in result.scalars().all()]
