# ai_dispatch.py — AI function-dispatch layer
# Maps a function name + argument object from the assistant loop onto the
# task operations, scoped to the caller's access rights.
# - execute_function() never raises: every outcome is {success, result|error}
# - every invocation, successful or not, lands in ai_audit_logs
# - per-user conversation persistence (get / save / clear)
import logging
from typing import Optional, List, Dict, Any, Literal

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import AccessContext
from analytics_service import AnalyticsService
from models import AIAuditLog, AIConversation, TaskPriority, TaskStatus, utcnow
from task_service import TaskService, TaskCreate, TaskUpdate, TaskFilters, task_to_dict

logger = logging.getLogger("taskflow.ai")

DEFAULT_LIST_LIMIT = 10
SEARCH_LIMIT = 10

_PRIORITIES = [p.value for p in TaskPriority]
_STATUSES = [s.value for s in TaskStatus]

# ============================================================
# FUNCTION CATALOGUE (JSON-schema definitions for the model)
# ============================================================

AI_FUNCTIONS: List[Dict[str, Any]] = [
    {
        "name": "create_task",
        "description": "Create a new task with specified title, description, due date, and priority",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Task title (max 200 chars)"},
                "description": {"type": "string", "description": "Task description"},
                "due_date": {"type": "string", "description": "Due date in ISO format"},
                "priority": {"type": "string", "enum": _PRIORITIES, "description": "Task priority"},
                "assigned_to_id": {"type": "string", "description": "Optional user ID to assign task to"},
            },
            "required": ["title"],
        },
    },
    {
        "name": "list_tasks",
        "description": "List tasks with optional filters",
        "parameters": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": _STATUSES},
                "priority": {"type": "string", "enum": _PRIORITIES},
                "assigned_to_me": {"type": "boolean", "description": "Filter to tasks assigned to current user"},
                "overdue": {"type": "boolean", "description": "Filter to overdue tasks"},
                "limit": {"type": "number", "description": "Max number of tasks to return"},
            },
        },
    },
    {
        "name": "update_task",
        "description": "Update an existing task",
        "parameters": {
            "type": "object",
            "properties": {
                "task_id": {"type": "string", "description": "Task ID to update"},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "status": {"type": "string", "enum": _STATUSES},
                "priority": {"type": "string", "enum": _PRIORITIES},
                "due_date": {"type": "string"},
                "assigned_to_id": {"type": "string"},
            },
            "required": ["task_id"],
        },
    },
    {
        "name": "delete_task",
        "description": "Delete a task by ID",
        "parameters": {
            "type": "object",
            "properties": {
                "task_id": {"type": "string", "description": "Task ID to delete"},
            },
            "required": ["task_id"],
        },
    },
    {
        "name": "get_analytics",
        "description": "Get task analytics and insights",
        "parameters": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["overview", "trends", "priority", "productivity"],
                    "description": "Type of analytics to retrieve",
                },
                "days": {"type": "number", "description": "Number of days to analyze (default 7)"},
            },
            "required": ["type"],
        },
    },
    {
        "name": "search_tasks",
        "description": "Search for tasks by keyword",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
            },
            "required": ["query"],
        },
    },
]


# ============================================================
# ARGUMENT SCHEMAS
# ============================================================

class ListTasksArgs(BaseModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to_me: bool = False
    overdue: bool = False
    limit: int = Field(default=DEFAULT_LIST_LIMIT, ge=1, le=50)


class UpdateTaskArgs(TaskUpdate):
    task_id: str


class DeleteTaskArgs(BaseModel):
    task_id: str


class AnalyticsArgs(BaseModel):
    type: Literal["overview", "trends", "priority", "productivity"]
    days: int = Field(default=7, ge=1, le=365)


class SearchArgs(BaseModel):
    query: str = Field(..., min_length=1)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system", "function"]
    content: str
    name: Optional[str] = None


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "Invalid arguments: " + "; ".join(parts)


# ============================================================
# DISPATCHER
# ============================================================

class AIDispatcher:
    def __init__(self, db: AsyncSession, realtime=None):
        self.db = db
        self.tasks = TaskService(db, realtime=realtime)
        self.analytics = AnalyticsService(db)
        self._handlers = {
            "create_task": self._create_task,
            "list_tasks": self._list_tasks,
            "update_task": self._update_task,
            "delete_task": self._delete_task,
            "get_analytics": self._get_analytics,
            "search_tasks": self._search_tasks,
        }

    async def execute_function(self, name: str, args: Optional[Dict[str, Any]], ctx: AccessContext) -> Dict[str, Any]:
        args = args or {}
        handler = self._handlers.get(name)
        if handler is None:
            outcome = {"success": False, "error": f"Unknown function: {name}"}
        else:
            try:
                outcome = {"success": True, "result": await handler(args, ctx)}
            except ValidationError as e:
                outcome = {"success": False, "error": _validation_message(e)}
            except Exception as e:
                await self.db.rollback()
                logger.warning(f"AI function {name} failed for user={ctx.user_id[:8]}: {e}")
                outcome = {"success": False, "error": str(e) or e.__class__.__name__}

        await self._log_action(ctx.user_id, name, args, outcome)
        return outcome

    async def _log_action(self, user_id: str, action: str, params: Dict[str, Any], outcome: Dict[str, Any]) -> None:
        try:
            self.db.add(AIAuditLog(
                user_id=user_id,
                action=action,
                params=params,
                result="SUCCESS" if outcome["success"] else "FAILED",
                error=outcome.get("error"),
            ))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"AI audit write failed: {action} by user={user_id[:8]}")

    # --- Handlers ---

    async def _create_task(self, args: Dict[str, Any], ctx: AccessContext):
        mutation = await self.tasks.create(ctx, TaskCreate(**args))
        return task_to_dict(mutation.task)

    async def _list_tasks(self, args: Dict[str, Any], ctx: AccessContext):
        parsed = ListTasksArgs(**args)
        filters = TaskFilters(
            status=parsed.status,
            priority=parsed.priority,
            assigned_to_id=ctx.user_id if parsed.assigned_to_me else None,
            overdue=parsed.overdue,
            sort_by="priority",
            sort_order="desc",
            limit=parsed.limit,
        )
        return [task_to_dict(t) for t in await self.tasks.list_tasks(ctx, filters)]

    async def _update_task(self, args: Dict[str, Any], ctx: AccessContext):
        parsed = UpdateTaskArgs(**args)
        changes = TaskUpdate(**parsed.model_dump(exclude_unset=True, exclude={"task_id"}))
        mutation = await self.tasks.update(ctx, parsed.task_id, changes)
        return task_to_dict(mutation.task)

    async def _delete_task(self, args: Dict[str, Any], ctx: AccessContext):
        parsed = DeleteTaskArgs(**args)
        await self.tasks.delete(ctx, parsed.task_id)
        return {"message": "Task deleted successfully"}

    async def _get_analytics(self, args: Dict[str, Any], ctx: AccessContext):
        parsed = AnalyticsArgs(**args)
        if parsed.type == "overview":
            return await self.analytics.overview(ctx.user_id, ctx.organization_id)
        if parsed.type == "trends":
            return await self.analytics.completion_trends(ctx.user_id, parsed.days)
        if parsed.type == "priority":
            return await self.analytics.priority_distribution(ctx.user_id)
        return await self.analytics.productivity(ctx.user_id, days=parsed.days)

    async def _search_tasks(self, args: Dict[str, Any], ctx: AccessContext):
        parsed = SearchArgs(**args)
        filters = TaskFilters(search=parsed.query, limit=SEARCH_LIMIT)
        return [task_to_dict(t) for t in await self.tasks.list_tasks(ctx, filters)]


# ============================================================
# CONVERSATIONS
# ============================================================

async def _latest_conversation(db: AsyncSession, user_id: str) -> Optional[AIConversation]:
    result = await db.execute(
        select(AIConversation)
        .where(AIConversation.user_id == user_id)
        .order_by(AIConversation.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_conversation(db: AsyncSession, user_id: str) -> Dict[str, Any]:
    conversation = await _latest_conversation(db, user_id)
    if not conversation:
        return {"id": None, "messages": []}
    return {"id": conversation.id, "messages": conversation.messages or []}


async def save_conversation(db: AsyncSession, user_id: str, messages: List[ChatMessage]) -> Dict[str, Any]:
    payload = [m.model_dump(exclude_none=True) for m in messages]
    conversation = await _latest_conversation(db, user_id)
    if conversation:
        conversation.messages = payload
        conversation.updated_at = utcnow()
    else:
        conversation = AIConversation(user_id=user_id, messages=payload)
        db.add(conversation)
    await db.commit()
    return {"id": conversation.id, "messages": payload}


async def clear_conversation(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(delete(AIConversation).where(AIConversation.user_id == user_id))
    await db.commit()
    return result.rowcount
