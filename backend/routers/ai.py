# routers/ai.py — AI assistant function catalogue, dispatch and conversation store
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import AccessContext
from ai_dispatch import (
    AI_FUNCTIONS, AIDispatcher, ChatMessage,
    get_conversation, save_conversation, clear_conversation,
)
from auth import get_current_user, CurrentUser
from database import get_db_session
from realtime import get_realtime

router = APIRouter(prefix="/api/v1/ai", tags=["AI Assistant"])


class ExecuteRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    arguments: Optional[Dict[str, Any]] = Field(default_factory=dict)


class ConversationSave(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list, max_length=500)


@router.get("/functions")
async def list_functions(user: CurrentUser = Depends(get_current_user)):
    """JSON-schema definitions of the callable task functions"""
    return AI_FUNCTIONS


@router.post("/execute")
async def execute_function(
    data: ExecuteRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    """Dispatch one function call; failures come back as {success: false, error}"""
    dispatcher = AIDispatcher(db, realtime)
    return await dispatcher.execute_function(data.name, data.arguments, AccessContext.from_user(user))


@router.get("/conversation")
async def read_conversation(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await get_conversation(db, user.id)


@router.put("/conversation")
async def write_conversation(
    data: ConversationSave,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await save_conversation(db, user.id, data.messages)


@router.delete("/conversation")
async def delete_conversation(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    removed = await clear_conversation(db, user.id)
    return {"status": "cleared", "removed": removed}
