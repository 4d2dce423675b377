# routers/websocket_router.py — Real-time WebSocket endpoint
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from database import get_db_session
from errors import AppError, ForbiddenError, UnauthorizedError
from models import User
from realtime import manager

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskflow.ws")

# Close codes sent before the socket is registered with the hub
CLOSE_AUTH_FAILED = 4001
CLOSE_SUSPENDED = 4003


async def authenticate_socket(token: str, db: AsyncSession) -> str:
    """Resolve a query-string token to the id of an active user.

    Applies the same account checks as bearer authentication so a
    suspended user cannot keep receiving pushes.
    """
    payload = AuthService.verify_token(token)
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
    return user.id


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
):
    """Push channel: task:created / task:updated / task:deleted / notification:new"""
    try:
        user_id = await authenticate_socket(token, db)
    except ForbiddenError as e:
        await websocket.close(code=CLOSE_SUSPENDED, reason=e.detail)
        return
    except AppError:
        await websocket.close(code=CLOSE_AUTH_FAILED, reason="Authentication failed")
        return
    finally:
        # Release the pooled connection before the receive loop
        await db.close()

    await manager.connect(websocket, user_id)
    await websocket.send_json({
        "type": "connected",
        "user_id": user_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })

    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()})
    except WebSocketDisconnect:
        manager.disconnect(websocket, user_id)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket, user_id)


@router.get("/ws/stats")
async def websocket_stats():
    """Get WebSocket connection statistics"""
    return manager.get_stats()
