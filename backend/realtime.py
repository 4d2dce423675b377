# realtime.py — Real-time push hub
# Services receive the hub through their constructor and call it only after
# their mutation has committed:
#   emit(event, payload)                  : broadcast to every connected client
#   emit_to_user(user_id, event, payload) : deliver to one user's sockets
import logging
from datetime import datetime, timezone
from typing import Dict, Set, Any, Optional

from fastapi import WebSocket

logger = logging.getLogger("taskflow.ws")


class ConnectionManager:
    """Tracks open WebSocket connections per user"""

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}  # user_id -> {ws}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self._connections.setdefault(user_id, set()).add(websocket)
        logger.info(f"WS connected: user={user_id[:8]}")

    def disconnect(self, websocket: WebSocket, user_id: str):
        sockets = self._connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]
        logger.info(f"WS disconnected: user={user_id[:8]}")

    @staticmethod
    def _message(event: str, payload: Any) -> dict:
        return {
            "type": event,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _send(self, user_id: str, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"WS send failed for user={user_id[:8]}: {e}")
            return False

    async def emit(self, event: str, payload: Any):
        message = self._message(event, payload)
        dead = []
        for user_id, sockets in list(self._connections.items()):
            for ws in list(sockets):
                if not await self._send(user_id, ws, message):
                    dead.append((ws, user_id))
        for ws, user_id in dead:
            self.disconnect(ws, user_id)

    async def emit_to_user(self, user_id: str, event: str, payload: Any):
        message = self._message(event, payload)
        for ws in list(self._connections.get(user_id, ())):
            if not await self._send(user_id, ws, message):
                self.disconnect(ws, user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def get_stats(self) -> dict:
        return {
            "online_users": len(self._connections),
            "total_connections": sum(len(s) for s in self._connections.values()),
        }


# Process-wide hub used by the HTTP layer
manager = ConnectionManager()


def get_realtime() -> Optional[ConnectionManager]:
    """Dependency returning the push hub (overridable in tests)"""
    return manager
