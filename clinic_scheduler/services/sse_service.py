# clinic_scheduler/services/sse_service.py
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


class SSEBroker:
    """In-process registry of server-sent-event connections, keyed by user."""

    def __init__(self, heartbeat_seconds: int = 30):
        self.heartbeat_seconds = heartbeat_seconds
        self._clients: Dict[int, Dict[str, asyncio.Queue]] = {}

    def connect(self, user_id: int) -> Tuple[str, asyncio.Queue]:
        client_id = uuid.uuid4().hex
        queue: asyncio.Queue = asyncio.Queue()
        self._clients.setdefault(user_id, {})[client_id] = queue
        queue.put_nowait({
            "type": "connected",
            "message": "Connected to real-time notifications",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        logger.info(f"SSE client {client_id} connected for user {user_id}")
        return client_id, queue

    def disconnect(self, user_id: int, client_id: str) -> None:
        clients = self._clients.get(user_id)
        if not clients:
            return
        clients.pop(client_id, None)
        if not clients:
            del self._clients[user_id]
        logger.info(f"SSE client {client_id} disconnected for user {user_id}")

    def send_to_user(self, user_id: int, payload: Dict[str, Any]) -> int:
        """Queue ``payload`` on every connection of ``user_id``; returns how many."""
        clients = self._clients.get(user_id, {})
        for queue in clients.values():
            queue.put_nowait(payload)
        return len(clients)

    def stats(self) -> Dict[str, Any]:
        return {
            "total_connections": sum(len(c) for c in self._clients.values()),
            "unique_users": len(self._clients),
            "users": sorted(self._clients),
        }

    async def stream(
        self,
        user_id: int,
        client_id: str,
        queue: asyncio.Queue,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        """Yield SSE frames for one connection, with heartbeats while idle."""
        try:
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield format_sse(payload)
        finally:
            self.disconnect(user_id, client_id)
