from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List

from fastapi import WebSocket

log = logging.getLogger("ws")


@dataclass(frozen=True)
class RealtimeSubscriber:
    connection_id: str
    app_name: str
    websocket: WebSocket


class WebSocketManager:
    """Authenticated realtime subscribers, delivered to in connection order."""

    def __init__(self, *, send_timeout_s: float = 2.0) -> None:
        self.send_timeout_s = send_timeout_s
        self._subscribers: Dict[str, RealtimeSubscriber] = {}
        self._lock = asyncio.Lock()

    def count(self) -> int:
        return len(self._subscribers)

    def subscribers(self) -> List[RealtimeSubscriber]:
        return list(self._subscribers.values())

    async def connect(self, ws: WebSocket, app_name: str) -> RealtimeSubscriber:
        await ws.accept()
        sub = RealtimeSubscriber(connection_id=str(uuid.uuid4()), app_name=app_name, websocket=ws)
        async with self._lock:
            self._subscribers[sub.connection_id] = sub
        log.info("ws_connected", extra={"connection_id": sub.connection_id, "app_name": app_name})
        return sub

    async def disconnect(self, sub: RealtimeSubscriber) -> None:
        async with self._lock:
            removed = self._subscribers.pop(sub.connection_id, None)
        if removed is not None:
            log.info("ws_disconnected", extra={"connection_id": sub.connection_id, "app_name": sub.app_name})

    async def disconnect_app(self, app_name: str) -> int:
        """Close every socket of an app whose tokens were revoked."""
        async with self._lock:
            subs = [s for s in self._subscribers.values() if s.app_name == app_name]
            for s in subs:
                self._subscribers.pop(s.connection_id, None)

        for s in subs:
            await self._close_quietly(s, code=4401, reason="UNAUTHORIZED")
        return len(subs)

    async def broadcast(self, message: dict) -> None:
        # sends run outside the lock, each bounded by send_timeout_s
        async with self._lock:
            subs = list(self._subscribers.values())
        if not subs:
            return

        results = await asyncio.gather(*(self._send(sub, message) for sub in subs))
        dead = [sub for sub, ok in zip(subs, results) if not ok]
        if not dead:
            return

        async with self._lock:
            for sub in dead:
                self._subscribers.pop(sub.connection_id, None)
        log.warning("ws_subscribers_pruned", extra={"removed": len(dead), "subscribers": len(self._subscribers)})

        for sub in dead:
            await self._close_quietly(sub, code=1011, reason="SEND_FAILED")

    async def _send(self, sub: RealtimeSubscriber, message: dict) -> bool:
        try:
            await asyncio.wait_for(sub.websocket.send_json(message), timeout=self.send_timeout_s)
            return True
        except asyncio.TimeoutError:
            log.warning("ws_send_timeout", extra={"connection_id": sub.connection_id, "app_name": sub.app_name})
            return False
        except Exception:
            return False

    async def _close_quietly(self, sub: RealtimeSubscriber, *, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(sub.websocket.close(code=code, reason=reason), timeout=self.send_timeout_s)
        except Exception:
            log.debug("ws_close_failed", extra={"connection_id": sub.connection_id})
