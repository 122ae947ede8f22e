from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from companion_server.models.events import RealtimeEvent, to_public_view
from companion_server.models.player import PlayerState
from companion_server.services.content_bridge import ContentBridge
from companion_server.services.state_aggregator import StateAggregator
from companion_server.ws.manager import WebSocketManager

log = logging.getLogger("ws.event_bus")


class RealtimeEventBus:
    """
    Aggregator / catalog changes -> realtime subscribers.

    Listeners are synchronous, so events are queued in arrival order and a
    single pump task sends them. One FIFO and one consumer keep the delivery
    order identical to the update order.
    """

    def __init__(
        self,
        aggregator: StateAggregator,
        bridge: ContentBridge,
        manager: WebSocketManager,
        *,
        max_queued: int = 1000,
    ) -> None:
        self.aggregator = aggregator
        self.bridge = bridge
        self.manager = manager

        self._queue: "asyncio.Queue[dict]" = asyncio.Queue(maxsize=max_queued)
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.aggregator.subscribe(self.on_state)
        self.bridge.subscribe_catalog(self.on_catalog)
        self._task = asyncio.create_task(self._loop())
        log.info("event_bus_started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.aggregator.unsubscribe(self.on_state)
        self.bridge.unsubscribe_catalog(self.on_catalog)
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.info("event_bus_stopped")

    # =========================
    # Listeners
    # =========================

    def on_state(self, state: PlayerState) -> None:
        self._publish("state-update", to_public_view(state).model_dump(mode="json"))

    def on_catalog(self, event: str, data: Any) -> None:
        self._publish(event, data)

    def _publish(self, event_type: str, data: Any) -> None:
        if not self._running:
            return
        # no subscribers: nothing to order, nothing to send
        if self.manager.count() == 0:
            return
        event = RealtimeEvent(type=event_type, data=data).model_dump(mode="json")
        if self._queue.full():
            # oldest first, so the remaining events keep their order
            self._queue.get_nowait()
            self._queue.task_done()
            log.warning("event_bus_dropped_oldest", extra={"max_queued": self._queue.maxsize})
        self._queue.put_nowait(event)

    # =========================
    # Pump
    # =========================

    async def _loop(self) -> None:
        while self._running:
            message = await self._queue.get()
            try:
                await self.manager.broadcast(message)
            except Exception:
                log.exception("event_bus_broadcast_failed", extra={"type": message.get("type")})
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the sockets."""
        await self._queue.join()
