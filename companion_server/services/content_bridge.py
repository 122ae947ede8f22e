from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from companion_server.core.errors import ContentResultTimeout, ContentUnavailable
from companion_server.models.command import RemoteCommand
from companion_server.services.resume_point import ResumePointTracker
from companion_server.services.state_aggregator import StateAggregator

log = logging.getLogger("companion.content")

CatalogListener = Callable[[str, Any], None]


class ContentConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ContentBridge:
    """
    Link to the embedded player page.

    - at most one content connection (the embedded view)
    - inbound telemetry goes to the aggregator
    - commands are fire-and-forget
    - catalog queries are correlated by request id with a bounded wait
    """

    def __init__(
        self,
        aggregator: StateAggregator,
        resume: Optional[ResumePointTracker] = None,
    ) -> None:
        self.aggregator = aggregator
        self.resume = resume

        self._conn: Optional[ContentConnection] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._catalog_listeners: List[CatalogListener] = []

    # =========================
    # Connection
    # =========================

    @property
    def available(self) -> bool:
        return self._conn is not None

    def attach(self, conn: ContentConnection) -> None:
        if self._conn is not None and self._conn is not conn:
            log.warning("content_connection_replaced")
            self._fail_pending()
        self._conn = conn
        log.info("content_attached")

    def detach(self, conn: ContentConnection) -> None:
        if self._conn is not conn:
            return
        self._conn = None
        self._fail_pending()
        log.info("content_detached")

    def subscribe_catalog(self, listener: CatalogListener) -> None:
        self._catalog_listeners.append(listener)

    def unsubscribe_catalog(self, listener: CatalogListener) -> None:
        try:
            self._catalog_listeners.remove(listener)
        except ValueError:
            pass

    # =========================
    # Outbound
    # =========================

    async def send_command(self, command: RemoteCommand, value: Any = None) -> bool:
        conn = self._conn
        if conn is None:
            log.debug("content_command_dropped", extra={"command": command})
            return False
        try:
            await conn.send_json({"type": "remoteControl:execute", "data": {"command": command, "value": value}})
        except Exception:
            log.warning("content_command_send_failed", extra={"command": command})
            return False
        return True

    async def request(self, kind: str, timeout_s: float) -> Any:
        conn = self._conn
        if conn is None:
            raise ContentUnavailable()

        request_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            try:
                await conn.send_json({"type": kind, "data": {"requestId": request_id}})
            except Exception:
                log.warning("content_request_send_failed", extra={"kind": kind})
                raise ContentUnavailable()
            try:
                return await asyncio.wait_for(future, timeout_s)
            except asyncio.TimeoutError:
                log.warning("content_request_timeout", extra={"kind": kind, "request_id": request_id})
                raise ContentResultTimeout()
        finally:
            self._pending.pop(request_id, None)

    async def get_playlists(self, timeout_s: float) -> Any:
        return await self.request("getPlaylists", timeout_s)

    # =========================
    # Inbound
    # =========================

    def handle_message(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            log.debug("content_msg_ignored")
            return

        msg_type = msg.get("type")
        data = msg.get("data")

        if msg_type == "videoProgressChanged":
            self.aggregator.update_progress(data)
        elif msg_type == "videoStateChanged":
            self.aggregator.update_track_state(data)
        elif msg_type == "videoDataChanged":
            data = data if isinstance(data, dict) else {}
            self.aggregator.update_video_details(data.get("videoDetails"), data.get("playlistId"))
        elif msg_type == "storeStateChanged":
            self.aggregator.update_queue(data)
        elif msg_type == "urlChanged":
            if self.resume is not None and isinstance(data, dict) and isinstance(data.get("url"), str):
                self.resume.update_url(data["url"])
        elif msg_type == "getPlaylists:response":
            self._resolve(data)
        elif msg_type == "createPlaylistObserved":
            self._emit_catalog("playlist-created", data)
        elif msg_type == "deletePlaylistObserved":
            self._emit_catalog("playlist-deleted", data)
        else:
            log.debug("content_unknown_msg", extra={"type": msg_type})

    def _resolve(self, data: Any) -> None:
        if not isinstance(data, dict):
            return
        future = self._pending.get(str(data.get("requestId")))
        if future is None or future.done():
            # late answer after timeout
            log.debug("content_response_unmatched")
            return
        future.set_result(data.get("playlists"))

    def _emit_catalog(self, event: str, data: Any) -> None:
        log.info("content_catalog_changed", extra={"event": event})
        for listener in list(self._catalog_listeners):
            try:
                listener(event, data)
            except Exception:
                log.exception("catalog_listener_failed", extra={"event": event})

    def _fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ContentUnavailable())
        self._pending.clear()
