from __future__ import annotations

import logging
import math
from typing import Any, Callable, List, Optional

from companion_server.models.player import PlayerState
from companion_server.services.telemetry import (
    decode_queue,
    decode_video_details,
    map_track_state,
)

log = logging.getLogger("companion.aggregator")

StateListener = Callable[[PlayerState], None]


class StateAggregator:
    """
    Turns raw player telemetry into immutable PlayerState snapshots.

    - every accepted update replaces the snapshot (never mutated in place)
    - listeners run synchronously, in subscription order
    - a failing listener is logged and skipped, the others still run
    - transient track codes (-1, 5, unknown) are kept as bookkeeping only:
      they neither change trackState nor notify, so consumers do not see the
      loading blips between two stable states
    """

    def __init__(self) -> None:
        self._state = PlayerState()
        self._listeners: List[StateListener] = []

    # =========================
    # Subscriptions
    # =========================

    def subscribe(self, listener: StateListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def get_state(self) -> PlayerState:
        return self._state

    # =========================
    # Telemetry
    # =========================

    def update_progress(self, seconds: Any) -> None:
        try:
            progress = float(seconds)
        except (TypeError, ValueError):
            progress = math.nan
        if not math.isfinite(progress):
            log.warning("progress_ignored", extra={"value": repr(seconds)})
            return
        progress = max(0.0, progress)
        self._replace(videoProgressSeconds=progress)

    def update_track_state(self, raw_code: Any) -> None:
        mapped = map_track_state(raw_code)
        raw = raw_code if isinstance(raw_code, int) else None

        if mapped is None or mapped == self._state.trackState:
            self._replace(notify=False, rawTrackState=raw)
            return

        self._replace(trackState=mapped, rawTrackState=raw)

    def update_video_details(self, details: Any, playlist_id: Optional[str] = None) -> None:
        decoded = decode_video_details(details)
        if decoded is None:
            log.warning("video_details_ignored")
            return

        fields = {"videoDetails": decoded, "playlistId": playlist_id}
        current = self._state.videoDetails
        if current is None or current.id != decoded.id:
            fields["videoProgressSeconds"] = 0.0
        self._replace(**fields)

    def update_queue(self, raw_queue: Any) -> None:
        if raw_queue is None:
            self._replace(queue=None)
            return

        decoded = decode_queue(raw_queue)
        if decoded is None:
            log.warning("queue_ignored")
            return
        self._replace(queue=decoded)

    # =========================
    # Internals
    # =========================

    def _replace(self, notify: bool = True, **fields: Any) -> None:
        self._state = self._state.model_copy(update=fields)
        if notify:
            self._notify(self._state)

    def _notify(self, state: PlayerState) -> None:
        # copy: a listener may unsubscribe itself while being notified
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception(
                    "state_listener_failed",
                    extra={"listener": getattr(listener, "__qualname__", repr(listener))},
                )
