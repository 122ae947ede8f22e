"""
Decoding of telemetry payloads sent by the embedded player.

The player's internal data structures are not a stable contract, so every
decoder here is total: an unrecognised or broken shape yields None and never
raises.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from companion_server.models.player import (
    QueueItem,
    QueueState,
    Thumbnail,
    TrackState,
    VideoDetails,
)

log = logging.getLogger("companion.telemetry")

# Raw codes reported by the player:
#   -1 -> unknown (no buffered data)
#    1 -> playing
#    2 -> paused
#    3 -> buffering
#    5 -> loading a new track
# Observed flows:
#   play click:          -1 -> 5 -> -1 -> 3 -> 1
#   first play click:    -1 -> 3 -> 1
#   previous/next click: -1 -> 5 -> -1 -> 5 -> -1 -> 3 -> 1
STABLE_TRACK_STATES: Dict[int, TrackState] = {
    1: TrackState.PLAYING,
    2: TrackState.PAUSED,
    3: TrackState.BUFFERING,
}
TRANSIENT_TRACK_STATES = frozenset({-1, 5})


def map_track_state(raw: Any) -> Optional[TrackState]:
    """Stable TrackState for a raw code, None for transient/unknown codes."""
    try:
        code = int(raw)
    except (TypeError, ValueError):
        return None
    if code in TRANSIENT_TRACK_STATES:
        return None
    state = STABLE_TRACK_STATES.get(code)
    if state is None:
        log.debug("track_state_unknown", extra={"code": code})
    return state


def _runs_text(node: Any) -> Optional[str]:
    # {"runs": [{"text": "..."}]}
    if not isinstance(node, dict):
        return None
    runs = node.get("runs")
    if not isinstance(runs, list) or not runs:
        return None
    first = runs[0]
    if not isinstance(first, dict) or not isinstance(first.get("text"), str):
        return None
    return first["text"]


def decode_thumbnail(raw: Any) -> Optional[Thumbnail]:
    if not isinstance(raw, dict) or not isinstance(raw.get("url"), str):
        return None
    try:
        return Thumbnail(
            url=raw["url"],
            width=int(raw.get("width") or 0),
            height=int(raw.get("height") or 0),
        )
    except (TypeError, ValueError):
        return None


def decode_thumbnails(raw: Any) -> List[Thumbnail]:
    if not isinstance(raw, list):
        return []
    out = []
    for item in raw:
        thumb = decode_thumbnail(item)
        if thumb is not None:
            out.append(thumb)
    return out


# =========================
# QUEUE ITEMS (tagged union)
# =========================

def _direct_renderer(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return raw.get("playlistPanelVideoRenderer")


def _wrapped_renderer(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    wrapper = raw.get("playlistPanelVideoWrapperRenderer")
    if not isinstance(wrapper, dict):
        return None
    primary = wrapper.get("primaryRenderer")
    if not isinstance(primary, dict):
        return None
    return primary.get("playlistPanelVideoRenderer")


# tag -> extractor of the inner renderer
QUEUE_ITEM_SHAPES: Tuple[Tuple[str, Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]], ...] = (
    ("playlistPanelVideoRenderer", _direct_renderer),
    ("playlistPanelVideoWrapperRenderer", _wrapped_renderer),
)


def decode_queue_item(raw: Any) -> Optional[QueueItem]:
    if not isinstance(raw, dict):
        return None

    renderer = None
    for tag, extract in QUEUE_ITEM_SHAPES:
        if tag in raw:
            renderer = extract(raw)
            break

    if not isinstance(renderer, dict):
        return None

    thumbnail = renderer.get("thumbnail")
    title = _runs_text(renderer.get("title"))
    if title is None:
        return None

    return QueueItem(
        thumbnails=decode_thumbnails(thumbnail.get("thumbnails") if isinstance(thumbnail, dict) else None),
        title=title,
        author=_runs_text(renderer.get("shortBylineText")) or "",
        duration=_runs_text(renderer.get("lengthText")) or "",
    )


def decode_queue(raw: Any) -> Optional[QueueState]:
    if not isinstance(raw, dict):
        return None

    items = raw.get("items")
    automix = raw.get("automixItems")
    try:
        return QueueState(
            items=[decode_queue_item(i) for i in (items if isinstance(items, list) else [])],
            automixItems=[decode_queue_item(i) for i in (automix if isinstance(automix, list) else [])],
            selectedItemIndex=int(raw.get("selectedItemIndex") or 0),
            repeatMode=_repeat_mode(raw.get("repeatMode")),
            shuffleEnabled=bool(raw.get("shuffleEnabled")),
            autoplay=bool(raw.get("autoplay")),
            isGenerating=bool(raw.get("isGenerating")),
            isInfinite=bool(raw.get("isInfinite")),
        )
    except (TypeError, ValueError):
        log.warning("queue_decode_failed")
        return None


def _repeat_mode(raw: Any) -> int:
    # the player has reported both numbers and "NONE"/"ALL"/"ONE"
    if isinstance(raw, str):
        return {"NONE": 0, "ALL": 1, "ONE": 2}.get(raw.upper(), 0)
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


# =========================
# VIDEO DETAILS
# =========================

def decode_video_details(raw: Any) -> Optional[VideoDetails]:
    if not isinstance(raw, dict):
        return None

    video_id = raw.get("videoId")
    if not isinstance(video_id, str) or not video_id:
        return None

    try:
        duration = int(raw.get("lengthSeconds") or 0)
    except (TypeError, ValueError):
        duration = 0

    thumbnail = raw.get("thumbnail")
    album = raw.get("album")
    return VideoDetails(
        id=video_id,
        title=str(raw.get("title") or ""),
        author=str(raw.get("author") or ""),
        album=album if isinstance(album, str) else None,
        durationSeconds=duration,
        thumbnails=decode_thumbnails(thumbnail.get("thumbnails") if isinstance(thumbnail, dict) else None),
    )
