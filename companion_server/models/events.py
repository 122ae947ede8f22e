from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel

from companion_server.models.player import PlayerState, QueueItem, Thumbnail


EventType = Literal[
    "state-update",
    "playlist-created",
    "playlist-deleted",
]


class RealtimeEvent(BaseModel):
    type: EventType
    data: Any


# =========================
# PUBLIC STATE VIEW
# =========================
# Explicit shape so changes in how the embedded player reports data do not
# leak into the companion API.

class PublicQueue(BaseModel):
    autoplay: bool
    shuffleEnabled: bool
    items: List[Optional[QueueItem]]
    automixItems: List[Optional[QueueItem]]
    isGenerating: bool
    isInfinite: bool
    repeatMode: int
    selectedItemIndex: int


class PublicPlayer(BaseModel):
    trackState: int
    videoProgress: float
    queue: Optional[PublicQueue] = None


class PublicVideo(BaseModel):
    author: str
    title: str
    album: Optional[str] = None
    thumbnails: List[Thumbnail]
    durationSeconds: int
    id: str


class PublicStateView(BaseModel):
    player: PublicPlayer
    video: Optional[PublicVideo] = None


def to_public_view(state: PlayerState) -> PublicStateView:
    queue = None
    if state.queue is not None:
        q = state.queue
        queue = PublicQueue(
            autoplay=q.autoplay,
            shuffleEnabled=q.shuffleEnabled,
            items=list(q.items),
            automixItems=list(q.automixItems),
            isGenerating=q.isGenerating,
            isInfinite=q.isInfinite,
            repeatMode=q.repeatMode,
            selectedItemIndex=q.selectedItemIndex,
        )

    video = None
    if state.videoDetails is not None:
        v = state.videoDetails
        video = PublicVideo(
            author=v.author,
            title=v.title,
            album=v.album,
            thumbnails=list(v.thumbnails),
            durationSeconds=v.durationSeconds,
            id=v.id,
        )

    return PublicStateView(
        player=PublicPlayer(
            trackState=int(state.trackState),
            videoProgress=state.videoProgressSeconds,
            queue=queue,
        ),
        video=video,
    )
