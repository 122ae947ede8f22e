from __future__ import annotations

from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackState(IntEnum):
    UNKNOWN = -1
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3


class Thumbnail(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    width: int = 0
    height: int = 0


class VideoDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    author: str = ""
    album: Optional[str] = None
    durationSeconds: int = 0
    thumbnails: List[Thumbnail] = Field(default_factory=list)


class QueueItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    thumbnails: List[Thumbnail] = Field(default_factory=list)
    title: str = ""
    author: str = ""
    # display string as shown by the player, e.g. "3:45"
    duration: str = ""


class QueueState(BaseModel):
    model_config = ConfigDict(frozen=True)

    # None keeps the slot of an item whose shape was not recognised
    items: List[Optional[QueueItem]] = Field(default_factory=list)
    automixItems: List[Optional[QueueItem]] = Field(default_factory=list)
    # Upstream can report 0 while another item is playing (first navigation
    # straight to a video + playlist). Forwarded as reported.
    selectedItemIndex: int = 0
    repeatMode: int = 0
    shuffleEnabled: bool = False
    autoplay: bool = False
    isGenerating: bool = False
    isInfinite: bool = False


class PlayerState(BaseModel):
    """Immutable playback snapshot. A new instance is built on every update."""

    model_config = ConfigDict(frozen=True)

    trackState: TrackState = TrackState.UNKNOWN
    # only meaningful while videoDetails is set
    videoProgressSeconds: float = 0.0
    videoDetails: Optional[VideoDetails] = None
    queue: Optional[QueueState] = None

    # internal bookkeeping, never forwarded to companions
    playlistId: Optional[str] = None
    rawTrackState: Optional[int] = None
