from __future__ import annotations

import logging
from typing import Dict, Optional

from companion_server.models.player import PlayerState
from companion_server.state.redis_keys import (
    RESUME_LAST_PLAYLIST_ID_KEY,
    RESUME_LAST_URL_KEY,
    RESUME_LAST_VIDEO_ID_KEY,
)
from companion_server.state.redis_state import RedisState

log = logging.getLogger("companion.resume")


class ResumePointTracker:
    """
    Remembers the last page/video/playlist for resume-on-restart.

    Values change often, so they are kept in memory and written once on
    shutdown (`flush`). The desktop shell reads them back with `load`.
    """

    def __init__(self, state: RedisState):
        self.state = state
        self.last_url: Optional[str] = None
        self.last_video_id: Optional[str] = None
        self.last_playlist_id: Optional[str] = None

    def on_state(self, snapshot: PlayerState) -> None:
        if snapshot.videoDetails is not None:
            self.last_video_id = snapshot.videoDetails.id
            self.last_playlist_id = snapshot.playlistId

    def update_url(self, url: str) -> None:
        self.last_url = url

    async def flush(self) -> None:
        if self.last_url is not None:
            await self.state.set_str(RESUME_LAST_URL_KEY, self.last_url)
        if self.last_video_id is not None:
            await self.state.set_str(RESUME_LAST_VIDEO_ID_KEY, self.last_video_id)
            if self.last_playlist_id:
                await self.state.set_str(RESUME_LAST_PLAYLIST_ID_KEY, self.last_playlist_id)
            else:
                await self.state.delete(RESUME_LAST_PLAYLIST_ID_KEY)
        log.info("resume_point_saved", extra={"video_id": self.last_video_id})

    async def load(self) -> Dict[str, Optional[str]]:
        return {
            "lastUrl": await self.state.get_str(RESUME_LAST_URL_KEY),
            "lastVideoId": await self.state.get_str(RESUME_LAST_VIDEO_ID_KEY),
            "lastPlaylistId": await self.state.get_str(RESUME_LAST_PLAYLIST_ID_KEY),
        }
