from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

RemoteCommand = Literal[
    "playPause",
    "play",
    "pause",
    "volumeUp",
    "volumeDown",
    "mute",
    "unmute",
    "next",
    "previous",
]


class CommandBody(BaseModel):
    command: RemoteCommand
    data: Any = None
