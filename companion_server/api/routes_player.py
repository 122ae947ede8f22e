# companion_server/api/routes_player.py
from fastapi import APIRouter, Depends, Response

from companion_server.api.deps import get_runtime
from companion_server.api.rate_limit import limit_by_app
from companion_server.core.runtime import CompanionRuntime
from companion_server.models.command import CommandBody
from companion_server.models.events import PublicStateView, to_public_view

router = APIRouter(tags=["player"])


# =====================================================
# STATE
# Prefer the realtime channel; this is for the initial fetch.
# =====================================================
@router.get(
    "/state",
    response_model=PublicStateView,
    dependencies=[Depends(limit_by_app("state", 1, 5))],
)
async def get_state(runtime: CompanionRuntime = Depends(get_runtime)):
    return to_public_view(runtime.aggregator.get_state())


# =====================================================
# PLAYLISTS
# Real round trip into the player page. Clients should cache the result;
# playlist-created / playlist-deleted arrive over the realtime channel.
# =====================================================
@router.get(
    "/playlists",
    dependencies=[Depends(limit_by_app("playlists", 1, 30))],
)
async def get_playlists(runtime: CompanionRuntime = Depends(get_runtime)):
    return await runtime.bridge.get_playlists(runtime.settings.catalog_timeout_s)


# =====================================================
# COMMAND (fire-and-forget)
# =====================================================
@router.post(
    "/command",
    status_code=204,
    response_class=Response,
    dependencies=[Depends(limit_by_app("command", 2, 1))],
)
async def post_command(
    body: CommandBody,
    runtime: CompanionRuntime = Depends(get_runtime),
):
    await runtime.bridge.send_command(body.command, body.data)
    return Response(status_code=204)
