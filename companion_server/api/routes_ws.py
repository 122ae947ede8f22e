from fastapi import APIRouter, Depends, WebSocket
from starlette.websockets import WebSocketDisconnect
import logging

from companion_server.api.deps import extract_token, get_runtime_ws
from companion_server.core.runtime import CompanionRuntime

log = logging.getLogger("ws")

# mounted under the versioned prefix
realtime_router = APIRouter()

# local channel for the embedded player page, not versioned
content_router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4401
FORBIDDEN_CLOSE_CODE = 4403


# =========================
# REALTIME (companions)
# =========================

@realtime_router.websocket("/realtime")
async def realtime_endpoint(
    websocket: WebSocket,
    runtime: CompanionRuntime = Depends(get_runtime_ws),
):
    token = websocket.query_params.get("token") or extract_token(websocket.headers.get("authorization"))
    app_name = await runtime.tokens.validate(token)
    if app_name is None:
        # accept first so the client can read the close reason
        await websocket.accept()
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE, reason="UNAUTHORIZED")
        log.info("ws_rejected_unauthorized")
        return

    sub = await runtime.ws_manager.connect(websocket, app_name)
    try:
        while True:
            # inbound messages are not part of the protocol yet; reading keeps
            # disconnects observable
            msg = await websocket.receive_text()
            log.debug("ws_inbound_ignored", extra={"connection_id": sub.connection_id, "size": len(msg)})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.warning("ws_connection_closed", extra={"error": str(e)})
    finally:
        await runtime.ws_manager.disconnect(sub)


# =========================
# CONTENT (embedded player)
# =========================

@content_router.websocket("/content")
async def content_endpoint(
    websocket: WebSocket,
    runtime: CompanionRuntime = Depends(get_runtime_ws),
):
    host = websocket.client.host if websocket.client else "unknown"
    if host not in runtime.settings.operator_hosts:
        await websocket.accept()
        await websocket.close(code=FORBIDDEN_CLOSE_CODE, reason="FORBIDDEN")
        log.warning("content_rejected_remote", extra={"host": host})
        return

    await websocket.accept()
    runtime.bridge.attach(websocket)

    try:
        while True:
            msg = await websocket.receive_json()
            runtime.bridge.handle_message(msg)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.warning("content_connection_closed", extra={"error": str(e)})
    finally:
        runtime.bridge.detach(websocket)
