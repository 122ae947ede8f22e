from __future__ import annotations

from typing import Optional

from fastapi import Request, WebSocket

from companion_server.core.errors import Forbidden, Unauthorized
from companion_server.core.runtime import CompanionRuntime


# =========================
# CORE RUNTIME
# =========================

def get_runtime(request: Request) -> CompanionRuntime:
    return request.app.state.runtime


def get_runtime_ws(websocket: WebSocket) -> CompanionRuntime:
    return websocket.app.state.runtime


# =========================
# BEARER AUTH
# =========================

def extract_token(authorization: Optional[str]) -> Optional[str]:
    """Accepts `Bearer <token>` as well as the bare token."""
    if not authorization:
        return None
    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if rest and scheme.lower() == "bearer":
        value = rest.strip()
    return value or None


async def require_app(request: Request) -> str:
    """Authenticated app name for the request, or 401 UNAUTHORIZED."""
    cached = getattr(request.state, "app_name", None)
    if cached:
        return cached

    runtime = get_runtime(request)
    app_name = await runtime.tokens.validate(extract_token(request.headers.get("authorization")))
    if app_name is None:
        raise Unauthorized()

    request.state.app_name = app_name
    return app_name


# =========================
# LOCAL-ONLY SURFACES
# =========================

def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def require_operator(request: Request) -> None:
    runtime = get_runtime(request)
    if client_host(request) not in runtime.settings.operator_hosts:
        raise Forbidden()
