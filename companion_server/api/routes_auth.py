from fastapi import APIRouter, Depends, Request

from companion_server.api.deps import get_runtime
from companion_server.api.rate_limit import limit_by_client
from companion_server.core.runtime import CompanionRuntime
from companion_server.models.auth import (
    CodeRequestBody,
    CodeResponse,
    TokenRequestBody,
    TokenResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


# =====================================================
# REQUEST CODE
# =====================================================
@router.post(
    "/requestcode",
    response_model=CodeResponse,
    dependencies=[Depends(limit_by_client("auth_requestcode", 5, 60))],
)
async def request_code(
    body: CodeRequestBody,
    runtime: CompanionRuntime = Depends(get_runtime),
):
    return CodeResponse(code=runtime.pairing.request_code(body.appName))


# =====================================================
# REQUEST TOKEN
# Blocks until the local user decides (or the flow times out / the
# requester disconnects).
# =====================================================
@router.post(
    "/request",
    response_model=TokenResponse,
    dependencies=[Depends(limit_by_client("auth_request", 5, 60))],
)
async def request_token(
    body: TokenRequestBody,
    request: Request,
    runtime: CompanionRuntime = Depends(get_runtime),
):
    token = await runtime.pairing.authorize(
        body.appName,
        body.code,
        is_disconnected=request.is_disconnected,
    )
    return TokenResponse(token=token)
