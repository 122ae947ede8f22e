# companion_server/api/routes_operator.py
"""
Loopback-only endpoints for the desktop shell: arm the pairing gate, show
pending consent prompts, relay the user's decision, manage paired apps.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from companion_server.api.deps import get_runtime, require_operator
from companion_server.core.runtime import CompanionRuntime
from companion_server.models.auth import ConsentView, PendingAuthorization
from companion_server.services.consent import OperatorConsentSurface

router = APIRouter(
    prefix="/operator",
    tags=["operator"],
    dependencies=[Depends(require_operator)],
)


def _surface(runtime: CompanionRuntime) -> OperatorConsentSurface:
    surface = runtime.surface
    if not isinstance(surface, OperatorConsentSurface):
        raise HTTPException(status_code=404, detail="Consent is handled by another surface")
    return surface


def _view(pending: PendingAuthorization) -> ConsentView:
    return ConsentView(
        id=pending.id,
        appName=pending.appName,
        code=pending.code,
        expiresAt=pending.expiresAt,
    )


def _get_open(runtime: CompanionRuntime, authorization_id: str) -> PendingAuthorization:
    pending = _surface(runtime).get(authorization_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="Authorization not found")
    return pending


# =====================================================
# PAIRING GATE
# =====================================================
@router.get("/pairing-gate")
async def get_pairing_gate(runtime: CompanionRuntime = Depends(get_runtime)):
    return {
        "enabled": runtime.gate.is_enabled(),
        "remainingSeconds": round(runtime.gate.remaining_s(), 1),
    }


@router.post("/pairing-gate/enable")
async def enable_pairing_gate(runtime: CompanionRuntime = Depends(get_runtime)):
    await runtime.gate.enable()
    return {"enabled": True, "remainingSeconds": round(runtime.gate.remaining_s(), 1)}


@router.post("/pairing-gate/disable")
async def disable_pairing_gate(runtime: CompanionRuntime = Depends(get_runtime)):
    await runtime.gate.disable()
    return {"enabled": False, "remainingSeconds": 0}


# =====================================================
# CONSENT
# =====================================================
@router.get("/consent", response_model=List[ConsentView])
async def list_consent(runtime: CompanionRuntime = Depends(get_runtime)):
    return [_view(p) for p in _surface(runtime).list_open()]


@router.get("/consent/{authorization_id}", response_model=ConsentView)
async def get_consent(authorization_id: str, runtime: CompanionRuntime = Depends(get_runtime)):
    return _view(_get_open(runtime, authorization_id))


@router.post("/consent/{authorization_id}/approve")
async def approve_consent(authorization_id: str, runtime: CompanionRuntime = Depends(get_runtime)):
    _get_open(runtime, authorization_id)
    return {"ok": runtime.consent.submit_result(authorization_id, True)}


@router.post("/consent/{authorization_id}/deny")
async def deny_consent(authorization_id: str, runtime: CompanionRuntime = Depends(get_runtime)):
    _get_open(runtime, authorization_id)
    return {"ok": runtime.consent.submit_result(authorization_id, False)}


@router.post("/consent/{authorization_id}/close")
async def close_consent(authorization_id: str, runtime: CompanionRuntime = Depends(get_runtime)):
    _get_open(runtime, authorization_id)
    return {"ok": runtime.consent.surface_closed(authorization_id)}


# =====================================================
# PAIRED APPS
# =====================================================
@router.get("/tokens")
async def list_paired_apps(runtime: CompanionRuntime = Depends(get_runtime)):
    return {"apps": await runtime.tokens.list_apps()}


@router.delete("/tokens/{app_name}")
async def revoke_app(app_name: str, runtime: CompanionRuntime = Depends(get_runtime)):
    revoked = await runtime.tokens.revoke(app_name)
    await runtime.ws_manager.disconnect_app(app_name)
    return {"revoked": revoked}


@router.delete("/tokens")
async def revoke_all(runtime: CompanionRuntime = Depends(get_runtime)):
    apps = await runtime.tokens.list_apps()
    revoked = await runtime.tokens.revoke_all()
    for app_name in apps:
        await runtime.ws_manager.disconnect_app(app_name)
    return {"revoked": revoked}


# =====================================================
# RESUME POINT
# =====================================================
@router.get("/resume-point")
async def get_resume_point(runtime: CompanionRuntime = Depends(get_runtime)):
    return await runtime.resume.load()
