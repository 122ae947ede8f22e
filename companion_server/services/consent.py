from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from companion_server.core.errors import AuthorizationInvalid
from companion_server.models.auth import AuthorizationStatus, PendingAuthorization

log = logging.getLogger("companion.consent")

DisconnectProbe = Callable[[], Awaitable[bool]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# CONSENT SURFACES
# =========================

class ConsentSurface:
    """Where the local user sees the app name and code and decides."""

    async def open(self, pending: PendingAuthorization) -> None:
        raise NotImplementedError

    async def close(self, pending: PendingAuthorization) -> None:
        raise NotImplementedError


class OperatorConsentSurface(ConsentSurface):
    """
    Keeps open requests for the desktop shell, which polls the operator
    endpoints, renders the prompt and posts the user's decision back.
    """

    def __init__(self) -> None:
        self._open: Dict[str, PendingAuthorization] = {}

    async def open(self, pending: PendingAuthorization) -> None:
        self._open[pending.id] = pending
        log.info("consent_surface_opened", extra={"id": pending.id, "app_name": pending.appName})

    async def close(self, pending: PendingAuthorization) -> None:
        if self._open.pop(pending.id, None) is not None:
            log.info("consent_surface_closed", extra={"id": pending.id, "status": pending.status.value})

    def list_open(self) -> List[PendingAuthorization]:
        return list(self._open.values())

    def get(self, authorization_id: str) -> Optional[PendingAuthorization]:
        return self._open.get(authorization_id)


# =========================
# ORCHESTRATOR
# =========================

@dataclass
class _Flow:
    pending: PendingAuthorization
    outcome: asyncio.Future


class ConsentOrchestrator:
    """
    Runs one bounded, cancellable approval flow per app name.

    The flow waits for the first of: an explicit decision, the surface being
    closed (denied), the absolute timeout (expired) or the requester going
    away (cancelled). Only the first outcome counts; every wait primitive is
    released before `request_consent` returns, whatever the exit path.
    """

    def __init__(
        self,
        surface: ConsentSurface,
        *,
        timeout_s: float = 30.0,
        poll_s: float = 0.25,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.surface = surface
        self.timeout_s = timeout_s
        self.poll_s = poll_s
        self._clock = clock

        self._flows: Dict[str, _Flow] = {}
        self._by_app: Dict[str, str] = {}

    # =========================
    # Queries
    # =========================

    def has_pending(self, app_name: str) -> bool:
        return app_name in self._by_app

    def get(self, authorization_id: str) -> Optional[PendingAuthorization]:
        flow = self._flows.get(authorization_id)
        return flow.pending if flow else None

    # =========================
    # External signals
    # =========================

    def submit_result(self, authorization_id: str, approved: bool) -> bool:
        status = AuthorizationStatus.APPROVED if approved else AuthorizationStatus.DENIED
        return self._settle(authorization_id, status)

    def surface_closed(self, authorization_id: str) -> bool:
        return self._settle(authorization_id, AuthorizationStatus.DENIED)

    # =========================
    # Flow
    # =========================

    async def request_consent(
        self,
        app_name: str,
        code: str,
        is_disconnected: Optional[DisconnectProbe] = None,
    ) -> PendingAuthorization:
        if app_name in self._by_app:
            log.warning("consent_already_pending", extra={"app_name": app_name})
            raise AuthorizationInvalid()

        now = self._clock()
        pending = PendingAuthorization(
            id=str(uuid.uuid4()),
            appName=app_name,
            code=code,
            issuedAt=now,
            expiresAt=now + timedelta(seconds=self.timeout_s),
        )
        flow = _Flow(pending=pending, outcome=asyncio.get_running_loop().create_future())
        self._flows[pending.id] = flow
        self._by_app[app_name] = pending.id

        watcher: Optional[asyncio.Task] = None
        log.info("consent_started", extra={"id": pending.id, "app_name": app_name})
        try:
            await self.surface.open(pending)
            if is_disconnected is not None:
                watcher = asyncio.create_task(self._watch_disconnect(pending.id, is_disconnected))

            done, _ = await asyncio.wait({flow.outcome}, timeout=self.timeout_s)
            if not done:
                self._settle(pending.id, AuthorizationStatus.EXPIRED)
        except asyncio.CancelledError:
            self._settle(pending.id, AuthorizationStatus.CANCELLED)
            raise
        finally:
            if watcher is not None:
                watcher.cancel()
            self._flows.pop(pending.id, None)
            self._by_app.pop(app_name, None)
            # a surface that failed to open must still be torn down
            if not flow.pending.is_terminal:
                self._finish(flow, AuthorizationStatus.CANCELLED)
            try:
                await self.surface.close(pending)
            except Exception:
                log.exception("consent_surface_close_failed", extra={"id": pending.id})

        log.info(
            "consent_finished",
            extra={"id": pending.id, "app_name": app_name, "status": pending.status.value},
        )
        return pending

    async def _watch_disconnect(self, authorization_id: str, is_disconnected: DisconnectProbe) -> None:
        while authorization_id in self._flows:
            await asyncio.sleep(self.poll_s)
            try:
                gone = await is_disconnected()
            except Exception:
                log.exception("consent_disconnect_probe_failed", extra={"id": authorization_id})
                continue
            if gone:
                log.info("consent_requester_disconnected", extra={"id": authorization_id})
                self._settle(authorization_id, AuthorizationStatus.CANCELLED)
                return

    def _settle(self, authorization_id: str, status: AuthorizationStatus) -> bool:
        flow = self._flows.get(authorization_id)
        if flow is None or flow.pending.is_terminal:
            return False
        self._finish(flow, status)
        return True

    @staticmethod
    def _finish(flow: _Flow, status: AuthorizationStatus) -> None:
        flow.pending.status = status
        flow.outcome.set_result(status)
