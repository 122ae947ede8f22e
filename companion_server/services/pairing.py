from __future__ import annotations

import logging
from typing import Optional

from companion_server.core.errors import (
    AuthorizationDenied,
    AuthorizationDisabled,
    AuthorizationInvalid,
)
from companion_server.models.auth import AuthorizationStatus
from companion_server.services.code_registry import TemporaryCodeRegistry
from companion_server.services.consent import ConsentOrchestrator, DisconnectProbe
from companion_server.services.pairing_gate import PairingGate
from companion_server.services.token_store import TokenStore

log = logging.getLogger("companion.pairing")


class PairingService:
    """
    requestcode -> code registry
    request     -> gate -> code (consumed) -> consent -> token

    The gate is single-use: once a consent flow has run, whatever its
    outcome, the operator has to arm it again.
    """

    def __init__(
        self,
        gate: PairingGate,
        codes: TemporaryCodeRegistry,
        consent: ConsentOrchestrator,
        tokens: TokenStore,
    ) -> None:
        self.gate = gate
        self.codes = codes
        self.consent = consent
        self.tokens = tokens

    def request_code(self, app_name: str) -> str:
        return self.codes.issue(app_name)

    async def authorize(
        self,
        app_name: str,
        code: str,
        is_disconnected: Optional[DisconnectProbe] = None,
    ) -> str:
        if not self.gate.is_enabled():
            log.info("pairing_rejected_gate_closed", extra={"app_name": app_name})
            raise AuthorizationDisabled()

        if not self.codes.validate_and_consume(app_name, code):
            raise AuthorizationInvalid()

        if self.consent.has_pending(app_name):
            raise AuthorizationInvalid()

        try:
            pending = await self.consent.request_consent(app_name, code, is_disconnected)
        finally:
            await self.gate.consume()

        if pending.status is not AuthorizationStatus.APPROVED:
            log.info("pairing_denied", extra={"app_name": app_name, "status": pending.status.value})
            raise AuthorizationDenied()

        token = await self.tokens.mint(app_name)
        log.info("pairing_approved", extra={"app_name": app_name})
        return token
