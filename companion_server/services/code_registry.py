from __future__ import annotations

import hmac
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from companion_server.core.errors import AuthorizationTimeout
from companion_server.models.auth import PendingAuthorization

log = logging.getLogger("companion.codes")

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TemporaryCodeRegistry:
    """
    Short-lived, single-use pairing codes, at most one per app name.

    `in_flight(app_name)` lets the registry refuse a new code while a consent
    flow for the same app name is still running.
    """

    def __init__(
        self,
        *,
        ttl_s: float = 20.0,
        max_attempts: int = 10,
        in_flight: Optional[Callable[[str], bool]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ttl_s = ttl_s
        self.max_attempts = max_attempts
        self._in_flight = in_flight or (lambda _app_name: False)
        self._clock = clock
        self._codes: Dict[str, PendingAuthorization] = {}

    def issue(self, app_name: str) -> str:
        now = self._clock()
        self._prune(now)

        if app_name in self._codes or self._in_flight(app_name):
            log.info("code_refused_pending", extra={"app_name": app_name})
            raise AuthorizationTimeout()

        live = {entry.code for entry in self._codes.values()}
        code = None
        for _ in range(self.max_attempts):
            candidate = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            if candidate not in live:
                code = candidate
                break

        if code is None:
            log.warning("code_collision_retries_exhausted", extra={"app_name": app_name})
            raise AuthorizationTimeout()

        self._codes[app_name] = PendingAuthorization(
            id=str(uuid.uuid4()),
            appName=app_name,
            code=code,
            issuedAt=now,
            expiresAt=now + timedelta(seconds=self.ttl_s),
        )
        log.info("code_issued", extra={"app_name": app_name, "ttl_s": self.ttl_s})
        return code

    def validate_and_consume(self, app_name: str, code: str) -> bool:
        # removed before checking: a code is redeemable at most once
        entry = self._codes.pop(app_name, None)
        if entry is None:
            return False

        if self._clock() >= entry.expiresAt:
            log.info("code_expired", extra={"app_name": app_name})
            return False

        ok = hmac.compare_digest(entry.code.encode("utf-8"), code.encode("utf-8"))
        log.info("code_consumed", extra={"app_name": app_name, "valid": ok})
        return ok

    def _prune(self, now: datetime) -> None:
        expired = [name for name, entry in self._codes.items() if now >= entry.expiresAt]
        for name in expired:
            del self._codes[name]
