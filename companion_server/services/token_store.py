from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError

from companion_server.models.auth import AuthToken
from companion_server.state.redis_keys import AUTH_TOKENS_KEY
from companion_server.state.redis_state import RedisState

log = logging.getLogger("companion.tokens")

TOKEN_BYTES = 48


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenStore:
    """
    Long-lived bearer tokens for paired companion apps.

    Only sha256(token) is persisted. The plaintext is returned once by
    `mint` and cannot be recovered; deleting the hash revokes the token.
    """

    def __init__(self, state: RedisState):
        self.state = state

    async def mint(self, app_name: str) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        record = AuthToken(
            appName=app_name,
            secretHash=hash_token(token),
            issuedAt=datetime.now(timezone.utc),
        )
        await self.state.hset_json(
            AUTH_TOKENS_KEY,
            record.secretHash,
            record.model_dump(mode="json", exclude={"secretHash"}),
        )
        log.info("token_minted", extra={"app_name": app_name})
        return token

    async def validate(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        secret_hash = hash_token(token)
        record = _record(secret_hash, await self.state.hget_json(AUTH_TOKENS_KEY, secret_hash))
        return record.appName if record else None

    async def records(self) -> List[AuthToken]:
        entries = await self.state.hgetall_json(AUTH_TOKENS_KEY)
        out = [_record(h, e) for h, e in entries.items()]
        return [r for r in out if r is not None]

    async def revoke(self, app_name: str) -> int:
        hashes = [r.secretHash for r in await self.records() if r.appName == app_name]
        removed = await self.state.hdel(AUTH_TOKENS_KEY, *hashes)
        log.info("tokens_revoked", extra={"app_name": app_name, "count": removed})
        return removed

    async def revoke_all(self) -> int:
        entries = await self.state.hgetall_json(AUTH_TOKENS_KEY)
        await self.state.delete(AUTH_TOKENS_KEY)
        log.info("tokens_revoked_all", extra={"count": len(entries)})
        return len(entries)

    async def list_apps(self) -> List[str]:
        return sorted({r.appName for r in await self.records()})


def _record(secret_hash: str, entry: Any) -> Optional[AuthToken]:
    if not isinstance(entry, dict):
        return None
    try:
        return AuthToken(secretHash=secret_hash, **entry)
    except (TypeError, ValidationError):
        log.warning("token_record_invalid")
        return None
