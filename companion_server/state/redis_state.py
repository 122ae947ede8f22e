# companion_server/state/redis_state.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError, TimeoutError

log = logging.getLogger("redis.state")


def _text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("utf-8", errors="ignore")
    return str(raw)


class RedisState:
    """
    Single Redis wrapper for the server.

    - plain string values (encrypted blobs)
    - JSON hashes (one field per token)
    - clear logs, reads fail as "absent" when Redis is down

    Every write is a single-key command, so callers never need transactions.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    # =========================
    # STRING HELPERS
    # =========================

    async def get_str(self, key: str) -> Optional[str]:
        try:
            raw = await self.redis.get(key)
        except (ConnectionError, TimeoutError):
            log.exception("redis_get_connection_error", extra={"key": key})
            return None
        if raw is None:
            return None
        return _text(raw)

    async def set_str(self, key: str, value: str) -> None:
        try:
            await self.redis.set(key, value)
        except (ConnectionError, TimeoutError):
            log.exception("redis_set_connection_error", extra={"key": key})

    # =========================
    # HASH HELPERS
    # =========================

    async def hget_json(self, key: str, field: str) -> Optional[Any]:
        try:
            raw = await self.redis.hget(key, field)
            if raw is None:
                return None
            return json.loads(raw)
        except (ConnectionError, TimeoutError):
            log.exception("redis_hget_connection_error", extra={"key": key})
            return None
        except json.JSONDecodeError:
            log.error("redis_hget_decode_error", extra={"key": key})
            return None

    async def hset_json(self, key: str, field: str, value: Any) -> None:
        try:
            await self.redis.hset(key, field, json.dumps(value))
        except (ConnectionError, TimeoutError):
            log.exception("redis_hset_connection_error", extra={"key": key})

    async def hgetall_json(self, key: str) -> Dict[str, Any]:
        try:
            raw = await self.redis.hgetall(key)
        except (ConnectionError, TimeoutError):
            log.exception("redis_hgetall_connection_error", extra={"key": key})
            return {}

        out: Dict[str, Any] = {}
        for field, value in raw.items():
            try:
                out[_text(field)] = json.loads(value)
            except json.JSONDecodeError:
                log.error("redis_hgetall_decode_error", extra={"key": key})
        return out

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        try:
            return int(await self.redis.hdel(key, *fields))
        except (ConnectionError, TimeoutError):
            log.exception("redis_hdel_connection_error", extra={"key": key})
            return 0

    # =========================
    # SAFE OPS
    # =========================

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.redis.exists(key))
        except Exception:
            return False

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except (ConnectionError, TimeoutError):
            log.exception("redis_delete_connection_error", extra={"key": key})
