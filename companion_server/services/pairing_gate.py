from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from cryptography.fernet import Fernet, InvalidToken

from companion_server.state.redis_keys import (
    PAIRING_GATE_ENABLED_AT_KEY,
    PAIRING_GATE_ENABLED_KEY,
)
from companion_server.state.redis_state import RedisState

log = logging.getLogger("companion.pairing_gate")

KEY_FILE_NAME = ".pairing-gate.key"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_or_create_key(configured: str, data_dir: str) -> bytes:
    """Fernet key from settings, else from (or into) a key file in data_dir."""
    if configured:
        return configured.encode("ascii")

    path = Path(data_dir) / KEY_FILE_NAME
    if path.exists():
        return path.read_bytes().strip()

    path.parent.mkdir(parents=True, exist_ok=True)
    key = Fernet.generate_key()
    path.write_bytes(key)
    try:
        path.chmod(0o600)
    except OSError:
        log.warning("pairing_gate_key_chmod_failed", extra={"path": str(path)})
    log.info("pairing_gate_key_created", extra={"path": str(path)})
    return key


class PairingGate:
    """
    Process-wide, persisted, auto-expiring switch for new pairings.

    Lifecycle: `init()` reconciles the persisted state on start,
    `enable()` / `disable()` are driven by the local operator, `consume()`
    closes it once a consent flow has run, and
    `teardown()` cancels the expiry timer on shutdown. The enable timestamp is
    stored encrypted; anything that cannot be decrypted reads as disabled.
    """

    def __init__(
        self,
        state: RedisState,
        fernet: Fernet,
        *,
        window_s: float = 300.0,
        clock: Clock = utcnow,
    ) -> None:
        self.state = state
        self.fernet = fernet
        self.window_s = window_s
        self._clock = clock

        self._enabled_at: Optional[datetime] = None
        self._timer: Optional[asyncio.Task] = None

    # =========================
    # Lifecycle
    # =========================

    async def init(self) -> None:
        enabled_at = await self._read_persisted()
        if enabled_at is None:
            await self._clear()
            return

        elapsed = (self._clock() - enabled_at).total_seconds()
        if elapsed >= self.window_s:
            log.info("pairing_gate_expired_on_start", extra={"elapsed_s": round(elapsed, 1)})
            await self._clear()
            return

        self._enabled_at = enabled_at
        self._arm(self.window_s - elapsed)
        log.info("pairing_gate_restored", extra={"remaining_s": round(self.window_s - elapsed, 1)})

    async def teardown(self) -> None:
        self._cancel_timer()

    # =========================
    # Operator controls
    # =========================

    async def enable(self) -> None:
        now = self._clock()
        await self.state.set_str(PAIRING_GATE_ENABLED_KEY, self._encrypt("true"))
        await self.state.set_str(PAIRING_GATE_ENABLED_AT_KEY, self._encrypt(now.isoformat()))
        self._enabled_at = now
        self._arm(self.window_s)
        log.info("pairing_gate_enabled", extra={"window_s": self.window_s})

    async def disable(self) -> None:
        was_enabled = self._enabled_at is not None
        await self._clear()
        if was_enabled:
            log.info("pairing_gate_disabled")

    async def consume(self) -> None:
        """Single use: close the gate once a consent flow has run."""
        was_enabled = self._enabled_at is not None
        await self._clear()
        log.info("pairing_gate_consumed", extra={"was_enabled": was_enabled})

    def is_enabled(self) -> bool:
        if self._enabled_at is None:
            return False
        return self.remaining_s() > 0

    def remaining_s(self) -> float:
        if self._enabled_at is None:
            return 0.0
        elapsed = (self._clock() - self._enabled_at).total_seconds()
        return max(0.0, self.window_s - elapsed)

    # =========================
    # Internals
    # =========================

    def _encrypt(self, value: str) -> str:
        return self.fernet.encrypt(value.encode("utf-8")).hex()

    def _decrypt(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            return self.fernet.decrypt(bytes.fromhex(value)).decode("utf-8")
        except (InvalidToken, ValueError):
            log.warning("pairing_gate_decrypt_failed")
            return None

    async def _read_persisted(self) -> Optional[datetime]:
        enabled = self._decrypt(await self.state.get_str(PAIRING_GATE_ENABLED_KEY))
        if enabled != "true":
            return None

        raw_at = self._decrypt(await self.state.get_str(PAIRING_GATE_ENABLED_AT_KEY))
        if raw_at is None:
            return None
        try:
            enabled_at = datetime.fromisoformat(raw_at)
        except ValueError:
            return None
        if enabled_at.tzinfo is None:
            enabled_at = enabled_at.replace(tzinfo=timezone.utc)
        return enabled_at

    async def _clear(self) -> None:
        self._cancel_timer()
        self._enabled_at = None
        await self.state.delete(PAIRING_GATE_ENABLED_KEY)
        await self.state.delete(PAIRING_GATE_ENABLED_AT_KEY)

    def _arm(self, delay_s: float) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._expire_after(delay_s))

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def _expire_after(self, delay_s: float) -> None:
        await asyncio.sleep(max(0.0, delay_s))
        # the expiry task clears the gate itself; do not cancel it from _clear
        self._timer = None
        self._enabled_at = None
        await self.state.delete(PAIRING_GATE_ENABLED_KEY)
        await self.state.delete(PAIRING_GATE_ENABLED_AT_KEY)
        log.info("pairing_gate_auto_disabled")
