from __future__ import annotations

import logging

from cryptography.fernet import Fernet
from redis.asyncio import Redis

from companion_server.core.config import Settings
from companion_server.services.code_registry import TemporaryCodeRegistry
from companion_server.services.consent import (
    ConsentOrchestrator,
    ConsentSurface,
    OperatorConsentSurface,
)
from companion_server.services.content_bridge import ContentBridge
from companion_server.services.pairing import PairingService
from companion_server.services.pairing_gate import PairingGate, load_or_create_key
from companion_server.services.resume_point import ResumePointTracker
from companion_server.services.state_aggregator import StateAggregator
from companion_server.services.token_store import TokenStore
from companion_server.state.redis_state import RedisState
from companion_server.ws.event_bus import RealtimeEventBus
from companion_server.ws.manager import WebSocketManager

log = logging.getLogger("companion.runtime")


class CompanionRuntime:
    """
    Every process-wide component, wired once per application.

    start(): reconcile the pairing gate, start the realtime pump
    stop():  persist the resume point, cancel timers, stop the pump
    """

    def __init__(
        self,
        settings: Settings,
        redis: Redis,
        *,
        surface: ConsentSurface | None = None,
    ) -> None:
        self.settings = settings
        self.redis = redis
        self.state = RedisState(redis)

        self.aggregator = StateAggregator()
        self.resume = ResumePointTracker(self.state)
        self.aggregator.subscribe(self.resume.on_state)
        self.bridge = ContentBridge(self.aggregator, self.resume)

        fernet = Fernet(load_or_create_key(settings.pairing_gate_key, settings.data_dir))
        self.gate = PairingGate(self.state, fernet, window_s=settings.pairing_window_s)

        self.surface = surface or OperatorConsentSurface()
        self.consent = ConsentOrchestrator(
            self.surface,
            timeout_s=settings.consent_timeout_s,
            poll_s=settings.disconnect_poll_s,
        )
        self.codes = TemporaryCodeRegistry(
            ttl_s=settings.code_ttl_s,
            max_attempts=settings.code_issue_attempts,
            in_flight=self.consent.has_pending,
        )
        self.tokens = TokenStore(self.state)
        self.pairing = PairingService(self.gate, self.codes, self.consent, self.tokens)

        self.ws_manager = WebSocketManager(send_timeout_s=settings.realtime_send_timeout_s)
        self.event_bus = RealtimeEventBus(
            self.aggregator,
            self.bridge,
            self.ws_manager,
            max_queued=settings.realtime_max_queued,
        )

    async def start(self) -> None:
        await self.gate.init()
        await self.event_bus.start()
        log.info("runtime_started")

    async def stop(self) -> None:
        try:
            await self.resume.flush()
        except Exception:
            log.exception("error_saving_resume_point")

        await self.gate.teardown()
        await self.event_bus.stop()
        log.info("runtime_stopped")
