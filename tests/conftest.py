"""
Shared fixtures for the companion server tests.

- fakeredis in place of a Redis server (one FakeServer per test, so a
  "restart" can reuse the same data)
- settings with short timeouts and the TestClient host allowed on the
  operator surface
- a consent surface whose decision is scripted by the test
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterator, List, Optional, Tuple

import fakeredis
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from companion_server.core.config import Settings
from companion_server.main import create_app
from companion_server.models.auth import PendingAuthorization
from companion_server.services.consent import ConsentOrchestrator, OperatorConsentSurface
from companion_server.state.redis_state import RedisState


class ScriptedSurface(OperatorConsentSurface):
    """Answers every prompt with `decision` (None = never answers)."""

    def __init__(self, decision: Optional[bool] = True) -> None:
        super().__init__()
        self.decision = decision
        self.consent: Optional[ConsentOrchestrator] = None
        self.shown: List[Tuple[str, str]] = []
        self.closed: List[str] = []

    async def open(self, pending: PendingAuthorization) -> None:
        await super().open(pending)
        self.shown.append((pending.appName, pending.code))
        if self.decision is not None and self.consent is not None:
            asyncio.get_running_loop().call_soon(
                self.consent.submit_result, pending.id, self.decision
            )

    async def close(self, pending: PendingAuthorization) -> None:
        await super().close(pending)
        self.closed.append(pending.id)


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_state(fake_server) -> RedisState:
    return RedisState(fakeredis.FakeAsyncRedis(server=fake_server))


@pytest.fixture
def fernet() -> Fernet:
    return Fernet(Fernet.generate_key())


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=str(tmp_path / "data"),
        pairing_gate_key=Fernet.generate_key().decode("ascii"),
        operator_hosts=["testclient", "127.0.0.1"],
        consent_timeout_s=2.0,
        disconnect_poll_s=0.05,
        catalog_timeout_s=0.2,
        log_level="DEBUG",
    )


@pytest.fixture
def surface() -> ScriptedSurface:
    return ScriptedSurface(decision=True)


@pytest.fixture
def client(settings, fake_server, surface) -> Iterator[TestClient]:
    app = create_app(
        settings,
        redis_factory=lambda _s: fakeredis.FakeAsyncRedis(server=fake_server),
        surface=surface,
    )
    with TestClient(app) as c:
        surface.consent = app.state.runtime.consent
        yield c


@pytest.fixture
def runtime(client):
    return client.app.state.runtime


def wait_until(predicate: Callable[[], bool], timeout_s: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def pair(client: TestClient, app_name: str = "companion-test") -> str:
    """Full pairing through the public API; returns the bearer token."""
    assert client.post("/operator/pairing-gate/enable").status_code == 200
    code = client.post("/api/v1/auth/requestcode", json={"appName": app_name}).json()["code"]
    resp = client.post("/api/v1/auth/request", json={"appName": app_name, "code": code})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]
