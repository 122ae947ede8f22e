"""
Unit tests for the consent orchestrator.

Every exit path (approve, deny, surface closed, timeout, disconnect,
cancellation) must yield exactly one outcome and release the flow.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from companion_server.core.errors import AuthorizationInvalid
from companion_server.models.auth import AuthorizationStatus, PendingAuthorization
from companion_server.services.consent import ConsentOrchestrator, OperatorConsentSurface


@pytest.fixture
def surface():
    return OperatorConsentSurface()


@pytest.fixture
def orchestrator(surface):
    return ConsentOrchestrator(surface, timeout_s=1.0, poll_s=0.01)


async def wait_open(surface, count=1):
    for _ in range(200):
        if len(surface.list_open()) >= count:
            return surface.list_open()
        await asyncio.sleep(0.005)
    raise AssertionError("consent surface never opened")


def assert_released(orchestrator, surface, app_name):
    assert orchestrator.has_pending(app_name) is False
    assert surface.list_open() == []


@pytest.mark.asyncio
async def test_approve(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    assert pending.app_name == "app"
    assert pending.code == "AB12"
    assert orchestrator.has_pending("app") is True

    assert orchestrator.submit_result(pending.id, True) is True
    result = await task

    assert result.status is AuthorizationStatus.APPROVED
    assert_released(orchestrator, surface, "app")


@pytest.mark.asyncio
async def test_deny(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    orchestrator.submit_result(pending.id, False)
    assert (await task).status is AuthorizationStatus.DENIED
    assert_released(orchestrator, surface, "app")


@pytest.mark.asyncio
async def test_surface_closed_without_decision_denies(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    orchestrator.surface_closed(pending.id)
    assert (await task).status is AuthorizationStatus.DENIED


@pytest.mark.asyncio
async def test_timeout_expires(surface):
    orchestrator = ConsentOrchestrator(surface, timeout_s=0.05)
    result = await orchestrator.request_consent("app", "AB12")

    assert result.status is AuthorizationStatus.EXPIRED
    assert_released(orchestrator, surface, "app")


@pytest.mark.asyncio
async def test_requester_disconnect_cancels(orchestrator, surface):
    calls = []

    async def is_disconnected():
        calls.append(1)
        return len(calls) >= 2

    result = await orchestrator.request_consent("app", "AB12", is_disconnected)

    assert result.status is AuthorizationStatus.CANCELLED
    assert len(calls) == 2
    assert_released(orchestrator, surface, "app")


@pytest.mark.asyncio
async def test_failing_disconnect_check_does_not_end_flow(orchestrator, surface):
    async def broken():
        raise RuntimeError("disconnect check failed")

    task = asyncio.create_task(orchestrator.request_consent("app", "AB12", broken))
    (pending,) = await wait_open(surface)
    await asyncio.sleep(0.05)
    assert not task.done()

    orchestrator.submit_result(pending.id, True)
    assert (await task).status is AuthorizationStatus.APPROVED


@pytest.mark.asyncio
async def test_only_first_outcome_counts(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    assert orchestrator.submit_result(pending.id, True) is True
    assert orchestrator.submit_result(pending.id, False) is False
    assert orchestrator.surface_closed(pending.id) is False

    assert (await task).status is AuthorizationStatus.APPROVED


@pytest.mark.asyncio
async def test_signal_after_completion_is_ignored(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)
    orchestrator.submit_result(pending.id, False)
    await task

    assert orchestrator.submit_result(pending.id, True) is False
    assert pending.status is AuthorizationStatus.DENIED


@pytest.mark.asyncio
async def test_one_pending_per_app_name(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    with pytest.raises(AuthorizationInvalid):
        await orchestrator.request_consent("app", "CD34")

    orchestrator.submit_result(pending.id, False)
    await task


@pytest.mark.asyncio
async def test_different_apps_are_independent(orchestrator, surface):
    first = asyncio.create_task(orchestrator.request_consent("a", "AAAA"))
    second = asyncio.create_task(orchestrator.request_consent("b", "BBBB"))
    opened = {p.appName: p for p in await wait_open(surface, count=2)}

    orchestrator.submit_result(opened["b"].id, True)
    orchestrator.submit_result(opened["a"].id, False)

    assert (await first).status is AuthorizationStatus.DENIED
    assert (await second).status is AuthorizationStatus.APPROVED


@pytest.mark.asyncio
async def test_cancelled_request_releases_everything(orchestrator, surface):
    task = asyncio.create_task(orchestrator.request_consent("app", "AB12"))
    (pending,) = await wait_open(surface)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert pending.status is AuthorizationStatus.CANCELLED
    assert_released(orchestrator, surface, "app")


def test_pending_identity_is_read_only():
    now = datetime.now(timezone.utc)
    pending = PendingAuthorization(id="1", appName="app", code="AB12", issuedAt=now, expiresAt=now)

    for field, value in [("code", "ZZZZ"), ("appName", "other"), ("id", "2")]:
        with pytest.raises(ValidationError):
            setattr(pending, field, value)

    pending.status = AuthorizationStatus.DENIED
    assert pending.is_terminal is True
    assert (pending.app_name, pending.code) == ("app", "AB12")
