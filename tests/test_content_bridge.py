"""
Unit tests for the embedded content bridge: telemetry routing, fire-and-
forget commands and correlated catalog round trips.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from companion_server.core.errors import ContentResultTimeout, ContentUnavailable
from companion_server.models.player import TrackState
from companion_server.services.content_bridge import ContentBridge
from companion_server.services.resume_point import ResumePointTracker
from companion_server.services.state_aggregator import StateAggregator


class FakeConnection:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


@pytest.fixture
def aggregator():
    return StateAggregator()


@pytest.fixture
def bridge(aggregator, redis_state):
    return ContentBridge(aggregator, ResumePointTracker(redis_state))


@pytest.fixture
def conn(bridge):
    c = FakeConnection()
    bridge.attach(c)
    return c


class TestTelemetry:

    def test_routes_to_aggregator(self, bridge, aggregator):
        bridge.handle_message({"type": "videoStateChanged", "data": 1})
        bridge.handle_message({"type": "videoProgressChanged", "data": 42.5})
        bridge.handle_message(
            {"type": "videoDataChanged", "data": {"videoDetails": {"videoId": "v1"}, "playlistId": "PL"}}
        )

        state = aggregator.get_state()
        assert state.trackState is TrackState.PLAYING
        assert state.videoDetails.id == "v1"
        assert state.playlistId == "PL"

    def test_queue_message(self, bridge, aggregator):
        bridge.handle_message({"type": "storeStateChanged", "data": {"items": [], "shuffleEnabled": True}})
        assert aggregator.get_state().queue.shuffleEnabled is True

    def test_url_goes_to_resume_point(self, bridge):
        bridge.handle_message({"type": "urlChanged", "data": {"url": "https://music.example/watch?v=1"}})
        assert bridge.resume.last_url == "https://music.example/watch?v=1"

    @pytest.mark.parametrize("msg", [None, "text", {"type": "mystery"}, {"data": 1}])
    def test_unknown_messages_ignored(self, bridge, aggregator, msg):
        bridge.handle_message(msg)
        assert aggregator.get_state().trackState is TrackState.UNKNOWN

    def test_catalog_events(self, bridge):
        listener = Mock()
        bridge.subscribe_catalog(listener)

        bridge.handle_message({"type": "createPlaylistObserved", "data": {"id": "PL1", "title": "Mix"}})
        bridge.handle_message({"type": "deletePlaylistObserved", "data": "PL1"})

        assert listener.call_args_list[0].args == ("playlist-created", {"id": "PL1", "title": "Mix"})
        assert listener.call_args_list[1].args == ("playlist-deleted", "PL1")

    def test_failing_catalog_listener_isolated(self, bridge):
        good = Mock()
        bridge.subscribe_catalog(Mock(side_effect=RuntimeError("boom")))
        bridge.subscribe_catalog(good)

        bridge.handle_message({"type": "deletePlaylistObserved", "data": "PL1"})
        good.assert_called_once()


class TestCommands:

    @pytest.mark.asyncio
    async def test_command_sent(self, bridge, conn):
        assert await bridge.send_command("next") is True
        assert conn.sent == [{"type": "remoteControl:execute", "data": {"command": "next", "value": None}}]

    @pytest.mark.asyncio
    async def test_command_dropped_without_content(self, bridge):
        assert await bridge.send_command("play") is False

    @pytest.mark.asyncio
    async def test_command_send_failure_swallowed(self, bridge):
        broken = Mock()
        broken.send_json = AsyncMock(side_effect=RuntimeError("closed"))
        bridge.attach(broken)
        assert await bridge.send_command("pause") is False


class TestCatalogRoundTrip:

    @pytest.mark.asyncio
    async def test_unavailable_without_content(self, bridge):
        with pytest.raises(ContentUnavailable):
            await bridge.get_playlists(timeout_s=0.1)

    @pytest.mark.asyncio
    async def test_response_correlated_by_request_id(self, bridge, conn):
        task = asyncio.create_task(bridge.get_playlists(timeout_s=1.0))
        await asyncio.sleep(0)
        request_id = conn.sent[0]["data"]["requestId"]
        assert conn.sent[0]["type"] == "getPlaylists"

        # answer for another request is ignored
        bridge.handle_message({"type": "getPlaylists:response", "data": {"requestId": "other", "playlists": []}})
        bridge.handle_message(
            {"type": "getPlaylists:response", "data": {"requestId": request_id, "playlists": [{"id": "PL1"}]}}
        )

        assert await task == [{"id": "PL1"}]
        assert bridge._pending == {}

    @pytest.mark.asyncio
    async def test_timeout(self, bridge, conn):
        with pytest.raises(ContentResultTimeout):
            await bridge.get_playlists(timeout_s=0.05)
        assert bridge._pending == {}

    @pytest.mark.asyncio
    async def test_late_answer_ignored(self, bridge, conn):
        with pytest.raises(ContentResultTimeout):
            await bridge.get_playlists(timeout_s=0.01)
        request_id = conn.sent[0]["data"]["requestId"]
        bridge.handle_message({"type": "getPlaylists:response", "data": {"requestId": request_id, "playlists": []}})

    @pytest.mark.asyncio
    async def test_detach_fails_pending_requests(self, bridge, conn):
        task = asyncio.create_task(bridge.get_playlists(timeout_s=1.0))
        await asyncio.sleep(0)
        bridge.detach(conn)

        with pytest.raises(ContentUnavailable):
            await task
        assert bridge.available is False
