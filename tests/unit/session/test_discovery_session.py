"""Tests for the discovery session."""

from __future__ import annotations

import asyncio

import pytest

pytestmark = [pytest.mark.unit, pytest.mark.session]

from trackermesh import DiscoverySession
from trackermesh.discovery.tracker_registry import TrackerStats
from trackermesh.models import Config, DiscoveryConfig
from trackermesh.session.identity import derive_lookup_key
from trackermesh.utils.events import SessionEvent
from trackermesh.utils.exceptions import (
    ConfigurationError,
    TrackerAlreadyExistsError,
    TrackerNotFoundError,
)

T1 = "wss://tracker-one.example"
T2 = "wss://tracker-two.example"
PEER_X = "aa" * 20


@pytest.fixture
def session(tracker_factory, config):
    return DiscoverySession([T1, T2], "test-network", tracker_factory=tracker_factory, config=config)


class TestConstruction:
    """Tests for session setup."""

    def test_lookup_key(self, session):
        assert session.identifier == "test-network"
        assert session.info_hash == derive_lookup_key("test-network")
        assert session.info_hash_bytes == bytes.fromhex(session.info_hash)

    def test_peer_id(self, session):
        assert len(session.peer_id_bytes) == 20
        assert session.peer_id == session.peer_id_bytes.hex()

    def test_peer_ids_differ(self, tracker_factory, config):
        other = DiscoverySession([T1], "test-network", tracker_factory=tracker_factory, config=config)
        mine = DiscoverySession([T1], "test-network", tracker_factory=tracker_factory, config=config)

        assert other.peer_id != mine.peer_id

    def test_duplicate_urls_collapsed(self, tracker_factory, config):
        session = DiscoverySession([T1, T1, T2], "x", tracker_factory=tracker_factory, config=config)

        assert session.announce_urls == [T1, T2]

    def test_defaults_from_config(self, tracker_factory):
        config = Config(discovery=DiscoveryConfig(identifier="from-config", announce_urls=[T2]))

        session = DiscoverySession(tracker_factory=tracker_factory, config=config)

        assert session.identifier == "from-config"
        assert session.announce_urls == [T2]

    def test_set_identifier_changes_key(self, session):
        session.set_identifier("other-network")

        assert session.info_hash == derive_lookup_key("other-network")
        assert session.trackers.context.info_hash == bytes.fromhex(session.info_hash)


class TestLifecycle:
    """Tests for start and destroy."""

    @pytest.mark.asyncio
    async def test_start_adds_every_tracker(self, session, tracker_factory):
        await session.start()

        assert tracker_factory.created == [T1, T2]
        assert session.started is True
        assert session.get_tracker_stats() == TrackerStats(connected=2, total=2)
        context = tracker_factory.clients[T1].context
        assert context.info_hash == session.info_hash_bytes
        assert context.peer_id == session.peer_id_bytes

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, session, tracker_factory):
        await session.start()
        await session.start()

        assert tracker_factory.created == [T1, T2]

    @pytest.mark.asyncio
    async def test_start_requires_identifier(self, tracker_factory, config):
        config.discovery.identifier = ""
        session = DiscoverySession([T1], tracker_factory=tracker_factory, config=config)

        with pytest.raises(ConfigurationError):
            await session.start()
        assert tracker_factory.created == []

    @pytest.mark.asyncio
    async def test_unreachable_tracker_does_not_stop_start(self, tracker_factory, config, recorder):
        warnings = recorder()
        error = ConnectionError("cannot open socket")

        def _factory(url, context):
            if url == T1:
                raise error
            return tracker_factory(url, context)

        session = DiscoverySession([T1, T2], tracker_factory=_factory, config=config)
        session.on(SessionEvent.TRACKER_WARNING, warnings)

        await session.start()

        assert session.started is True
        assert session.trackers.urls == [T2]
        assert warnings.calls == [(error, TrackerStats(connected=0, total=0))]

        session.trackers.factory = tracker_factory
        await session.add_tracker(T1)

        assert sorted(session.trackers.urls) == [T1, T2]
        assert session.announce_urls == [T1, T2]

    @pytest.mark.asyncio
    async def test_peer_routing_starts_with_start(self, session, tracker_factory, recorder):
        connects = recorder()
        session.on(SessionEvent.PEER_CONNECT, connects)
        await session.add_tracker(T1)

        early = tracker_factory.clients[T1].offer_peer(PEER_X, "a")
        early.connect()
        assert connects.calls == []

        await session.start()
        late = tracker_factory.clients[T1].offer_peer(PEER_X, "b")
        late.connect()

        assert connects.calls == [(late,)]

    @pytest.mark.asyncio
    async def test_restart_after_destroy_routes_peers_once(self, session, tracker_factory, recorder):
        connects = recorder()
        session.on(SessionEvent.PEER_CONNECT, connects)
        await session.start()
        await session.destroy()
        await session.start()

        tracker_factory.clients[T1].offer_peer(PEER_X, "a").connect()

        assert len(connects) == 1
        assert session.trackers.signals.listener_count("peer") == 1

    @pytest.mark.asyncio
    async def test_destroy_closes_trackers(self, session, tracker_factory):
        await session.start()

        await session.destroy()

        assert all(client.destroyed for client in tracker_factory.clients.values())
        assert session.get_tracker_stats() == TrackerStats(connected=0, total=0)
        assert session.started is False

    @pytest.mark.asyncio
    async def test_destroy_twice(self, session, recorder):
        closes = recorder()
        session.on(SessionEvent.PEER_CLOSE, closes)
        await session.start()
        session.trackers.get(T1).client.offer_peer(PEER_X).connect()

        await session.destroy()
        await session.destroy()

        assert len(closes) == 1

    @pytest.mark.asyncio
    async def test_context_manager(self, tracker_factory, config):
        async with DiscoverySession([T1], tracker_factory=tracker_factory, config=config) as session:
            assert session.started is True

        assert tracker_factory.clients[T1].destroyed is True


class TestPeers:
    """Tests for peer routing through the session."""

    @pytest.mark.asyncio
    async def test_peer_reachable_through_two_trackers(self, session, tracker_factory, recorder):
        connects = recorder()
        closes = recorder()
        session.on(SessionEvent.PEER_CONNECT, connects)
        session.on(SessionEvent.PEER_CLOSE, closes)
        await session.start()

        via_t1 = tracker_factory.clients[T1].offer_peer(PEER_X, "a")
        via_t2 = tracker_factory.clients[T2].offer_peer(PEER_X, "b")
        via_t1.connect()
        via_t2.connect()

        assert connects.calls == [(via_t1,)]
        assert set(session.peers[PEER_X]) == {"a", "b"}

        via_t1.close()
        assert closes.calls == []
        assert set(session.peers[PEER_X]) == {"b"}

        via_t2.close()
        assert closes.calls == [(via_t2,)]
        assert session.peers == {}

    @pytest.mark.asyncio
    async def test_own_peer_id_ignored(self, session, tracker_factory, recorder):
        connects = recorder()
        session.on(SessionEvent.PEER_CONNECT, connects)
        await session.start()

        channel = tracker_factory.clients[T1].offer_peer(session.peer_id)
        channel.connect()

        assert connects.calls == []
        assert session.peers == {}

    @pytest.mark.asyncio
    async def test_remove_tracker_keeps_channels(self, session, tracker_factory, recorder):
        closes = recorder()
        session.on(SessionEvent.PEER_CLOSE, closes)
        await session.start()
        tracker_factory.clients[T1].offer_peer(PEER_X, "a").connect()

        await session.remove_tracker(T1)

        assert tracker_factory.clients[T1].destroy_kwargs == {"keep_peers": True}
        assert PEER_X in session.peers
        assert closes.calls == []
        assert session.announce_urls == [T2]

    @pytest.mark.asyncio
    async def test_destroy_closes_channels(self, session, tracker_factory, recorder):
        closes = recorder()
        session.on(SessionEvent.PEER_CLOSE, closes)
        await session.start()
        channel = tracker_factory.clients[T1].offer_peer(PEER_X, "a")
        channel.connect()

        await session.destroy()

        assert channel.destroyed is True
        assert closes.calls == [(channel,)]
        assert session.peers == {}

    @pytest.mark.asyncio
    async def test_request_more_peers_returns_snapshot(self, session, tracker_factory):
        await session.start()
        tracker_factory.clients[T2].offer_peer(PEER_X, "b").connect()

        peers = await session.request_more_peers({"numwant": 10})

        assert list(peers) == [PEER_X]
        for client in tracker_factory.clients.values():
            assert client.announces[-1]["numwant"] == 10
        peers.clear()
        assert PEER_X in session.peers


class TestTrackers:
    """Tests for tracker management through the session."""

    @pytest.mark.asyncio
    async def test_add_tracker(self, session, tracker_factory, recorder):
        connects = recorder()
        session.on(SessionEvent.TRACKER_CONNECT, connects)
        await session.start()
        t3 = "wss://tracker-three.example"

        entry = await session.add_tracker(t3)
        tracker_factory.clients[t3].respond()

        assert session.announce_urls == [T1, T2, t3]
        assert connects.calls == [(entry, TrackerStats(connected=3, total=3))]

    @pytest.mark.asyncio
    async def test_add_existing_tracker_rejected(self, session):
        await session.start()

        with pytest.raises(TrackerAlreadyExistsError):
            await session.add_tracker(T1)

    @pytest.mark.asyncio
    async def test_remove_unknown_tracker_rejected(self, session):
        with pytest.raises(TrackerNotFoundError):
            await session.remove_tracker(T1)

    @pytest.mark.asyncio
    async def test_tracker_warning(self, session, tracker_factory, recorder):
        warnings = recorder()
        session.on(SessionEvent.TRACKER_WARNING, warnings)
        await session.start()

        tracker_factory.clients[T2].warn("bad info hash")

        assert warnings.calls == [("bad info hash", TrackerStats(connected=2, total=2))]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self, session, tracker_factory):
        seen = []

        async def _on_connect(peer):
            await asyncio.sleep(0)
            seen.append(peer.id)

        session.on(SessionEvent.PEER_CONNECT, _on_connect)
        await session.start()
        tracker_factory.clients[T1].offer_peer(PEER_X).connect()

        await session.events.drain()

        assert seen == [PEER_X]

    def test_off_removes_handler(self, session, recorder):
        handler = recorder()
        session.on("peerconnect", handler)

        assert session.off(SessionEvent.PEER_CONNECT, handler) is True
        assert session.off(SessionEvent.PEER_CONNECT, handler) is False
