"""Discovery session: the composition root of trackermesh.

A session announces a lookup key derived from an application identifier to a
set of trackers, routes the peer channels they negotiate into a
:class:`PeerSessionTable`, and exposes four notifications:

``peerconnect(peer)``
    first channel to a new peer identity opened
``peerclose(peer)``
    last channel to a peer identity closed
``trackerconnect(tracker, stats)``
    a tracker answered an announce
``trackerwarning(error, stats)``
    a tracker reported a problem; never fatal
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from trackermesh.config.config import get_config
from trackermesh.discovery.tracker_registry import (
    TrackerEntry,
    TrackerRegistry,
    TrackerStats,
)
from trackermesh.models import Config
from trackermesh.peer.session_table import PeerSessionTable
from trackermesh.session.identity import (
    derive_lookup_key,
    generate_peer_id,
)
from trackermesh.session.types import (
    PeerChannelProtocol,
    TrackerContext,
    TrackerFactory,
)
from trackermesh.utils.events import (
    EventEmitter,
    EventName,
    SessionEvent,
    TrackerEvent,
)
from trackermesh.utils.exceptions import ConfigurationError
from trackermesh.utils.logging_config import LoggingContext, get_logger

logger = get_logger(__name__)


class DiscoverySession:
    """Peer discovery over a set of tracker endpoints."""

    def __init__(
        self,
        announce_urls: Iterable[str] | None = None,
        identifier: str | None = None,
        *,
        tracker_factory: TrackerFactory,
        config: Config | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            announce_urls: Trackers to announce on at :meth:`start`; defaults to
                ``discovery.announce_urls`` from the configuration
            identifier: Application identifier scoping discovery; defaults to
                ``discovery.identifier``
            tracker_factory: Builds the tracker client for an announce URL
            config: Configuration; the global configuration when omitted

        """
        self.config = config or get_config()
        discovery = self.config.discovery

        urls = discovery.announce_urls if announce_urls is None else announce_urls
        self.announce_urls: list[str] = list(dict.fromkeys(urls))
        self.identifier = ""
        self.info_hash = ""

        self._peer_id_bytes = generate_peer_id()
        self.events = EventEmitter("session")
        self._context = TrackerContext(
            info_hash=b"",
            peer_id=self._peer_id_bytes,
            signals=EventEmitter("tracker-signals"),
        )
        self.trackers = TrackerRegistry(
            tracker_factory,
            self._context,
            events=self.events,
            defaults=discovery,
        )
        self.table = PeerSessionTable(events=self.events)

        self.started = False
        self._routing_peers = False

        identifier = discovery.identifier if identifier is None else identifier
        if identifier:
            self.set_identifier(identifier)

        logger.debug("My peer id: %s", self.peer_id)

    @property
    def peer_id(self) -> str:
        """Hex form of the local peer id."""
        return self._peer_id_bytes.hex()

    @property
    def peer_id_bytes(self) -> bytes:
        """Raw local peer id sent to trackers."""
        return self._peer_id_bytes

    @property
    def info_hash_bytes(self) -> bytes:
        """Binary lookup key sent to trackers."""
        return self._context.info_hash

    def set_identifier(self, identifier: str) -> None:
        """Scope discovery to ``identifier``; later announces use the new key."""
        self.identifier = identifier
        self.info_hash = derive_lookup_key(identifier)
        self._context.info_hash = bytes.fromhex(self.info_hash)
        logger.debug("Lookup key for %r is %s", identifier, self.info_hash)

    def on(self, event: EventName, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register a handler for a session notification."""
        return self.events.on(event, handler)

    def off(self, event: EventName, handler: Callable[..., Any]) -> bool:
        """Unregister a handler for a session notification."""
        return self.events.off(event, handler)

    async def start(self) -> None:
        """Connect to every configured tracker and start discovering peers.

        Peer channels offered by trackers are routed into the peer table from
        here on. A tracker that cannot be opened is reported through
        ``trackerwarning`` and skipped; it can be retried with
        :meth:`add_tracker`.
        """
        if self.started:
            logger.debug("Session already started")
            return
        if not self.identifier:
            msg = "An identifier is required before starting discovery"
            raise ConfigurationError(msg)

        with LoggingContext("session_start", peer_id=self.peer_id):
            if not self._routing_peers:
                self.trackers.signals.on(TrackerEvent.PEER, self._on_peer)
                self._routing_peers = True
            for announce_url in list(self.announce_urls):
                if announce_url in self.trackers:
                    continue
                try:
                    await self.trackers.add_tracker(announce_url)
                except Exception as e:
                    # One unreachable tracker must not keep the others from starting
                    logger.warning("Could not open tracker %s: %s", announce_url, e)
                    self.events.emit(
                        SessionEvent.TRACKER_WARNING, e, self.trackers.get_stats()
                    )
            self.started = True

    async def add_tracker(
        self,
        announce_url: str,
        opts: Mapping[str, Any] | None = None,
    ) -> TrackerEntry:
        """Add a tracker and announce on it immediately."""
        entry = await self.trackers.add_tracker(announce_url, opts)
        if announce_url not in self.announce_urls:
            self.announce_urls.append(announce_url)
        return entry

    async def remove_tracker(self, announce_url: str) -> None:
        """Remove a tracker without closing the peer channels it negotiated."""
        await self.trackers.remove_tracker(announce_url)
        if announce_url in self.announce_urls:
            self.announce_urls.remove(announce_url)

    async def request_more_peers(
        self,
        opts: Mapping[str, Any] | None = None,
    ) -> dict[str, dict[str, PeerChannelProtocol]]:
        """Announce again on every tracker; returns the current peers."""
        await self.trackers.request_more_peers(opts)
        return self.peers

    @property
    def peers(self) -> dict[str, dict[str, PeerChannelProtocol]]:
        """Snapshot of peer id → channel name → channel."""
        return self.table.peers()

    def get_tracker_stats(self) -> TrackerStats:
        """Connected and registered tracker counts."""
        return self.trackers.get_stats()

    async def destroy(self) -> None:
        """Close every peer channel, then every tracker."""
        with LoggingContext("session_stop", peer_id=self.peer_id):
            await self.table.close_all()
            await self.trackers.destroy()
            await self.events.drain()
            self.started = False

    async def __aenter__(self) -> DiscoverySession:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.destroy()

    def _on_peer(self, channel: PeerChannelProtocol, *_: Any) -> None:
        if channel.id == self.peer_id:
            logger.debug("Ignoring own peer id from tracker")
            return
        self.table.attach(channel)
