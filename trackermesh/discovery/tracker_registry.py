"""Registry of tracker endpoints used as a signaling layer.

Each announce URL gets its own tracker client. Clients report back through
the registry's ``signals`` emitter; the registry turns their ``update`` and
``warning`` signals into ``trackerconnect`` / ``trackerwarning`` notifications
carrying the current connection stats. ``peer`` signals are left for the
session to route to the peer table.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Mapping

from trackermesh.models import DiscoveryConfig
from trackermesh.session.types import (
    TrackerClientProtocol,
    TrackerContext,
    TrackerFactory,
)
from trackermesh.utils.events import EventEmitter, SessionEvent, TrackerEvent
from trackermesh.utils.exceptions import (
    TrackerAlreadyExistsError,
    TrackerNotFoundError,
)
from trackermesh.utils.logging_config import (
    LoggingContext,
    get_logger,
    log_exception,
)

logger = get_logger(__name__)


@dataclass
class TrackerEntry:
    """A registered announce URL and its client."""

    announce_url: str
    client: TrackerClientProtocol

    @property
    def connected(self) -> bool:
        """Whether the client currently reports an open connection."""
        try:
            return bool(self.client.connected)
        except Exception:
            logger.debug("Tracker %s connection state unavailable", self.announce_url)
            return False


@dataclass(frozen=True)
class TrackerStats:
    """Connected versus registered tracker counts."""

    connected: int
    total: int

    def to_dict(self) -> dict[str, int]:
        """Convert stats to dictionary."""
        return {"connected": self.connected, "total": self.total}


def default_announce_opts(
    opts: Mapping[str, Any] | None = None,
    defaults: DiscoveryConfig | None = None,
) -> dict[str, Any]:
    """Fill ``numwant``, ``uploaded`` and ``downloaded`` where not given.

    Keys explicitly set to ``None`` count as not given.
    """
    defaults = defaults or DiscoveryConfig()
    result = dict(opts or {})
    for key, value in (
        ("numwant", defaults.numwant),
        ("uploaded", defaults.uploaded),
        ("downloaded", defaults.downloaded),
    ):
        if result.get(key) is None:
            result[key] = value
    return result


class TrackerRegistry:
    """Owns tracker entries, their clients and announce scheduling."""

    def __init__(
        self,
        factory: TrackerFactory,
        context: TrackerContext,
        events: EventEmitter | None = None,
        defaults: DiscoveryConfig | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            factory: Builds a tracker client for an announce URL
            context: Local identity handed to every client; its ``signals``
                emitter is where clients report
            events: Emitter receiving ``trackerconnect`` / ``trackerwarning``
            defaults: Default announce option values

        """
        self.factory = factory
        self.context = context
        self.events = events or EventEmitter("trackers")
        self.defaults = defaults or DiscoveryConfig()
        self._trackers: dict[str, TrackerEntry] = {}

        self.signals.on(TrackerEvent.UPDATE, self._on_update)
        self.signals.on(TrackerEvent.WARNING, self._on_warning)

    @property
    def signals(self) -> EventEmitter:
        """Emitter tracker clients report ``peer``/``update``/``warning`` on."""
        return self.context.signals

    def announce_opts(self, opts: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Announce options with configured defaults applied."""
        return default_announce_opts(opts, self.defaults)

    async def add_tracker(
        self,
        announce_url: str,
        opts: Mapping[str, Any] | None = None,
    ) -> TrackerEntry:
        """Register ``announce_url``, open its client and announce once.

        Raises:
            TrackerAlreadyExistsError: if the URL is already registered

        """
        if announce_url in self._trackers:
            msg = f"Tracker already added: {announce_url}"
            raise TrackerAlreadyExistsError(msg, {"announce_url": announce_url})

        with LoggingContext("tracker_add", announce_url=announce_url):
            client = self.factory(announce_url, self.context)
            entry = TrackerEntry(announce_url, client)
            self._trackers[announce_url] = entry
            await self._announce(entry, self.announce_opts(opts))
        return entry

    async def remove_tracker(self, announce_url: str) -> None:
        """Unregister ``announce_url`` and stop its client.

        Channels negotiated through this tracker stay open.

        Raises:
            TrackerNotFoundError: if the URL is not registered

        """
        entry = self._trackers.pop(announce_url, None)
        if entry is None:
            msg = f"Tracker does not exist: {announce_url}"
            raise TrackerNotFoundError(msg, {"announce_url": announce_url})

        with LoggingContext("tracker_remove", announce_url=announce_url):
            await self._destroy_client(entry, keep_peers=True)

    async def request_more_peers(self, opts: Mapping[str, Any] | None = None) -> None:
        """Announce again on every registered tracker.

        Returns once every announce has been dispatched.
        """
        announce_opts = self.announce_opts(opts)
        await asyncio.gather(
            *(self._announce(entry, announce_opts) for entry in list(self._trackers.values()))
        )

    def get_stats(self) -> TrackerStats:
        """Count connected trackers against registered ones."""
        connected = sum(1 for entry in self._trackers.values() if entry.connected)
        return TrackerStats(connected=connected, total=len(self._trackers))

    def get(self, announce_url: str) -> TrackerEntry | None:
        """Entry registered for ``announce_url``, if any."""
        return self._trackers.get(announce_url)

    @property
    def urls(self) -> list[str]:
        """Registered announce URLs in registration order."""
        return list(self._trackers)

    def __contains__(self, announce_url: object) -> bool:
        return announce_url in self._trackers

    def __len__(self) -> int:
        return len(self._trackers)

    async def destroy(self) -> None:
        """Stop every tracker client and empty the registry."""
        entries = list(self._trackers.values())
        self._trackers.clear()
        for entry in entries:
            await self._destroy_client(entry, keep_peers=False)

    async def _announce(self, entry: TrackerEntry, opts: dict[str, Any]) -> None:
        # A failing announce is reported like any other tracker warning
        try:
            result = entry.client.announce(dict(opts))
            if inspect.isawaitable(result):
                await result
            logger.debug("Announced to %s (numwant=%s)", entry.announce_url, opts["numwant"])
        except Exception as e:
            logger.warning("Announce to %s failed: %s", entry.announce_url, e)
            self.events.emit(SessionEvent.TRACKER_WARNING, e, self.get_stats())

    async def _destroy_client(self, entry: TrackerEntry, *, keep_peers: bool) -> None:
        try:
            result = entry.client.destroy(keep_peers=keep_peers)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            log_exception(logger, e, f"Failed to destroy tracker client {entry.announce_url}")

    def _on_update(self, response: Any = None, *_: Any) -> None:
        announce_url = None
        if isinstance(response, Mapping):
            announce_url = response.get("announce")
        entry = self._trackers.get(announce_url) if announce_url else None
        if entry is None:
            logger.debug("Ignoring update from unregistered tracker %s", announce_url)
            return
        stats = self.get_stats()
        logger.debug(
            "Tracker %s responded (%d/%d connected)",
            entry.announce_url,
            stats.connected,
            stats.total,
        )
        self.events.emit(SessionEvent.TRACKER_CONNECT, entry, stats)

    def _on_warning(self, error: Any = None, *_: Any) -> None:
        stats = self.get_stats()
        logger.warning(
            "Tracker warning (%d/%d connected): %s", stats.connected, stats.total, error
        )
        self.events.emit(SessionEvent.TRACKER_WARNING, error, stats)
