"""Pytest configuration and shared fixtures for trackermesh tests."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable

import pytest

from trackermesh.config.config import reset_config
from trackermesh.models import Config, DiscoveryConfig
from trackermesh.session.types import TrackerContext
from trackermesh.utils.events import ChannelEvent, EventEmitter, TrackerEvent


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("tracker", "marks tests as tracker tests"),
        ("peer", "marks tests as peer table tests"),
        ("transport", "marks tests as fragmentation tests"),
        ("session", "marks tests as session management tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
        ("property", "marks tests as property-based tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep tests away from user config files and TRACKERMESH_* variables."""
    for name in list(os.environ):
        if name.startswith("TRACKERMESH_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
    # setup_logging() detaches the package logger from the root handlers
    package_logger = logging.getLogger("trackermesh")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


class FakeChannel:
    """In-memory stand-in for a negotiated peer data channel."""

    def __init__(self, peer_id: str, channel_name: str, *, close_on_destroy: bool = True):
        self.id = peer_id
        self.channel_name = channel_name
        self.events = EventEmitter(f"channel-{channel_name}")
        self.sent: list[Any] = []
        self.destroyed = False
        self.close_on_destroy = close_on_destroy

    def send(self, payload):
        self.sent.append(payload)

    def on(self, event, handler):
        return self.events.on(event, handler)

    def destroy(self):
        self.destroyed = True
        if self.close_on_destroy:
            self.close()

    def connect(self):
        self.events.emit(ChannelEvent.CONNECT)

    def error(self, err: Any):
        self.events.emit(ChannelEvent.ERROR, err)

    def close(self):
        self.events.emit(ChannelEvent.CLOSE)


class FakeTrackerClient:
    """Tracker client that records announces and lets tests push signals."""

    def __init__(self, announce_url: str, context: TrackerContext):
        self.announce_url = announce_url
        self.context = context
        self.connected = False
        self.announces: list[dict[str, Any]] = []
        self.destroyed = False
        self.destroy_kwargs: dict[str, Any] = {}

    async def announce(self, opts):
        self.announces.append(opts)
        self.connected = True

    async def destroy(self, *, keep_peers: bool = False):
        self.destroyed = True
        self.destroy_kwargs = {"keep_peers": keep_peers}
        self.connected = False

    def offer_peer(self, peer_id: str, channel_name: str | None = None) -> FakeChannel:
        channel = FakeChannel(peer_id, channel_name or self.announce_url)
        self.context.signals.emit(TrackerEvent.PEER, channel)
        return channel

    def respond(self):
        self.context.signals.emit(TrackerEvent.UPDATE, {"announce": self.announce_url})

    def warn(self, error: Any):
        self.context.signals.emit(TrackerEvent.WARNING, error)


class TrackerFactory:
    """Records every client it builds, keyed by announce URL."""

    def __init__(self):
        self.clients: dict[str, FakeTrackerClient] = {}
        self.created: list[str] = []

    def __call__(self, announce_url: str, context: TrackerContext) -> FakeTrackerClient:
        client = FakeTrackerClient(announce_url, context)
        self.clients[announce_url] = client
        self.created.append(announce_url)
        return client


class Recorder:
    """Collects handler invocations for assertions."""

    def __init__(self):
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    def __len__(self) -> int:
        return len(self.calls)


@pytest.fixture
def tracker_factory() -> TrackerFactory:
    return TrackerFactory()


@pytest.fixture
def tracker_context() -> TrackerContext:
    return TrackerContext(info_hash=b"\x01" * 20, peer_id=b"\x02" * 20, signals=EventEmitter("signals"))


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    return FakeChannel


@pytest.fixture
def recorder() -> Callable[[], Recorder]:
    return Recorder


@pytest.fixture
def config() -> Config:
    return Config(discovery=DiscoveryConfig(identifier="test-network"))
