"""trackermesh - peer discovery using BitTorrent trackers as a signaling layer."""

from __future__ import annotations

__version__ = "0.1.0"

from trackermesh.config.config import Config, ConfigManager, get_config, init_config
from trackermesh.discovery.tracker_registry import (
    TrackerEntry,
    TrackerRegistry,
    TrackerStats,
)
from trackermesh.peer.session_table import PeerSessionTable
from trackermesh.session.session import DiscoverySession
from trackermesh.session.types import (
    PeerChannelProtocol,
    TrackerClientProtocol,
    TrackerContext,
)
from trackermesh.transport.chunks import ChunkReassembler, Fragment, split_message
from trackermesh.utils.events import (
    ChannelEvent,
    EventEmitter,
    SessionEvent,
    TrackerEvent,
)
from trackermesh.utils.exceptions import (
    FragmentError,
    TrackerAlreadyExistsError,
    TrackerMeshError,
    TrackerNotFoundError,
)

__all__ = [
    "ChannelEvent",
    "ChunkReassembler",
    "Config",
    "ConfigManager",
    "DiscoverySession",
    "EventEmitter",
    "Fragment",
    "FragmentError",
    "PeerChannelProtocol",
    "PeerSessionTable",
    "SessionEvent",
    "TrackerAlreadyExistsError",
    "TrackerClientProtocol",
    "TrackerContext",
    "TrackerEntry",
    "TrackerEvent",
    "TrackerMeshError",
    "TrackerNotFoundError",
    "TrackerRegistry",
    "TrackerStats",
    "__version__",
    "get_config",
    "init_config",
    "split_message",
]
