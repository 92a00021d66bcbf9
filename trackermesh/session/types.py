"""Capability interfaces the session layer requires from its collaborators.

The tracker client (wire protocol, signaling) and the peer transport (ICE/SDP,
data channels) live outside this package; the session only depends on the
shapes declared here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover
    from trackermesh.utils.events import EventEmitter, EventName


@runtime_checkable
class PeerChannelProtocol(Protocol):
    """One negotiated data link to a remote peer.

    ``id`` is the remote peer identity and ``channel_name`` tells redundant
    links to the same identity apart. The channel notifies ``connect``,
    ``error`` (with the error) and ``close`` through ``on``.
    """

    id: str
    channel_name: str

    def send(self, payload: bytes | str) -> Any: ...

    def on(self, event: EventName, handler: Callable[..., Any]) -> Any: ...

    def destroy(self) -> Any: ...


@runtime_checkable
class TrackerClientProtocol(Protocol):
    """Connection to a single tracker announce endpoint.

    Clients report through the registry's signal emitter: ``peer`` with a
    :class:`PeerChannelProtocol`, ``update`` with a response mapping carrying
    the ``announce`` URL, and ``warning`` with the error.
    """

    announce_url: str

    @property
    def connected(self) -> bool: ...

    async def announce(self, opts: dict[str, Any]) -> Any: ...

    async def destroy(self, *, keep_peers: bool = False) -> Any: ...


@dataclass
class TrackerContext:
    """What a tracker client needs to announce on behalf of the local peer.

    The session mutates ``info_hash`` when the identifier changes, so clients
    must read it at announce time rather than copying it.
    """

    info_hash: bytes
    peer_id: bytes
    signals: EventEmitter


TrackerFactory = Callable[[str, TrackerContext], TrackerClientProtocol]
