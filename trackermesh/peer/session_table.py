"""Peer identity table with per-identity channel redundancy.

The same remote peer is often reachable through several trackers at once, and
each path negotiates its own data channel. Channels are grouped under the peer
identity so the logical peer survives as long as any one of them is open:
``peerconnect`` fires when the first channel for an identity opens and
``peerclose`` when its last channel goes away.
"""

from __future__ import annotations

import inspect
from typing import Any

from trackermesh.session.types import PeerChannelProtocol
from trackermesh.utils.events import ChannelEvent, EventEmitter, SessionEvent
from trackermesh.utils.logging_config import get_logger

logger = get_logger(__name__)


class PeerSessionTable:
    """Maps peer identity → channel name → open channel."""

    def __init__(self, events: EventEmitter | None = None) -> None:
        """Initialize an empty table.

        Args:
            events: Emitter receiving ``peerconnect`` / ``peerclose``

        """
        self.events = events or EventEmitter("peers")
        self._peers: dict[str, dict[str, PeerChannelProtocol]] = {}

    def attach(self, channel: PeerChannelProtocol) -> None:
        """Follow a channel announced by a tracker until it closes."""
        channel.on(ChannelEvent.CONNECT, lambda *_: self.open_channel(channel))
        channel.on(
            ChannelEvent.ERROR,
            lambda err=None, *_: self.close_channel(channel, error=err),
        )
        channel.on(ChannelEvent.CLOSE, lambda *_: self.close_channel(channel))

    def open_channel(self, channel: PeerChannelProtocol) -> bool:
        """Record an opened channel; returns True if its peer is new.

        A channel reusing the name of a stored one replaces it without
        emitting anything.
        """
        channels = self._peers.get(channel.id)
        is_new_peer = channels is None
        if channels is None:
            channels = {}
            self._peers[channel.id] = channels

        previous = channels.get(channel.channel_name)
        if previous is not None and previous is not channel:
            logger.debug(
                "Channel %s to peer %s replaced by a newer link",
                channel.channel_name,
                channel.id,
            )
        channels[channel.channel_name] = channel

        if is_new_peer:
            logger.info("New peer %s via channel %s", channel.id, channel.channel_name)
            self.events.emit(SessionEvent.PEER_CONNECT, channel)
        else:
            logger.debug(
                "Additional channel %s to peer %s (%d open)",
                channel.channel_name,
                channel.id,
                len(channels),
            )
        return is_new_peer

    def close_channel(
        self,
        channel: PeerChannelProtocol,
        error: Any = None,
    ) -> bool:
        """Forget a closed or failed channel; returns True if its peer was lost.

        Signals from channels that are not the stored one for their name
        (never opened, or already replaced) are ignored.
        """
        if error is not None:
            logger.warning(
                "Error in connection to %s on channel %s: %s",
                channel.id,
                channel.channel_name,
                error,
            )
        else:
            logger.debug(
                "Connection closed with %s on channel %s",
                channel.id,
                channel.channel_name,
            )

        channels = self._peers.get(channel.id)
        if channels is None or channels.get(channel.channel_name) is not channel:
            return False

        del channels[channel.channel_name]
        if channels:
            return False

        # All data channels are gone
        del self._peers[channel.id]
        logger.info("Peer %s lost its last channel", channel.id)
        self.events.emit(SessionEvent.PEER_CLOSE, channel)
        return True

    async def close_all(self) -> None:
        """Destroy every channel of every peer.

        Peers whose transport does not report the close synchronously are
        removed afterwards with one ``peerclose`` each.
        """
        for channels in list(self._peers.values()):
            for channel in list(channels.values()):
                try:
                    result = channel.destroy()
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception(
                        "Failed to destroy channel %s to peer %s",
                        channel.channel_name,
                        channel.id,
                    )

        for peer_id, channels in list(self._peers.items()):
            del self._peers[peer_id]
            last = next(iter(channels.values()), None)
            if last is not None:
                self.events.emit(SessionEvent.PEER_CLOSE, last)

    def get_channels(self, peer_id: str) -> dict[str, PeerChannelProtocol]:
        """Snapshot of the open channels to ``peer_id`` (empty if unknown)."""
        return dict(self._peers.get(peer_id, {}))

    def peers(self) -> dict[str, dict[str, PeerChannelProtocol]]:
        """Snapshot of every peer and its open channels."""
        return {peer_id: dict(channels) for peer_id, channels in self._peers.items()}

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._peers

    def __len__(self) -> int:
        return len(self._peers)
