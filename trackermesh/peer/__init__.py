"""Peer identity and channel tracking."""

from __future__ import annotations

from trackermesh.peer.session_table import PeerSessionTable

__all__ = ["PeerSessionTable"]
