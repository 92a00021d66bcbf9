"""Message fragmentation for peer channels."""

from __future__ import annotations

from trackermesh.transport.chunks import (
    ChunkBuffer,
    ChunkReassembler,
    Fragment,
    split_message,
)

__all__ = ["ChunkBuffer", "ChunkReassembler", "Fragment", "split_message"]
