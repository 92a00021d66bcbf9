"""Message fragmentation and reassembly.

Large application messages are split into indexed fragments, the final one
flagged ``last``. Fragments may arrive in any order; the reassembler stores
each at its declared index and hands back the joined message once the last
fragment and every index before it have been seen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, Union

from trackermesh.config.config import get_transport_config
from trackermesh.utils.exceptions import FragmentError
from trackermesh.utils.logging_config import get_logger

logger = get_logger(__name__)

Payload = Union[bytes, str]


@dataclass(frozen=True)
class Fragment:
    """One piece of a split message."""

    message_id: Hashable
    index: int
    payload: Payload
    last: bool = False


@dataclass
class ChunkBuffer:
    """Fragments received so far for one message id."""

    fragments: dict[int, Payload] = field(default_factory=dict)
    last_index: int | None = None

    @property
    def complete(self) -> bool:
        """True once the last fragment and all indices before it are stored."""
        return (
            self.last_index is not None
            and len(self.fragments) == self.last_index + 1
        )

    def join(self) -> Payload:
        """Concatenate fragments in index order."""
        parts = [self.fragments[i] for i in range(len(self.fragments))]
        if isinstance(parts[0], str):
            return "".join(parts)  # type: ignore[arg-type]
        return b"".join(parts)  # type: ignore[arg-type]


class ChunkReassembler:
    """Rebuilds messages from out-of-order fragments, keyed by message id.

    Buffers for messages whose last fragment never arrives stay until the
    owner calls :meth:`discard`, e.g. when the channel carrying them closes.
    """

    def __init__(self) -> None:
        """Initialize with no pending messages."""
        self._buffers: dict[Hashable, ChunkBuffer] = {}

    def ingest(
        self,
        message_id: Hashable,
        index: int,
        payload: Payload,
        is_last: bool = False,
    ) -> Payload | None:
        """Store one fragment; return the whole message when it completes.

        Raises:
            FragmentError: on a negative index, an index past the declared last
                fragment, a conflicting last marker, or mixed str/bytes payloads.

        """
        if index < 0:
            msg = f"Negative fragment index {index} for message {message_id!r}"
            raise FragmentError(msg, {"message_id": message_id, "index": index})

        buffer = self._buffers.get(message_id)
        if buffer is None:
            buffer = ChunkBuffer()
            self._buffers[message_id] = buffer

        if buffer.last_index is not None and index > buffer.last_index:
            msg = (
                f"Fragment {index} of message {message_id!r} is past "
                f"the last fragment {buffer.last_index}"
            )
            raise FragmentError(msg, {"message_id": message_id, "index": index})

        if is_last:
            if buffer.last_index is not None and buffer.last_index != index:
                msg = f"Message {message_id!r} has two last fragments"
                raise FragmentError(
                    msg,
                    {"message_id": message_id, "index": index, "last": buffer.last_index},
                )
            beyond = [i for i in buffer.fragments if i > index]
            if beyond:
                msg = (
                    f"Last fragment {index} of message {message_id!r} precedes "
                    f"stored fragment {max(beyond)}"
                )
                raise FragmentError(msg, {"message_id": message_id, "index": index})

        if buffer.fragments:
            first = next(iter(buffer.fragments.values()))
            if isinstance(first, str) != isinstance(payload, str):
                msg = f"Mixed str and bytes fragments in message {message_id!r}"
                raise FragmentError(msg, {"message_id": message_id, "index": index})

        buffer.fragments[index] = payload
        if is_last:
            buffer.last_index = index

        if not buffer.complete:
            return None

        del self._buffers[message_id]
        message = buffer.join()
        logger.debug(
            "Reassembled message %r from %d fragments (%d units)",
            message_id,
            len(buffer.fragments),
            len(message),
        )
        return message

    def ingest_fragment(self, fragment: Fragment) -> Payload | None:
        """:meth:`ingest` for a :class:`Fragment`."""
        return self.ingest(
            fragment.message_id, fragment.index, fragment.payload, fragment.last
        )

    def discard(self, message_id: Hashable) -> bool:
        """Drop the pending buffer for ``message_id``; False if there was none."""
        buffer = self._buffers.pop(message_id, None)
        if buffer is None:
            return False
        logger.debug(
            "Discarded %d pending fragments of message %r",
            len(buffer.fragments),
            message_id,
        )
        return True

    @property
    def pending(self) -> list[Hashable]:
        """Ids of messages still waiting for fragments."""
        return list(self._buffers)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)


def split_message(
    message_id: Hashable,
    payload: Payload,
    max_fragment_size: int | None = None,
) -> list[Fragment]:
    """Split ``payload`` into fragments of at most ``max_fragment_size`` units.

    The size defaults to ``transport.max_fragment_size`` from the
    configuration. An empty payload yields a single empty fragment marked last.
    """
    if max_fragment_size is None:
        max_fragment_size = get_transport_config().max_fragment_size
    if max_fragment_size < 1:
        msg = f"max_fragment_size must be positive, got {max_fragment_size}"
        raise ValueError(msg)

    if not payload:
        return [Fragment(message_id, 0, payload, last=True)]

    pieces = [
        payload[offset : offset + max_fragment_size]
        for offset in range(0, len(payload), max_fragment_size)
    ]
    return [
        Fragment(message_id, index, piece, last=index == len(pieces) - 1)
        for index, piece in enumerate(pieces)
    ]
