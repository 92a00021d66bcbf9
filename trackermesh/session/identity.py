"""Local peer identity and lookup key derivation."""

from __future__ import annotations

import hashlib
import secrets

PEER_ID_LENGTH = 20


def generate_peer_id() -> bytes:
    """Return a fresh random peer id of :data:`PEER_ID_LENGTH` bytes."""
    return secrets.token_bytes(PEER_ID_LENGTH)


def derive_lookup_key(identifier: str) -> str:
    """Hash an application identifier into the lowercase hex tracker lookup key.

    Every peer using the same identifier announces under the same key, which
    scopes discovery to one application network.
    """
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest().lower()  # nosec B324 - info hash, not a security digest


def lookup_key_bytes(identifier: str) -> bytes:
    """Binary form of :func:`derive_lookup_key` as sent in announces."""
    return bytes.fromhex(derive_lookup_key(identifier))
