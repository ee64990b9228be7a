"""
Signal binding.

A proof commits to a message only through its bound hash. The hash is
SHA3-256 over the message bytes, shifted right by one byte so the value is
below 2**248 and fits the scalar field of common proving curves.
"""

from __future__ import annotations

import hashlib

from .config import DOMAIN_SEPARATORS, HASH_OUTPUT_BYTES


def bind(raw_message: bytes) -> bytes:
    """
    Derive the 32-byte bound hash of ``raw_message``.

    Deterministic and unkeyed; any change to the message bytes (including
    their order) changes the result.

    Raises:
        TypeError: If ``raw_message`` is not bytes
    """
    if not isinstance(raw_message, (bytes, bytearray)):
        raise TypeError(f"raw_message must be bytes, got {type(raw_message)}")
    digest = hashlib.sha3_256(DOMAIN_SEPARATORS["signal"] + bytes(raw_message)).digest()
    return b"\x00" + digest[: HASH_OUTPUT_BYTES - 1]


class SignalBinder:
    """Object form of :func:`bind` for injection into coordinators."""

    def bind(self, raw_message: bytes) -> bytes:
        return bind(raw_message)

    def bind_text(self, message: str) -> bytes:
        return bind(message.encode("utf-8"))
