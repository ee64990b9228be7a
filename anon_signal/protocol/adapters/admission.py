"""Admission-reference authorities."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import nacl.encoding
import nacl.exceptions
import nacl.signing
import nacl.utils

logger = logging.getLogger(__name__)

REF_NONCE_BYTES = 16


class StaticAdmissionAuthority:
    """Accepts exactly the references it was constructed with."""

    def __init__(self, valid_refs: Iterable[str]) -> None:
        self._valid = frozenset(valid_refs)

    def is_valid_ref(self, admission_ref: str) -> bool:
        return admission_ref in self._valid


class SignedAdmissionAuthority:
    """
    Admission references signed with Ed25519.

    A reference is the URL-safe base64 encoding of a signed random nonce. The
    issuer holds the signing key; registration servers only need the verify
    key.

    Example:
        >>> issuer = SignedAdmissionAuthority.generate()
        >>> ref = issuer.issue()
        >>> SignedAdmissionAuthority(verify_key=issuer.verify_key_hex).is_valid_ref(ref)
        True
    """

    def __init__(
        self,
        *,
        signing_key: Optional[nacl.signing.SigningKey] = None,
        verify_key: Optional[str] = None,
    ) -> None:
        if signing_key is None and verify_key is None:
            raise ValueError("signing_key or verify_key is required")
        self._signing_key = signing_key
        if verify_key is not None:
            self._verify_key = nacl.signing.VerifyKey(
                verify_key, encoder=nacl.encoding.HexEncoder
            )
        else:
            self._verify_key = signing_key.verify_key

    @classmethod
    def generate(cls) -> "SignedAdmissionAuthority":
        return cls(signing_key=nacl.signing.SigningKey.generate())

    @classmethod
    def from_seed_hex(cls, seed_hex: str) -> "SignedAdmissionAuthority":
        key = nacl.signing.SigningKey(seed_hex, encoder=nacl.encoding.HexEncoder)
        return cls(signing_key=key)

    @property
    def seed_hex(self) -> str:
        if self._signing_key is None:
            raise ValueError("verify-only authority has no seed")
        return self._signing_key.encode(encoder=nacl.encoding.HexEncoder).decode("ascii")

    @property
    def verify_key_hex(self) -> str:
        return self._verify_key.encode(encoder=nacl.encoding.HexEncoder).decode("ascii")

    def issue(self) -> str:
        if self._signing_key is None:
            raise ValueError("verify-only authority cannot issue references")
        nonce = nacl.utils.random(REF_NONCE_BYTES)
        signed = self._signing_key.sign(nonce, encoder=nacl.encoding.URLSafeBase64Encoder)
        return signed.decode("ascii")

    def is_valid_ref(self, admission_ref: str) -> bool:
        try:
            nonce = self._verify_key.verify(
                admission_ref.encode("ascii"),
                encoder=nacl.encoding.URLSafeBase64Encoder,
            )
        except nacl.exceptions.BadSignatureError:
            logger.debug("Admission reference signature mismatch")
            return False
        except (ValueError, TypeError, UnicodeEncodeError):
            return False
        return len(nonce) == REF_NONCE_BYTES
