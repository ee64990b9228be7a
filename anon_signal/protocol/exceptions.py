"""
Custom exceptions for the signalling protocol.

Every failure a caller is expected to branch on is a ``SignalError`` carrying
an ``ErrorKind``; the remaining classes report misuse or broken collaborators.
"""

from __future__ import annotations

from enum import Enum


class PrivacyProtocolError(Exception):
    """Base exception for signalling protocol errors."""

    pass


class ProofGenerationError(PrivacyProtocolError):
    """Error raised by a proving engine while producing an artifact."""

    pass


class ProofVerificationError(PrivacyProtocolError):
    """Error during proof decoding or verification."""

    pass


class ConfigurationError(PrivacyProtocolError):
    """Configuration error."""

    pass


class StorageError(PrivacyProtocolError):
    """Append-only log could not be read or written."""

    pass


class ErrorKind(str, Enum):
    """Terminal failure kinds reported to callers."""

    DUPLICATE_COMMITMENT = "duplicate_commitment"
    GROUP_FULL = "group_full"
    REGISTRATION_REFUSED = "registration_refused"
    INSUFFICIENT_ANONYMITY_SET = "insufficient_anonymity_set"
    STALE_ROOT = "stale_root"
    INVALID_PROOF = "invalid_proof"
    NULLIFIER_REUSED = "nullifier_reused"
    NETWORK_FAILURE = "network_failure"
    CANCELLED = "cancelled"
    UNKNOWN_GROUP = "unknown_group"
    MALFORMED_REQUEST = "malformed_request"
    PROVER_FAILURE = "prover_failure"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.NETWORK_FAILURE


class SignalError(PrivacyProtocolError):
    """A protocol failure of a specific kind."""

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        self.kind = ErrorKind(kind)
        self.detail = detail
        message = self.kind.value if not detail else f"{self.kind.value}: {detail}"
        super().__init__(message)
