"""
Common types for anonymous group signalling.

This module provides:
1. Commitment - validated fixed-width member commitment
2. Identity - secret material paired with its public commitment
3. GroupSnapshot - immutable view of a group used for proof production
4. SignalContext / PublicInputs / Proof - signal and proof structures with
   CBOR serialization
5. NullifierRecord / RegistrationRequest - ledger and registration records
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import cbor2

from .config import (
    COMMITMENT_BYTES,
    DOMAIN_SEPARATORS,
    HASH_OUTPUT_BYTES,
    MAX_PROOF_SIZE_BYTES,
    PROOF_VERSION,
)
from .exceptions import ErrorKind, ProofVerificationError, SignalError
from .merkle import compute_root

MemberIndex = int
GroupId = int

_MAX_COMMITMENT = (1 << (8 * COMMITMENT_BYTES)) - 1


def require_hash(value: Any, label: str) -> bytes:
    """Return ``value`` as bytes if it is a 32-byte hash, else raise."""
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"{label} must be bytes")
    if len(value) != HASH_OUTPUT_BYTES:
        raise ValueError(f"{label} must be {HASH_OUTPUT_BYTES} bytes")
    return bytes(value)


def require_group_id(value: Any) -> GroupId:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError("group id must be int")
    if value < 0:
        raise ValueError("group id must be non-negative")
    return value


def short_hex(value: bytes) -> str:
    return value.hex()[:12]


# ============================================================================
# COMMITMENT
# ============================================================================


@dataclass(frozen=True, order=True)
class Commitment:
    """
    Public commitment to a member's secret identity.

    Opaque to the protocol apart from its width: exactly 32 bytes, not all
    zero (the zero value marks empty tree slots).

    Example:
        >>> c = Commitment.parse("123456789")
        >>> str(c)
        '123456789'
    """

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)):
            raise TypeError("commitment must be bytes")
        if len(self.value) != COMMITMENT_BYTES:
            raise ValueError(f"commitment must be {COMMITMENT_BYTES} bytes")
        if not any(self.value):
            raise ValueError("commitment must be non-zero")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def from_int(cls, value: int) -> "Commitment":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError("commitment integer must be int")
        if value <= 0 or value > _MAX_COMMITMENT:
            raise ValueError("commitment integer out of range")
        return cls(value.to_bytes(COMMITMENT_BYTES, "big"))

    @classmethod
    def parse(cls, raw: Any) -> "Commitment":
        """
        Parse a decimal big-integer string, ``0x`` hex string, int or bytes.

        Raises:
            ValueError/TypeError: If the value is not a well-formed commitment
        """
        if isinstance(raw, Commitment):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            return cls(bytes(raw))
        if isinstance(raw, int) and not isinstance(raw, bool):
            return cls.from_int(raw)
        if not isinstance(raw, str):
            raise TypeError("commitment must be str, int or bytes")
        text = raw.strip()
        if not text:
            raise ValueError("commitment cannot be empty")
        try:
            if text.lower().startswith("0x"):
                return cls.from_int(int(text[2:], 16))
            if not text.isdigit():
                raise ValueError("commitment must be decimal digits")
            return cls.from_int(int(text, 10))
        except ValueError as exc:
            raise ValueError(f"malformed commitment: {exc}") from exc

    def to_int(self) -> int:
        return int.from_bytes(self.value, "big")

    def __str__(self) -> str:
        return str(self.to_int())

    def __repr__(self) -> str:
        return f"Commitment({short_hex(self.value)}...)"


# ============================================================================
# IDENTITY
# ============================================================================


@dataclass(frozen=True)
class Identity:
    """
    A member's secret identity material and its public commitment.

    The secret is opaque bytes produced by an external ceremony and never
    appears in ``repr`` output.
    """

    secret: bytes = field(repr=False)
    commitment: Commitment

    def __post_init__(self) -> None:
        if not isinstance(self.secret, (bytes, bytearray)) or not self.secret:
            raise ValueError("identity secret must be non-empty bytes")
        if not isinstance(self.commitment, Commitment):
            raise TypeError("identity commitment must be Commitment")


# ============================================================================
# GROUP SNAPSHOT
# ============================================================================


@dataclass(frozen=True)
class GroupSnapshot:
    """
    Immutable, self-consistent view of one group.

    ``root`` is always recomputed from ``members`` and ``depth``, so a
    snapshot cannot claim a root its members do not produce.
    """

    group_id: GroupId
    depth: int
    members: Tuple[Commitment, ...]
    root: bytes = b""

    def __post_init__(self) -> None:
        require_group_id(self.group_id)
        members = tuple(self.members)
        for member in members:
            if not isinstance(member, Commitment):
                raise TypeError("snapshot members must be Commitment")
        object.__setattr__(self, "members", members)
        root = compute_root([m.value for m in members], self.depth)
        if self.root and self.root != root:
            raise ValueError("snapshot root does not match members")
        object.__setattr__(self, "root", root)

    @classmethod
    def from_members(
        cls, group_id: GroupId, depth: int, members: Sequence[Commitment]
    ) -> "GroupSnapshot":
        return cls(group_id=group_id, depth=depth, members=tuple(members))

    @property
    def size(self) -> int:
        return len(self.members)

    def index_of(self, commitment: Commitment) -> Optional[int]:
        try:
            return self.members.index(commitment)
        except ValueError:
            return None


# ============================================================================
# SIGNAL CONTEXT
# ============================================================================


def external_nullifier(group_id: GroupId, topic: str = "") -> bytes:
    """
    Context tag handed to the prover.

    In group scope (empty topic) this is the group id as a 32-byte integer;
    with a topic it is a domain-separated hash of both.
    """
    require_group_id(group_id)
    if not topic:
        return group_id.to_bytes(HASH_OUTPUT_BYTES, "big")
    digest = hashlib.sha3_256(
        DOMAIN_SEPARATORS["external_nullifier"]
        + group_id.to_bytes(HASH_OUTPUT_BYTES, "big")
        + topic.encode("utf-8")
    ).digest()
    return b"\x00" + digest[:-1]


@dataclass(frozen=True)
class SignalContext:
    """Message to be signalled within one group, optionally under a topic."""

    group_id: GroupId
    raw_message: bytes
    topic: str = ""

    def __post_init__(self) -> None:
        require_group_id(self.group_id)
        if isinstance(self.raw_message, str):
            object.__setattr__(self, "raw_message", self.raw_message.encode("utf-8"))
        elif not isinstance(self.raw_message, (bytes, bytearray)):
            raise TypeError("raw_message must be bytes or str")
        if not isinstance(self.topic, str):
            raise TypeError("topic must be str")

    @property
    def external_nullifier(self) -> bytes:
        return external_nullifier(self.group_id, self.topic)


# ============================================================================
# PROOF
# ============================================================================


@dataclass(frozen=True)
class PublicInputs:
    """Values the membership circuit exposes publicly."""

    root: bytes
    nullifier_hash: bytes
    bound_hash: bytes
    external_context: GroupId
    topic: str = ""

    def __post_init__(self) -> None:
        require_hash(self.root, "root")
        require_hash(self.nullifier_hash, "nullifier_hash")
        require_hash(self.bound_hash, "bound_hash")
        require_group_id(self.external_context)
        if not isinstance(self.topic, str):
            raise TypeError("topic must be str")

    @property
    def external_nullifier(self) -> bytes:
        return external_nullifier(self.external_context, self.topic)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "nullifier_hash": self.nullifier_hash,
            "bound_hash": self.bound_hash,
            "external_context": self.external_context,
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicInputs":
        return cls(
            root=data["root"],
            nullifier_hash=data["nullifier_hash"],
            bound_hash=data["bound_hash"],
            external_context=data["external_context"],
            topic=data.get("topic", ""),
        )

    def to_bytes(self) -> bytes:
        """Canonical encoding used for artifact binding."""
        return cbor2.dumps(self.to_dict(), canonical=True)


@dataclass(frozen=True)
class Proof:
    """
    A produced signal proof: opaque artifact plus its public inputs.

    Serialization:
        - Primary: CBOR with version field
        - HTTP bodies: hex strings via to_json_dict()
    """

    artifact: bytes
    public_inputs: PublicInputs

    def __post_init__(self) -> None:
        if not isinstance(self.artifact, (bytes, bytearray)) or not self.artifact:
            raise ValueError("artifact must be non-empty bytes")
        if not isinstance(self.public_inputs, PublicInputs):
            raise TypeError("public_inputs must be PublicInputs")

    def serialize(self) -> bytes:
        data = {
            "version": PROOF_VERSION,
            "artifact": bytes(self.artifact),
            "public_inputs": self.public_inputs.to_dict(),
        }
        return cbor2.dumps(data, canonical=True)

    @classmethod
    def deserialize(cls, blob: bytes) -> "Proof":
        """
        Decode a CBOR-serialized proof.

        Raises:
            ProofVerificationError: On malformed, oversized, or
                wrong-version input
        """
        if not isinstance(blob, (bytes, bytearray)):
            raise ProofVerificationError("proof blob must be bytes")
        if len(blob) > MAX_PROOF_SIZE_BYTES:
            raise ProofVerificationError("proof blob too large")
        try:
            data = cbor2.loads(bytes(blob))
        except (cbor2.CBORDecodeError, ValueError) as exc:
            raise ProofVerificationError(f"cannot decode proof: {exc}") from exc
        if not isinstance(data, dict):
            raise ProofVerificationError("proof payload must be a map")
        if data.get("version") != PROOF_VERSION:
            raise ProofVerificationError(
                f"unsupported proof version {data.get('version')!r}"
            )
        try:
            return cls(
                artifact=data["artifact"],
                public_inputs=PublicInputs.from_dict(data["public_inputs"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ProofVerificationError(f"malformed proof: {exc}") from exc

    def to_json_dict(self) -> Dict[str, Any]:
        pi = self.public_inputs
        return {
            "version": PROOF_VERSION,
            "artifact": self.artifact.hex(),
            "publicInputs": {
                "root": pi.root.hex(),
                "nullifierHash": pi.nullifier_hash.hex(),
                "boundHash": pi.bound_hash.hex(),
                "externalContext": pi.external_context,
                "topic": pi.topic,
            },
        }

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> "Proof":
        """
        Inverse of to_json_dict().

        Raises:
            ProofVerificationError: If any field is missing or malformed
        """
        try:
            if data.get("version") != PROOF_VERSION:
                raise ValueError(f"unsupported proof version {data.get('version')!r}")
            pi = data["publicInputs"]
            return cls(
                artifact=bytes.fromhex(data["artifact"]),
                public_inputs=PublicInputs(
                    root=bytes.fromhex(pi["root"]),
                    nullifier_hash=bytes.fromhex(pi["nullifierHash"]),
                    bound_hash=bytes.fromhex(pi["boundHash"]),
                    external_context=pi["externalContext"],
                    topic=pi.get("topic", ""),
                ),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProofVerificationError(f"malformed proof: {exc}") from exc


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class NullifierRecord:
    """Acceptance of one nullifier within one (group, context) pair."""

    group_id: GroupId
    context: str
    nullifier_hash: bytes
    accepted_at_root: bytes

    @property
    def key(self) -> Tuple[GroupId, str, bytes]:
        return (self.group_id, self.context, self.nullifier_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "context": self.context,
            "nullifier_hash": self.nullifier_hash,
            "accepted_at_root": self.accepted_at_root,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NullifierRecord":
        return cls(
            group_id=data["group_id"],
            context=data["context"],
            nullifier_hash=data["nullifier_hash"],
            accepted_at_root=data["accepted_at_root"],
        )


@dataclass(frozen=True)
class RegistrationRequest:
    """A request to admit one commitment into one group."""

    username: str
    group_id: GroupId
    commitment: Any
    admission_ref: str

    def parsed_commitment(self) -> Commitment:
        """
        Raises:
            SignalError: MALFORMED_REQUEST if the commitment is not well-formed
        """
        try:
            return Commitment.parse(self.commitment)
        except (TypeError, ValueError) as exc:
            raise SignalError(ErrorKind.MALFORMED_REQUEST, str(exc)) from exc
