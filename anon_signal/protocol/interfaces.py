"""
Capability interfaces consumed by the protocol core.

The proving engine, identity ceremony, admission authority and acceptance
side effects are external collaborators; the core only sees these seams.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .types import Commitment, GroupSnapshot, Identity, PublicInputs, require_hash


@dataclass(frozen=True)
class ProverOutput:
    """Artifact and nullifier hash emitted by one proving run."""

    artifact: bytes
    nullifier_hash: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.artifact, (bytes, bytearray)) or not self.artifact:
            raise ValueError("artifact must be non-empty bytes")
        require_hash(self.nullifier_hash, "nullifier_hash")


class ProofEngine(ABC):
    """Zero-knowledge membership prover/verifier."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        ...

    @property
    def backend_version(self) -> str:
        return "0"

    @abstractmethod
    def prove(
        self,
        secret: bytes,
        snapshot: GroupSnapshot,
        external_nullifier: bytes,
        bound_signal: bytes,
    ) -> ProverOutput:
        """
        Prove membership of the identity behind ``secret`` in ``snapshot``.

        Raises:
            ProofGenerationError: If no proof can be produced
        """

    @abstractmethod
    def verify(self, artifact: bytes, public_inputs: PublicInputs) -> bool:
        """Return True only for an artifact valid for ``public_inputs``."""

    def get_backend_info(self) -> Dict[str, Any]:
        return {"name": self.backend_name, "version": self.backend_version}


@runtime_checkable
class IdentityProvider(Protocol):
    """Authentication ceremony yielding a member's identity."""

    def derive_identity(self, challenge: bytes) -> Identity:
        ...


@runtime_checkable
class AdmissionAuthority(Protocol):
    """External issuer of admission references."""

    def is_valid_ref(self, admission_ref: str) -> bool:
        ...


@runtime_checkable
class AcceptanceHook(Protocol):
    """Side effect run once per accepted signal."""

    def on_accepted(self, commitment: Optional[Commitment], message: bytes) -> None:
        ...
