from __future__ import annotations

import hashlib
import hmac
import threading
from typing import Any, Dict

from ..exceptions import ProofGenerationError
from ..interfaces import ProofEngine, ProverOutput
from ..merkle import build_path, hash_leaf, verify_path
from ..types import Commitment, GroupSnapshot, Identity, PublicInputs

_COMMIT_DOMAIN = b"MOCK_IDENTITY_COMMITMENT_V1"
_NULLIFIER_DOMAIN = b"MOCK_NULLIFIER_V1"
_ARTIFACT_TAG = b"MOCKPROOF1"
DEFAULT_MOCK_KEY = b"anon-signal-mock-engine-key"


def mock_commitment(secret: bytes) -> Commitment:
    """Commitment the mock engine associates with ``secret``."""
    return Commitment(hashlib.sha3_256(_COMMIT_DOMAIN + secret).digest())


class DeterministicIdentityProvider:
    """
    Stand-in for the authenticator ceremony.

    The same (seed, challenge) pair always yields the same identity.
    """

    def __init__(self, seed: bytes = b"mock-authenticator") -> None:
        if not seed:
            raise ValueError("seed must be non-empty")
        self._seed = bytes(seed)

    def derive_identity(self, challenge: bytes) -> Identity:
        secret = hmac.new(self._seed, challenge, hashlib.sha3_256).digest()
        return Identity(secret=secret, commitment=mock_commitment(secret))


class MockProofEngine(ProofEngine):
    """
    Deterministic proof engine for tests and demos.

    Notes:
    - It does NOT provide zero-knowledge or soundness against anyone holding
      the engine key.
    - prove() refuses identities whose commitment is not in the snapshot.
    - The artifact is an HMAC over the public inputs, so tampering with any
      public input makes verify() return False.
    """

    _BACKEND_NAME = "MockProofEngine"
    _BACKEND_VERSION = "0.1.0"

    def __init__(self, key: bytes = DEFAULT_MOCK_KEY) -> None:
        self._key = bytes(key)
        self._counter_lock = threading.Lock()
        self.prove_calls = 0
        self.verify_calls = 0

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    def _mac(
        self, root: bytes, nullifier_hash: bytes, bound: bytes, external_nullifier: bytes
    ) -> bytes:
        message = root + nullifier_hash + bound + external_nullifier
        return _ARTIFACT_TAG + hmac.new(self._key, message, hashlib.sha3_256).digest()

    def prove(
        self,
        secret: bytes,
        snapshot: GroupSnapshot,
        external_nullifier: bytes,
        bound_signal: bytes,
    ) -> ProverOutput:
        with self._counter_lock:
            self.prove_calls += 1
        index = snapshot.index_of(mock_commitment(secret))
        if index is None:
            raise ProofGenerationError("identity is not a member of the snapshot")
        # the membership statement a real circuit proves
        leaves = [member.value for member in snapshot.members]
        path = build_path(leaves, snapshot.depth, index)
        if not verify_path(hash_leaf(leaves[index]), path, snapshot.root):
            raise ProofGenerationError("membership path does not reach the snapshot root")
        nullifier_hash = hashlib.sha3_256(
            _NULLIFIER_DOMAIN + secret + external_nullifier
        ).digest()
        artifact = self._mac(snapshot.root, nullifier_hash, bound_signal, external_nullifier)
        return ProverOutput(artifact=artifact, nullifier_hash=nullifier_hash)

    def verify(self, artifact: bytes, public_inputs: PublicInputs) -> bool:
        with self._counter_lock:
            self.verify_calls += 1
        if not isinstance(artifact, (bytes, bytearray)):
            return False
        expected = self._mac(
            public_inputs.root,
            public_inputs.nullifier_hash,
            public_inputs.bound_hash,
            public_inputs.external_nullifier,
        )
        return hmac.compare_digest(bytes(artifact), expected)

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "adapter": "mock",
            "security": "mock_only",
        }
