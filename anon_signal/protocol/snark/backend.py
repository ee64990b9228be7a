"""Proof engine delegating to a native membership-circuit binding."""

from __future__ import annotations

import importlib
import logging
import os
from typing import Any, Dict, Optional

from ..exceptions import ProofGenerationError
from ..interfaces import ProofEngine, ProverOutput
from ..types import GroupSnapshot, PublicInputs

logger = logging.getLogger(__name__)

DEFAULT_MODULE = "semaphore_py"
_MODULE_ENV_VAR = "ANON_SIGNAL_ENGINE_MODULE"


class ExternalProofEngine(ProofEngine):
    """
    Prove and verify via an extension module built from the circuit crate.

    The module must expose::

        prove(secret, leaves, depth, external_nullifier, signal) -> (artifact, nullifier_hash)
        verify(artifact, root, nullifier_hash, signal, external_nullifier) -> bool

    All byte arguments are 32-byte big-endian field elements except
    ``artifact`` and ``leaves`` (a list of such elements). Verification fails
    closed: a missing module or any binding error yields False.
    """

    def __init__(self, module_name: Optional[str] = None) -> None:
        self._module_name = module_name or os.getenv(_MODULE_ENV_VAR) or DEFAULT_MODULE
        self._module: Any = None

    @property
    def backend_name(self) -> str:
        return f"ExternalProofEngine[{self._module_name}]"

    def _load(self) -> Any:
        if self._module is None:
            try:
                self._module = importlib.import_module(self._module_name)
            except ImportError:
                logger.warning("Proof engine module %r is not installed", self._module_name)
                return None
        return self._module

    @property
    def available(self) -> bool:
        return self._load() is not None

    def prove(
        self,
        secret: bytes,
        snapshot: GroupSnapshot,
        external_nullifier: bytes,
        bound_signal: bytes,
    ) -> ProverOutput:
        module = self._load()
        if module is None:
            raise ProofGenerationError(
                f"{self._module_name} extension is not installed"
            )
        leaves = [member.value for member in snapshot.members]
        try:
            artifact, nullifier_hash = module.prove(
                secret, leaves, snapshot.depth, external_nullifier, bound_signal
            )
            return ProverOutput(artifact=bytes(artifact), nullifier_hash=bytes(nullifier_hash))
        except ProofGenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ProofGenerationError(f"native prover failed: {exc}") from exc

    def verify(self, artifact: bytes, public_inputs: PublicInputs) -> bool:
        module = self._load()
        if module is None:
            return False
        try:
            return bool(
                module.verify(
                    bytes(artifact),
                    public_inputs.root,
                    public_inputs.nullifier_hash,
                    public_inputs.bound_hash,
                    public_inputs.external_nullifier,
                )
            )
        except Exception:  # noqa: BLE001
            return False

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "module": self._module_name,
            "available": self._module is not None,
        }
