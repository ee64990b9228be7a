"""Public API for the anonymous group signalling core."""

from __future__ import annotations

from .accumulator import GroupAccumulator, GroupView
from .binder import SignalBinder, bind
from .config import ProtocolSettings, load_settings
from .coordinator import ProofCoordinator
from .exceptions import ErrorKind, PrivacyProtocolError, SignalError
from .factory import get_proof_engine
from .feature_flags import get_backend_type, set_backend_type
from .identity import IdentityPort
from .interfaces import (
    AcceptanceHook,
    AdmissionAuthority,
    IdentityProvider,
    ProofEngine,
    ProverOutput,
)
from .nullifiers import NullifierLedger
from .policy import AnonymitySetPolicy, can_signal
from .registration import RegistrationCoordinator
from .results import Result
from .services import ProtocolServices, build_services
from .types import (
    Commitment,
    GroupSnapshot,
    Identity,
    NullifierRecord,
    Proof,
    PublicInputs,
    RegistrationRequest,
    SignalContext,
)
from .verifier import ProofVerifier

__all__ = [
    "AcceptanceHook",
    "AdmissionAuthority",
    "AnonymitySetPolicy",
    "Commitment",
    "ErrorKind",
    "GroupAccumulator",
    "GroupSnapshot",
    "GroupView",
    "Identity",
    "IdentityPort",
    "IdentityProvider",
    "NullifierLedger",
    "NullifierRecord",
    "PrivacyProtocolError",
    "Proof",
    "ProofCoordinator",
    "ProofEngine",
    "ProofVerifier",
    "ProtocolServices",
    "ProtocolSettings",
    "ProverOutput",
    "PublicInputs",
    "RegistrationCoordinator",
    "RegistrationRequest",
    "Result",
    "SignalBinder",
    "SignalContext",
    "SignalError",
    "bind",
    "build_services",
    "can_signal",
    "get_backend_type",
    "get_proof_engine",
    "load_settings",
    "set_backend_type",
]
