"""Concrete collaborators for the protocol's capability interfaces."""

from .admission import SignedAdmissionAuthority, StaticAdmissionAuthority
from .hooks import CallbackHook, RecordingHook
from .mock_adapter import DeterministicIdentityProvider, MockProofEngine, mock_commitment

__all__ = [
    "CallbackHook",
    "DeterministicIdentityProvider",
    "MockProofEngine",
    "RecordingHook",
    "SignedAdmissionAuthority",
    "StaticAdmissionAuthority",
    "mock_commitment",
]
