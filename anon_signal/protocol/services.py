"""Wiring of the protocol components from one ProtocolSettings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .accumulator import GroupAccumulator
from .binder import SignalBinder
from .config import ProtocolSettings
from .coordinator import ProofCoordinator
from .factory import get_proof_engine
from .interfaces import AcceptanceHook, AdmissionAuthority, ProofEngine
from .nullifiers import NullifierLedger
from .policy import AnonymitySetPolicy
from .registration import RegistrationCoordinator
from .verifier import ProofVerifier


@dataclass
class ProtocolServices:
    settings: ProtocolSettings
    engine: ProofEngine
    policy: AnonymitySetPolicy
    accumulator: GroupAccumulator
    ledger: NullifierLedger
    registration: RegistrationCoordinator
    verifier: ProofVerifier
    coordinator: ProofCoordinator


def build_services(
    settings: ProtocolSettings,
    authority: AdmissionAuthority,
    *,
    engine: Optional[ProofEngine] = None,
    hooks: Sequence[AcceptanceHook] = (),
) -> ProtocolServices:
    """
    Assemble accumulator, ledger, coordinators and verifier.

    When ``settings.data_dir`` is set, state is replayed from and appended to
    logs in that directory.
    """
    settings.validate()
    engine = engine if engine is not None else get_proof_engine()
    policy = AnonymitySetPolicy(settings.min_anonymity_set)
    binder = SignalBinder()
    accumulator = GroupAccumulator.from_settings(settings)
    ledger = NullifierLedger.from_settings(settings)
    return ProtocolServices(
        settings=settings,
        engine=engine,
        policy=policy,
        accumulator=accumulator,
        ledger=ledger,
        registration=RegistrationCoordinator(accumulator, authority),
        verifier=ProofVerifier(
            accumulator,
            ledger,
            engine,
            policy,
            binder,
            nullifier_scope=settings.nullifier_scope,
            hooks=hooks,
        ),
        coordinator=ProofCoordinator(
            engine, policy, binder, prover_timeout=settings.prover_timeout
        ),
    )
