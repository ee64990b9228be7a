"""Unit tests for ProofCoordinator."""

from __future__ import annotations

import threading

import pytest
import trio

from anon_signal.protocol.adapters import DeterministicIdentityProvider, MockProofEngine
from anon_signal.protocol.binder import bind
from anon_signal.protocol.coordinator import ProofCoordinator
from anon_signal.protocol.exceptions import ErrorKind
from anon_signal.protocol.interfaces import ProverOutput
from anon_signal.protocol.policy import AnonymitySetPolicy
from anon_signal.protocol.types import GroupSnapshot, Identity, SignalContext, external_nullifier

_PROVIDER = DeterministicIdentityProvider()


def _identity(i: int) -> Identity:
    return _PROVIDER.derive_identity(f"m{i}".encode())


def _snapshot(size: int, group_id: int = 1, depth: int = 20) -> GroupSnapshot:
    return GroupSnapshot.from_members(
        group_id, depth, [_identity(i).commitment for i in range(size)]
    )


class _SlowEngine(MockProofEngine):
    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def prove(self, secret, snapshot, external_nullifier, bound_signal) -> ProverOutput:
        self.release.wait(timeout=5)
        return super().prove(secret, snapshot, external_nullifier, bound_signal)


def test_below_threshold_never_invokes_prover() -> None:
    engine = MockProofEngine()
    coordinator = ProofCoordinator(engine, AnonymitySetPolicy(threshold=5))
    result = coordinator.produce_signal(
        _identity(0), _snapshot(4), SignalContext(group_id=1, raw_message=b"hi")
    )
    assert result.error is ErrorKind.INSUFFICIENT_ANONYMITY_SET
    assert engine.prove_calls == 0


def test_at_threshold_produces_bound_proof() -> None:
    engine = MockProofEngine()
    coordinator = ProofCoordinator(engine, AnonymitySetPolicy(threshold=5))
    snapshot = _snapshot(5)
    result = coordinator.produce_signal(
        _identity(2), snapshot, SignalContext(group_id=1, raw_message=b"hi")
    )
    assert result.ok
    proof = result.value
    assert proof.public_inputs.root == snapshot.root
    assert proof.public_inputs.bound_hash == bind(b"hi")
    assert proof.public_inputs.external_context == 1
    assert engine.prove_calls == 1
    assert engine.verify(proof.artifact, proof.public_inputs)


def test_nullifier_depends_on_identity_and_context_only() -> None:
    coordinator = ProofCoordinator(MockProofEngine(), AnonymitySetPolicy(threshold=2))
    snapshot = _snapshot(3)

    def _nullifier(i: int, message: bytes, topic: str = "") -> bytes:
        context = SignalContext(group_id=1, raw_message=message, topic=topic)
        proof = coordinator.produce_signal(_identity(i), snapshot, context).unwrap()
        return proof.public_inputs.nullifier_hash

    assert _nullifier(0, b"a") == _nullifier(0, b"b")
    assert _nullifier(0, b"a") != _nullifier(1, b"a")
    assert _nullifier(0, b"a", "t1") != _nullifier(0, b"a", "t2")


def test_non_member_reports_prover_failure() -> None:
    coordinator = ProofCoordinator(MockProofEngine(), AnonymitySetPolicy(threshold=2))
    result = coordinator.produce_signal(
        _identity(99), _snapshot(3), SignalContext(group_id=1, raw_message=b"hi")
    )
    assert result.error is ErrorKind.PROVER_FAILURE


def test_context_group_must_match_snapshot() -> None:
    coordinator = ProofCoordinator(MockProofEngine(), AnonymitySetPolicy(threshold=1))
    result = coordinator.produce_signal(
        _identity(0), _snapshot(1, group_id=1), SignalContext(group_id=2, raw_message=b"x")
    )
    assert result.error is ErrorKind.MALFORMED_REQUEST


def test_build_inputs_carries_context() -> None:
    coordinator = ProofCoordinator(MockProofEngine(), AnonymitySetPolicy(threshold=1))
    context = SignalContext(group_id=1, raw_message=b"m", topic="vote")
    inputs = coordinator.build_inputs(_identity(0), _snapshot(1), context)
    assert inputs.external_nullifier == external_nullifier(1, "vote")
    assert inputs.bound_signal == bind(b"m")
    assert repr(_identity(0).secret) not in repr(inputs)


@pytest.mark.trio
async def test_async_produce_signal() -> None:
    coordinator = ProofCoordinator(MockProofEngine(), AnonymitySetPolicy(threshold=2))
    result = await coordinator.produce_signal_async(
        _identity(1), _snapshot(2), SignalContext(group_id=1, raw_message=b"hi")
    )
    assert result.ok


@pytest.mark.trio
async def test_async_timeout_reports_cancelled() -> None:
    engine = _SlowEngine()
    coordinator = ProofCoordinator(engine, AnonymitySetPolicy(threshold=2), prover_timeout=0.05)
    try:
        result = await coordinator.produce_signal_async(
            _identity(1), _snapshot(2), SignalContext(group_id=1, raw_message=b"hi")
        )
    finally:
        engine.release.set()
    assert result.error is ErrorKind.CANCELLED


@pytest.mark.trio
async def test_async_gate_applies_before_thread_dispatch() -> None:
    engine = MockProofEngine()
    coordinator = ProofCoordinator(engine, AnonymitySetPolicy(threshold=5))
    with trio.fail_after(1):
        result = await coordinator.produce_signal_async(
            _identity(0), _snapshot(1), SignalContext(group_id=1, raw_message=b"hi")
        )
    assert result.error is ErrorKind.INSUFFICIENT_ANONYMITY_SET
    assert engine.prove_calls == 0
