"""
End-to-end signalling scenarios.

Each test wires the full stack (accumulator, registration, coordinator,
verifier, request surface) with the mock proof engine.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
import trio

from anon_signal.network.signalapi import LocalTransport, SignalAPI, SignalClient, SignalSession
from anon_signal.protocol import (
    ErrorKind,
    IdentityPort,
    Proof,
    ProtocolSettings,
    RegistrationRequest,
    SignalContext,
    build_services,
)
from anon_signal.protocol.adapters import (
    DeterministicIdentityProvider,
    MockProofEngine,
    RecordingHook,
    SignedAdmissionAuthority,
)

PORT = IdentityPort(DeterministicIdentityProvider())


def _register(services, issuer, name: str, group_id: int = 1):
    return services.registration.register(
        RegistrationRequest(
            username=name,
            group_id=group_id,
            commitment=PORT.commitment_for(name.encode()),
            admission_ref=issuer.issue(),
        )
    )


def _signal(services, name: str, message: bytes, group_id: int = 1):
    snapshot = services.accumulator.snapshot(group_id)
    return services.coordinator.produce_signal(
        PORT.derive(name.encode()),
        snapshot,
        SignalContext(group_id=group_id, raw_message=message),
    )


@pytest.fixture
def issuer() -> SignedAdmissionAuthority:
    return SignedAdmissionAuthority.generate()


def test_threshold_scenario_depth_20(issuer) -> None:
    """
    Test the anonymity gate at depth 20 with threshold 5.

    1. Four members: producing a signal fails before any proving work
    2. A fifth member: the proof targets the current root
    3. The proof verifies and is recorded exactly once
    """
    engine = MockProofEngine()
    services = build_services(ProtocolSettings(depth=20, min_anonymity_set=5), issuer, engine=engine)
    services.accumulator.create_group(1, depth=20)

    for i in range(4):
        assert _register(services, issuer, f"m{i}").value == i
    refused = _signal(services, "m0", b"hello")
    assert refused.error is ErrorKind.INSUFFICIENT_ANONYMITY_SET
    assert engine.prove_calls == 0

    assert _register(services, issuer, "m4").value == 4
    produced = _signal(services, "m0", b"hello")
    assert produced.ok
    assert produced.value.public_inputs.root == services.accumulator.current_root(1)
    assert engine.prove_calls == 1

    accepted = services.verifier.verify(produced.value, b"hello")
    assert accepted.ok
    assert len(services.ledger) == 1


def test_invalid_admission_leaves_group_unchanged(issuer) -> None:
    services = build_services(ProtocolSettings(), issuer, engine=MockProofEngine())
    services.accumulator.create_group(1, depth=20)
    before = services.accumulator.current_root(1)

    result = services.registration.register(
        RegistrationRequest("eve", 1, PORT.commitment_for(b"eve"), "not-a-ref")
    )
    assert result.error is ErrorKind.REGISTRATION_REFUSED
    assert services.accumulator.size(1) == 0
    assert services.accumulator.current_root(1) == before


def test_forged_artifact_not_recorded(issuer) -> None:
    services = build_services(ProtocolSettings(min_anonymity_set=2), issuer, engine=MockProofEngine())
    services.accumulator.create_group(1, depth=20)
    for name in ("a", "b"):
        _register(services, issuer, name)
    genuine = _signal(services, "a", b"msg").unwrap()
    forged = Proof(artifact=b"MOCKPROOF1" + bytes(32), public_inputs=genuine.public_inputs)

    assert services.verifier.verify(forged, b"msg").error is ErrorKind.INVALID_PROOF
    assert len(services.ledger) == 0


def test_concurrent_duplicate_submission(issuer) -> None:
    """
    Test that two racing submissions of one proof record one acceptance.
    """
    hook = RecordingHook()
    services = build_services(
        ProtocolSettings(min_anonymity_set=2), issuer, engine=MockProofEngine(), hooks=[hook]
    )
    services.accumulator.create_group(1, depth=20)
    for name in ("a", "b", "c"):
        _register(services, issuer, name)
    proof = _signal(services, "b", b"once").unwrap()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: services.verifier.verify(proof, b"once"), range(2)))
    assert sorted(r.error is None for r in results) == [False, True]
    assert [r.error for r in results if not r.ok] == [ErrorKind.NULLIFIER_REUSED]
    assert len(hook.accepted) == 1


def test_staleness_window(issuer) -> None:
    """
    Test proofs against older roots with a window of K=3 roots.

    1. A proof made before K-1 later registrations still verifies
    2. A proof made before K later registrations is stale
    """
    window = 3
    services = build_services(
        ProtocolSettings(min_anonymity_set=1, root_history=window), issuer, engine=MockProofEngine()
    )
    services.accumulator.create_group(1, depth=20)
    _register(services, issuer, "p0")

    early = _signal(services, "p0", b"early").unwrap()
    for i in range(window - 1):
        _register(services, issuer, f"q{i}")
    assert services.verifier.verify(early, b"early").ok

    late = _signal(services, "q0", b"late").unwrap()
    for i in range(window):
        _register(services, issuer, f"r{i}")
    assert services.verifier.verify(late, b"late").error is ErrorKind.STALE_ROOT


def test_state_survives_restart(tmp_path, issuer) -> None:
    """
    Test that members, roots, consumed refs and nullifiers replay from disk.
    """
    settings = ProtocolSettings(min_anonymity_set=2, data_dir=str(tmp_path))
    services = build_services(settings, issuer, engine=MockProofEngine())
    services.accumulator.create_group(1, depth=16)
    ref = issuer.issue()
    services.registration.register(
        RegistrationRequest("a", 1, PORT.commitment_for(b"a"), ref)
    )
    _register(services, issuer, "b")
    proof = _signal(services, "a", b"before restart").unwrap()
    assert services.verifier.verify(proof, b"before restart").ok

    restarted = build_services(settings, issuer, engine=MockProofEngine())
    assert restarted.accumulator.size(1) == 2
    assert restarted.accumulator.current_root(1) == services.accumulator.current_root(1)
    assert restarted.verifier.verify(proof, b"before restart").error is ErrorKind.NULLIFIER_REUSED
    reused = restarted.registration.register(
        RegistrationRequest("z", 1, PORT.commitment_for(b"z"), ref)
    )
    assert reused.error is ErrorKind.REGISTRATION_REFUSED
    assert _register(restarted, issuer, "c").value == 2


def test_client_flow_over_request_surface(issuer) -> None:
    """
    Test the member-side flow through the members/register/verify surface.
    """
    hook = RecordingHook()
    services = build_services(
        ProtocolSettings(depth=20, min_anonymity_set=3), issuer, engine=MockProofEngine(), hooks=[hook]
    )
    services.accumulator.create_group(7, depth=20)
    client = SignalClient(LocalTransport(SignalAPI.from_services(services)), services.coordinator)
    session = SignalSession(group_id=7)

    async def _run():
        for name in ("x", "y", "z"):
            registered = await client.register(session, name, PORT, name.encode(), issuer.issue())
            assert registered.ok
        first = await client.signal(session, PORT, b"y", "hello")
        second = await client.signal(session, PORT, b"y", "hello")
        return first, second

    first, second = trio.run(_run)
    assert first.ok
    assert second.error is ErrorKind.NULLIFIER_REUSED
    assert hook.accepted == [(PORT.commitment_for(b"y"), b"hello")]
