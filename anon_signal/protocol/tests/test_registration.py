"""Unit tests for RegistrationCoordinator."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from anon_signal.protocol.accumulator import GroupAccumulator
from anon_signal.protocol.adapters import SignedAdmissionAuthority, StaticAdmissionAuthority
from anon_signal.protocol.config import ProtocolSettings
from anon_signal.protocol.exceptions import ErrorKind, SignalError, StorageError
from anon_signal.protocol.registration import RegistrationCoordinator
from anon_signal.protocol.storage import MemoryLog
from anon_signal.protocol.types import Commitment, RegistrationRequest


def _request(ref: str, value: int = 1, group_id: int = 1, username: str = "alice"):
    return RegistrationRequest(
        username=username,
        group_id=group_id,
        commitment=str(value),
        admission_ref=ref,
    )


@pytest.fixture
def accumulator() -> GroupAccumulator:
    acc = GroupAccumulator()
    acc.create_group(1, depth=20)
    return acc


class _UnreachableAuthority:
    def __init__(self) -> None:
        self.calls = 0

    def is_valid_ref(self, admission_ref: str) -> bool:
        self.calls += 1
        raise SignalError(ErrorKind.NETWORK_FAILURE, "issuer unreachable")


class _TimingOutAuthority:
    def is_valid_ref(self, admission_ref: str) -> bool:
        raise TimeoutError("issuer did not answer")


class _FailingLog(MemoryLog):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def append(self, record) -> None:
        if self.fail:
            raise StorageError("disk full")
        super().append(record)


def test_valid_ref_registers_member(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["ref-a", "ref-b"]))
    assert coordinator.register(_request("ref-a", 10)).value == 0
    assert coordinator.register(_request("ref-b", 11)).value == 1
    assert accumulator.members(1) == (Commitment.from_int(10), Commitment.from_int(11))
    assert coordinator.is_consumed("ref-a")


def test_invalid_ref_refused_without_change(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["ref-a"]))
    root = accumulator.current_root(1)
    result = coordinator.register(_request("forged"))
    assert result.error is ErrorKind.REGISTRATION_REFUSED
    assert accumulator.size(1) == 0
    assert accumulator.current_root(1) == root


def test_ref_admits_only_once(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["ref-a"]))
    assert coordinator.register(_request("ref-a", 1)).ok
    again = coordinator.register(_request("ref-a", 2))
    assert again.error is ErrorKind.REGISTRATION_REFUSED
    assert accumulator.size(1) == 1


def test_duplicate_commitment_does_not_consume_ref(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["ref-a", "ref-b"]))
    assert coordinator.register(_request("ref-a", 5)).ok
    duplicate = coordinator.register(_request("ref-b", 5))
    assert duplicate.error is ErrorKind.DUPLICATE_COMMITMENT
    assert not coordinator.is_consumed("ref-b")
    assert coordinator.register(_request("ref-b", 6)).value == 1


def test_group_full(accumulator: GroupAccumulator) -> None:
    accumulator.create_group(2, depth=1)
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["a", "b", "c"]))
    assert coordinator.register(_request("a", 1, group_id=2)).ok
    assert coordinator.register(_request("b", 2, group_id=2)).ok
    assert coordinator.register(_request("c", 3, group_id=2)).error is ErrorKind.GROUP_FULL


def test_unknown_group_and_malformed_requests(accumulator: GroupAccumulator) -> None:
    authority = StaticAdmissionAuthority(["ref"])
    coordinator = RegistrationCoordinator(accumulator, authority)
    assert coordinator.register(_request("ref", group_id=9)).error is ErrorKind.UNKNOWN_GROUP
    assert coordinator.register(_request("ref", username=" ")).error is ErrorKind.MALFORMED_REQUEST
    assert coordinator.register(_request("ref", username="x" * 65)).error is ErrorKind.MALFORMED_REQUEST
    assert coordinator.register(_request("")).error is ErrorKind.MALFORMED_REQUEST
    bad_commitment = RegistrationRequest("alice", 1, "0xnothex", "ref")
    assert coordinator.register(bad_commitment).error is ErrorKind.MALFORMED_REQUEST
    assert not coordinator.is_consumed("ref")


def test_network_failure_is_reported(accumulator: GroupAccumulator) -> None:
    authority = _UnreachableAuthority()
    coordinator = RegistrationCoordinator(accumulator, authority)
    result = coordinator.register(_request("ref"))
    assert result.error is ErrorKind.NETWORK_FAILURE
    assert result.error.retryable
    assert accumulator.size(1) == 0
    assert not coordinator.is_consumed("ref")


def test_authority_timeout_is_network_failure(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, _TimingOutAuthority())
    result = coordinator.register(_request("ref"))
    assert result.error is ErrorKind.NETWORK_FAILURE
    assert accumulator.size(1) == 0
    assert not coordinator.is_consumed("ref")


def test_failed_persist_keeps_ref_unused_and_group_unchanged() -> None:
    store = _FailingLog()
    accumulator = GroupAccumulator(store=store)
    accumulator.create_group(1, depth=8)
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["once"]))

    store.fail = True
    with pytest.raises(StorageError):
        coordinator.register(_request("once", 1))
    assert accumulator.size(1) == 0
    assert not coordinator.is_consumed("once")

    store.fail = False
    assert coordinator.register(_request("once", 2)).value == 0
    again = coordinator.register(_request("once", 3))
    assert again.error is ErrorKind.REGISTRATION_REFUSED
    assert accumulator.members(1) == (Commitment.from_int(2),)


def test_signed_refs(accumulator: GroupAccumulator) -> None:
    issuer = SignedAdmissionAuthority.generate()
    checker = SignedAdmissionAuthority(verify_key=issuer.verify_key_hex)
    coordinator = RegistrationCoordinator(accumulator, checker)
    ref = issuer.issue()
    assert coordinator.register(_request(ref, 1)).ok
    assert coordinator.register(_request(ref, 2)).error is ErrorKind.REGISTRATION_REFUSED
    other = SignedAdmissionAuthority.generate().issue()
    assert coordinator.register(_request(other, 3)).error is ErrorKind.REGISTRATION_REFUSED


def test_concurrent_use_of_one_ref_admits_once(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["shared"]))
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda i: coordinator.register(_request("shared", i + 1)), range(8)))
    assert sum(1 for r in results if r.ok) == 1
    assert all(r.error is ErrorKind.REGISTRATION_REFUSED for r in results if not r.ok)
    assert accumulator.size(1) == 1


def test_consumed_refs_survive_restart(tmp_path) -> None:
    settings = ProtocolSettings(data_dir=str(tmp_path))
    authority = StaticAdmissionAuthority(["ref-a"])
    accumulator = GroupAccumulator.from_settings(settings)
    accumulator.create_group(1, depth=8)
    coordinator = RegistrationCoordinator(accumulator, authority)
    assert coordinator.register(_request("ref-a")).ok

    restarted_acc = GroupAccumulator.from_settings(settings)
    restarted = RegistrationCoordinator(restarted_acc, authority)
    assert restarted.is_consumed("ref-a")
    assert restarted.register(_request("ref-a", 2)).error is ErrorKind.REGISTRATION_REFUSED
    assert (tmp_path / "groups.log").read_bytes().find(b"ref-a") == -1


@pytest.mark.trio
async def test_register_async(accumulator: GroupAccumulator) -> None:
    coordinator = RegistrationCoordinator(accumulator, StaticAdmissionAuthority(["ref"]))
    result = await coordinator.register_async(_request("ref"))
    assert result.value == 0
