"""CLI tests for group, admission and membership commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from anon_signal import cli
from anon_signal.protocol.adapters import DeterministicIdentityProvider


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


def _invoke(state_dir: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli.main, ["--state-dir", str(state_dir), *args])


def test_help() -> None:
    result = CliRunner().invoke(cli.main, ["--help"])
    assert result.exit_code == 0
    assert "create-group" in result.output


def test_create_group_register_and_list(state_dir: Path) -> None:
    created = _invoke(state_dir, "create-group", "1", "--depth", "8")
    assert created.exit_code == 0, created.output
    assert "capacity 256" in created.output

    ref = _invoke(state_dir, "issue-ref").output.strip()
    registered = _invoke(state_dir, "register", "1", "alice", "--ref", ref)
    assert registered.exit_code == 0, registered.output
    assert "member 0" in registered.output
    assert (state_dir / "admission.key").exists()

    expected = DeterministicIdentityProvider().derive_identity(b"alice").commitment
    listed = _invoke(state_dir, "members", "1")
    assert listed.exit_code == 0
    assert str(expected)[:20] in listed.output


def test_ref_cannot_be_reused(state_dir: Path) -> None:
    _invoke(state_dir, "create-group", "1")
    ref = _invoke(state_dir, "issue-ref").output.strip()
    assert _invoke(state_dir, "register", "1", "alice", "--ref", ref).exit_code == 0
    reused = _invoke(state_dir, "register", "1", "bob", "--ref", ref)
    assert reused.exit_code == 1
    assert "registration_refused" in reused.output


def test_register_explicit_commitment(state_dir: Path) -> None:
    _invoke(state_dir, "create-group", "3")
    refs = _invoke(state_dir, "issue-ref", "--count", "2").output.split()
    assert len(refs) == 2
    ok = _invoke(state_dir, "register", "3", "carol", "--ref", refs[0], "--commitment", "0x2a")
    assert ok.exit_code == 0, ok.output
    assert "Commitment: 42" in ok.output
    bad = _invoke(state_dir, "register", "3", "dave", "--ref", refs[1], "--commitment", "zz")
    assert bad.exit_code == 1


def test_forged_ref_refused(state_dir: Path) -> None:
    _invoke(state_dir, "create-group", "1")
    result = _invoke(state_dir, "register", "1", "mallory", "--ref", "forged")
    assert result.exit_code == 1
    assert "registration_refused" in result.output


def test_duplicate_group_and_unknown_group(state_dir: Path) -> None:
    assert _invoke(state_dir, "create-group", "1").exit_code == 0
    assert _invoke(state_dir, "create-group", "1").exit_code == 1
    assert _invoke(state_dir, "members", "9").exit_code == 1
    assert _invoke(state_dir, "roots", "9").exit_code == 1


def test_roots_shows_history(state_dir: Path) -> None:
    _invoke(state_dir, "create-group", "1", "--depth", "4")
    for name in ("a", "b"):
        ref = _invoke(state_dir, "issue-ref").output.strip()
        _invoke(state_dir, "register", "1", name, "--ref", ref)
    result = _invoke(state_dir, "roots", "1")
    assert result.exit_code == 0
    assert "2/16" in result.output


def test_bad_config_file(tmp_path: Path) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text("unknown_key: 1\n")
    result = CliRunner().invoke(cli.main, ["--config", str(config), "issue-ref"])
    assert result.exit_code == 1


def test_demo_runs_end_to_end() -> None:
    result = CliRunner().invoke(cli.main, ["demo", "--threshold", "3", "--depth", "10"])
    assert result.exit_code == 0, result.output
    assert "insufficient_anonymity_set" in result.output
    assert "nullifier_reused" in result.output
    assert "1 signal(s) accepted" in result.output
