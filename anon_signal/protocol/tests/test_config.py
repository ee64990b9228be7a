"""Tests for protocol constants and settings loading."""

from pathlib import Path

import pytest

from anon_signal.protocol import config
from anon_signal.protocol.config import ProtocolSettings, load_settings
from anon_signal.protocol.exceptions import ConfigurationError


def test_validate_config_passes() -> None:
    assert config.validate_config() is True


def test_domain_separators_are_distinct() -> None:
    values = list(config.DOMAIN_SEPARATORS.values())
    assert len(values) == len(set(values))
    assert all(v.startswith(config.DOMAIN_SEPARATOR_PREFIX) for v in values)


def test_defaults() -> None:
    settings = load_settings(environ={})
    assert settings == ProtocolSettings()
    assert settings.depth == 20
    assert settings.min_anonymity_set == 5
    assert settings.data_path is None


def test_yaml_then_env_then_overrides(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("depth: 12\nmin_anonymity_set: 3\nroot_history: 8\n")
    environ = {"ANON_SIGNAL_MIN_ANONYMITY_SET": "4", "ANON_SIGNAL_FETCH_BACKOFF": "0.5"}
    settings = load_settings(path, environ=environ, root_history=2, data_dir=None)
    assert settings.depth == 12
    assert settings.min_anonymity_set == 4
    assert settings.fetch_backoff == 0.5
    assert settings.root_history == 2


def test_data_dir_from_environment(tmp_path: Path) -> None:
    settings = load_settings(environ={"ANON_SIGNAL_DATA_DIR": str(tmp_path)})
    assert settings.data_path == tmp_path


def test_empty_yaml_is_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_settings(path, environ={}) == ProtocolSettings()


def test_unknown_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("depht: 12\n")
    with pytest.raises(ConfigurationError, match="depht"):
        load_settings(path, environ={})
    with pytest.raises(ConfigurationError):
        load_settings(environ={}, colour="blue")


def test_non_mapping_yaml_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_settings(path, environ={})


def test_invalid_yaml_rejected(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("depth: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_settings(path, environ={})


@pytest.mark.parametrize(
    "overrides",
    [
        {"depth": 0},
        {"depth": 33},
        {"min_anonymity_set": 0},
        {"root_history": 0},
        {"nullifier_scope": "global"},
        {"prover_timeout": 0},
        {"fetch_retries": -1},
    ],
)
def test_out_of_range_values_rejected(overrides) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(environ={}, **overrides)


def test_bad_env_value_rejected() -> None:
    with pytest.raises(ConfigurationError, match="depth"):
        load_settings(environ={"ANON_SIGNAL_DEPTH": "deep"})
