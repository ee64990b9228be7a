"""
Protocol configuration for anonymous group signalling.

Module-level constants fix the hashing and encoding choices shared by every
component. ``ProtocolSettings`` carries the per-deployment knobs and can be
loaded from YAML, the environment, or explicit overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Final, Mapping, Optional

import yaml

from .exceptions import ConfigurationError

# ============================================================================
# HASH FUNCTIONS
# ============================================================================

HASH_FUNCTION = "SHA3-256"
HASH_OUTPUT_BYTES = 32

DOMAIN_SEPARATOR_PREFIX = b"ANON_SIGNAL_V1_"

DOMAIN_SEPARATORS = {
    "merkle_leaf": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_LEAF",
    "merkle_node": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_NODE",
    "signal": DOMAIN_SEPARATOR_PREFIX + b"SIGNAL",
    "external_nullifier": DOMAIN_SEPARATOR_PREFIX + b"EXT_NULLIFIER",
    "admission_ref": DOMAIN_SEPARATOR_PREFIX + b"ADMISSION_REF",
}

# ============================================================================
# GROUP PARAMETERS
# ============================================================================

COMMITMENT_BYTES = 32
MIN_DEPTH = 1
MAX_DEPTH = 32

DEFAULT_DEPTH = 20  # 2**20 members
DEFAULT_MIN_ANONYMITY_SET = 5
DEFAULT_ROOT_HISTORY = 16
DEFAULT_PROVER_TIMEOUT = 30.0
DEFAULT_FETCH_RETRIES = 3
DEFAULT_FETCH_BACKOFF = 0.25

NULLIFIER_SCOPES = ("group", "topic")

# ============================================================================
# PROOF SERIALIZATION
# ============================================================================

SERIALIZATION_FORMAT = "CBOR"
PROOF_VERSION = 1
MAX_PROOF_SIZE_BYTES = 16 * 1024

_ENV_PREFIX: Final[str] = "ANON_SIGNAL_"


def validate_config() -> bool:
    """
    Validate module-level configuration.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert HASH_FUNCTION in ["SHA3-256", "SHA256"], "Invalid hash function"
    assert HASH_OUTPUT_BYTES == COMMITMENT_BYTES, "Leaf width must match hash width"
    assert MIN_DEPTH <= DEFAULT_DEPTH <= MAX_DEPTH, "Default depth out of range"
    assert DEFAULT_ROOT_HISTORY >= 1, "Root history must retain the current root"
    assert DEFAULT_MIN_ANONYMITY_SET >= 1, "Anonymity threshold must be positive"
    assert len(set(DOMAIN_SEPARATORS.values())) == len(DOMAIN_SEPARATORS), (
        "Domain separators must be distinct"
    )
    return True


validate_config()


@dataclass(frozen=True)
class ProtocolSettings:
    """
    Deployment settings for one signalling service.

    Attributes:
        depth: Merkle depth for newly created groups (capacity ``2**depth``)
        min_anonymity_set: Minimum group size before a signal may be produced
        root_history: Number of roots (current included) a proof may target
        nullifier_scope: ``"group"`` for one signal per member per group,
            ``"topic"`` for one signal per member per topic
        prover_timeout: Seconds before an off-thread proof attempt is cancelled
        fetch_retries: Retries for transient membership fetch failures
        fetch_backoff: Initial backoff in seconds, doubled per retry
        data_dir: Directory for append-only logs; ``None`` keeps state in memory
    """

    depth: int = DEFAULT_DEPTH
    min_anonymity_set: int = DEFAULT_MIN_ANONYMITY_SET
    root_history: int = DEFAULT_ROOT_HISTORY
    nullifier_scope: str = "group"
    prover_timeout: float = DEFAULT_PROVER_TIMEOUT
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    fetch_backoff: float = DEFAULT_FETCH_BACKOFF
    data_dir: Optional[str] = None

    def validate(self) -> "ProtocolSettings":
        if not MIN_DEPTH <= self.depth <= MAX_DEPTH:
            raise ConfigurationError(
                f"depth must be in [{MIN_DEPTH}, {MAX_DEPTH}], got {self.depth}"
            )
        if self.min_anonymity_set < 1:
            raise ConfigurationError("min_anonymity_set must be >= 1")
        if self.root_history < 1:
            raise ConfigurationError("root_history must be >= 1")
        if self.nullifier_scope not in NULLIFIER_SCOPES:
            raise ConfigurationError(
                f"nullifier_scope must be one of {', '.join(NULLIFIER_SCOPES)}"
            )
        if self.prover_timeout <= 0:
            raise ConfigurationError("prover_timeout must be positive")
        if self.fetch_retries < 0:
            raise ConfigurationError("fetch_retries must be >= 0")
        if self.fetch_backoff < 0:
            raise ConfigurationError("fetch_backoff must be >= 0")
        return self

    @property
    def data_path(self) -> Optional[Path]:
        return Path(self.data_dir) if self.data_dir else None


def _coerce(name: str, raw: Any) -> Any:
    field_types = {f.name: f.type for f in fields(ProtocolSettings)}
    declared = field_types[name]
    try:
        if declared == "int":
            return int(raw)
        if declared == "float":
            return float(raw)
        if raw is None:
            return None
        return str(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid value for {name}: {raw!r}") from exc


def _check_keys(values: Mapping[str, Any], source: str) -> None:
    known = {f.name for f in fields(ProtocolSettings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(
            f"unknown settings from {source}: {', '.join(unknown)}"
        )


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"cannot read settings file {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"settings file {path} must contain a mapping")
    return data


def _read_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for f in fields(ProtocolSettings):
        raw = environ.get(_ENV_PREFIX + f.name.upper())
        if raw is not None and raw != "":
            values[f.name] = raw
    return values


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ProtocolSettings:
    """
    Resolve settings in precedence order: overrides, environment, YAML file.

    Args:
        path: Optional YAML file holding a flat mapping of setting names.
        environ: Environment mapping (defaults to ``os.environ``).
        overrides: Explicit values that win over every other source.

    Returns:
        Validated ProtocolSettings.

    Raises:
        ConfigurationError: On unknown keys, bad values, or unreadable files.
    """
    merged: Dict[str, Any] = {}
    if path is not None:
        file_values = _read_yaml(Path(path))
        _check_keys(file_values, str(path))
        merged.update(file_values)

    env_values = _read_env(os.environ if environ is None else environ)
    merged.update(env_values)

    explicit = {k: v for k, v in overrides.items() if v is not None}
    _check_keys(explicit, "overrides")
    merged.update(explicit)

    coerced = {name: _coerce(name, value) for name, value in merged.items()}
    return replace(ProtocolSettings(), **coerced).validate()
