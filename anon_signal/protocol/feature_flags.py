"""
Proof engine selection.

The engine name comes from, in order: an explicit ``prefer`` argument, the
in-process override, ``ANON_SIGNAL_BACKEND``, then ``mock``. The mock engine
proves nothing and is for tests and demos only.
"""

from __future__ import annotations

import os

BACKENDS = ("mock", "external")
BACKEND_ENV_VAR = "ANON_SIGNAL_BACKEND"

_override: str | None = None


def _checked(value: object) -> str | None:
    """Backend name for ``value``; None when unset or empty."""
    if value is None or value == "":
        return None
    if value not in BACKENDS:
        raise ValueError(
            f"Invalid backend type: {value!r}. Valid options: {', '.join(BACKENDS)}"
        )
    return value  # type: ignore[return-value]


def get_backend_type(prefer: str | None = None) -> str:
    """
    Raises:
        ValueError: If ``prefer``, the override or the env value is not a backend.
    """
    return (
        _checked(prefer)
        or _override
        or _checked(os.environ.get(BACKEND_ENV_VAR))
        or "mock"
    )


def set_backend_type(value: str | None) -> None:
    """Force ``value`` for this process; None clears the override."""
    global _override
    _override = _checked(value)
