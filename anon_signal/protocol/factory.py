"""
Proof engine factory.

Engines are referenced by import path and loaded lazily so that selecting
the mock engine never imports a native binding.
"""

from __future__ import annotations

import importlib
from typing import Final

from .feature_flags import get_backend_type
from .interfaces import ProofEngine

ENGINE_REGISTRY: Final[dict[str, str]] = {
    "mock": "anon_signal.protocol.adapters.mock_adapter.MockProofEngine",
    "external": "anon_signal.protocol.snark.backend.ExternalProofEngine",
}


def _format_valid_options() -> str:
    return ", ".join(sorted(ENGINE_REGISTRY.keys()))


def _load_engine_class(engine_name: str) -> type[ProofEngine]:
    import_path = ENGINE_REGISTRY[engine_name]
    module_path, _, class_name = import_path.rpartition(".")
    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import engine module {module_path!r} for {engine_name!r}"
        ) from exc

    engine_cls = getattr(module, class_name, None)
    if not isinstance(engine_cls, type) or not issubclass(engine_cls, ProofEngine):
        raise TypeError(f"Engine reference {import_path!r} is not a ProofEngine")
    return engine_cls


def get_proof_engine(*, prefer: str | None = None) -> ProofEngine:
    """
    Return a new proof engine selected by feature flags.

    Raises:
        ValueError: If the engine name is invalid.
        ImportError: If the engine class cannot be imported.
        TypeError: If the class does not implement ProofEngine.
    """
    engine_name = get_backend_type(prefer)
    if engine_name not in ENGINE_REGISTRY:
        raise ValueError(
            f"Invalid engine name: {engine_name!r}. Valid options: {_format_valid_options()}"
        )
    return _load_engine_class(engine_name)()
