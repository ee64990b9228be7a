"""Facade over native zero-knowledge bindings."""

from .backend import ExternalProofEngine

__all__ = ["ExternalProofEngine"]
