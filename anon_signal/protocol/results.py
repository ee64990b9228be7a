"""Explicit outcome values returned by coordinator entry points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from .exceptions import ErrorKind, SignalError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a value or exactly one ``ErrorKind``.

    Example:
        >>> outcome = coordinator.register(request)
        >>> if outcome.error is ErrorKind.DUPLICATE_COMMITMENT:
        ...     ...
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: str = ""

    def __post_init__(self) -> None:
        if self.error is None and self.detail:
            raise ValueError("detail is only meaningful on failures")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> "Result[T]":
        return cls(error=ErrorKind(kind), detail=detail)

    @classmethod
    def from_error(cls, exc: SignalError) -> "Result[T]":
        return cls(error=exc.kind, detail=exc.detail)

    def unwrap(self) -> T:
        if self.error is not None:
            raise SignalError(self.error, self.detail)
        return self.value  # type: ignore[return-value]

    def map(self, fn: Callable[[T], "U"]) -> "Result[U]":
        if self.error is not None:
            return Result(error=self.error, detail=self.detail)
        return Result(value=fn(self.value))  # type: ignore[arg-type]
