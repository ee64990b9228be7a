"""Minimum anonymity-set policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import DEFAULT_MIN_ANONYMITY_SET
from .exceptions import ErrorKind, SignalError

logger = logging.getLogger(__name__)


def can_signal(group_size: int, threshold: int) -> bool:
    """True when a group of ``group_size`` members meets ``threshold``."""
    if isinstance(group_size, bool) or not isinstance(group_size, int):
        raise TypeError("group_size must be int")
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise TypeError("threshold must be int")
    if group_size < 0:
        raise ValueError("group_size must be non-negative")
    if threshold < 1:
        raise ValueError("threshold must be >= 1")
    return group_size >= threshold


@dataclass(frozen=True)
class AnonymitySetPolicy:
    """
    Gate on the number of members a signal hides among.

    Producers consult it before proving to fail fast; the verifier consults
    it again against the group size at verification time, which is the
    authoritative check.
    """

    threshold: int = DEFAULT_MIN_ANONYMITY_SET

    def __post_init__(self) -> None:
        if self.threshold < 1:
            raise ValueError("threshold must be >= 1")

    def can_signal(self, group_size: int) -> bool:
        return can_signal(group_size, self.threshold)

    def require(self, group_size: int) -> None:
        """
        Raises:
            SignalError: INSUFFICIENT_ANONYMITY_SET below the threshold
        """
        if not self.can_signal(group_size):
            logger.debug(
                "Anonymity set too small: %d < %d", group_size, self.threshold
            )
            raise SignalError(
                ErrorKind.INSUFFICIENT_ANONYMITY_SET,
                f"group has {group_size} members, need {self.threshold}",
            )
