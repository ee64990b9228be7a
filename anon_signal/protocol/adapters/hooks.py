"""Acceptance hooks."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional, Tuple

from ..types import Commitment


class CallbackHook:
    """Adapts a plain callable to the AcceptanceHook interface."""

    def __init__(self, callback: Callable[[Optional[Commitment], bytes], None]) -> None:
        self._callback = callback

    def on_accepted(self, commitment: Optional[Commitment], message: bytes) -> None:
        self._callback(commitment, message)


class RecordingHook:
    """Keeps every accepted (commitment, message) pair in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.accepted: List[Tuple[Optional[Commitment], bytes]] = []

    def on_accepted(self, commitment: Optional[Commitment], message: bytes) -> None:
        with self._lock:
            self.accepted.append((commitment, message))
