"""
Nullifier ledger for exactly-once signal acceptance.

A nullifier is accepted at most once per (group, context). Acceptance is a
single compare-and-insert under the ledger lock and is persisted before it
becomes visible, so a failed write leaves no record behind.

Usage:
    ledger = NullifierLedger()

    if ledger.try_accept(record):
        run_side_effects()
    else:
        reject("nullifier reused")
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .config import ProtocolSettings
from .exceptions import StorageError
from .storage import AppendOnlyLog, MemoryLog, RecordLog
from .types import GroupId, NullifierRecord, short_hex

logger = logging.getLogger(__name__)

NULLIFIERS_LOG_NAME = "nullifiers.log"

_Key = Tuple[GroupId, str, bytes]


class NullifierLedger:
    """
    Thread-safe accepted-nullifier set.

    Args:
        store: Append-only log of accepted records; in-memory when omitted.
            Existing records are replayed on construction.
    """

    def __init__(self, store: Optional[RecordLog] = None) -> None:
        self._lock = threading.Lock()
        self._accepted: Set[_Key] = set()
        self._records: List[NullifierRecord] = []
        self._store: RecordLog = store if store is not None else MemoryLog()
        self._replay()

    @classmethod
    def from_settings(cls, settings: ProtocolSettings) -> "NullifierLedger":
        store: Optional[RecordLog] = None
        if settings.data_path is not None:
            store = AppendOnlyLog(Path(settings.data_path) / NULLIFIERS_LOG_NAME)
        return cls(store=store)

    def _replay(self) -> None:
        for raw in self._store.replay():
            try:
                record = NullifierRecord.from_dict(raw)
            except (KeyError, TypeError) as exc:
                raise StorageError(f"invalid nullifier record: {exc}") from exc
            if record.key in self._accepted:
                raise StorageError("duplicate nullifier record in log")
            self._accepted.add(record.key)
            self._records.append(record)
        if self._records:
            logger.info("Restored %d accepted nullifiers", len(self._records))

    def try_accept(self, record: NullifierRecord) -> bool:
        """
        Atomically record ``record`` unless its key was already accepted.

        Returns:
            True if this call accepted the nullifier, False if it was
            already present

        Raises:
            StorageError: If the record could not be persisted (not accepted)
        """
        key = record.key
        with self._lock:
            if key in self._accepted:
                logger.info(
                    "Nullifier %s reused in group %d context %r",
                    short_hex(record.nullifier_hash),
                    record.group_id,
                    record.context,
                )
                return False
            self._store.append(record.to_dict())
            self._accepted.add(key)
            self._records.append(record)
        logger.debug(
            "Accepted nullifier %s in group %d",
            short_hex(record.nullifier_hash),
            record.group_id,
        )
        return True

    def contains(self, group_id: GroupId, context: str, nullifier_hash: bytes) -> bool:
        with self._lock:
            return (group_id, context, nullifier_hash) in self._accepted

    def records(self, group_id: Optional[GroupId] = None) -> Iterator[NullifierRecord]:
        with self._lock:
            records = list(self._records)
        for record in records:
            if group_id is None or record.group_id == group_id:
                yield record

    def counts(self) -> Dict[GroupId, int]:
        result: Dict[GroupId, int] = {}
        for record in self.records():
            result[record.group_id] = result.get(record.group_id, 0) + 1
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
