"""Append-only record logs backing the accumulator and the nullifier ledger."""

from __future__ import annotations

import logging
import os
import struct
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol

import cbor2

from .exceptions import StorageError

logger = logging.getLogger(__name__)

MAX_RECORD_BYTES = 64 * 1024
_HEADER = struct.Struct(">I")


class RecordLog(Protocol):
    """Ordered, append-only sequence of CBOR-encodable mappings."""

    def append(self, record: Dict[str, Any]) -> None:
        ...

    def replay(self) -> Iterator[Dict[str, Any]]:
        ...


def encode_record(record: Dict[str, Any]) -> bytes:
    payload = cbor2.dumps(record, canonical=True)
    if len(payload) > MAX_RECORD_BYTES:
        raise StorageError("record too large")
    return _HEADER.pack(len(payload)) + payload


class MemoryLog:
    """In-process RecordLog."""

    def __init__(self) -> None:
        self._frames: List[bytes] = []
        self._lock = threading.Lock()

    def append(self, record: Dict[str, Any]) -> None:
        frame = encode_record(record)
        with self._lock:
            self._frames.append(frame)

    def replay(self) -> Iterator[Dict[str, Any]]:
        with self._lock:
            frames = list(self._frames)
        for frame in frames:
            yield cbor2.loads(frame[_HEADER.size:])

    def __len__(self) -> int:
        return len(self._frames)


class AppendOnlyLog:
    """
    File-backed RecordLog.

    Each record is a 4-byte big-endian length followed by a CBOR payload.
    Appends are flushed and fsync'd before returning. A torn trailing frame
    left by a crash mid-append is dropped on open.

    Example:
        >>> log = AppendOnlyLog(Path("state/members.log"))
        >>> log.append({"type": "member", "group_id": 1, "commitment": b"..."})
        >>> list(log.replay())
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot open log {self.path}: {exc}") from exc
        self._truncate_torn_tail()

    def _scan(self, data: bytes) -> tuple[List[bytes], int]:
        payloads: List[bytes] = []
        offset = 0
        while offset + _HEADER.size <= len(data):
            (length,) = _HEADER.unpack_from(data, offset)
            end = offset + _HEADER.size + length
            if length > MAX_RECORD_BYTES or end > len(data):
                break
            payloads.append(data[offset + _HEADER.size:end])
            offset = end
        return payloads, offset

    def _read_all(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read log {self.path}: {exc}") from exc

    def _truncate_torn_tail(self) -> None:
        data = self._read_all()
        _, valid = self._scan(data)
        if valid != len(data):
            logger.warning(
                "Dropping %d trailing bytes from torn log %s",
                len(data) - valid,
                self.path,
            )
            with self.path.open("r+b") as fh:
                fh.truncate(valid)

    def append(self, record: Dict[str, Any]) -> None:
        frame = encode_record(record)
        with self._lock:
            try:
                with self.path.open("ab") as fh:
                    start = fh.tell()
                    try:
                        fh.write(frame)
                        fh.flush()
                        os.fsync(fh.fileno())
                    except OSError:
                        fh.truncate(start)
                        raise
            except OSError as exc:
                raise StorageError(f"cannot append to {self.path}: {exc}") from exc

    def replay(self) -> Iterator[Dict[str, Any]]:
        with self._lock:
            data = self._read_all()
        payloads, _ = self._scan(data)
        for payload in payloads:
            try:
                record = cbor2.loads(payload)
            except (cbor2.CBORDecodeError, ValueError) as exc:
                raise StorageError(f"corrupt record in {self.path}") from exc
            if not isinstance(record, dict):
                raise StorageError(f"corrupt record in {self.path}")
            yield record
