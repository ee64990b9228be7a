"""
Per-group insert-only membership accumulator.

Each group owns an IncrementalMerkleTree, its ordered member list and a
bounded history of recent roots. Writers serialize on a per-group lock;
readers use the immutable ``GroupView`` published after every insert and never
observe a half-applied insertion.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from .config import DEFAULT_ROOT_HISTORY, ProtocolSettings
from .exceptions import ErrorKind, SignalError, StorageError
from .merkle import IncrementalMerkleTree
from .storage import AppendOnlyLog, MemoryLog, RecordLog
from .types import Commitment, GroupId, GroupSnapshot, MemberIndex, require_group_id, short_hex

logger = logging.getLogger(__name__)

GROUPS_LOG_NAME = "groups.log"


@dataclass(frozen=True)
class GroupView:
    """
    Consistent read-only view of one group at one point in time.

    Attributes:
        group_id: Group identifier
        depth: Tree depth (capacity ``2**depth``)
        size: Number of members
        root: Current root
        roots: Retained roots, newest first (``roots[0] == root``)
    """

    group_id: GroupId
    depth: int
    size: int
    root: bytes
    roots: Tuple[bytes, ...]

    @property
    def capacity(self) -> int:
        return 1 << self.depth


class _GroupState:
    def __init__(self, group_id: GroupId, depth: int, history: int) -> None:
        self.group_id = group_id
        self.lock = threading.Lock()
        self.tree = IncrementalMerkleTree(depth)
        self.members: List[Commitment] = []
        self.index: Dict[Commitment, MemberIndex] = {}
        self.history: Deque[bytes] = deque([self.tree.root], maxlen=history)
        self.view = self._make_view()

    def _make_view(self) -> GroupView:
        return GroupView(
            group_id=self.group_id,
            depth=self.tree.depth,
            size=self.tree.size,
            root=self.tree.root,
            roots=tuple(reversed(self.history)),
        )

    def insert(self, commitment: Commitment) -> MemberIndex:
        index = self.tree.insert(commitment.value)
        self.members.append(commitment)
        self.index[commitment] = index
        self.history.append(self.tree.root)
        # publish last: readers see either the old view or the complete new one
        self.view = self._make_view()
        return index


class GroupAccumulator:
    """
    Authoritative member lists and root histories for every group.

    Args:
        root_history: Number of roots (current included) retained per group
        store: Append-only log for group and member records; in-memory when
            omitted. Existing records are replayed on construction.

    Example:
        >>> acc = GroupAccumulator(root_history=16)
        >>> acc.create_group(1, depth=20)
        >>> index = acc.add_member(1, commitment)
        >>> acc.recent_roots(1, 4)
    """

    def __init__(
        self,
        root_history: int = DEFAULT_ROOT_HISTORY,
        store: Optional[RecordLog] = None,
    ) -> None:
        if root_history < 1:
            raise ValueError("root_history must be >= 1")
        self.root_history = root_history
        self._groups: Dict[GroupId, _GroupState] = {}
        self._admissions: Set[bytes] = set()
        self._registry_lock = threading.Lock()
        self._store: RecordLog = store if store is not None else MemoryLog()
        self._replay()

    @classmethod
    def from_settings(cls, settings: ProtocolSettings) -> "GroupAccumulator":
        store: Optional[RecordLog] = None
        if settings.data_path is not None:
            store = AppendOnlyLog(Path(settings.data_path) / GROUPS_LOG_NAME)
        return cls(root_history=settings.root_history, store=store)

    def _replay(self) -> None:
        restored = 0
        for record in self._store.replay():
            kind = record.get("type")
            try:
                if kind == "group":
                    group_id = record["group_id"]
                    self._groups[group_id] = _GroupState(
                        group_id, record["depth"], self.root_history
                    )
                elif kind == "member":
                    state = self._groups[record["group_id"]]
                    commitment = Commitment(record["commitment"])
                    if commitment in state.index:
                        raise StorageError("duplicate member record in log")
                    admission = record.get("admission")
                    if admission is not None:
                        if not isinstance(admission, bytes) or admission in self._admissions:
                            raise StorageError("invalid admission digest in log")
                        self._admissions.add(admission)
                    state.insert(commitment)
                    restored += 1
                else:
                    raise StorageError(f"unknown record type {kind!r}")
            except (KeyError, TypeError, ValueError) as exc:
                raise StorageError(f"invalid accumulator record: {exc}") from exc
        if self._groups:
            logger.info(
                "Restored %d groups with %d members", len(self._groups), restored
            )

    def _state(self, group_id: GroupId) -> _GroupState:
        state = self._groups.get(group_id)
        if state is None:
            raise SignalError(ErrorKind.UNKNOWN_GROUP, f"group {group_id} does not exist")
        return state

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_group(
        self, group_id: GroupId, depth: int, *, exist_ok: bool = False
    ) -> GroupView:
        """
        Create an empty group.

        Raises:
            ValueError: If the group exists (unless ``exist_ok`` and the depth
                matches) or the depth is out of range
        """
        require_group_id(group_id)
        with self._registry_lock:
            existing = self._groups.get(group_id)
            if existing is not None:
                if exist_ok and existing.view.depth == depth:
                    return existing.view
                raise ValueError(f"group {group_id} already exists")
            state = _GroupState(group_id, depth, self.root_history)
            self._store.append({"type": "group", "group_id": group_id, "depth": depth})
            self._groups[group_id] = state
        logger.info("Created group %d (depth %d)", group_id, depth)
        return state.view

    def add_member(
        self,
        group_id: GroupId,
        commitment: Commitment,
        *,
        admission: Optional[bytes] = None,
    ) -> MemberIndex:
        """
        Append ``commitment`` at the next free index.

        ``admission`` is the digest of the reference that admitted the member.
        It is written in the member's own record, so the reference is consumed
        exactly when the member becomes durable.

        Returns:
            Index assigned to the member

        Raises:
            SignalError: UNKNOWN_GROUP, DUPLICATE_COMMITMENT, GROUP_FULL, or
                REGISTRATION_REFUSED when ``admission`` was already consumed
            StorageError: If the record could not be persisted (no change)
        """
        if not isinstance(commitment, Commitment):
            raise TypeError("commitment must be Commitment")
        state = self._state(group_id)
        with state.lock:
            if commitment in state.index:
                raise SignalError(
                    ErrorKind.DUPLICATE_COMMITMENT,
                    f"commitment already in group {group_id}",
                )
            if state.tree.size >= state.tree.capacity:
                raise SignalError(
                    ErrorKind.GROUP_FULL, f"group {group_id} holds {state.tree.size}"
                )
            if admission is not None and admission in self._admissions:
                raise SignalError(
                    ErrorKind.REGISTRATION_REFUSED, "admission reference already used"
                )
            record: Dict[str, Any] = {
                "type": "member",
                "group_id": group_id,
                "commitment": commitment.value,
            }
            if admission is not None:
                record["admission"] = admission
            self._store.append(record)
            index = state.insert(commitment)
            if admission is not None:
                self._admissions.add(admission)
            root = state.tree.root
        logger.debug(
            "Group %d: member %d added, root %s",
            group_id,
            index,
            short_hex(root),
        )
        return index

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_admission_consumed(self, admission: bytes) -> bool:
        return admission in self._admissions

    def has_group(self, group_id: GroupId) -> bool:
        return group_id in self._groups

    def group_ids(self) -> List[GroupId]:
        return sorted(self._groups)

    def view(self, group_id: GroupId) -> GroupView:
        return self._state(group_id).view

    def current_root(self, group_id: GroupId) -> bytes:
        return self.view(group_id).root

    def size(self, group_id: GroupId) -> int:
        return self.view(group_id).size

    def depth(self, group_id: GroupId) -> int:
        return self.view(group_id).depth

    def recent_roots(self, group_id: GroupId, window: int) -> Tuple[bytes, ...]:
        """
        Most recent ``window`` roots, newest first.

        At most ``root_history`` roots are retained, so larger windows are
        clipped.
        """
        if window < 1:
            raise ValueError("window must be >= 1")
        return self.view(group_id).roots[:window]

    def is_recent_root(
        self, group_id: GroupId, root: bytes, window: Optional[int] = None
    ) -> bool:
        roots = self.recent_roots(group_id, window or self.root_history)
        return root in roots

    def members(self, group_id: GroupId) -> Tuple[Commitment, ...]:
        state = self._state(group_id)
        view = state.view
        # members is append-only, so the prefix matching the view is stable
        return tuple(state.members[: view.size])

    def index_of(self, group_id: GroupId, commitment: Commitment) -> Optional[MemberIndex]:
        state = self._state(group_id)
        index = state.index.get(commitment)
        if index is None or index >= state.view.size:
            return None
        return index

    def snapshot(self, group_id: GroupId) -> GroupSnapshot:
        """Immutable snapshot of the current member list and root."""
        state = self._state(group_id)
        view = state.view
        members = tuple(state.members[: view.size])
        return GroupSnapshot(
            group_id=group_id, depth=view.depth, members=members, root=view.root
        )

    def describe(self, group_id: GroupId) -> Dict[str, Any]:
        view = self.view(group_id)
        return {
            "group_id": view.group_id,
            "depth": view.depth,
            "size": view.size,
            "capacity": view.capacity,
            "root": view.root.hex(),
            "retained_roots": len(view.roots),
        }
