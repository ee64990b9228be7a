"""
Merkle tree utilities for group membership.
Uses SHA3-256 with domain separation for leaf/node hashing over a fixed-depth
tree whose unused leaves hold the all-zero value.
"""

from __future__ import annotations

import hashlib
from typing import List, Sequence, Tuple

from .config import COMMITMENT_BYTES, DOMAIN_SEPARATORS, MAX_DEPTH, MIN_DEPTH

ZERO_LEAF = b"\x00" * COMMITMENT_BYTES


def _sha3(data: bytes) -> bytes:
    return hashlib.sha3_256(data).digest()


def hash_leaf(leaf_data: bytes) -> bytes:
    """
    Hash a Merkle tree leaf with domain separation.

    The zero leaf is left unhashed so that empty subtrees are independent of
    the leaf domain separator.

    Args:
        leaf_data: Leaf content (a serialized commitment)

    Returns:
        32-byte SHA3-256 hash, or ZERO_LEAF for the empty slot
    """
    if leaf_data == ZERO_LEAF:
        return ZERO_LEAF
    return _sha3(DOMAIN_SEPARATORS["merkle_leaf"] + leaf_data)


def hash_node(left: bytes, right: bytes) -> bytes:
    """
    Hash two Merkle node hashes.

    Args:
        left: Left child hash (32 bytes)
        right: Right child hash (32 bytes)

    Returns:
        32-byte SHA3-256 hash

    Note:
        Uses fixed left||right ordering (no sorting).
    """
    return _sha3(DOMAIN_SEPARATORS["merkle_node"] + left + right)


def _check_depth(depth: int) -> None:
    if not isinstance(depth, int) or isinstance(depth, bool):
        raise TypeError("depth must be int")
    if not MIN_DEPTH <= depth <= MAX_DEPTH:
        raise ValueError(f"depth must be in [{MIN_DEPTH}, {MAX_DEPTH}]")


def _build_zero_hashes() -> List[bytes]:
    zeros = [ZERO_LEAF]
    for _ in range(MAX_DEPTH):
        zeros.append(hash_node(zeros[-1], zeros[-1]))
    return zeros


_ZERO_HASHES = _build_zero_hashes()


def zero_hashes(depth: int) -> List[bytes]:
    """Root of an empty subtree at each height ``0..depth``."""
    _check_depth(depth)
    return _ZERO_HASHES[: depth + 1]


class IncrementalMerkleTree:
    """
    Append-only fixed-depth Merkle tree.

    Keeps the left-most filled subtree at every level so that an insertion
    touches exactly ``depth`` nodes.

    Example:
        >>> tree = IncrementalMerkleTree(depth=20)
        >>> index = tree.insert(commitment_bytes)
        >>> tree.root
    """

    def __init__(self, depth: int) -> None:
        _check_depth(depth)
        self.depth = depth
        self._zeros = zero_hashes(depth)
        self._filled: List[bytes] = list(self._zeros[:depth])
        self._size = 0
        self._root = self._zeros[depth]

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def size(self) -> int:
        return self._size

    @property
    def root(self) -> bytes:
        return self._root

    def insert(self, leaf_data: bytes) -> int:
        """
        Append a leaf and update the root along its path.

        Returns:
            Index assigned to the leaf

        Raises:
            ValueError: If the tree is full
        """
        if self._size >= self.capacity:
            raise ValueError("tree is full")

        index = self._size
        current = hash_leaf(leaf_data)
        position = index
        for level in range(self.depth):
            if position % 2 == 0:
                self._filled[level] = current
                current = hash_node(current, self._zeros[level])
            else:
                current = hash_node(self._filled[level], current)
            position //= 2

        self._root = current
        self._size += 1
        return index


def _levels(leaves: Sequence[bytes], depth: int) -> List[List[bytes]]:
    _check_depth(depth)
    if len(leaves) > (1 << depth):
        raise ValueError("too many leaves for depth")
    zeros = zero_hashes(depth)
    level = [hash_leaf(leaf) for leaf in leaves]
    levels = [level]
    for height in range(depth):
        if len(level) % 2 == 1:
            level = level + [zeros[height]]
        level = [
            hash_node(level[i], level[i + 1]) for i in range(0, len(level), 2)
        ]
        levels.append(level)
    return levels


def compute_root(leaves: Sequence[bytes], depth: int) -> bytes:
    """
    Recompute the root of a fixed-depth tree from its full leaf list.

    Equivalent to inserting ``leaves`` in order into an empty
    IncrementalMerkleTree; used to rebuild client-side group snapshots.
    """
    levels = _levels(leaves, depth)
    top = levels[-1]
    return top[0] if top else zero_hashes(depth)[depth]


def build_path(
    leaves: Sequence[bytes], depth: int, index: int
) -> List[Tuple[bytes, bool]]:
    """
    Authentication path for ``leaves[index]``.

    Returns:
        ``[(sibling, is_left), ...]`` from the leaf level upwards
    """
    if not 0 <= index < len(leaves):
        raise IndexError("leaf index out of range")
    zeros = zero_hashes(depth)
    levels = _levels(leaves, depth)
    path: List[Tuple[bytes, bool]] = []
    position = index
    for height in range(depth):
        level = levels[height]
        sibling_pos = position ^ 1
        sibling = level[sibling_pos] if sibling_pos < len(level) else zeros[height]
        path.append((sibling, sibling_pos < position))
        position //= 2
    return path


def verify_path(
    leaf_hash: bytes,
    path: List[Tuple[bytes, bool]],
    root: bytes
) -> bool:
    """
    Verify a Merkle authentication path.

    Args:
        leaf_hash: Hash of the leaf (32 bytes)
        path: Authentication path [(sibling, is_left), ...]
        root: Expected root hash (32 bytes)

    Returns:
        True if path is valid, False otherwise
    """
    current = leaf_hash

    for sibling, is_left in path:
        if is_left:
            current = hash_node(sibling, current)
        else:
            current = hash_node(current, sibling)

    return current == root
