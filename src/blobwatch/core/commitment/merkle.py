"""
RFC 6962 binary Merkle tree, as used by CometBFT.
"""

import hashlib
from typing import List

LEAF_PREFIX = b"\x00"
INNER_PREFIX = b"\x01"


def empty_hash() -> bytes:
    return hashlib.sha256(b"").digest()


def leaf_hash(leaf: bytes) -> bytes:
    return hashlib.sha256(LEAF_PREFIX + leaf).digest()


def inner_hash(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(INNER_PREFIX + left + right).digest()


def get_split_point(length: int) -> int:
    """Largest power of two strictly smaller than ``length``."""
    if length < 1:
        raise ValueError("Trying to split a tree with size < 1")
    split = 1 << (length.bit_length() - 1)
    if split == length:
        split >>= 1
    return split


def hash_from_byte_slices(items: List[bytes]) -> bytes:
    """Compute the Merkle root of a list of byte strings.

    Args:
        items: Leaves of the tree, in order

    Returns:
        bytes: 32 byte root hash
    """
    if not items:
        return empty_hash()
    if len(items) == 1:
        return leaf_hash(items[0])
    k = get_split_point(len(items))
    left = hash_from_byte_slices(items[:k])
    right = hash_from_byte_slices(items[k:])
    return inner_hash(left, right)
