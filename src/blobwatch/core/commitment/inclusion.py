"""
Blob share commitments.

The commitment is the Merkle root over the roots of the namespaced subtrees
that a blob's shares form inside the data square. It depends only on the
namespace, the data and the share version, so a client can compute it before
submitting and compare it with what the node returns.
"""

import math
from typing import List

from blobwatch.core.commitment.merkle import hash_from_byte_slices
from blobwatch.core.commitment.nmt import NamespacedMerkleTree
from blobwatch.core.commitment.shares import split_blob

SUBTREE_ROOT_THRESHOLD = 64


def round_up_power_of_two(value: int) -> int:
    if value < 1:
        raise ValueError("Value must be positive")
    result = 1
    while result < value:
        result <<= 1
    return result


def round_down_power_of_two(value: int) -> int:
    if value < 1:
        raise ValueError("Value must be positive")
    return 1 << (value.bit_length() - 1)


def blob_min_square_size(share_count: int) -> int:
    """Smallest power-of-two square width that fits ``share_count`` shares."""
    root = math.isqrt(share_count)
    if root * root < share_count:
        root += 1
    return round_up_power_of_two(max(root, 1))


def subtree_width(share_count: int, threshold: int = SUBTREE_ROOT_THRESHOLD) -> int:
    """Maximum width of the subtrees a blob of ``share_count`` shares is split into."""
    width = -(-share_count // threshold)
    width = round_up_power_of_two(width)
    return min(width, blob_min_square_size(share_count))


def merkle_mountain_range_sizes(total_size: int, max_tree_size: int) -> List[int]:
    """Split ``total_size`` leaves into perfect trees of at most ``max_tree_size``."""
    sizes = []
    while total_size > 0:
        if total_size >= max_tree_size:
            size = max_tree_size
        else:
            size = round_down_power_of_two(total_size)
        sizes.append(size)
        total_size -= size
    return sizes


def create_commitment(namespace: bytes, data: bytes, share_version: int = 0) -> bytes:
    """Compute the share commitment of a blob.

    Args:
        namespace: 29 byte namespace
        data: Blob payload
        share_version: Share format version

    Returns:
        bytes: 32 byte commitment
    """
    shares = split_blob(namespace, data, share_version)
    width = subtree_width(len(shares))

    subtree_roots = []
    cursor = 0
    for size in merkle_mountain_range_sizes(len(shares), width):
        tree = NamespacedMerkleTree()
        for share in shares[cursor:cursor + size]:
            tree.push(namespace + share)
        subtree_roots.append(tree.root())
        cursor += size

    return hash_from_byte_slices(subtree_roots)
