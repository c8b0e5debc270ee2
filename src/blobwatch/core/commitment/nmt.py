"""
Namespaced Merkle Tree.

Every node of the tree carries the minimum and maximum namespace of the leaves
below it, so a root is ``min_ns || max_ns || sha256 digest``. Leaves must be
pushed in non-decreasing namespace order.
"""

import hashlib
from typing import List, Optional

from blobwatch.core.commitment.merkle import INNER_PREFIX, LEAF_PREFIX, get_split_point
from blobwatch.core.models.namespace import NS_SIZE


class NamespacedMerkleTree:
    """
    A Namespaced Merkle Tree over SHA-256.

    With ``ignore_max_namespace`` set, a right subtree whose minimum namespace
    is the maximum possible namespace (parity shares) does not widen the
    namespace range of its parent.
    """

    def __init__(self, namespace_size: int = NS_SIZE, ignore_max_namespace: bool = True):
        """Initialize an empty tree.

        Args:
            namespace_size: Size in bytes of the namespace prefix of each leaf
            ignore_max_namespace: Whether to apply the ignore-max-namespace rule
        """
        self.namespace_size = namespace_size
        self.ignore_max_namespace = ignore_max_namespace
        self.max_namespace = b"\xff" * namespace_size
        self.leaves: List[bytes] = []
        self._root: Optional[bytes] = None

    def push(self, namespaced_data: bytes) -> None:
        """Append a leaf whose first ``namespace_size`` bytes are its namespace.

        Raises:
            ValueError: If the leaf is too short or out of namespace order
        """
        if len(namespaced_data) < self.namespace_size:
            raise ValueError("Leaf is shorter than the namespace size")
        if self.leaves:
            previous = self.leaves[-1][: self.namespace_size]
            if namespaced_data[: self.namespace_size] < previous:
                raise ValueError("Leaves must be pushed in namespace order")
        self.leaves.append(bytes(namespaced_data))
        self._root = None

    def hash_leaf(self, namespaced_data: bytes) -> bytes:
        ns = namespaced_data[: self.namespace_size]
        digest = hashlib.sha256(LEAF_PREFIX + namespaced_data).digest()
        return ns + ns + digest

    def hash_node(self, left: bytes, right: bytes) -> bytes:
        size = self.namespace_size
        left_min, left_max = left[:size], left[size:2 * size]
        right_min, right_max = right[:size], right[size:2 * size]

        min_ns = left_min
        max_ns = right_max
        if self.ignore_max_namespace and right_min == self.max_namespace:
            max_ns = left_max

        digest = hashlib.sha256(INNER_PREFIX + left + right).digest()
        return min_ns + max_ns + digest

    def empty_root(self) -> bytes:
        zero = bytes(self.namespace_size)
        return zero + zero + hashlib.sha256(b"").digest()

    def root(self) -> bytes:
        """Return the tree root, computing it if needed."""
        if self._root is None:
            if not self.leaves:
                self._root = self.empty_root()
            else:
                self._root = self._compute_root(0, len(self.leaves))
        return self._root

    def _compute_root(self, start: int, end: int) -> bytes:
        if end - start == 1:
            return self.hash_leaf(self.leaves[start])
        k = get_split_point(end - start)
        left = self._compute_root(start, start + k)
        right = self._compute_root(start + k, end)
        return self.hash_node(left, right)
