"""
Blob commitment package.

Share splitting, namespaced Merkle trees and the share commitment used to
check that a retrieved blob matches the submitted one.
"""
from blobwatch.core.commitment.inclusion import create_commitment
from blobwatch.core.commitment.nmt import NamespacedMerkleTree
from blobwatch.core.commitment.shares import split_blob

__all__ = ["create_commitment", "NamespacedMerkleTree", "split_blob"]
