"""
Share splitting for blobs.

A blob is laid out as a sequence of fixed size shares. The first share of the
sequence carries the total data length; continuation shares carry data only.
"""

from typing import List

from blobwatch.core.models.namespace import NS_SIZE

SHARE_SIZE = 512
SHARE_INFO_BYTES = 1
SEQUENCE_LEN_BYTES = 4
FIRST_SPARSE_SHARE_CONTENT_SIZE = SHARE_SIZE - NS_SIZE - SHARE_INFO_BYTES - SEQUENCE_LEN_BYTES
CONTINUATION_SPARSE_SHARE_CONTENT_SIZE = SHARE_SIZE - NS_SIZE - SHARE_INFO_BYTES

SUPPORTED_SHARE_VERSIONS = (0,)
MAX_SHARE_VERSION = 127


def info_byte(share_version: int, is_sequence_start: bool) -> int:
    """Pack the share version and the sequence start flag into one byte."""
    if not 0 <= share_version <= MAX_SHARE_VERSION:
        raise ValueError(f"Share version must be between 0 and {MAX_SHARE_VERSION}")
    return (share_version << 1) | int(is_sequence_start)


def sparse_shares_needed(data_len: int) -> int:
    """Number of shares a blob with ``data_len`` bytes of data occupies."""
    if data_len <= FIRST_SPARSE_SHARE_CONTENT_SIZE:
        return 1
    remaining = data_len - FIRST_SPARSE_SHARE_CONTENT_SIZE
    continuation = -(-remaining // CONTINUATION_SPARSE_SHARE_CONTENT_SIZE)
    return 1 + continuation


def split_blob(namespace: bytes, data: bytes, share_version: int = 0) -> List[bytes]:
    """Split blob data into shares.

    Args:
        namespace: 29 byte namespace prefix written at the start of every share
        data: Blob payload
        share_version: Share format version

    Returns:
        List[bytes]: Shares of exactly SHARE_SIZE bytes each
    """
    if len(namespace) != NS_SIZE:
        raise ValueError(f"Namespace must be {NS_SIZE} bytes, got {len(namespace)}")
    if share_version not in SUPPORTED_SHARE_VERSIONS:
        raise ValueError(f"Unsupported share version {share_version}")

    shares = []

    first = bytearray(namespace)
    first.append(info_byte(share_version, True))
    first += len(data).to_bytes(SEQUENCE_LEN_BYTES, "big")
    first += data[:FIRST_SPARSE_SHARE_CONTENT_SIZE]
    shares.append(_pad(first))

    cursor = FIRST_SPARSE_SHARE_CONTENT_SIZE
    while cursor < len(data):
        share = bytearray(namespace)
        share.append(info_byte(share_version, False))
        share += data[cursor:cursor + CONTINUATION_SPARSE_SHARE_CONTENT_SIZE]
        shares.append(_pad(share))
        cursor += CONTINUATION_SPARSE_SHARE_CONTENT_SIZE

    return shares


def _pad(share: bytearray) -> bytes:
    return bytes(share) + bytes(SHARE_SIZE - len(share))
