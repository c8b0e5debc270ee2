"""
Blob submission round-trip.

Submits a blob, reads the block it landed in back from the node and checks
that the node returns the same data under the same commitment.
"""
import logging
from typing import Optional, Tuple

from blobwatch.core.errors import BlobQueryError, SubmitError
from blobwatch.core.models.blob import Blob, SubmitOptions
from blobwatch.core.models.namespace import Namespace
from blobwatch.core.rpc.client import CelestiaRpcClient

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_PAYLOAD = b"Hello, World!"


async def submit_and_verify(
    client: CelestiaRpcClient,
    namespace: Namespace,
    data: bytes = DEFAULT_PAYLOAD,
    options: Optional[SubmitOptions] = None,
) -> Tuple[int, Blob]:
    """Submit a blob and verify it can be read back.

    Args:
        client: Connected RPC client
        namespace: Namespace to submit under
        data: Blob payload
        options: Submission options

    Returns:
        Tuple[int, Blob]: Inclusion height and the submitted blob

    Raises:
        BlobConstructionError: If the payload is rejected locally
        SubmitError: If submission fails or the retrieved blob does not match
    """
    blob = Blob.new(namespace, data)
    logger.debug(f"Submitting {len(data)} bytes with commitment {blob.commitment.hex()}")

    height = await client.blob_submit([blob], options or SubmitOptions())
    logger.info(f"Blob was included at height {height}")

    try:
        retrieved = await client.blob_get_all(height, [namespace])
    except BlobQueryError as e:
        raise SubmitError(f"Submitted blob could not be fetched at height {height}: {e}") from e

    matches = [
        b for b in retrieved
        if b.data == blob.data and b.commitment == blob.commitment
    ]
    if len(matches) != 1:
        raise SubmitError(
            f"Expected exactly one matching blob at height {height}, "
            f"found {len(matches)} among {len(retrieved)}"
        )

    logger.info(f"Verified blob at height {height} with commitment {blob.commitment.hex()}")
    return height, blob
