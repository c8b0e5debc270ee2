"""
Celestia node RPC client.

This module provides an async client for the light node's JSON-RPC API:
fetching and submitting blobs, and subscribing to new headers.
"""

import asyncio
import base64
import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from blobwatch.core.errors import (
    BlobQueryError,
    ConstructionError,
    RpcError,
    SubmitError,
)
from blobwatch.core.models.blob import Blob, SubmitOptions
from blobwatch.core.models.header import ExtendedHeader
from blobwatch.core.models.namespace import Namespace
from blobwatch.core.rpc.subscription import HeaderSubscription
from blobwatch.core.rpc.transport import Transport, transport_for_url

# Set up logging
logger = logging.getLogger(__name__)

# Older nodes report an empty namespace at a height as an error
BLOB_NOT_FOUND_MESSAGE = "blob: not found"


def auth_headers(auth_token: Optional[str]) -> dict:
    """Headers carrying the bearer token, or none when there is no token.

    Raises:
        ConstructionError: If the token is an empty string
    """
    if auth_token is None:
        return {}
    if auth_token == "":
        raise ConstructionError(
            "Auth token must not be empty; pass None when the node skips authentication"
        )
    return {"Authorization": f"Bearer {auth_token}"}


class CelestiaRpcClient:
    """
    Client for a Celestia light node.

    One client owns one connection. Blob queries and the header subscription
    share it; the transport correlates responses with requests. Failed calls
    raise typed errors and leave the client usable.
    """

    def __init__(self, transport: Transport):
        """Initialize the client around an opened transport.

        Use ``CelestiaRpcClient.connect`` to build one from a URL.
        """
        self.transport = transport

    @classmethod
    async def connect(
        cls,
        url: str,
        auth_token: Optional[str] = None,
        connect_timeout: float = 30.0,
    ) -> "CelestiaRpcClient":
        """Connect to a node.

        Args:
            url: Node endpoint; ws:// or wss:// for subscriptions
            auth_token: Bearer token, or None when the node runs with --rpc.skip-auth
            connect_timeout: Seconds to wait for the connection

        Returns:
            CelestiaRpcClient: A connected client

        Raises:
            ConstructionError: If the URL, token or connection is rejected
        """
        transport = transport_for_url(url, auth_headers(auth_token), connect_timeout)
        await transport.open()
        logger.info(f"Connected to Celestia node at {url}")
        return cls(transport)

    async def __aenter__(self) -> "CelestiaRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def call(self, method: str, *params):
        """Call a node method with positional params."""
        return await self.transport.request(method, list(params))

    async def blob_get_all(self, height: int, namespaces: Iterable[Namespace]) -> List[Blob]:
        """Fetch every blob at ``height`` in any of ``namespaces``.

        Args:
            height: Block height
            namespaces: Namespaces to include

        Returns:
            List[Blob]: Blobs in the order the node reports them; empty if none

        Raises:
            BlobQueryError: If the node cannot serve the height or the reply is malformed
        """
        ns_params = [ns.to_rpc() for ns in namespaces]
        try:
            result = await self.call("blob.GetAll", height, ns_params)
        except RpcError as e:
            if BLOB_NOT_FOUND_MESSAGE in e.message:
                return []
            raise BlobQueryError(str(e), code=e.code, data=e.data) from e

        if result is None:
            return []
        if not isinstance(result, list):
            raise BlobQueryError(f"Expected a list of blobs at height {height}, got {result!r}")
        try:
            return [Blob.from_rpc(item) for item in result]
        except (TypeError, ValueError) as e:
            raise BlobQueryError(f"Malformed blob at height {height}: {e}") from e

    async def blob_get(self, height: int, namespace: Namespace, commitment: bytes) -> Blob:
        """Fetch a single blob by namespace and commitment.

        Raises:
            BlobQueryError: If the blob is missing or the node fails
        """
        try:
            result = await self.call(
                "blob.Get", height, namespace.to_rpc(), base64.b64encode(commitment).decode()
            )
        except RpcError as e:
            raise BlobQueryError(str(e), code=e.code, data=e.data) from e
        if result is None:
            raise BlobQueryError(f"No blob with that commitment at height {height}")
        try:
            return Blob.from_rpc(result)
        except (TypeError, ValueError) as e:
            raise BlobQueryError(f"Malformed blob at height {height}: {e}") from e

    async def blob_submit(self, blobs: List[Blob], options: Optional[SubmitOptions] = None) -> int:
        """Submit blobs and wait for inclusion.

        Args:
            blobs: Blobs to submit
            options: Submission options; defaults let the node choose

        Returns:
            int: Height of the block the blobs were included in

        Raises:
            SubmitError: If the node rejects the submission or the timeout expires
        """
        options = options or SubmitOptions()
        if not blobs:
            raise SubmitError("Nothing to submit")

        call = self.call("blob.Submit", [blob.to_rpc() for blob in blobs], options.to_rpc())
        try:
            if options.timeout is not None:
                result = await asyncio.wait_for(call, timeout=options.timeout)
            else:
                result = await call
        except asyncio.TimeoutError as e:
            raise SubmitError(f"Blob submission timed out after {options.timeout}s") from e
        except RpcError as e:
            raise SubmitError(str(e), code=e.code, data=e.data) from e

        try:
            return int(result)
        except (TypeError, ValueError) as e:
            raise SubmitError(f"Unexpected submit result {result!r}") from e

    async def header_subscribe(self) -> HeaderSubscription:
        """Subscribe to new extended headers.

        Raises:
            SubscriptionUnsupportedError: If the client is not on a WebSocket endpoint
            RpcError: If the node refuses the subscription
        """
        channel_id, queue = await self.transport.subscribe("header.Subscribe")
        return HeaderSubscription(channel_id, queue)

    async def header_network_head(self) -> ExtendedHeader:
        """Fetch the latest header known to the network."""
        result = await self.call("header.NetworkHead")
        try:
            return ExtendedHeader.model_validate(result)
        except ValidationError as e:
            raise RpcError(f"Could not decode extended header: {e}") from e
