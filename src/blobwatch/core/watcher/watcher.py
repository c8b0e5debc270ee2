"""
Blob watcher for new Celestia headers.

This module turns the node's pushed header stream into one blob query per
height, reporting how many blobs each block carries in a namespace.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from blobwatch.core.errors import BlobQueryError
from blobwatch.core.models.header import ExtendedHeader
from blobwatch.core.models.namespace import Namespace
from blobwatch.core.rpc.client import CelestiaRpcClient

# Set up logging
logger = logging.getLogger(__name__)


@dataclass
class WatchSummary:
    """Counters for one run of the watcher."""

    headers: int = 0
    header_errors: int = 0
    query_errors: int = 0
    blobs: int = 0
    last_height: Optional[int] = None


class BlobWatcher:
    """
    Watches new headers and fetches the blobs of one namespace at each height.

    Queries are issued one at a time: the next header is not consumed until
    the query for the current one has finished, so reports come out in header
    order. A failed header or a failed query is logged and skipped; neither
    ends the run, and failed heights are not retried.
    """

    def __init__(self, client: CelestiaRpcClient, namespace: Namespace, label: Optional[str] = None):
        """Initialize the watcher.

        Args:
            client: Connected RPC client (WebSocket endpoint)
            namespace: Namespace to fetch blobs from
            label: Name of the namespace in log lines, defaults to its hex form
        """
        self.client = client
        self.namespace = namespace
        self.label = label or str(namespace)
        self.summary = WatchSummary()

    async def run(self) -> WatchSummary:
        """Consume the header subscription until it ends.

        Returns:
            WatchSummary: Counters for this run

        Raises:
            SubscriptionUnsupportedError: If the client cannot subscribe
            RpcError: If the node refuses the subscription
        """
        subscription = await self.client.header_subscribe()
        logger.debug(f"Watching blobs in namespace {self.namespace}")

        async for event in subscription:
            if not event.ok:
                self.summary.header_errors += 1
                logger.error(f"Error receiving header: {event.error}")
                continue
            await self.process_header(event.header)

        return self.summary

    async def process_header(self, header: ExtendedHeader) -> bool:
        """Fetch and report the blobs at the height of one header.

        Args:
            header: Header announced by the node

        Returns:
            bool: True if the query succeeded
        """
        self.summary.headers += 1
        logger.info(f"Header: {header}")

        height = header.height
        self.summary.last_height = height
        try:
            blobs = await self.client.blob_get_all(height, [self.namespace])
        except BlobQueryError as e:
            self.summary.query_errors += 1
            logger.error(f"Error fetching blobs: {e}")
            return False

        self.summary.blobs += len(blobs)
        logger.info(f"Found {len(blobs)} blobs at height {height} in the {self.label} namespace")
        return True
