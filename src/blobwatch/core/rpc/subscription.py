"""
Header subscriptions.

Turns the raw channel queue of a ``header.Subscribe`` call into an async
iterator of HeaderEvent values.
"""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from blobwatch.core.errors import HeaderStreamError
from blobwatch.core.models.header import ExtendedHeader, HeaderEvent
from blobwatch.core.rpc.transport import CHANNEL_CLOSED

# Set up logging
logger = logging.getLogger(__name__)


class HeaderSubscription:
    """
    A lazy, possibly infinite stream of header events.

    Elements that cannot be decoded are yielded as failed events and the
    stream continues. The stream ends when the node closes the channel or the
    connection goes away. It cannot be restarted; subscribe again instead.
    """

    def __init__(self, channel_id: Any, queue: asyncio.Queue):
        self.channel_id = channel_id
        self._queue = queue
        self.finished = False

    def __aiter__(self) -> "HeaderSubscription":
        return self

    async def __anext__(self) -> HeaderEvent:
        if self.finished:
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is CHANNEL_CLOSED:
            self.finished = True
            logger.info(f"Header subscription on channel {self.channel_id} ended")
            raise StopAsyncIteration

        kind, payload = item
        if kind == "error":
            return HeaderEvent.failure(HeaderStreamError(str(payload)))
        return self._decode(payload)

    def _decode(self, payload: Any) -> HeaderEvent:
        try:
            header = ExtendedHeader.model_validate(payload)
        except ValidationError as e:
            return HeaderEvent.failure(
                HeaderStreamError(f"Could not decode extended header: {e}")
            )
        return HeaderEvent.success(header)
