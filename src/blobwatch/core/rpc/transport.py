"""
JSON-RPC transports for the Celestia node API.

The node speaks JSON-RPC 2.0 over HTTP (unary calls only) and over WebSocket
(unary calls plus subscriptions). Subscriptions follow the go-jsonrpc channel
protocol: the subscribe call returns a channel id, values arrive as
``xrpc.ch.val`` notifications with ``[channel_id, value]`` params, and
``xrpc.ch.close`` ends the channel.
"""

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from urllib.parse import urlparse

import aiohttp

from blobwatch.core.errors import (
    ConstructionError,
    RpcError,
    RpcTransportError,
    SubscriptionUnsupportedError,
)

# Set up logging
logger = logging.getLogger(__name__)

CHANNEL_VALUE_METHOD = "xrpc.ch.val"
CHANNEL_CLOSE_METHOD = "xrpc.ch.close"

WEBSOCKET_SCHEMES = ("ws", "wss")
HTTP_SCHEMES = ("http", "https")

# Queue item marking the end of a channel
CHANNEL_CLOSED = object()

# Items held per channel while its subscribe call is still in flight
MAX_EARLY_ITEMS = 1024


def rpc_error_from_response(error: Any) -> RpcError:
    """Build an RpcError from the ``error`` member of a JSON-RPC response."""
    if isinstance(error, dict):
        return RpcError(
            message=str(error.get("message", "Unknown error")),
            code=error.get("code"),
            data=error.get("data"),
        )
    return RpcError(message=str(error))


def build_request(request_id: int, method: str, params: List[Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}


class Transport:
    """
    Base class for JSON-RPC transports.

    A transport owns one aiohttp session. The headers passed at construction
    are attached to every request made through it.
    """

    def __init__(self, url: str, headers: Optional[Mapping[str, str]] = None,
                 connect_timeout: float = 30.0):
        """Initialize the transport.

        Args:
            url: Endpoint URL
            headers: Headers attached to every request
            connect_timeout: Seconds to wait for the connection to be established
        """
        self.url = url
        self.headers = dict(headers or {})
        self.connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        self.closed = False

    def _new_session(self) -> aiohttp.ClientSession:
        # Only the connect phase is bounded; calls may wait as long as the node needs
        timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
        return aiohttp.ClientSession(headers=self.headers, timeout=timeout)

    async def open(self) -> None:
        raise NotImplementedError

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        raise NotImplementedError

    async def subscribe(self, method: str, params: Optional[List[Any]] = None) -> Tuple[Any, asyncio.Queue]:
        raise SubscriptionUnsupportedError(
            f"{method} needs a WebSocket endpoint (ws:// or wss://), got {self.url}"
        )

    async def close(self) -> None:
        self.closed = True
        if self._session is not None and not self._session.closed:
            await self._session.close()


class HttpTransport(Transport):
    """Unary JSON-RPC over HTTP POST."""

    async def open(self) -> None:
        self._session = self._new_session()
        logger.debug(f"Opened HTTP session for {self.url}")

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self.closed or self._session is None:
            raise RpcTransportError("Connection is closed")

        payload = build_request(next(self._ids), method, params or [])
        logger.debug(f"-> {method} {payload['params']!r}")
        try:
            async with self._session.post(self.url, json=payload) as resp:
                if resp.status in (401, 403):
                    raise RpcTransportError(
                        f"Authentication rejected by node (HTTP {resp.status})",
                        code=resp.status,
                    )
                if resp.status >= 400:
                    text = await resp.text()
                    raise RpcTransportError(
                        f"HTTP {resp.status} from node: {text.strip()[:200]}",
                        code=resp.status,
                    )
                body = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RpcTransportError(f"Request {method} failed: {e}")
        except ValueError as e:
            raise RpcTransportError(f"Invalid JSON in response to {method}: {e}")

        if not isinstance(body, dict):
            raise RpcTransportError(f"Unexpected response to {method}: {body!r}")
        if body.get("error"):
            raise rpc_error_from_response(body["error"])
        return body.get("result")


class WebSocketTransport(Transport):
    """
    JSON-RPC over a single WebSocket connection.

    A reader task correlates responses with requests by id and routes channel
    notifications into per-subscription queues. Writes are serialized.
    """

    def __init__(self, url: str, headers: Optional[Mapping[str, str]] = None,
                 connect_timeout: float = 30.0):
        super().__init__(url, headers, connect_timeout)
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._pending: Dict[Any, asyncio.Future] = {}
        self._channels: Dict[Any, asyncio.Queue] = {}
        # Channel items that arrived before their subscribe call returned
        self._early: Dict[Any, List[Any]] = {}
        self._closed_channels: Set[Any] = set()

    async def open(self) -> None:
        """Perform the WebSocket handshake and start the reader task.

        Raises:
            ConstructionError: If the endpoint is unreachable or rejects the handshake
        """
        self._session = self._new_session()
        try:
            self._ws = await self._session.ws_connect(self.url, max_msg_size=0)
        except aiohttp.WSServerHandshakeError as e:
            await self._session.close()
            if e.status in (401, 403):
                raise ConstructionError(f"Authentication rejected by node (HTTP {e.status})")
            raise ConstructionError(f"WebSocket handshake with {self.url} failed: {e}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._session.close()
            raise ConstructionError(f"Could not connect to {self.url}: {e}")

        self._reader = asyncio.create_task(self._read_loop())
        logger.debug(f"WebSocket connected to {self.url}")

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self.closed or self._ws is None or self._ws.closed:
            raise RpcTransportError("Connection is closed")

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        payload = build_request(request_id, method, params or [])
        logger.debug(f"-> [{request_id}] {method} {payload['params']!r}")
        try:
            async with self._send_lock:
                await self._ws.send_str(json.dumps(payload))
        except (ConnectionError, aiohttp.ClientError, RuntimeError) as e:
            self._pending.pop(request_id, None)
            raise RpcTransportError(f"Failed to send {method}: {e}")

        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def subscribe(self, method: str, params: Optional[List[Any]] = None) -> Tuple[Any, asyncio.Queue]:
        """Open a channel subscription.

        Returns:
            Tuple of the channel id and the queue its items are delivered to.
            Items are ``("value", raw)``, ``("error", exc)`` or CHANNEL_CLOSED.
        """
        channel_id = await self.request(method, params)
        queue: asyncio.Queue = asyncio.Queue()
        early = self._early.pop(channel_id, [])
        for item in early:
            queue.put_nowait(item)
        if CHANNEL_CLOSED not in early and not self.closed:
            self._channels[channel_id] = queue
        elif CHANNEL_CLOSED not in early:
            queue.put_nowait(CHANNEL_CLOSED)
        logger.debug(f"Subscribed to {method} on channel {channel_id}")
        return channel_id, queue

    async def close(self) -> None:
        self.closed = True
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._shutdown(RpcTransportError("Connection is closed"))
        await super().close()

    async def _read_loop(self) -> None:
        """Read frames until the connection ends."""
        assert self._ws is not None
        reason = "WebSocket connection closed by node"
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._dispatch(msg.data.decode("utf-8", "replace"))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"WebSocket error: {self._ws.exception()}"
                    logger.error(reason)
                    break
        except asyncio.CancelledError:
            reason = "Connection is closed"
            raise
        except Exception as e:
            reason = f"WebSocket reader failed: {e}"
            logger.error(reason)
        finally:
            self._shutdown(RpcTransportError(reason))

    def _dispatch(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed frame: {raw[:200]!r}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring unexpected frame: {raw[:200]!r}")
            return

        method = message.get("method")
        if method is not None:
            self._handle_notification(method, message.get("params"))
            return

        future = self._pending.pop(message.get("id"), None)
        if future is None or future.done():
            logger.debug(f"Dropping response for unknown request id {message.get('id')!r}")
            return
        if message.get("error"):
            future.set_exception(rpc_error_from_response(message["error"]))
        else:
            future.set_result(message.get("result"))

    def _handle_notification(self, method: str, params: Any) -> None:
        if method == CHANNEL_VALUE_METHOD:
            if not isinstance(params, list) or not params:
                logger.warning(f"Ignoring channel value with malformed params: {params!r}")
                return
            channel_id = params[0]
            if len(params) < 2:
                item = ("error", RpcError(f"Channel {channel_id} sent a value without payload"))
            else:
                item = ("value", params[1])
            self._deliver(channel_id, item)
        elif method == CHANNEL_CLOSE_METHOD:
            if isinstance(params, list) and params:
                channel_id = params[0]
                self._deliver(channel_id, CHANNEL_CLOSED)
                self._channels.pop(channel_id, None)
                self._closed_channels.add(channel_id)
        else:
            logger.debug(f"Ignoring notification {method}")

    def _deliver(self, channel_id: Any, item: Any) -> None:
        if channel_id in self._closed_channels:
            logger.debug(f"Dropping item for closed channel {channel_id}")
            return
        queue = self._channels.get(channel_id)
        if queue is not None:
            queue.put_nowait(item)
            return
        early = self._early.setdefault(channel_id, [])
        if len(early) >= MAX_EARLY_ITEMS and item is not CHANNEL_CLOSED:
            logger.warning(f"Dropping item for unregistered channel {channel_id}: buffer full")
            return
        early.append(item)

    def _shutdown(self, error: RpcTransportError) -> None:
        """Fail in-flight requests and end every open channel."""
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        for queue in self._channels.values():
            queue.put_nowait(CHANNEL_CLOSED)
        self._channels.clear()
        self.closed = True


def transport_for_url(url: str, headers: Optional[Mapping[str, str]] = None,
                      connect_timeout: float = 30.0) -> Transport:
    """Pick a transport from the URL scheme.

    Raises:
        ConstructionError: If the URL is malformed or the scheme is not supported
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ConstructionError(f"Malformed node URL {url!r}: {e}")
    if not parsed.netloc:
        raise ConstructionError(f"Malformed node URL {url!r}: missing host")

    scheme = parsed.scheme.lower()
    if scheme in WEBSOCKET_SCHEMES:
        return WebSocketTransport(url, headers, connect_timeout)
    if scheme in HTTP_SCHEMES:
        return HttpTransport(url, headers, connect_timeout)
    raise ConstructionError(
        f"Unsupported URL scheme {parsed.scheme!r}; use ws://, wss://, http:// or https://"
    )
