"""
Pytest configuration for blobwatch tests.

This file sets up the Python path, resets logging between tests and provides
a fake Celestia node that speaks JSON-RPC over HTTP and WebSocket.
"""

import asyncio
import contextlib
import json
import logging
import os
import sys

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add the source directory to the Python path to help with imports
src_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if src_root not in sys.path:
    sys.path.insert(0, src_root)

from blobwatch.core.models.namespace import Namespace  # noqa: E402

CHANNEL_ID = 7


def header_payload(height, block_hash="ABCDEF"):
    """Build an extended header the way the node serializes it."""
    return {
        "header": {
            "version": {"block": "11", "app": "3"},
            "chain_id": "mocha-4",
            "height": str(height),
            "time": "2024-05-01T12:00:00Z",
        },
        "commit": {
            "height": height,
            "round": 0,
            "block_id": {"hash": block_hash, "parts": {"total": 1, "hash": "00"}},
            "signatures": [],
        },
        "validator_set": {"validators": []},
        "dah": {"row_roots": [], "column_roots": []},
    }


class FakeNode:
    """
    In-process stand-in for a Celestia light node.

    Records every request and the Authorization header it arrived with.
    """

    def __init__(self):
        self.requests = []
        self.auth_headers = []
        self.required_token = None
        self.stream = []
        self.close_stream = True
        self.drop_after_stream = False
        self.blobs = {}
        self.failing_heights = set()
        self.not_found_heights = set()
        self.fail_submit = False
        self.submit_delay = 0
        self.submitted = []
        self.next_submit_height = 500

    def app(self):
        app = web.Application()
        app.router.add_get("/", self.ws_handler)
        app.router.add_post("/", self.http_handler)
        return app

    def _check_auth(self, request):
        header = request.headers.get("Authorization")
        self.auth_headers.append(header)
        if self.required_token is not None and header != f"Bearer {self.required_token}":
            raise web.HTTPUnauthorized()

    async def http_handler(self, request):
        self._check_auth(request)
        message = await request.json()
        self.requests.append(message)
        return web.json_response(self.respond(message))

    async def ws_handler(self, request):
        self._check_auth(request)
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for msg in ws:
            message = json.loads(msg.data)
            self.requests.append(message)
            if message["method"] == "header.Subscribe":
                await ws.send_json({"jsonrpc": "2.0", "id": message["id"], "result": CHANNEL_ID})
                for item in self.stream:
                    await ws.send_str(json.dumps(
                        {"jsonrpc": "2.0", "method": "xrpc.ch.val", "params": [CHANNEL_ID, item]}
                    ))
                if self.drop_after_stream:
                    await ws.close()
                    break
                if self.close_stream:
                    await ws.send_json(
                        {"jsonrpc": "2.0", "method": "xrpc.ch.close", "params": [CHANNEL_ID]}
                    )
            else:
                if message["method"] == "blob.Submit" and self.submit_delay:
                    await asyncio.sleep(self.submit_delay)
                await ws.send_json(self.respond(message))
        return ws

    def respond(self, message):
        method = message["method"]
        params = message["params"]
        reply = {"jsonrpc": "2.0", "id": message["id"]}

        if method == "blob.GetAll":
            height, namespaces = params
            if height in self.failing_heights:
                reply["error"] = {"code": 1, "message": f"header: height {height} not synced"}
                return reply
            if height in self.not_found_heights:
                reply["error"] = {"code": 1, "message": "blob: not found"}
                return reply
            found = [b for b in self.blobs.get(height, []) if b["namespace"] in namespaces]
            reply["result"] = found or None
        elif method == "blob.Submit":
            blobs, options = params
            if self.fail_submit:
                reply["error"] = {"code": 1, "message": "insufficient funds for fee"}
                return reply
            height = self.next_submit_height
            self.next_submit_height += 1
            self.submitted.append((height, blobs, options))
            self.blobs.setdefault(height, []).extend(blobs)
            reply["result"] = height
        elif method == "header.NetworkHead":
            reply["result"] = header_payload(999)
        else:
            reply["error"] = {"code": -32601, "message": f"method '{method}' not found"}
        return reply

    @contextlib.asynccontextmanager
    async def serve(self):
        """Run the node and yield its (ws_url, http_url)."""
        server = TestServer(self.app())
        await server.start_server()
        try:
            http_url = str(server.make_url("/"))
            yield http_url.replace("http://", "ws://", 1), http_url
        finally:
            await server.close()


@pytest.fixture
def fake_node():
    """Create a fake Celestia node."""
    return FakeNode()


@pytest.fixture
def demo_namespace():
    """The 0xDEADBEEF v0 namespace."""
    return Namespace.new_v0(bytes.fromhex("deadbeef"))


@pytest.fixture(autouse=True)
def reset_blobwatch_logging():
    """Undo handler changes the CLI makes to the package logger."""
    yield
    package_logger = logging.getLogger("blobwatch")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def make_header():
    """Factory for node-formatted extended headers."""
    return header_payload
