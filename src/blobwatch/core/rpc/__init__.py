"""
JSON-RPC access to a Celestia light node.

This package provides the transports, the client and the header
subscription used to talk to the node.
"""

from blobwatch.core.rpc.client import CelestiaRpcClient
from blobwatch.core.rpc.subscription import HeaderSubscription
from blobwatch.core.rpc.transport import HttpTransport, WebSocketTransport

__all__ = ["CelestiaRpcClient", "HeaderSubscription", "HttpTransport", "WebSocketTransport"]
