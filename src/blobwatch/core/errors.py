"""
Error types for the blobwatch client.

The driver loop recovers HeaderStreamError and blob query failures locally;
every other error propagates to the caller.
"""

from typing import Any, Optional


class BlobwatchError(Exception):
    """Base class for all blobwatch errors."""

    pass


class ConstructionError(BlobwatchError):
    """Raised when the RPC client cannot be constructed.

    Covers malformed URLs, unreachable endpoints, TLS or handshake failures
    and rejected authentication.
    """

    pass


class NamespaceError(BlobwatchError, ValueError):
    """Raised when a namespace version/id pair is invalid."""

    pass


class BlobConstructionError(BlobwatchError, ValueError):
    """Raised when a blob payload or namespace is rejected by local validation."""

    pass


class HeaderStreamError(BlobwatchError):
    """A single element of the header stream could not be received or decoded."""

    pass


class RpcError(BlobwatchError):
    """An error reported by the node for a JSON-RPC call."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class RpcTransportError(RpcError):
    """The connection failed while a call was in flight."""

    pass


class SubscriptionUnsupportedError(RpcError):
    """The transport cannot carry server-pushed subscriptions."""

    pass


class BlobQueryError(RpcError):
    """Fetching blobs at a height failed."""

    pass


class SubmitError(RpcError):
    """Submitting a blob failed or the round-trip check did not match."""

    pass
