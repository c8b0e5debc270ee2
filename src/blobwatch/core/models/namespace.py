"""
Celestia namespace identifiers.

A namespace is 29 bytes: one version byte followed by a 28 byte id. Version 0
namespaces reserve the first 18 id bytes (always zero), leaving 10 bytes for
the application.
"""

import base64

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from blobwatch.core.errors import NamespaceError

NS_VERSION_SIZE = 1
NS_ID_SIZE = 28
NS_SIZE = NS_VERSION_SIZE + NS_ID_SIZE
NS_ID_V0_SIZE = 10
NS_V0_PREFIX_SIZE = NS_ID_SIZE - NS_ID_V0_SIZE

NS_VERSION_ZERO = 0
NS_VERSION_MAX = 255


class Namespace(BaseModel):
    """An immutable Celestia namespace.

    Prefer the ``new_v0`` and ``from_raw`` constructors, which raise
    NamespaceError instead of pydantic's ValidationError.
    """

    version: int = Field(..., ge=0, le=255, description="Namespace version byte")
    id: bytes = Field(..., description="28 byte namespace id")

    model_config = {"frozen": True}

    @field_validator("id")
    def validate_id_size(cls, value):
        if len(value) != NS_ID_SIZE:
            raise ValueError(f"Namespace id must be {NS_ID_SIZE} bytes, got {len(value)}")
        return value

    @model_validator(mode="after")
    def validate_version(self):
        if self.version == NS_VERSION_ZERO:
            if any(self.id[:NS_V0_PREFIX_SIZE]):
                raise ValueError(
                    f"Version 0 namespace id must start with {NS_V0_PREFIX_SIZE} zero bytes"
                )
        elif self.version == NS_VERSION_MAX:
            # Only the secondary reserved namespaces live in version 255
            if self.id[:-1] != b"\xff" * (NS_ID_SIZE - 1) or self.id[-1] < 0xFE:
                raise ValueError("Unsupported version 255 namespace")
        else:
            raise ValueError(f"Unsupported namespace version {self.version}")
        return self

    @classmethod
    def _build(cls, version: int, id: bytes) -> "Namespace":
        try:
            return cls(version=version, id=id)
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise NamespaceError(f"Invalid namespace: {messages}") from e

    @classmethod
    def new_v0(cls, id: bytes) -> "Namespace":
        """Create a version 0 namespace from an application id of up to 10 bytes.

        The id is right-aligned and left-padded with zeros.

        Raises:
            NamespaceError: If the id is longer than 10 bytes
        """
        if len(id) > NS_ID_V0_SIZE:
            raise NamespaceError(
                f"Version 0 namespace id must be at most {NS_ID_V0_SIZE} bytes, got {len(id)}"
            )
        padded = bytes(NS_ID_SIZE - len(id)) + bytes(id)
        return cls._build(NS_VERSION_ZERO, padded)

    @classmethod
    def from_raw(cls, raw: bytes) -> "Namespace":
        """Parse a 29 byte namespace."""
        if len(raw) != NS_SIZE:
            raise NamespaceError(f"Namespace must be {NS_SIZE} bytes, got {len(raw)}")
        return cls._build(raw[0], bytes(raw[1:]))

    @classmethod
    def from_rpc(cls, value: str) -> "Namespace":
        """Parse the base64 form used by the node's JSON-RPC API."""
        try:
            raw = base64.b64decode(value, validate=True)
        except (ValueError, TypeError) as e:
            raise NamespaceError(f"Invalid base64 namespace: {e}")
        return cls.from_raw(raw)

    def as_bytes(self) -> bytes:
        return bytes([self.version]) + self.id

    def to_rpc(self) -> str:
        return base64.b64encode(self.as_bytes()).decode()

    def is_reserved(self) -> bool:
        """Whether this namespace is reserved for protocol use."""
        raw = self.as_bytes()
        return raw <= MAX_PRIMARY_RESERVED.as_bytes() or raw >= MIN_SECONDARY_RESERVED.as_bytes()

    def __str__(self) -> str:
        return f"0x{self.as_bytes().hex()}"


def _primary(last: int) -> Namespace:
    return Namespace(version=NS_VERSION_ZERO, id=bytes(NS_ID_SIZE - 1) + bytes([last]))


def _secondary(last: int) -> Namespace:
    return Namespace(version=NS_VERSION_MAX, id=b"\xff" * (NS_ID_SIZE - 1) + bytes([last]))


# Reserved namespaces
TRANSACTION_NAMESPACE = _primary(0x01)
INTERMEDIATE_STATE_ROOTS_NAMESPACE = _primary(0x02)
PAY_FOR_BLOB_NAMESPACE = _primary(0x04)
PRIMARY_RESERVED_PADDING_NAMESPACE = _primary(0xFF)
MAX_PRIMARY_RESERVED = PRIMARY_RESERVED_PADDING_NAMESPACE
MIN_SECONDARY_RESERVED = _secondary(0xFE)
TAIL_PADDING_NAMESPACE = _secondary(0xFE)
PARITY_SHARE_NAMESPACE = _secondary(0xFF)
