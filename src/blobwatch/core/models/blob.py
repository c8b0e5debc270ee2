import base64
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from blobwatch.core.commitment import create_commitment
from blobwatch.core.commitment.shares import SUPPORTED_SHARE_VERSIONS
from blobwatch.core.errors import BlobConstructionError, NamespaceError
from blobwatch.core.models.namespace import Namespace

# Sentinel used by the node for a blob whose index in the square is unknown
UNSET_INDEX = -1


def _b64decode(value: Any, field_name: str) -> bytes:
    if not isinstance(value, str):
        raise BlobConstructionError(f"Blob field {field_name!r} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except ValueError as e:
        raise BlobConstructionError(f"Blob field {field_name!r} is not valid base64: {e}")


def _rpc_int(value: Any, field_name: str) -> int:
    # bool is an int subclass but never a valid field value
    if not isinstance(value, int) or isinstance(value, bool):
        raise BlobConstructionError(
            f"Blob field {field_name!r} must be an integer, got {value!r}"
        )
    return value


class Blob(BaseModel):
    namespace: Namespace
    data: bytes = Field(..., description="Blob payload")
    share_version: int = Field(default=0, ge=0, le=127, description="Share format version")
    commitment: bytes = Field(..., description="Share commitment of the blob")
    index: Optional[int] = Field(default=None, description="Index of the first share in the square")

    model_config = {"frozen": True}

    @classmethod
    def new(cls, namespace: Namespace, data: bytes, share_version: int = 0) -> "Blob":
        """Create a blob and compute its commitment.

        Raises:
            BlobConstructionError: If the payload, share version or namespace is rejected
        """
        if not data:
            raise BlobConstructionError("Blob data must not be empty")
        if share_version not in SUPPORTED_SHARE_VERSIONS:
            raise BlobConstructionError(f"Unsupported share version {share_version}")
        if namespace.is_reserved():
            raise BlobConstructionError(f"Namespace {namespace} is reserved")

        commitment = create_commitment(namespace.as_bytes(), bytes(data), share_version)
        return cls(
            namespace=namespace,
            data=bytes(data),
            share_version=share_version,
            commitment=commitment,
        )

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "Blob":
        """Decode a blob from the node's JSON form."""
        if not isinstance(payload, dict):
            raise BlobConstructionError(f"Expected a blob object, got {type(payload).__name__}")
        try:
            namespace = Namespace.from_rpc(payload["namespace"])
            data = _b64decode(payload["data"], "data")
            commitment = _b64decode(payload["commitment"], "commitment")
            share_version = _rpc_int(payload.get("share_version", 0), "share_version")
            index = payload.get("index")
            if index is not None:
                index = _rpc_int(index, "index")
                if index < 0:
                    index = None
        except KeyError as e:
            raise BlobConstructionError(f"Blob is missing field {e}")
        except NamespaceError as e:
            raise BlobConstructionError(str(e))

        try:
            return cls(
                namespace=namespace,
                data=data,
                share_version=share_version,
                commitment=commitment,
                index=index,
            )
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise BlobConstructionError(f"Invalid blob: {messages}") from e

    def to_rpc(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace.to_rpc(),
            "data": base64.b64encode(self.data).decode(),
            "share_version": self.share_version,
            "commitment": base64.b64encode(self.commitment).decode(),
            "index": UNSET_INDEX if self.index is None else self.index,
        }

    def verify_commitment(self) -> bool:
        """Recompute the commitment from namespace and data and compare."""
        expected = create_commitment(self.namespace.as_bytes(), self.data, self.share_version)
        return expected == self.commitment


class SubmitOptions(BaseModel):
    """Options for blob submission.

    Fields left as None let the node choose.
    """
    gas_price: Optional[float] = Field(
        default=None,
        ge=0,
        description="Gas price hint in utia per gas unit"
    )
    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait for the submission to be included"
    )

    def to_rpc(self) -> Dict[str, Any]:
        """Build the TxConfig object the node expects."""
        options: Dict[str, Any] = {}
        if self.gas_price is not None:
            options["gas_price"] = self.gas_price
            options["is_gas_price_set"] = True
        return options
