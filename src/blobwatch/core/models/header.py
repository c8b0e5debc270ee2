from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from blobwatch.core.errors import HeaderStreamError


class RawHeader(BaseModel):
    height: int = Field(..., ge=0, description="Block height")
    chain_id: str = Field(default="", description="Chain the block belongs to")
    time: Optional[str] = Field(default=None, description="Block time (RFC 3339)")

    model_config = {"extra": "allow"}


class BlockId(BaseModel):
    hash: str = Field(default="", description="Block hash (hex)")

    model_config = {"extra": "allow"}


class Commit(BaseModel):
    height: Optional[int] = None
    block_id: BlockId = Field(default_factory=BlockId)

    model_config = {"extra": "allow"}


class ExtendedHeader(BaseModel):
    """A block header extended with data availability metadata.

    Only the fields the client reads are typed; everything else the node
    sends is kept as extra data.
    """
    header: RawHeader
    commit: Commit = Field(default_factory=Commit)

    model_config = {"extra": "allow"}

    @property
    def height(self) -> int:
        return self.header.height

    @property
    def hash(self) -> str:
        return self.commit.block_id.hash

    def __str__(self) -> str:
        return f"hash: {self.hash}; height: {self.height}"


@dataclass
class HeaderEvent:
    """One element of a header subscription: a header or the error that replaced it."""

    header: Optional[ExtendedHeader] = None
    error: Optional[HeaderStreamError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, header: ExtendedHeader) -> "HeaderEvent":
        return cls(header=header)

    @classmethod
    def failure(cls, error: HeaderStreamError) -> "HeaderEvent":
        return cls(error=error)
