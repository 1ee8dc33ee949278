# bzzdb/client/base.py
"""
Transport interface to a Swarm (Bee) node.

The core never talks HTTP directly; it consumes this interface, which is
implemented by HttpClient for a real node and MockClient for tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

from ..context import Context
from ..errors import InvalidAmountError, InvalidDepthError

BUCKET_DEPTH = 16
MIN_DEPTH = BUCKET_DEPTH + 1
MAX_DEPTH = 255


@dataclass
class Stamp:
    """A postage batch as reported by the node."""
    batch_id: str
    usable: bool = False
    exists: bool = False
    depth: int = 0
    amount: int = 0
    utilization: int = 0
    label: str = ""
    bucket_depth: int = BUCKET_DEPTH
    block_number: int = 0
    immutable_flag: bool = False
    batch_ttl: int = 0
    expired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchID": self.batch_id,
            "utilization": self.utilization,
            "usable": self.usable,
            "label": self.label,
            "depth": self.depth,
            "amount": str(self.amount),
            "bucketDepth": self.bucket_depth,
            "blockNumber": self.block_number,
            "immutableFlag": self.immutable_flag,
            "exists": self.exists,
            "batchTTL": self.batch_ttl,
            "expired": self.expired,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stamp":
        return cls(
            batch_id=data["batchID"],
            usable=data.get("usable", False),
            exists=data.get("exists", False),
            depth=data.get("depth", 0),
            amount=int(data.get("amount") or 0),
            utilization=data.get("utilization", 0),
            label=data.get("label", ""),
            bucket_depth=data.get("bucketDepth", BUCKET_DEPTH),
            block_number=data.get("blockNumber", 0),
            immutable_flag=data.get("immutableFlag", False),
            batch_ttl=data.get("batchTTL", 0),
            expired=data.get("expired", False),
        )


@dataclass
class FeedIndexResponse:
    """
    Latest update of a feed.

    current == next == 0 means nothing has been written to the feed.
    """
    reference: Optional[bytes] = None
    current: int = 0
    next: int = 0


def validate_purchase(amount: int, depth: int):
    """Reject batch purchase parameters before any network call."""
    if amount <= 0:
        raise InvalidAmountError("amount must be positive non zero value")
    if depth < MIN_DEPTH or depth > MAX_DEPTH:
        raise InvalidDepthError(
            f"depth {depth} is not in acceptable range [{MIN_DEPTH}, {MAX_DEPTH}]"
        )


class Client(ABC):
    """
    Capabilities the key-value core needs from a storage node.

    Every method takes an optional cancellation context and raises a
    BzzError subclass on failure.
    """

    @abstractmethod
    def list_tickets(self, ctx: Optional[Context] = None) -> List[Stamp]:
        """List purchased postage batches."""

    @abstractmethod
    def purchase_ticket(
        self,
        amount: int,
        depth: int,
        immutable: bool,
        ctx: Optional[Context] = None,
    ) -> str:
        """
        Buy a new postage batch.

        Returns:
            Hex encoded batch ID

        Raises:
            InvalidAmountError: amount <= 0
            InvalidDepthError: depth outside [MIN_DEPTH, MAX_DEPTH]
        """

    @abstractmethod
    def upload(self, data: bytes, batch_id: str, ctx: Optional[Context] = None) -> bytes:
        """Upload a blob, returning its 32-byte reference."""

    @abstractmethod
    def download(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        """
        Open a stream over a blob.

        Raises:
            NotFoundError: If the blob is absent
        """

    @abstractmethod
    def download_chunk(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        """Open a stream over a single chunk, e.g. a published feed update."""

    @abstractmethod
    def upload_soc(
        self,
        owner: bytes,
        soc_id: bytes,
        data: bytes,
        signature: bytes,
        batch_id: str,
        ctx: Optional[Context] = None,
    ) -> bytes:
        """Publish a signed single owner chunk, returning its address."""

    @abstractmethod
    def feed_index_latest(
        self,
        owner: bytes,
        topic: bytes,
        ctx: Optional[Context] = None,
    ) -> FeedIndexResponse:
        """Latest update index of `owner`'s feed `topic`."""
