# bzzdb/client/mock.py
"""
In-memory node for tests and local development.

Keeps blobs, postage batches and published updates in dictionaries and
applies the same batch capacity accounting a node does: every upload
consumes ceil(size / 4096) chunks of a batch holding
2 ** (depth - bucket_depth) chunks.
"""

import io
import logging
import math
import os
import threading
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional

from ..chunks import CHUNK_SIZE, make_soc, soc_address
from ..context import Context, background
from ..errors import InvalidTicketError, NotFoundError, TicketCapacityExceededError
from ..feeds import feed_update_id, keccak256
from ..signing import verify_update
from .base import BUCKET_DEPTH, Client, FeedIndexResponse, Stamp, validate_purchase

logger = logging.getLogger(__name__)


@dataclass
class _Batch:
    amount: int
    depth: int
    immutable: bool
    usage: int = 0

    @property
    def max_chunks(self) -> int:
        return 1 << (self.depth - BUCKET_DEPTH)

    def consume(self, size: int):
        required = math.ceil(size / CHUNK_SIZE)
        if self.usage + required > self.max_chunks:
            raise TicketCapacityExceededError(
                f"stamp usage exceeded: {self.usage} + {required} > {self.max_chunks} chunks"
            )
        self.usage += required


class MockClient(Client):
    """
    Thread safe in-memory implementation of the node interface.

    Attributes:
        calls: Number of calls per operation name, for assertions in tests
    """

    def __init__(self, verify_signatures: bool = True):
        self.verify_signatures = verify_signatures
        self.calls: Dict[str, int] = {}
        self._batches: Dict[str, _Batch] = {}
        self._data: Dict[bytes, bytes] = {}
        self._chunks: Dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def _enter(self, operation: str, ctx: Optional[Context]):
        (ctx or background()).check()
        with self._lock:
            self.calls[operation] = self.calls.get(operation, 0) + 1

    def call_count(self, operation: str) -> int:
        with self._lock:
            return self.calls.get(operation, 0)

    def _stamp(self, batch_id: str) -> _Batch:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise InvalidTicketError(f"invalid stamp: {batch_id!r}")
        return batch

    def list_tickets(self, ctx: Optional[Context] = None) -> List[Stamp]:
        self._enter("list_tickets", ctx)
        with self._lock:
            return [
                Stamp(
                    batch_id=batch_id,
                    usable=True,
                    exists=True,
                    depth=batch.depth,
                    amount=batch.amount,
                    utilization=batch.usage,
                    immutable_flag=batch.immutable,
                )
                for batch_id, batch in self._batches.items()
            ]

    def purchase_ticket(
        self,
        amount: int,
        depth: int,
        immutable: bool,
        ctx: Optional[Context] = None,
    ) -> str:
        validate_purchase(amount, depth)
        self._enter("purchase_ticket", ctx)

        batch_id = os.urandom(32).hex()
        with self._lock:
            self._batches[batch_id] = _Batch(amount=amount, depth=depth, immutable=immutable)
        logger.debug(f"Mock batch {batch_id[:16]} created (depth {depth})")
        return batch_id

    def upload(self, data: bytes, batch_id: str, ctx: Optional[Context] = None) -> bytes:
        self._enter("upload", ctx)
        address = keccak256(data)
        with self._lock:
            self._stamp(batch_id).consume(len(data))
            self._data[address] = bytes(data)
        return address

    def download(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        self._enter("download", ctx)
        with self._lock:
            data = self._data.get(bytes(reference))
        if data is None:
            raise NotFoundError(f"blob {bytes(reference).hex()} not found")
        return io.BytesIO(data)

    def download_chunk(self, reference: bytes, ctx: Optional[Context] = None) -> BinaryIO:
        self._enter("download_chunk", ctx)
        with self._lock:
            data = self._chunks.get(bytes(reference))
        if data is None:
            raise NotFoundError(f"chunk {bytes(reference).hex()} not found")
        return io.BytesIO(data)

    def upload_soc(
        self,
        owner: bytes,
        soc_id: bytes,
        data: bytes,
        signature: bytes,
        batch_id: str,
        ctx: Optional[Context] = None,
    ) -> bytes:
        self._enter("upload_soc", ctx)
        if self.verify_signatures:
            verify_update(soc_id, signature, data, owner)

        chunk = make_soc(soc_id, signature, data)
        address = soc_address(soc_id, owner)
        with self._lock:
            self._stamp(batch_id).consume(len(chunk))
            self._chunks[address] = chunk
        return address

    def feed_index_latest(
        self,
        owner: bytes,
        topic: bytes,
        ctx: Optional[Context] = None,
    ) -> FeedIndexResponse:
        self._enter("feed_index_latest", ctx)
        with self._lock:
            count = 0
            reference = None
            while True:
                address = soc_address(feed_update_id(topic, count), owner)
                if address not in self._chunks:
                    break
                reference = address
                count += 1

        if count == 0:
            return FeedIndexResponse()
        return FeedIndexResponse(reference=reference, current=count - 1, next=count)
