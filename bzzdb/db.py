# bzzdb/db.py
"""
Mutable key-value store on top of Swarm feeds.

Each key owns a feed. A put uploads the value as an immutable blob and
publishes a signed feed update pointing at it at the next sequence index;
a get resolves the update at the latest completed index and downloads the
blob it points to. A delete publishes an update pointing at the all-zero
deletion sentinel, which reads back as not found.

Usage:
    client = MockClient()
    with BzzDB(Signer.generate(), client) as db:
        db.put(b"foo", b"hello world")
        db.get(b"foo")  # b"hello world"
        db.delete(b"foo")
        db.has(b"foo")  # False
"""

import concurrent.futures
import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .chunks import raw_payload_from_soc
from .client import Client
from .context import Context, background
from .errors import BzzError, NotFoundError, StoreClosedError
from .feeds import (
    DELETION_SENTINEL,
    HASH_SIZE,
    derive_topic,
    feed_update_id,
    feed_update_reference,
    is_deleted,
    payload_with_time,
    split_timestamp,
)
from .indexer import FeedIndexer
from .postage import Postage
from .signing import Signer, sign_update

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while waiting for an upload.
WAIT_POLL_INTERVAL = 0.1


class KeyValueStore(ABC):
    """
    Minimal key-value interface, modelled on Ethereum's ethdb.KeyValueStore.

    get raises NotFoundError for a key that was never written or was deleted.
    """

    @abstractmethod
    def has(self, key: bytes, ctx: Optional[Context] = None) -> bool:
        pass

    @abstractmethod
    def get(self, key: bytes, ctx: Optional[Context] = None) -> bytes:
        pass

    @abstractmethod
    def put(self, key: bytes, value: bytes, ctx: Optional[Context] = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: bytes, ctx: Optional[Context] = None) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class BzzDB(KeyValueStore):
    """
    Key-value store whose keys are feeds owned by `signer`.

    Args:
        signer: Identity that signs and owns every update
        client: Node client
        postage: Postage batch cache (defaults to one over `client`)
        max_workers: Size of the pool running blob uploads
        clock: Source of update timestamps (unix seconds)
    """

    def __init__(
        self,
        signer: Signer,
        client: Client,
        postage: Optional[Postage] = None,
        max_workers: int = 8,
        clock: Callable[[], float] = time.time,
    ):
        self.signer = signer
        self.owner = signer.owner
        self.client = client
        self.postage = postage or Postage(client)
        self.indexer = FeedIndexer(client, self.owner)
        self._clock = clock
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bzzdb-upload")
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "BzzDB":
        """Build a store talking to the node described by a BzzConfig."""
        from .client import HttpClient

        client = HttpClient(
            config.node_url,
            api_port=config.api_port,
            debug_api_port=config.debug_api_port,
            timeout=config.timeout,
        )
        postage = Postage(
            client,
            amount=config.ticket_amount,
            depth=config.ticket_depth,
            immutable=config.ticket_immutable,
        )
        return cls(config.signer(), client, postage, max_workers=config.max_workers)

    def has(self, key: bytes, ctx: Optional[Context] = None) -> bool:
        try:
            self.get(key, ctx=ctx)
        except NotFoundError:
            return False
        return True

    def get(self, key: bytes, ctx: Optional[Context] = None) -> bytes:
        ctx = ctx or background()
        ctx.check()
        self._check_open()
        topic = derive_topic(key)

        index = self.indexer.current(topic, ctx=ctx)
        if index is None:
            raise NotFoundError(f"key {key!r} not found")

        reference = feed_update_reference(self.owner, topic, index)
        with self.client.download_chunk(reference, ctx=ctx) as stream:
            chunk = stream.read()

        _, blob_reference = split_timestamp(raw_payload_from_soc(chunk))
        if len(blob_reference) != HASH_SIZE:
            raise BzzError(
                f"malformed update {index} of topic {topic.hex()[:16]}: "
                f"reference is {len(blob_reference)} bytes"
            )
        if is_deleted(blob_reference):
            raise NotFoundError(f"key {key!r} not found")

        logger.debug(f"Get {key!r}: index {index}, blob {blob_reference.hex()[:16]}")
        with self.client.download(blob_reference, ctx=ctx) as stream:
            return stream.read()

    def put(self, key: bytes, value: bytes, ctx: Optional[Context] = None) -> None:
        if value is None:
            raise TypeError("value must be bytes; use delete() to remove a key")
        self._write(key, bytes(value), ctx)

    def delete(self, key: bytes, ctx: Optional[Context] = None) -> None:
        self._write(key, None, ctx)

    def _upload(self, value: bytes, ctx: Context) -> bytes:
        batch_id = self.postage.current_ticket(ctx=ctx)
        reference = self.client.upload(value, batch_id, ctx=ctx)
        logger.debug(f"Uploaded {len(value)} bytes as {reference.hex()[:16]}")
        return reference

    def _wait(self, upload: Future, ctx: Context) -> bytes:
        while True:
            remaining = ctx.remaining()
            timeout = WAIT_POLL_INTERVAL if remaining is None else min(WAIT_POLL_INTERVAL, remaining)
            try:
                return upload.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                ctx.check()

    def _write(self, key: bytes, value: Optional[bytes], ctx: Optional[Context]):
        """Publish `value` (None for a deletion) as the next update of `key`'s feed."""
        ctx = ctx or background()
        ctx.check()

        # Overlap the blob upload with index allocation.
        upload = None
        with self._lock:
            self._check_open()
            if value is not None:
                upload = self._pool.submit(self._upload, value, ctx)
        topic = derive_topic(key)

        try:
            with self.indexer.acquire(topic, ctx=ctx) as index:
                soc_id = feed_update_id(topic, index)
                reference = self._wait(upload, ctx) if upload else DELETION_SENTINEL
                batch_id = self.postage.current_ticket(ctx=ctx)

                payload = payload_with_time(reference, int(self._clock()))
                update = sign_update(soc_id, payload, self.signer)

                ctx.check()
                self.client.upload_soc(
                    update.owner, soc_id, update.data, update.signature, batch_id, ctx=ctx,
                )
                logger.debug(f"Put {key!r}: index {index} of topic {topic.hex()[:16]}")
        except BzzError as e:
            logger.warning(f"Put {key!r} to topic {topic.hex()[:16]} failed: {e}")
            raise
        finally:
            if upload is not None:
                upload.cancel()

    def _check_open(self):
        if self._closed:
            raise StoreClosedError("store is closed")

    def close(self) -> None:
        """Wait for running uploads and release the worker pool. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._pool.shutdown(wait=True)
