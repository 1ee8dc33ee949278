# bzzdb/indexer.py
"""
Per-topic sequence index allocation.

For each feed topic the indexer tracks two numbers:

- next: the index handed to the next writer
- current: the highest index whose write has completed (None until one has)

A topic is primed from the node the first time it is seen; after that the
indexer never asks the node again, assuming it is the only writer.
Releases may arrive out of order, in which case `current` can move past
an index that is still being written.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Protocol

from .client import FeedIndexResponse
from .context import Context
from .errors import NotFoundError

logger = logging.getLogger(__name__)


class FeedIndexFetcher(Protocol):
    def feed_index_latest(
        self,
        owner: bytes,
        topic: bytes,
        ctx: Optional[Context] = None,
    ) -> FeedIndexResponse:
        ...


@dataclass
class _FeedIndexData:
    current: Optional[int] = None
    next: int = 0

    @classmethod
    def from_response(cls, resp: FeedIndexResponse) -> "_FeedIndexData":
        if resp.current == 0 and resp.next == 0:
            return cls()
        return cls(current=resp.current, next=resp.next)


class FeedIndexer:
    """
    Thread safe allocator of feed sequence indices.

    Args:
        fetcher: Source of the node's view of a feed (usually the node client)
        owner: Owner address whose feeds are indexed
    """

    def __init__(self, fetcher: FeedIndexFetcher, owner: bytes):
        self.fetcher = fetcher
        self.owner = owner
        self._index: Dict[str, _FeedIndexData] = {}
        self._lock = threading.Lock()

    def _topic_data(self, topic: bytes, ctx: Optional[Context]) -> _FeedIndexData:
        key = topic.hex()
        with self._lock:
            data = self._index.get(key)
        if data is not None:
            return data

        # Query without holding the lock so other topics are not blocked.
        try:
            resp = self.fetcher.feed_index_latest(self.owner, topic, ctx=ctx)
        except NotFoundError:
            resp = FeedIndexResponse()

        with self._lock:
            data = self._index.get(key)
            if data is None:
                data = _FeedIndexData.from_response(resp)
                self._index[key] = data
                logger.info(f"Primed topic {key[:16]}: current={data.current}, next={data.next}")
        return data

    def acquire_next(self, topic: bytes, ctx: Optional[Context] = None) -> int:
        """Reserve the next sequence index of `topic`."""
        data = self._topic_data(topic, ctx)
        with self._lock:
            index = data.next
            data.next += 1
        logger.debug(f"Acquired index {index} of topic {topic.hex()[:16]}")
        return index

    def release(self, topic: bytes, index: int):
        """Mark `index` of `topic` as completed."""
        key = topic.hex()
        with self._lock:
            data = self._index.get(key)
            if data is None:
                logger.warning(f"Release of index {index} for unknown topic {key[:16]}")
                return
            if data.current is None or index > data.current:
                data.current = index
        logger.debug(f"Released index {index} of topic {key[:16]}")

    @contextmanager
    def acquire(self, topic: bytes, ctx: Optional[Context] = None) -> Iterator[int]:
        """
        Reserve the next index for the duration of a `with` block.

        The index is released when the block exits, whether it completes
        or raises.
        """
        index = self.acquire_next(topic, ctx=ctx)
        try:
            yield index
        finally:
            self.release(topic, index)

    def current(self, topic: bytes, ctx: Optional[Context] = None) -> Optional[int]:
        """Highest completed index of `topic`, or None if nothing has completed."""
        data = self._topic_data(topic, ctx)
        with self._lock:
            return data.current
