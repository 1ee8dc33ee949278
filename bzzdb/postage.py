# bzzdb/postage.py
"""
Postage batch cache.

Every upload must carry a postage batch with spare capacity. The first
call discovers a usable batch on the node, or buys one, and the result is
served from memory for the rest of the process.
"""

import logging
import threading
from typing import Optional

from .client import Client
from .context import Context

logger = logging.getLogger(__name__)

DEFAULT_AMOUNT = 10_000_000
DEFAULT_DEPTH = 22


class Postage:
    """
    Caches a single postage batch ID.

    Args:
        client: Node client used for discovery and purchase
        amount: Amount per chunk when a batch must be bought
        depth: Batch depth when a batch must be bought
        immutable: Immutable flag when a batch must be bought
    """

    def __init__(
        self,
        client: Client,
        amount: int = DEFAULT_AMOUNT,
        depth: int = DEFAULT_DEPTH,
        immutable: bool = True,
    ):
        self.client = client
        self.amount = amount
        self.depth = depth
        self.immutable = immutable
        self._batch_id: Optional[str] = None
        self._lock = threading.Lock()
        # Serializes discovery so concurrent first uses buy at most one batch.
        self._resolve_lock = threading.Lock()

    def current_ticket(self, ctx: Optional[Context] = None) -> str:
        """
        Return the cached batch ID, resolving it on first use.

        Failures are not cached; the next call tries again from scratch.
        """
        with self._lock:
            batch_id = self._batch_id
        if batch_id:
            return batch_id

        with self._resolve_lock:
            with self._lock:
                batch_id = self._batch_id
            if batch_id:
                return batch_id

            batch_id = self._fetch_or_buy(ctx)

            with self._lock:
                self._batch_id = batch_id
        return batch_id

    def _fetch_or_buy(self, ctx: Optional[Context]) -> str:
        batch_id = self._first_usable(ctx)
        if batch_id:
            logger.debug(f"Using existing postage batch {batch_id[:16]}")
            return batch_id

        batch_id = self.client.purchase_ticket(self.amount, self.depth, self.immutable, ctx=ctx)
        logger.info(f"Bought postage batch {batch_id[:16]} (amount {self.amount}, depth {self.depth})")
        return batch_id

    def _first_usable(self, ctx: Optional[Context]) -> Optional[str]:
        for stamp in self.client.list_tickets(ctx=ctx):
            if stamp.usable and stamp.exists:
                return stamp.batch_id
        return None

    def reset(self):
        """Forget the cached batch, e.g. after it ran out of capacity."""
        with self._lock:
            self._batch_id = None
