# tests/test_db.py
"""Tests for the feed-backed key-value store."""

import threading
import time

import pytest

from kvsuite import KeyValueStoreSuite

from bzzdb.chunks import raw_payload_from_soc
from bzzdb.client import MockClient
from bzzdb.context import Context
from bzzdb.db import BzzDB
from bzzdb.errors import (
    ContextCancelledError,
    DeadlineExceededError,
    NotFoundError,
    StoreClosedError,
    TicketCapacityExceededError,
    TransportError,
)
from bzzdb.feeds import (
    DELETION_SENTINEL,
    derive_topic,
    feed_update_id,
    feed_update_reference,
    payload_with_time,
    split_timestamp,
)
from bzzdb.postage import Postage
from bzzdb.signing import Signer, sign_update


class FailingPublishClient(MockClient):
    """Mock whose next `failures` update publishes fail."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures

    def upload_soc(self, owner, soc_id, data, signature, batch_id, ctx=None):
        if self.failures:
            self.failures -= 1
            raise TransportError("upload soc", "connection reset")
        return super().upload_soc(owner, soc_id, data, signature, batch_id, ctx=ctx)


class SlowUploadClient(MockClient):
    """Mock whose blob uploads block until `unblock` is set."""

    def __init__(self):
        super().__init__()
        self.unblock = threading.Event()

    def upload(self, data, batch_id, ctx=None):
        self.unblock.wait(timeout=10)
        return super().upload(data, batch_id, ctx=ctx)


@pytest.fixture
def client():
    return FailingPublishClient()


@pytest.fixture
def signer():
    return Signer.generate()


@pytest.fixture
def db(client, signer):
    store = BzzDB(signer, client, clock=lambda: 0)
    yield store
    store.close()


def update_payload(client, owner, key, index) -> bytes:
    reference = feed_update_reference(owner, derive_topic(key), index)
    with client.download_chunk(reference) as stream:
        return raw_payload_from_soc(stream.read())


class TestBzzDB(KeyValueStoreSuite):
    """Run the shared suite against the in-memory node."""


class TestWrites:
    """Test how puts and deletes map onto feed updates."""

    def test_put_publishes_timestamped_reference(self, db, client, signer):
        db.put(b"key", b"value")

        timestamp, reference = split_timestamp(update_payload(client, signer.owner, b"key", 0))
        assert timestamp == 0
        with client.download(reference) as stream:
            assert stream.read() == b"value"

    def test_clock_timestamp(self, client, signer):
        with BzzDB(signer, client, clock=lambda: 1700000000.7) as db:
            db.put(b"key", b"value")
        timestamp, _ = split_timestamp(update_payload(client, signer.owner, b"key", 0))
        assert timestamp == 1700000000

    def test_sequential_indices(self, db, client, signer):
        db.put(b"key", b"one")
        db.put(b"key", b"two")

        topic = derive_topic(b"key")
        resp = client.feed_index_latest(signer.owner, topic)
        assert (resp.current, resp.next) == (1, 2)
        assert db.indexer.current(topic) == 1

    def test_delete_publishes_sentinel_without_upload(self, db, client, signer):
        db.put(b"key", b"value")
        uploads = client.call_count("upload")

        db.delete(b"key")

        assert client.call_count("upload") == uploads
        _, reference = split_timestamp(update_payload(client, signer.owner, b"key", 1))
        assert reference == DELETION_SENTINEL

    def test_delete_never_written(self, db):
        db.delete(b"key")
        assert not db.has(b"key")

    def test_empty_value_is_not_deletion(self, db):
        db.put(b"key", b"")
        assert db.has(b"key")
        assert db.get(b"key") == b""

    def test_none_value_rejected(self, db):
        with pytest.raises(TypeError):
            db.put(b"key", None)

    def test_single_ticket_purchase(self, db, client):
        for i in range(5):
            db.put(f"key-{i}".encode(), b"value")
        assert client.call_count("purchase_ticket") == 1

    def test_concurrent_puts_same_key(self, db, client, signer):
        values = [f"value-{i}".encode() for i in range(10)]
        barrier = threading.Barrier(len(values))

        def put(value):
            barrier.wait()
            db.put(b"key", value)

        threads = [threading.Thread(target=put, args=(v,)) for v in values]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        resp = client.feed_index_latest(signer.owner, derive_topic(b"key"))
        assert (resp.current, resp.next) == (9, 10)
        assert db.get(b"key") in values


class TestFailures:
    """Test error propagation and index release on failure."""

    def test_failed_publish_releases_index(self, db, client):
        """
        The slot of a failed put is released, so reads of the key report
        not found until the next successful write.
        """
        db.put(b"key", b"one")
        client.failures = 1

        with pytest.raises(TransportError):
            db.put(b"key", b"two")

        assert db.indexer.current(derive_topic(b"key")) == 1
        with pytest.raises(NotFoundError):
            db.get(b"key")
        assert not db.has(b"key")

        db.put(b"key", b"three")
        assert db.get(b"key") == b"three"

    def test_upload_failure_propagates(self, client, signer):
        postage = Postage(client, depth=17)
        with BzzDB(signer, client, postage=postage) as db:
            with pytest.raises(TicketCapacityExceededError):
                db.put(b"key", bytes(3 * 4096))

            topic = derive_topic(b"key")
            assert db.indexer.current(topic) == 0
            assert db.indexer.acquire_next(topic) == 1

    def test_cancelled_context(self, db):
        ctx = Context()
        ctx.cancel()

        with pytest.raises(ContextCancelledError):
            db.put(b"key", b"value", ctx=ctx)
        with pytest.raises(ContextCancelledError):
            db.get(b"key", ctx=ctx)
        with pytest.raises(ContextCancelledError):
            db.has(b"key", ctx=ctx)

    def test_expired_deadline(self, db):
        ctx = Context(timeout=0)
        with pytest.raises(DeadlineExceededError):
            db.put(b"key", b"value", ctx=ctx)


class TestIndexLifecycle:
    """Test the interplay of index allocation and reads."""

    def test_unreleased_index_not_visible(self, db, client, signer):
        """Reads see an update only once its index is released."""
        topic = derive_topic(b"key")
        batch_id = db.postage.current_ticket()

        index = db.indexer.acquire_next(topic)
        assert index == 0

        reference = client.upload(b"value", batch_id)
        soc_id = feed_update_id(topic, index)
        update = sign_update(soc_id, payload_with_time(reference, 0), signer)
        client.upload_soc(update.owner, soc_id, update.data, update.signature, batch_id)

        with pytest.raises(NotFoundError):
            db.get(b"key")

        db.indexer.release(topic, index)

        assert db.get(b"key") == b"value"

    def test_new_instance_reads_latest(self, db, client, signer):
        db.put(b"key", b"one")
        db.put(b"key", b"two")

        with BzzDB(signer, client) as restarted:
            assert restarted.get(b"key") == b"two"
            restarted.put(b"key", b"three")

        resp = client.feed_index_latest(signer.owner, derive_topic(b"key"))
        assert (resp.current, resp.next) == (2, 3)

    def test_restart_skips_gap(self, db, client, signer):
        """An index that never got published is re-used after a restart."""
        db.put(b"key", b"one")
        client.failures = 1
        with pytest.raises(TransportError):
            db.put(b"key", b"two")

        with BzzDB(signer, client) as restarted:
            assert restarted.get(b"key") == b"one"
            restarted.put(b"key", b"three")
            assert restarted.get(b"key") == b"three"

    def test_owners_isolated(self, db, client):
        db.put(b"key", b"mine")
        with BzzDB(Signer.generate(), client) as other:
            assert not other.has(b"key")
            other.put(b"key", b"theirs")
        assert db.get(b"key") == b"mine"


class TestSlowUpload:
    """Test that waiting for an upload honours the context."""

    @pytest.fixture
    def slow_client(self):
        client = SlowUploadClient()
        yield client
        client.unblock.set()

    def test_cancel_while_uploading(self, slow_client, signer):
        with BzzDB(signer, slow_client) as db:
            ctx = Context()
            threading.Timer(0.2, ctx.cancel).start()

            start = time.monotonic()
            with pytest.raises(ContextCancelledError):
                db.put(b"key", b"value", ctx=ctx)
            assert time.monotonic() - start < 5

            assert db.indexer.current(derive_topic(b"key")) == 0
            slow_client.unblock.set()

    def test_deadline_while_uploading(self, slow_client, signer):
        with BzzDB(signer, slow_client) as db:
            start = time.monotonic()
            with pytest.raises(DeadlineExceededError):
                db.put(b"key", b"value", ctx=Context(timeout=0.3))
            assert time.monotonic() - start < 5
            slow_client.unblock.set()


class TestClose:
    """Test use of a closed store."""

    def test_operations_after_close(self, db):
        db.put(b"key", b"value")
        db.close()

        with pytest.raises(StoreClosedError):
            db.put(b"key", b"again")
        with pytest.raises(StoreClosedError):
            db.delete(b"key")
        with pytest.raises(StoreClosedError):
            db.get(b"key")
        with pytest.raises(StoreClosedError):
            db.has(b"key")

    def test_close_twice(self, client, signer):
        db = BzzDB(signer, client)
        db.close()
        db.close()

    def test_context_manager_closes(self, client, signer):
        with BzzDB(signer, client) as db:
            db.put(b"key", b"value")
        with pytest.raises(StoreClosedError):
            db.put(b"key", b"value")
