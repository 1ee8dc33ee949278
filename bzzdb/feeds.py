# bzzdb/feeds.py
"""
Deterministic derivation of feed identifiers and update references.

A mutable key maps to a feed topic, and each write to the key lands at a
sequence index of that feed. Everything here is a pure function of its
inputs, so any implementation given the same owner, topic and index
computes the same network address:

    topic     = keccak256("bzzdb-" || key)
    id        = keccak256(topic || uint64_be(index))
    reference = keccak256(id || owner)

Feed update payloads carry a big-endian unix timestamp followed by the
reference of the blob holding the value.
"""

import struct
import time
from typing import Optional, Tuple

from Crypto.Hash import keccak

HASH_SIZE = 32
TIMESTAMP_SIZE = 8
TOPIC_PREFIX = b"bzzdb-"

# Blob reference marking a deleted key.
DELETION_SENTINEL = bytes(HASH_SIZE)


def keccak256(*chunks: bytes) -> bytes:
    """Legacy (Ethereum) Keccak-256 digest of the concatenated chunks."""
    hasher = keccak.new(digest_bits=256)
    for chunk in chunks:
        hasher.update(bytes(chunk))
    return hasher.digest()


def _index_bytes(index: int) -> bytes:
    if index < 0 or index >= 1 << 64:
        raise ValueError(f"feed index out of range: {index}")
    return struct.pack(">Q", index)


def derive_topic(key: bytes) -> bytes:
    """Map an application key to its feed topic."""
    return keccak256(TOPIC_PREFIX, key)


def feed_update_id(topic: bytes, index: int) -> bytes:
    """Identifier of the update at `index` of the feed `topic`."""
    return keccak256(topic, _index_bytes(index))


def feed_update_reference(owner: bytes, topic: bytes, index: int) -> bytes:
    """
    Network address of the update at `index` of `owner`'s feed `topic`.

    Args:
        owner: 20-byte owner address
        topic: 32-byte feed topic
        index: Sequence index

    Returns:
        32-byte single owner chunk address
    """
    return keccak256(feed_update_id(topic, index), owner)


def payload_with_time(reference: bytes, timestamp: Optional[int] = None) -> bytes:
    """Prefix a blob reference with a big-endian unix timestamp."""
    if timestamp is None:
        timestamp = int(time.time())
    return struct.pack(">Q", timestamp) + reference


def split_timestamp(payload: bytes) -> Tuple[int, bytes]:
    """Split a feed update payload into (timestamp, blob reference)."""
    if len(payload) < TIMESTAMP_SIZE:
        raise ValueError(f"feed payload too short: {len(payload)} bytes")
    (timestamp,) = struct.unpack(">Q", payload[:TIMESTAMP_SIZE])
    return timestamp, payload[TIMESTAMP_SIZE:]


def is_deleted(reference: bytes) -> bool:
    """True if the blob reference is the deletion sentinel."""
    return reference == DELETION_SENTINEL
