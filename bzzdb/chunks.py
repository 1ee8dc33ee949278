# bzzdb/chunks.py
"""
Swarm chunk envelopes.

A content addressed chunk (CAC) wraps up to 4096 bytes of payload behind
an 8-byte little-endian span. Its address is the binary Merkle tree (BMT)
root of the zero padded payload, hashed together with the span.

A single owner chunk (SOC) is laid out on the wire as:

    id (32) | signature (65) | span (8) | payload

and addressed by keccak256(id || owner).
"""

import os
import struct
from dataclasses import dataclass

from .feeds import HASH_SIZE, keccak256

CHUNK_SIZE = 4096
SPAN_SIZE = 8
SEGMENT_SIZE = 32
SIGNATURE_SIZE = 65
SOC_HEADER_SIZE = HASH_SIZE + SIGNATURE_SIZE


def bmt_hash(payload: bytes) -> bytes:
    """Root of the BMT over `payload` zero padded to a full chunk."""
    if len(payload) > CHUNK_SIZE:
        raise ValueError(f"payload exceeds chunk size: {len(payload)} > {CHUNK_SIZE}")
    level = payload + bytes(CHUNK_SIZE - len(payload))
    while len(level) > SEGMENT_SIZE:
        level = b"".join(
            keccak256(level[i:i + 2 * SEGMENT_SIZE])
            for i in range(0, len(level), 2 * SEGMENT_SIZE)
        )
    return level


@dataclass(frozen=True)
class ContentChunk:
    """A content addressed chunk."""
    address: bytes
    data: bytes  # span || payload

    @property
    def span(self) -> int:
        return struct.unpack("<Q", self.data[:SPAN_SIZE])[0]

    @property
    def payload(self) -> bytes:
        return self.data[SPAN_SIZE:]


def make_cac(payload: bytes) -> ContentChunk:
    """Wrap `payload` in a content addressed chunk."""
    span = struct.pack("<Q", len(payload))
    address = keccak256(span, bmt_hash(payload))
    return ContentChunk(address=address, data=span + payload)


def soc_address(soc_id: bytes, owner: bytes) -> bytes:
    """Address of the single owner chunk `soc_id` published by `owner`."""
    return keccak256(soc_id, owner)


def make_soc(soc_id: bytes, signature: bytes, cac_data: bytes) -> bytes:
    """Serialize a single owner chunk."""
    if len(soc_id) != HASH_SIZE:
        raise ValueError(f"invalid SOC id length: {len(soc_id)}")
    if len(signature) != SIGNATURE_SIZE:
        raise ValueError(f"invalid SOC signature length: {len(signature)}")
    return soc_id + signature + cac_data


def split_soc(data: bytes) -> tuple[bytes, bytes, bytes]:
    """Split single owner chunk data into (id, signature, cac data)."""
    if len(data) < SOC_HEADER_SIZE + SPAN_SIZE:
        raise ValueError(f"SOC data too short: {len(data)} bytes")
    return (
        data[:HASH_SIZE],
        data[HASH_SIZE:SOC_HEADER_SIZE],
        data[SOC_HEADER_SIZE:],
    )


def raw_payload_from_soc(data: bytes) -> bytes:
    """Payload carried by single owner chunk data, without the envelope."""
    return data[SOC_HEADER_SIZE + SPAN_SIZE:]


def random_address() -> bytes:
    """A random 32-byte address, mostly useful in tests."""
    return os.urandom(HASH_SIZE)
