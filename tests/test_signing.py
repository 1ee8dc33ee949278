# tests/test_signing.py
"""Tests for signing identities and signed feed updates."""

import os
import stat
import tempfile
from pathlib import Path

import pytest

from bzzdb.chunks import make_cac, soc_address
from bzzdb.errors import InvalidSignedUpdateError
from bzzdb.feeds import derive_topic, feed_update_id, payload_with_time
from bzzdb.signing import (
    CURVE_ORDER,
    Signer,
    recover_owner,
    sign_update,
    verify_update,
)

# Private key 1 and its well-known Ethereum address.
KEY_ONE = "00" * 31 + "01"
KEY_ONE_OWNER = "7e5f4552091a69125d5dfcb7b8c2659029395bdf"


@pytest.fixture
def signer():
    return Signer.generate()


class TestSigner:
    """Test key material handling."""

    def test_owner_of_known_key(self):
        assert Signer.from_hex(KEY_ONE).owner.hex() == KEY_ONE_OWNER

    def test_hex_prefix(self):
        assert Signer.from_hex("0x" + KEY_ONE).owner.hex() == KEY_ONE_OWNER

    def test_invalid_hex_length(self):
        with pytest.raises(ValueError):
            Signer.from_hex("abcd")

    def test_generate(self, signer):
        assert len(signer.owner) == 20
        assert Signer.generate().owner != signer.owner

    def test_hex_roundtrip(self, signer):
        assert Signer.from_hex(signer.to_hex()).owner == signer.owner

    def test_pem_roundtrip(self, signer):
        assert Signer.from_pem(signer.to_pem()).owner == signer.owner

    def test_save_is_private(self, signer):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = signer.save(Path(tmpdir) / "keys" / "key.pem")
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
            assert Signer.from_file(path).owner == signer.owner


class TestSignature:
    """Test recoverable signatures."""

    def test_signature_format(self, signer):
        signature = signer.sign(b"data")
        assert len(signature) == 65
        assert signature[64] in (27, 28)

    def test_low_s(self, signer):
        for i in range(10):
            signature = signer.sign(bytes([i]) * 32)
            assert int.from_bytes(signature[32:64], "big") <= CURVE_ORDER // 2

    def test_recover_owner(self, signer):
        data = os.urandom(32)
        assert recover_owner(data, signer.sign(data)) == signer.owner

    def test_recover_other_data(self, signer):
        signature = signer.sign(b"data")
        assert recover_owner(b"other", signature) != signer.owner

    def test_invalid_recovery_byte(self, signer):
        signature = bytearray(signer.sign(b"data"))
        signature[64] = 5
        with pytest.raises(InvalidSignedUpdateError):
            recover_owner(b"data", bytes(signature))

    def test_invalid_length(self):
        with pytest.raises(InvalidSignedUpdateError):
            recover_owner(b"data", bytes(64))


class TestSignUpdate:
    """Test signed feed update construction."""

    def test_update_fields(self, signer):
        soc_id = feed_update_id(derive_topic(b"foo"), 0)
        payload = payload_with_time(bytes(range(32)), 0)

        update = sign_update(soc_id, payload, signer)

        assert update.owner == signer.owner
        assert update.soc_id == soc_id
        assert update.data == make_cac(payload).data
        assert update.address == soc_address(soc_id, signer.owner)
        verify_update(soc_id, update.signature, update.data, signer.owner)

    def test_fresh_signature_per_update(self, signer):
        soc_id = feed_update_id(derive_topic(b"foo"), 0)
        payload = payload_with_time(bytes(32), 0)
        first = sign_update(soc_id, payload, signer)
        second = sign_update(soc_id, payload, signer)
        assert first.data == second.data
        verify_update(soc_id, second.signature, second.data, signer.owner)

    def test_verify_wrong_owner(self, signer):
        soc_id = feed_update_id(derive_topic(b"foo"), 0)
        update = sign_update(soc_id, payload_with_time(bytes(32), 0), signer)
        with pytest.raises(InvalidSignedUpdateError):
            verify_update(soc_id, update.signature, update.data, Signer.generate().owner)

    def test_verify_wrong_id(self, signer):
        soc_id = feed_update_id(derive_topic(b"foo"), 0)
        update = sign_update(soc_id, payload_with_time(bytes(32), 0), signer)
        other_id = feed_update_id(derive_topic(b"foo"), 1)
        with pytest.raises(InvalidSignedUpdateError):
            verify_update(other_id, update.signature, update.data, signer.owner)

    def test_verify_bad_span(self, signer):
        soc_id = feed_update_id(derive_topic(b"foo"), 0)
        update = sign_update(soc_id, payload_with_time(bytes(32), 0), signer)
        tampered = (99).to_bytes(8, "little") + update.data[8:]
        with pytest.raises(InvalidSignedUpdateError):
            verify_update(soc_id, update.signature, tampered, signer.owner)
