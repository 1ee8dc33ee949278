# bzzdb/signing.py
"""
Signed feed update construction.

Feed updates are single owner chunks signed with a secp256k1 key in the
Ethereum style: the signer hashes keccak256(id || chunk address) with the
personal-message prefix and produces a 65-byte recoverable signature
r || s || v. The owner of an update is the Ethereum address of the
signing key, so anyone can verify an update by recovering the signer.

Key handling and signing use `cryptography`. It has no public key
recovery, so the recovery id is found with `ecdsa`.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, utils
from ecdsa import SECP256k1, MalformedPointError, VerifyingKey
from ecdsa.numbertheory import Error as NumberTheoryError
from ecdsa.util import sigdecode_string

from .chunks import SIGNATURE_SIZE, SPAN_SIZE, make_cac, soc_address
from .errors import InvalidSignedUpdateError
from .feeds import keccak256

logger = logging.getLogger(__name__)

ADDRESS_SIZE = 20
CURVE_ORDER = SECP256k1.order
_PREHASHED = ec.ECDSA(utils.Prehashed(hashes.SHA256()))


def _ethereum_digest(data: bytes) -> bytes:
    """Hash `data` with the Ethereum signed message prefix."""
    prefix = f"\x19Ethereum Signed Message:\n{len(data)}".encode()
    return keccak256(prefix, data)


def _public_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Uncompressed x || y coordinates (64 bytes)."""
    numbers = public_key.public_numbers()
    return numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")


def owner_from_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Ethereum address of a secp256k1 public key."""
    return keccak256(_public_bytes(public_key))[-ADDRESS_SIZE:]


def _public_key_from_raw(raw: bytes) -> ec.EllipticCurvePublicKey:
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), b"\x04" + raw)


class Signer:
    """
    A secp256k1 signing identity.

    Usage:
        signer = Signer.generate()
        signature = signer.sign(data)
        signer.owner  # 20-byte owner address
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key.curve, ec.SECP256K1):
            raise ValueError(f"expected a secp256k1 key, got {private_key.curve.name}")
        self.private_key = private_key
        self.public_key = private_key.public_key()
        self.owner = owner_from_public_key(self.public_key)

    @classmethod
    def generate(cls) -> "Signer":
        """Create a signer with a fresh random key."""
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_hex(cls, secret: str) -> "Signer":
        """Load a raw 32-byte private key given as hex (0x prefix allowed)."""
        secret = secret.strip()
        if secret.startswith(("0x", "0X")):
            secret = secret[2:]
        raw = bytes.fromhex(secret)
        if len(raw) != 32:
            raise ValueError(f"private key must be 32 bytes, got {len(raw)}")
        return cls(ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256K1()))

    @classmethod
    def from_pem(cls, pem: bytes, password: bytes = None) -> "Signer":
        """Load a PEM encoded secp256k1 private key."""
        private_key = serialization.load_pem_private_key(pem, password=password)
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("PEM does not hold an elliptic curve private key")
        return cls(private_key)

    @classmethod
    def from_file(cls, path: Path | str) -> "Signer":
        return cls.from_pem(Path(path).read_bytes())

    def to_hex(self) -> str:
        return self.private_key.private_numbers().private_value.to_bytes(32, "big").hex()

    def to_pem(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def save(self, path: Path | str) -> Path:
        """Write the key as PEM, readable by the owner only."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.to_pem())
        os.chmod(path, 0o600)
        return path

    def sign(self, data: bytes) -> bytes:
        """
        Sign `data` Ethereum style.

        Returns:
            65-byte signature r || s || v with v in {27, 28}
        """
        digest = _ethereum_digest(data)
        r, s = utils.decode_dss_signature(self.private_key.sign(digest, _PREHASHED))
        # Low-s form, as produced by Ethereum signers.
        if s > CURVE_ORDER // 2:
            s = CURVE_ORDER - s
        rs = r.to_bytes(32, "big") + s.to_bytes(32, "big")

        own = _public_bytes(self.public_key)
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            rs, digest, SECP256k1, sigdecode=sigdecode_string,
        )
        for recid, candidate in enumerate(candidates):
            if candidate.to_string() == own:
                return rs + bytes([27 + recid])

        raise InvalidSignedUpdateError("could not determine signature recovery id")


def recover_owner(data: bytes, signature: bytes) -> bytes:
    """
    Recover the owner address that produced `signature` over `data`.

    Raises:
        InvalidSignedUpdateError: If the signature is malformed or does not verify
    """
    if len(signature) != SIGNATURE_SIZE:
        raise InvalidSignedUpdateError(f"invalid signature length: {len(signature)}")
    recid = signature[64] - 27
    if recid not in (0, 1):
        raise InvalidSignedUpdateError(f"invalid signature recovery byte: {signature[64]}")

    digest = _ethereum_digest(data)
    rs = signature[:64]
    try:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            rs, digest, SECP256k1, sigdecode=sigdecode_string,
        )
        public_key = _public_key_from_raw(candidates[recid].to_string())
    except (ValueError, IndexError, MalformedPointError, NumberTheoryError) as e:
        raise InvalidSignedUpdateError(f"signature recovery failed: {e}") from e

    r = int.from_bytes(rs[:32], "big")
    s = int.from_bytes(rs[32:], "big")
    try:
        public_key.verify(utils.encode_dss_signature(r, s), digest, _PREHASHED)
    except InvalidSignature as e:
        raise InvalidSignedUpdateError("signature does not verify") from e

    return owner_from_public_key(public_key)


@dataclass(frozen=True)
class SignedUpdate:
    """A feed update ready for publishing."""
    soc_id: bytes
    data: bytes  # content chunk data: span || payload
    signature: bytes
    owner: bytes

    @property
    def address(self) -> bytes:
        return soc_address(self.soc_id, self.owner)


def sign_update(soc_id: bytes, payload: bytes, signer: Signer) -> SignedUpdate:
    """
    Wrap `payload` in a content chunk and sign it as single owner chunk `soc_id`.

    Args:
        soc_id: Feed update identifier
        payload: Update payload (timestamp || blob reference for bzzdb)
        signer: Signing identity

    Returns:
        SignedUpdate with the chunk data, signature and owner

    Raises:
        InvalidSignedUpdateError: If the signature does not recover to the signer
    """
    chunk = make_cac(payload)
    to_sign = keccak256(soc_id, chunk.address)
    signature = signer.sign(to_sign)

    if recover_owner(to_sign, signature) != signer.owner:
        raise InvalidSignedUpdateError("signed update is not valid")

    logger.debug(f"Signed update {soc_id.hex()[:16]} for owner {signer.owner.hex()}")
    return SignedUpdate(
        soc_id=soc_id,
        data=chunk.data,
        signature=signature,
        owner=signer.owner,
    )


def verify_update(soc_id: bytes, signature: bytes, cac_data: bytes, owner: bytes) -> None:
    """
    Check that a published update was signed by `owner`.

    Raises:
        InvalidSignedUpdateError: If the update is not valid for `owner`
    """
    chunk = make_cac(cac_data[SPAN_SIZE:])
    if chunk.data != cac_data:
        raise InvalidSignedUpdateError("chunk span does not match payload")
    recovered = recover_owner(keccak256(soc_id, chunk.address), signature)
    if recovered != owner:
        raise InvalidSignedUpdateError(
            f"update signed by {recovered.hex()}, expected {owner.hex()}"
        )
