"""
tap_auth/crypto.py — Cryptographic primitives for TAP token-auth.

No custom curve arithmetic:
- SHA-256 for message digests (hashlib)
- secp256k1 key derivation and ECDSA verification (`cryptography`)
- Recoverable ECDSA signing and public-key recovery (`coincurve`,
  libsecp256k1 bindings)

All functions are deterministic apart from key generation and have no
side effects.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import NamedTuple, Union

import coincurve
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    encode_dss_signature,
)
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# secp256k1 constants
# ---------------------------------------------------------------------------

CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
HALF_CURVE_ORDER = CURVE_ORDER // 2
PRIVATE_KEY_BYTES = 32
DIGEST_BYTES = 32
COMPRESSED_PUBLIC_KEY_BYTES = 33

KeyInput = Union[str, bytes]


class InvalidKey(ValueError):
    """A private or public key is malformed or outside the curve."""


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def sha256_digest(data: bytes) -> bytes:
    """Compute the 32-byte SHA-256 digest."""
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def _key_bytes(key: KeyInput, name: str) -> bytes:
    """Accept raw bytes or a hex string."""
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    if isinstance(key, str):
        try:
            return bytes.fromhex(key)
        except ValueError as exc:
            raise InvalidKey(f"{name} is not valid hex") from exc
    raise InvalidKey(f"{name} must be bytes or hex string, got {type(key).__name__}")


def private_key_verify(private_key: bytes) -> bool:
    """True if the bytes are a usable secp256k1 private key (0 < k < n)."""
    if len(private_key) != PRIVATE_KEY_BYTES:
        return False
    scalar = int.from_bytes(private_key, "big")
    return 0 < scalar < CURVE_ORDER


def _private_scalar(private_key: KeyInput) -> int:
    raw = _key_bytes(private_key, "private key")
    if not private_key_verify(raw):
        raise InvalidKey(
            f"Private key must be a nonzero {PRIVATE_KEY_BYTES}-byte scalar "
            f"below the secp256k1 order"
        )
    return int.from_bytes(raw, "big")


def derive_public_key(private_key: KeyInput) -> bytes:
    """Derive the compressed public key (33 bytes) as private_key · G."""
    scalar = _private_scalar(private_key)
    key = ec.derive_private_key(scalar, ec.SECP256K1())
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


def load_public_key(public_key: KeyInput) -> ec.EllipticCurvePublicKey:
    """Load a compressed or uncompressed SEC1 secp256k1 point."""
    raw = _key_bytes(public_key, "public key")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)
    except ValueError as exc:
        raise InvalidKey(f"Not a valid secp256k1 public key: {exc}") from exc


def compress_public_key(public_key: KeyInput) -> bytes:
    """Normalize any SEC1 encoding to the 33-byte compressed form."""
    return load_public_key(public_key).public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


class KeyPair(BaseModel):
    """An authority's secp256k1 key pair, hex encoded.

    Owned by the caller and never persisted by this package.
    """

    model_config = ConfigDict(frozen=True)

    private_key: str = Field(
        ...,
        description="32-byte private scalar, lowercase hex.",
        pattern=r"^[0-9a-f]{64}$",
        repr=False,
    )
    public_key: str = Field(
        ...,
        description="Compressed SEC1 public key, lowercase hex.",
        pattern=r"^0[23][0-9a-f]{64}$",
    )

    @model_validator(mode="after")
    def validate_public_matches_private(self) -> "KeyPair":
        if derive_public_key(self.private_key).hex() != self.public_key:
            raise ValueError("public_key does not match private_key")
        return self

    @property
    def private_key_bytes(self) -> bytes:
        return bytes.fromhex(self.private_key)

    @property
    def public_key_bytes(self) -> bytes:
        return bytes.fromhex(self.public_key)


def generate_keypair() -> KeyPair:
    """Generate a new secp256k1 key pair.

    Draws 32 random bytes until they form a valid scalar; the chance of
    a second draw is about 2^-128.
    """
    while True:
        candidate = secrets.token_bytes(PRIVATE_KEY_BYTES)
        if private_key_verify(candidate):
            break
    return KeyPair(
        private_key=candidate.hex(),
        public_key=derive_public_key(candidate).hex(),
    )


def keypair_from_private_key(private_key: KeyInput) -> KeyPair:
    """Build a KeyPair for an existing private key.

    Raises:
        InvalidKey: If the key is not a valid secp256k1 scalar.
    """
    raw = _key_bytes(private_key, "private key")
    public = derive_public_key(raw)
    return KeyPair(private_key=raw.hex(), public_key=public.hex())


# ---------------------------------------------------------------------------
# Signing, verification and recovery
# ---------------------------------------------------------------------------

class RecoverableSignature(NamedTuple):
    recovery_id: int
    r: int
    s: int

    def to_compact(self) -> bytes:
        """r(32) || s(32) || recovery_id(1), the libsecp256k1 layout."""
        return (
            self.r.to_bytes(32, "big")
            + self.s.to_bytes(32, "big")
            + bytes([self.recovery_id])
        )


def _require_digest(digest: bytes) -> None:
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != DIGEST_BYTES:
        raise ValueError(f"Digest must be {DIGEST_BYTES} bytes")


def sign_digest(digest: bytes, private_key: KeyInput) -> RecoverableSignature:
    """Sign a 32-byte digest with RFC 6979 ECDSA (low-S).

    Raises:
        InvalidKey: If the private key is zero, >= the curve order,
                    or not 32 bytes.
        ValueError: If the digest is not 32 bytes.
    """
    _require_digest(digest)
    raw = _key_bytes(private_key, "private key")
    _private_scalar(raw)

    compact = coincurve.PrivateKey(raw).sign_recoverable(bytes(digest), hasher=None)
    return RecoverableSignature(
        recovery_id=compact[64],
        r=int.from_bytes(compact[0:32], "big"),
        s=int.from_bytes(compact[32:64], "big"),
    )


def verify_digest(
    public_key: KeyInput,
    digest: bytes,
    r: int,
    s: int,
    low_s: bool = True,
) -> bool:
    """Verify an ECDSA signature over a 32-byte digest.

    High-S signatures are rejected unless low_s is False.
    Returns True if valid, False otherwise.

    Raises:
        InvalidKey: If the public key cannot be decoded.
    """
    _require_digest(digest)
    key = load_public_key(public_key)
    if not (0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER):
        return False
    if low_s and s > HALF_CURVE_ORDER:
        return False
    try:
        key.verify(
            encode_dss_signature(r, s),
            bytes(digest),
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
        return True
    except InvalidSignature:
        return False


def recover_public_key(digest: bytes, recovery_id: int, r: int, s: int) -> bytes:
    """Recover the compressed public key that produced (r, s) over digest.

    Raises:
        ValueError: If the components are out of range or no point
                    can be recovered.
    """
    _require_digest(digest)
    if recovery_id not in (0, 1, 2, 3):
        raise ValueError(f"Recovery id must be 0-3, got {recovery_id}")
    if not (0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER):
        raise ValueError("Signature r and s must be in [1, n-1]")

    compact = RecoverableSignature(recovery_id, r, s).to_compact()
    try:
        recovered = coincurve.PublicKey.from_signature_and_message(
            compact, bytes(digest), hasher=None
        )
    except Exception as exc:
        raise ValueError(f"Public key recovery failed: {exc}") from exc
    return recovered.format(compressed=True)
