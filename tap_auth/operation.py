"""
tap_auth/operation.py — Building and verifying token-auth operations

Build:  payload + salt → canonicalize → SHA-256 → secp256k1 sign → record
Verify: wire round trip → recompute digest → check signature → recover key

Every call takes its key material explicitly; nothing is kept between
calls, so build and verify are safe to run from several threads.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .canonical import SerializationError, canonicalize, stringify_salt
from .crypto import (
    InvalidKey,
    KeyInput,
    KeyPair,
    compress_public_key,
    recover_public_key,
    sha256_digest,
    sign_digest,
    verify_digest,
)
from .record import (
    OperationKind,
    OperationRecord,
    RedeemItem,
    RedeemPayload,
    Signature,
    normalize_payload,
)

logger = logging.getLogger(__name__)

RecordInput = Union[OperationRecord, dict, str]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class VerificationReport(BaseModel):
    """Outcome of self-verifying an operation record.

    is_valid is the plain ECDSA check against the supplied key.
    key_match is the stronger check: the key recovered from the
    signature equals the supplied key. Trust a record only if both hold.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    supplied_public_key: str
    recovered_public_key: Optional[str] = None
    hash_valid: bool = False
    key_match: bool = False
    errors: List[str] = Field(default_factory=list)

    @property
    def trusted(self) -> bool:
        return self.is_valid and self.key_match and self.hash_valid


class GeneratedOperation(BaseModel):
    """A freshly built record together with its self-verification report."""

    model_config = ConfigDict(frozen=True)

    record: OperationRecord
    report: VerificationReport

    @property
    def inscription(self) -> str:
        """The wire JSON to hand to the ledger publisher."""
        return self.record.to_json()


# ---------------------------------------------------------------------------
# Building (digest + signature + assembly)
# ---------------------------------------------------------------------------

def build_operation(
    keypair: KeyPair,
    kind: Union[OperationKind, str],
    payload: Any,
    salt: Any,
) -> OperationRecord:
    """Build a signed token-auth operation.

    1. Normalize the payload into its model (fixed field order)
    2. Canonicalize: JSON(payload) + str(salt)
    3. digest = SHA-256(canonical bytes)
    4. Sign digest with the authority's secp256k1 key
    5. Assemble record with hash = hex(digest), sig = decimal r/s

    Args:
        keypair: The authority's key pair.
        kind: "auth" or "redeem".
        payload: Ticker list for auth; RedeemPayload or equivalent
                 dict for redeem.
        salt: Uniqueness value mixed into the signed message.

    Returns:
        A new, immutable OperationRecord.

    Raises:
        InvalidKey: If the private key is malformed.
        SerializationError: If payload or salt cannot be serialized.
        ValueError: If kind is not "auth" or "redeem".
    """
    kind = OperationKind(kind)
    try:
        model = normalize_payload(kind, payload)
    except ValidationError as exc:
        raise SerializationError(f"Invalid {kind.value} payload: {exc}") from exc

    message = canonicalize(model, salt)
    digest = sha256_digest(message)
    signature = sign_digest(digest, keypair.private_key)

    record = OperationRecord(
        sig=Signature(
            v=str(signature.recovery_id),
            r=str(signature.r),
            s=str(signature.s),
        ),
        hash=digest.hex(),
        salt=stringify_salt(salt),
        **{kind.value: model},
    )
    logger.debug("built %s operation %s", kind.value, record.hash)
    return record


def build_auth(keypair: KeyPair, tickers: Sequence[str], salt: Any) -> OperationRecord:
    """Build an auth operation. An empty ticker list authorizes every ticker."""
    return build_operation(keypair, OperationKind.AUTH, list(tickers), salt)


def build_redeem(
    keypair: KeyPair,
    items: Sequence[Union[RedeemItem, dict]],
    auth: str,
    salt: Any,
    data: str = "",
) -> OperationRecord:
    """Build a redeem operation bound to the auth operation `auth`."""
    payload = {"items": list(items), "auth": auth, "data": data}
    return build_operation(keypair, OperationKind.REDEEM, payload, salt)


# ---------------------------------------------------------------------------
# Self-verification
# ---------------------------------------------------------------------------

def _wire_text(record: RecordInput) -> str:
    if isinstance(record, OperationRecord):
        return record.to_json()
    if isinstance(record, str):
        return record
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"))


def _public_key_text(public_key: KeyInput) -> str:
    if isinstance(public_key, (bytes, bytearray)):
        return bytes(public_key).hex()
    return str(public_key)


def verify_operation(record: RecordInput, public_key: KeyInput) -> VerificationReport:
    """Verify an operation record against an authority's public key.

    Checks:
    1. The record survives a wire JSON round trip
    2. Recomputed SHA-256(payload + salt) matches the stored hash
    3. The signature verifies for the recomputed digest and public_key
    4. The key recovered from the signature equals public_key

    The digest is rebuilt from the payload in its fixed key order
    (redeem: items, auth, data; item: tick, amt, address), not the order
    the keys arrived in. A signer that hashed the redeem object with
    its keys in another order produces a record that fails here.

    Never raises on bad input; problems are listed in `errors`.
    """
    supplied = _public_key_text(public_key)
    errors: List[str] = []
    result = {
        "is_valid": False,
        "supplied_public_key": supplied,
        "recovered_public_key": None,
        "hash_valid": False,
        "key_match": False,
        "errors": errors,
    }

    # Round trip through the wire format
    try:
        parsed = OperationRecord.from_json(_wire_text(record))
    except (ValueError, TypeError) as exc:
        errors.append(f"Record is not a valid operation: {exc}")
        return _report(result)

    try:
        digest = sha256_digest(canonicalize(parsed.payload, parsed.salt))
    except SerializationError as exc:
        errors.append(f"Payload cannot be serialized: {exc}")
        return _report(result)

    if parsed.hash == digest.hex():
        result["hash_valid"] = True
    else:
        errors.append(
            f"Hash mismatch: computed {digest.hex()}, stored {parsed.hash}"
        )

    sig = parsed.sig
    if sig is None:
        errors.append("No signature present")
        return _report(result)

    # (a) plain ECDSA verification
    supplied_compressed: Optional[str] = None
    try:
        supplied_compressed = compress_public_key(public_key).hex()
        if verify_digest(public_key, digest, sig.r_int, sig.s_int):
            result["is_valid"] = True
        else:
            errors.append("Signature verification failed")
    except InvalidKey as exc:
        errors.append(f"Invalid public key: {exc}")

    # (b) public key recovery
    try:
        recovered = recover_public_key(
            digest, sig.recovery_id, sig.r_int, sig.s_int
        ).hex()
        result["recovered_public_key"] = recovered
        if supplied_compressed is not None and recovered == supplied_compressed:
            result["key_match"] = True
        else:
            errors.append(
                f"Recovered public key {recovered} does not match {supplied}"
            )
    except ValueError as exc:
        errors.append(str(exc))

    return _report(result)


def _report(result: dict) -> VerificationReport:
    report = VerificationReport(**result)
    if not report.trusted:
        logger.warning(
            "operation failed verification for key %s: %s",
            report.supplied_public_key,
            "; ".join(report.errors),
        )
    return report


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------

def generate(
    keypair: KeyPair,
    kind: Union[OperationKind, str],
    payload: Any,
    salt: Any,
) -> GeneratedOperation:
    """Build an operation and self-verify it against keypair.public_key."""
    record = build_operation(keypair, kind, payload, salt)
    report = verify_operation(record, keypair.public_key)
    return GeneratedOperation(record=record, report=report)
