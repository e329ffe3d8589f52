"""
test/test_operation.py — Build and self-verify token-auth operations

Run: pytest test/test_operation.py -v
  or: python test/test_operation.py

Test structure:
  1. Build: record shape, hash and signature
  2. Self-verification: valid, tampered, cross-key, malformed
  3. End-to-end generate()
"""

import json
import os
import sys
from concurrent.futures import ThreadPoolExecutor

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cryptography.hazmat.primitives import serialization

from tap_auth import (
    InvalidKey, KeyPair, OperationRecord, RedeemItem, SerializationError,
    build_auth, build_operation, build_redeem, canonicalize, generate,
    generate_keypair, keypair_from_private_key, sha256_digest, sha256_hex,
    sign_digest, verify_operation,
)
from tap_auth.crypto import load_public_key


# ==================================================================
# Helpers
# ==================================================================

AUTHORITY = keypair_from_private_key("11" * 32)
OTHER_AUTHORITY = keypair_from_private_key("22" * 32)

AUTH_REF = "fd3664a56cf6d14b21504e5d83a3d4867ee256f06cbe3bddf2787d6a80a86078i0"
RECIPIENT = "bc1p9lpne8pnzq87dpygtqdd9vd3w28fknwwgv362xff9zv4ewxg6was504w20"


def redeem_payload(amt: str = "546") -> dict:
    return {
        "items": [{"tick": "gib", "amt": amt, "address": RECIPIENT}],
        "auth": AUTH_REF,
        "data": "",
    }


def assert_trusted(record, pair: KeyPair) -> None:
    report = verify_operation(record, pair.public_key)
    assert report.is_valid is True, report.errors
    assert report.hash_valid is True, report.errors
    assert report.key_match is True, report.errors
    assert report.recovered_public_key == pair.public_key
    assert report.trusted is True
    assert report.errors == []


# ==================================================================
# 1. Build
# ==================================================================

def test_build_auth_record():
    record = build_operation(AUTHORITY, "auth", ["gib"], "0.123")
    assert record.protocol == "tap"
    assert record.operation == "token-auth"
    assert record.salt == "0.123"
    assert record.auth == ["gib"]
    assert record.redeem is None
    assert record.hash == sha256_hex(b'["gib"]0.123')
    assert record.sig.v in ("0", "1")
    assert record.sig.r.isdigit() and record.sig.s.isdigit()
    print("  PASS: test_build_auth_record")


def test_build_redeem_record():
    record = build_operation(AUTHORITY, "redeem", redeem_payload(), "salt-1")
    assert record.kind.value == "redeem"
    assert record.auth is None
    assert record.redeem.items[0].amt == "546"
    expected = (
        '{"items":[{"tick":"gib","amt":"546","address":"' + RECIPIENT + '"}],'
        '"auth":"' + AUTH_REF + '","data":""}salt-1'
    )
    assert record.hash == sha256_hex(expected.encode("utf-8"))
    assert list(json.loads(record.to_json()).keys()) == [
        "p", "op", "sig", "hash", "salt", "redeem"
    ]
    print("  PASS: test_build_redeem_record")


def test_build_wrappers():
    assert build_auth(AUTHORITY, ("gib",), "1") == build_operation(
        AUTHORITY, "auth", ["gib"], "1"
    )
    items = [RedeemItem(tick="gib", amt="546", address=RECIPIENT)]
    assert build_redeem(AUTHORITY, items, AUTH_REF, "1") == build_operation(
        AUTHORITY, "redeem", redeem_payload(), "1"
    )
    print("  PASS: test_build_wrappers")


def test_build_is_deterministic():
    a = build_operation(AUTHORITY, "auth", ["gib"], "7")
    b = build_operation(AUTHORITY, "auth", ["gib"], "7")
    assert a.to_json() == b.to_json()
    print("  PASS: test_build_is_deterministic")


def test_build_independent_of_dict_order():
    shuffled = {
        "data": "",
        "auth": AUTH_REF,
        "items": [{"address": RECIPIENT, "amt": "546", "tick": "gib"}],
    }
    a = build_operation(AUTHORITY, "redeem", redeem_payload(), "9")
    b = build_operation(AUTHORITY, "redeem", shuffled, "9")
    assert a.hash == b.hash
    assert a.to_json() == b.to_json()
    print("  PASS: test_build_independent_of_dict_order")


def test_salt_changes_hash():
    a = build_operation(AUTHORITY, "auth", ["gib"], "0.123")
    b = build_operation(AUTHORITY, "auth", ["gib"], "0.456")
    assert a.hash != b.hash
    assert a.sig != b.sig
    print("  PASS: test_salt_changes_hash")


def test_numeric_salt_is_stringified():
    record = build_operation(AUTHORITY, "auth", ["gib"], 0.123)
    assert record.salt == "0.123"
    assert record.hash == build_operation(AUTHORITY, "auth", ["gib"], "0.123").hash
    assert build_operation(AUTHORITY, "auth", [], 42).salt == "42"
    print("  PASS: test_numeric_salt_is_stringified")


def test_empty_auth():
    record = build_operation(AUTHORITY, "auth", [], "42")
    assert record.auth == []
    assert record.hash == sha256_hex(b"[]42")
    assert json.loads(record.to_json())["auth"] == []
    assert_trusted(record, AUTHORITY)
    print("  PASS: test_empty_auth")


def test_signature_not_hashed():
    record = build_operation(AUTHORITY, "auth", ["gib"], "5")
    # Hash depends only on payload + salt
    assert record.hash == sha256_hex(canonicalize(["gib"], "5"))
    unsigned = OperationRecord(salt="5", auth=["gib"])
    assert sha256_hex(canonicalize(unsigned.payload, unsigned.salt)) == record.hash
    print("  PASS: test_signature_not_hashed")


def test_build_errors():
    cases = [
        (lambda: build_operation(AUTHORITY, "mint", ["gib"], "1"), ValueError),
        (lambda: build_operation(AUTHORITY, "auth", [1], "1"), SerializationError),
        (lambda: build_operation(AUTHORITY, "auth", "gib", "1"), SerializationError),
        (lambda: build_operation(AUTHORITY, "redeem", {"items": []}, "1"), SerializationError),
        (lambda: build_operation(AUTHORITY, "redeem", redeem_payload(amt=float("nan")), "1"),
         SerializationError),
        (lambda: build_operation(AUTHORITY, "auth", ["gib"], None), SerializationError),
        (lambda: build_operation(AUTHORITY, "auth", ["gib"], float("inf")), SerializationError),
    ]
    for make, exc_type in cases:
        try:
            make()
            assert False, "Should fail"
        except exc_type:
            pass
    print("  PASS: test_build_errors")


def test_build_rejects_invalid_key():
    # Bypass KeyPair validation to hand the signer a zero scalar
    broken = KeyPair.model_construct(private_key="00" * 32, public_key=AUTHORITY.public_key)
    try:
        build_operation(broken, "auth", ["gib"], "1")
        assert False, "Should reject zero private key"
    except InvalidKey:
        pass
    print("  PASS: test_build_rejects_invalid_key")


# ==================================================================
# 2. Self-verification
# ==================================================================

def test_verify_auth_and_redeem():
    assert_trusted(build_operation(AUTHORITY, "auth", ["gib", "tap"], "1"), AUTHORITY)
    assert_trusted(build_operation(AUTHORITY, "redeem", redeem_payload(), "2"), AUTHORITY)
    pair = generate_keypair()
    assert_trusted(build_operation(pair, "auth", ["gib"], "3"), pair)
    print("  PASS: test_verify_auth_and_redeem")


def test_verify_accepts_wire_forms():
    record = build_operation(AUTHORITY, "redeem", redeem_payload(), "4")
    assert_trusted(record.to_json(), AUTHORITY)
    assert_trusted(record.wire_dict(), AUTHORITY)
    assert_trusted(record, AUTHORITY)
    report = verify_operation(record, bytes.fromhex(AUTHORITY.public_key))
    assert report.trusted is True
    print("  PASS: test_verify_accepts_wire_forms")


def test_verify_accepts_uncompressed_key():
    record = build_operation(AUTHORITY, "auth", ["gib"], "5")
    uncompressed = load_public_key(AUTHORITY.public_key).public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    ).hex()
    report = verify_operation(record, uncompressed)
    assert report.is_valid is True
    assert report.key_match is True
    assert report.supplied_public_key == uncompressed
    assert report.recovered_public_key == AUTHORITY.public_key
    print("  PASS: test_verify_accepts_uncompressed_key")


def test_verify_detects_tampered_amount():
    record = build_operation(AUTHORITY, "redeem", redeem_payload(), "0.123")
    wire = record.wire_dict()
    amt = wire["redeem"]["items"][0]["amt"]
    wire["redeem"]["items"][0]["amt"] = chr(ord(amt[0]) ^ 1) + amt[1:]
    report = verify_operation(wire, AUTHORITY.public_key)
    assert report.is_valid is False or report.recovered_public_key != AUTHORITY.public_key
    assert report.trusted is False
    assert report.hash_valid is False
    print("  PASS: test_verify_detects_tampered_amount")


def test_verify_detects_tampered_salt():
    wire = build_operation(AUTHORITY, "auth", ["gib"], "1").wire_dict()
    wire["salt"] = "2"
    report = verify_operation(wire, AUTHORITY.public_key)
    assert report.is_valid is False
    assert report.key_match is False
    print("  PASS: test_verify_detects_tampered_salt")


def test_verify_detects_replaced_hash():
    wire = build_operation(AUTHORITY, "auth", ["gib"], "1").wire_dict()
    wire["hash"] = "00" * 32
    report = verify_operation(wire, AUTHORITY.public_key)
    # Signature still matches the payload; only the stored hash lies
    assert report.is_valid is True
    assert report.hash_valid is False
    assert report.trusted is False
    print("  PASS: test_verify_detects_replaced_hash")


def test_verify_cross_key():
    record = build_operation(AUTHORITY, "auth", ["gib"], "1")
    report = verify_operation(record, OTHER_AUTHORITY.public_key)
    assert report.is_valid is False
    assert report.key_match is False
    assert report.recovered_public_key == AUTHORITY.public_key
    assert report.supplied_public_key == OTHER_AUTHORITY.public_key
    print("  PASS: test_verify_cross_key")


def test_verify_never_raises():
    record = build_operation(AUTHORITY, "auth", ["gib"], "1")
    inputs = [
        ("not json", AUTHORITY.public_key),
        ({"p": "tap"}, AUTHORITY.public_key),
        (record, "zz"),
        (record, "02" + "ff" * 32),
        (OperationRecord(salt="1", auth=[]), AUTHORITY.public_key),
    ]
    # Oversized decimal r/s must not reach int()
    for component in ("r", "s"):
        wire = record.wire_dict()
        wire["sig"][component] = "9" * 5000
        inputs.append((wire, AUTHORITY.public_key))
        inputs.append((json.dumps(wire), AUTHORITY.public_key))
    for rec, pub in inputs:
        report = verify_operation(rec, pub)
        assert report.is_valid is False
        assert report.trusted is False
        assert report.errors, f"Expected errors for {rec!r}"
    print("  PASS: test_verify_never_raises")


def test_verify_invalid_key_still_recovers():
    record = build_operation(AUTHORITY, "auth", ["gib"], "1")
    report = verify_operation(record, "zz")
    assert report.recovered_public_key == AUTHORITY.public_key
    assert report.key_match is False
    print("  PASS: test_verify_invalid_key_still_recovers")


def test_verify_bad_signature_components():
    wire = build_operation(AUTHORITY, "auth", ["gib"], "1").wire_dict()
    wire["sig"]["r"] = "0"
    report = verify_operation(wire, AUTHORITY.public_key)
    assert report.is_valid is False
    assert report.recovered_public_key is None
    assert report.hash_valid is True
    print("  PASS: test_verify_bad_signature_components")


def test_verify_uses_fixed_redeem_key_order():
    # Signed over the redeem object with its keys in arrival order
    salt = "1"
    payload = redeem_payload()
    reordered = {
        "data": payload["data"],
        "auth": payload["auth"],
        "items": [{"address": RECIPIENT, "amt": "546", "tick": "gib"}],
    }
    message = (
        json.dumps(reordered, ensure_ascii=False, separators=(",", ":")) + salt
    ).encode("utf-8")
    digest = sha256_digest(message)
    sig = sign_digest(digest, AUTHORITY.private_key)
    wire = {
        "p": "tap",
        "op": "token-auth",
        "sig": {"v": str(sig.recovery_id), "r": str(sig.r), "s": str(sig.s)},
        "hash": digest.hex(),
        "salt": salt,
        "redeem": reordered,
    }
    report = verify_operation(wire, AUTHORITY.public_key)
    assert report.hash_valid is False
    assert report.is_valid is False
    assert report.trusted is False
    # The same payload built here verifies
    assert_trusted(build_operation(AUTHORITY, "redeem", reordered, salt), AUTHORITY)
    print("  PASS: test_verify_uses_fixed_redeem_key_order")


# ==================================================================
# 3. End-to-end
# ==================================================================

def test_generate():
    generated = generate(AUTHORITY, "redeem", redeem_payload(), "0.5")
    assert generated.report.trusted is True
    assert generated.report.supplied_public_key == AUTHORITY.public_key
    assert generated.inscription == generated.record.to_json()
    assert OperationRecord.from_json(generated.inscription) == generated.record
    print("  PASS: test_generate")


def test_generate_concurrently():
    def work(i: int):
        pair = generate_keypair()
        return pair, generate(pair, "auth", [f"t{i}"], str(i))

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(work, range(8)))
    for pair, generated in results:
        assert generated.report.trusted is True
        assert generated.report.recovered_public_key == pair.public_key
    assert len({g.record.hash for _, g in results}) == 8
    print("  PASS: test_generate_concurrently")


# ==================================================================
# Runner
# ==================================================================

def run_all():
    print("=" * 60)
    print("TAP token-auth Operation Test Suite")
    print("=" * 60)

    print("\n--- 1. Build ---")
    test_build_auth_record()
    test_build_redeem_record()
    test_build_wrappers()
    test_build_is_deterministic()
    test_build_independent_of_dict_order()
    test_salt_changes_hash()
    test_numeric_salt_is_stringified()
    test_empty_auth()
    test_signature_not_hashed()
    test_build_errors()
    test_build_rejects_invalid_key()

    print("\n--- 2. Self-verification ---")
    test_verify_auth_and_redeem()
    test_verify_accepts_wire_forms()
    test_verify_accepts_uncompressed_key()
    test_verify_detects_tampered_amount()
    test_verify_detects_tampered_salt()
    test_verify_detects_replaced_hash()
    test_verify_cross_key()
    test_verify_never_raises()
    test_verify_invalid_key_still_recovers()
    test_verify_bad_signature_components()
    test_verify_uses_fixed_redeem_key_order()

    print("\n--- 3. End-to-end ---")
    test_generate()
    test_generate_concurrently()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all()
