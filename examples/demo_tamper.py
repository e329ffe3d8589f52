#!/usr/bin/env python3
"""
TAP token-auth Tamper Detection Demo

Demonstrates the two guarantees a recipient relies on:

  1. A signed redeem op whose amount is altered no longer verifies
  2. A genuine op does not verify under another authority's key

Run:
    python examples/demo_tamper.py
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tap_auth.crypto import generate_keypair
from tap_auth.operation import VerificationReport, build_redeem, verify_operation


def show_report(label: str, report: VerificationReport) -> None:
    status = "✓ AUTHENTIC" if report.trusted else "✗ REJECTED"
    print(f"\n  {label}: {status}")
    print(f"    Hash valid:      {report.hash_valid}")
    print(f"    Signature valid: {report.is_valid}")
    print(f"    Supplied key:    {report.supplied_public_key}")
    print(f"    Recovered key:   {report.recovered_public_key}")
    for e in report.errors:
        print(f"    • {e}")


def main():
    print("=" * 72)
    print("  TAP token-auth Tamper Detection Demo")
    print("=" * 72)

    authority = generate_keypair()
    impostor = generate_keypair()

    record = build_redeem(
        authority,
        items=[{
            "tick": "gib",
            "amt": "546",
            "address": "bc1p9lpne8pnzq87dpygtqdd9vd3w28fknwwgv362xff9zv4ewxg6was504w20",
        }],
        auth="fd3664a56cf6d14b21504e5d83a3d4867ee256f06cbe3bddf2787d6a80a86078i0",
        salt="demo-tamper-1",
    )

    print(f"\n{'━' * 72}")
    print("  STEP 1: Original redeem op")
    print(f"{'━' * 72}")
    print(f"\n  {record.to_json()}")
    show_report("Original", verify_operation(record, authority.public_key))

    # The attacker edits the amount but cannot re-sign without the key
    tampered = record.wire_dict()
    tampered["redeem"]["items"][0]["amt"] = "5460"

    print(f"\n{'━' * 72}")
    print("  STEP 2: TAMPERING — amount 546 → 5460")
    print(f"{'━' * 72}")
    show_report("Tampered", verify_operation(tampered, authority.public_key))

    print(f"\n{'━' * 72}")
    print("  STEP 3: WRONG AUTHORITY — genuine op, impostor's key")
    print(f"{'━' * 72}")
    show_report("Cross-key", verify_operation(record, impostor.public_key))
    print()


if __name__ == "__main__":
    main()
