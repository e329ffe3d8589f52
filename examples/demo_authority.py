#!/usr/bin/env python3
"""
TAP token-auth Authority Demo

Creates an authority as of token-auth described in
https://github.com/BennyTheDev/tap-protocol-specs:

  1. Generate a random key pair (for demonstration only; a production
     authority keeps its private key somewhere safe and signs on demand)
  2. Sign an auth op permitting the ticker "gib"
  3. Sign a redeem op crediting 546 gib to one recipient
  4. Print each result with its self-verification

Auth ops must be inscribed and tapped (inscribe + send to yourself) by
the authority. After tapping, the listed tickers (or all tickers of the
authority, for an empty list) are associated with the tapping account.

Redeem ops can be broadcast through any channel. Anyone may inscribe
one, but it is usable once and only credits the signed recipients.

Each hash must be unique, so every op carries a salt. An authority that
needs to re-index its signed ops should use something unique such as
the inscription id the op refers to.

Run:
    python examples/demo_authority.py

Requirements:
    pip install pydantic cryptography coincurve
"""

import json
import os
import sys

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tap_auth.crypto import generate_keypair
from tap_auth.operation import GeneratedOperation, generate
from tap_auth.salt import new_salt


AUTH_INSCRIPTION_ID = (
    "fd3664a56cf6d14b21504e5d83a3d4867ee256f06cbe3bddf2787d6a80a86078i0"
)
RECIPIENT = "bc1p9lpne8pnzq87dpygtqdd9vd3w28fknwwgv362xff9zv4ewxg6was504w20"


def show(title: str, generated: GeneratedOperation) -> None:
    report = generated.report
    print(f"####### {title} ########")
    print(json.dumps(
        {
            "test": {
                "valid": report.is_valid,
                "pub": report.supplied_public_key,
                "pubRecovered": report.recovered_public_key,
            },
            "result": generated.inscription,
        },
        indent=2,
    ))


def main():
    pair = generate_keypair()

    auth_result = generate(pair, "auth", ["gib"], new_salt())

    redeem_result = generate(
        pair,
        "redeem",
        {
            "items": [
                {"tick": "gib", "amt": "546", "address": RECIPIENT},
            ],
            "auth": AUTH_INSCRIPTION_ID,
            "data": "",
        },
        new_salt(),
    )

    print("####### RANDOM PAIR ########")
    print(json.dumps({"pk": pair.private_key, "pub": pair.public_key}, indent=2))

    show("AUTH RESULT", auth_result)
    show("REDEEM RESULT", redeem_result)


if __name__ == "__main__":
    main()
