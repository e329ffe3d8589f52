#!/usr/bin/env python3
"""
TAP token-auth CLI — sign and check authority operations.

Usage:
    python -m tools.tap_cli keygen
    python -m tools.tap_cli auth gib tap [--salt SALT]
    python -m tools.tap_cli redeem --tick gib --amt 546 --address bc1p... \\
        --auth <auth inscription id> [--data ""] [--salt SALT]
    python -m tools.tap_cli verify <record.json> --pub <public key hex>

Commands:
    keygen  — Print a fresh random key pair
    auth    — Build and self-verify a signed auth operation
    redeem  — Build and self-verify a signed redeem operation
    verify  — Verify a record file against an authority's public key

The private key for auth/redeem comes from --private-key or the
TAP_AUTH_PRIVATE_KEY environment variable. The "result" string printed
by auth/redeem is what gets inscribed.
"""

import argparse
import json
import logging
import os
import sys

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tap_auth.config import get_settings
from tap_auth.crypto import InvalidKey, generate_keypair, keypair_from_private_key
from tap_auth.canonical import SerializationError
from tap_auth.operation import GeneratedOperation, generate, verify_operation
from tap_auth.record import OperationKind
from tap_auth.salt import new_salt

logger = logging.getLogger("tap_auth.cli")


# ============================================================
# Output
# ============================================================

def print_generated(generated: GeneratedOperation) -> None:
    """Print {result, test} in the shape of the reference demo output."""
    report = generated.report
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


def fail(message: str) -> None:
    print(f"  ERROR: {message}", file=sys.stderr)
    sys.exit(1)


# ============================================================
# Commands
# ============================================================

def cmd_keygen(args) -> None:
    pair = generate_keypair()
    print(json.dumps({"pk": pair.private_key, "pub": pair.public_key}, indent=2))


def _authority(args):
    private_key = args.private_key
    if private_key is None:
        secret = get_settings().private_key
        private_key = secret.get_secret_value() if secret else None
    if not private_key:
        fail("No private key. Pass --private-key or set TAP_AUTH_PRIVATE_KEY.")
    try:
        return keypair_from_private_key(private_key.strip())
    except InvalidKey as exc:
        fail(str(exc))


def _generate(args, kind: OperationKind, payload) -> None:
    pair = _authority(args)
    salt = args.salt if args.salt is not None else new_salt()
    logger.info("signing %s operation as %s with salt %s", kind.value, pair.public_key, salt)
    try:
        generated = generate(pair, kind, payload, salt)
    except SerializationError as exc:
        fail(str(exc))
    print_generated(generated)
    if not generated.report.trusted:
        sys.exit(2)


def cmd_auth(args) -> None:
    _generate(args, OperationKind.AUTH, list(args.tickers))


def cmd_redeem(args) -> None:
    if not (len(args.tick) == len(args.amt) == len(args.address)):
        fail("--tick, --amt and --address must be given the same number of times")
    items = [
        {"tick": tick, "amt": amt, "address": address}
        for tick, amt, address in zip(args.tick, args.amt, args.address)
    ]
    _generate(
        args,
        OperationKind.REDEEM,
        {"items": items, "auth": args.auth, "data": args.data},
    )


def cmd_verify(args) -> None:
    if not os.path.exists(args.record_file):
        fail(f"File not found: {args.record_file}")

    with open(args.record_file, "r", encoding="utf-8") as f:
        text = f.read().strip()

    report = verify_operation(text, args.pub)

    print(f"━━━ Operation Verification ━━━")
    print(f"  Hash:            {'OK' if report.hash_valid else 'MISMATCH'}")
    print(f"  Signature:       {'OK' if report.is_valid else 'INVALID'}")
    print(f"  Supplied key:    {report.supplied_public_key}")
    print(f"  Recovered key:   {report.recovered_public_key or '(none)'}")
    print()
    if report.trusted:
        print("  Result: ✓ OPERATION AUTHENTIC")
    else:
        print(f"  Result: ✗ OPERATION REJECTED ({len(report.errors)} error(s))")
        for e in report.errors:
            print(f"    • {e}")
        sys.exit(2)


# ============================================================
# Main
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TAP token-auth CLI — sign and verify authority operations",
        prog="python -m tools.tap_cli",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: TAP_AUTH_LOG_LEVEL or WARNING)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_keygen = sub.add_parser("keygen", help="Generate a random key pair")
    p_keygen.set_defaults(func=cmd_keygen)

    signing = argparse.ArgumentParser(add_help=False)
    signing.add_argument("--private-key", help="Authority private key (hex)")
    signing.add_argument("--salt", help="Unique salt (default: fresh UUID v7)")

    p_auth = sub.add_parser("auth", parents=[signing], help="Sign an auth operation")
    p_auth.add_argument(
        "tickers",
        nargs="*",
        help="Permitted tickers (none = all tickers of the authority)",
    )
    p_auth.set_defaults(func=cmd_auth)

    p_redeem = sub.add_parser("redeem", parents=[signing], help="Sign a redeem operation")
    p_redeem.add_argument("--tick", action="append", required=True)
    p_redeem.add_argument("--amt", action="append", required=True)
    p_redeem.add_argument("--address", action="append", required=True)
    p_redeem.add_argument("--auth", required=True, help="Auth inscription id")
    p_redeem.add_argument("--data", default="")
    p_redeem.set_defaults(func=cmd_redeem)

    p_verify = sub.add_parser("verify", help="Verify a record file")
    p_verify.add_argument("record_file", help="Path to a wire JSON record")
    p_verify.add_argument("--pub", required=True, help="Authority public key (hex)")
    p_verify.set_defaults(func=cmd_verify)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=(args.log_level or get_settings().log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
