"""
tap_auth/canonical.py — Canonical message bytes for TAP token-auth.

The signed message is

    JSON.stringify(payload) + String(salt)

as produced by an ECMAScript engine. Any verifier, in any language,
must be able to rebuild these bytes exactly, so the serializer here
reproduces JSON.stringify output rather than Python's json defaults:

- object keys in declared order (never sorted)
- compact separators, no whitespace
- non-ASCII passed through as UTF-8, lone surrogates escaped as \\uXXXX
- numbers formatted like Number.prototype.toString

Pydantic payload models are dumped in field-declaration order, which
makes the output independent of how a caller ordered a dict.
"""

from __future__ import annotations

import json
import math
import uuid
from decimal import Decimal
from typing import Any

from pydantic import BaseModel


# Largest integer an IEEE 754 double represents exactly.
MAX_SAFE_INTEGER = 2**53


class SerializationError(ValueError):
    """Payload or salt cannot be canonically serialized."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def canonicalize(payload: Any, salt: Any) -> bytes:
    """Build the canonical message bytes: serialize(payload) ++ stringify(salt).

    Raises:
        SerializationError: If payload or salt is not representable.
    """
    text = serialize_payload(payload) + stringify_salt(salt)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise SerializationError(f"Message is not valid Unicode: {exc}") from exc


def serialize_payload(payload: Any) -> str:
    """Serialize a payload (model, list or JSON value) to compact JSON text."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    return _serialize_value(payload)


def stringify_salt(salt: Any) -> str:
    """Convert a salt to its textual form, as ECMAScript ``'' + salt`` would."""
    if salt is None:
        raise SerializationError("Salt is required")
    if isinstance(salt, str):
        return salt
    if isinstance(salt, bool):
        return "true" if salt else "false"
    if isinstance(salt, int):
        return str(salt)
    if isinstance(salt, float):
        if math.isnan(salt) or math.isinf(salt):
            raise SerializationError(f"Salt must be finite, got {salt}")
        return _es6_number_to_string(salt)
    if isinstance(salt, (Decimal, uuid.UUID)):
        return str(salt)
    raise SerializationError(
        f"Cannot use {type(salt).__name__} as salt. "
        f"Use a string, number, Decimal or UUID."
    )


# ---------------------------------------------------------------------------
# JSON.stringify-compatible serializer
# ---------------------------------------------------------------------------

def _serialize_value(value: Any) -> str:
    """Recursively serialize a value to compact JSON text."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        # Must check bool before int (bool is subclass of int)
        return "true" if value else "false"
    if isinstance(value, int):
        return _serialize_integer(value)
    if isinstance(value, float):
        return _serialize_float(value)
    if isinstance(value, str):
        return _serialize_string(value)
    if isinstance(value, (list, tuple)):
        items = ",".join(_serialize_value(item) for item in value)
        return f"[{items}]"
    if isinstance(value, dict):
        return _serialize_object(value)
    if isinstance(value, BaseModel):
        return _serialize_value(value.model_dump(mode="json"))
    raise SerializationError(
        f"Cannot serialize type {type(value).__name__}. "
        f"Only JSON-compatible types are allowed."
    )


def _serialize_string(s: str) -> str:
    """Quote a string like JSON.stringify.

    json.dumps escapes control characters, quotes and backslashes the
    same way. Lone surrogates are written as \\uXXXX escapes, as
    well-formed JSON.stringify does; a high/low pair is joined into its
    code point.
    """
    parts = []
    run = []
    i = 0
    while i < len(s):
        code = ord(s[i])
        if 0xD800 <= code <= 0xDBFF and i + 1 < len(s) and 0xDC00 <= ord(s[i + 1]) <= 0xDFFF:
            low = ord(s[i + 1])
            run.append(chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)))
            i += 2
            continue
        if 0xD800 <= code <= 0xDFFF:
            parts.append(json.dumps("".join(run), ensure_ascii=False)[1:-1])
            parts.append(f"\\u{code:04x}")
            run = []
        else:
            run.append(s[i])
        i += 1
    parts.append(json.dumps("".join(run), ensure_ascii=False)[1:-1])
    return '"' + "".join(parts) + '"'


def _serialize_integer(n: int) -> str:
    if abs(n) > MAX_SAFE_INTEGER:
        raise SerializationError(
            f"Integer {n} exceeds IEEE 754 double precision range (2^53). "
            f"Use a decimal string instead."
        )
    return str(n)


def _serialize_float(f: float) -> str:
    if math.isnan(f) or math.isinf(f):
        raise SerializationError(
            f"Cannot serialize {f}: NaN and Infinity are not valid JSON"
        )
    return _es6_number_to_string(f)


def _serialize_object(obj: dict) -> str:
    """Serialize a dict, keeping its insertion order."""
    pairs = []
    for key, value in obj.items():
        if not isinstance(key, str):
            raise SerializationError(
                f"Dict key must be string, got {type(key).__name__}: {key!r}"
            )
        pairs.append(f"{_serialize_string(key)}:{_serialize_value(value)}")
    return "{" + ",".join(pairs) + "}"


def _es6_number_to_string(f: float) -> str:
    """Format a finite float like ECMAScript Number.prototype.toString.

    repr() already yields the shortest round-tripping digits; only the
    placement of the decimal point and the exponent switch-over differ
    (ECMAScript uses plain notation for 1e-7 < |f| < 1e21).
    """
    if f == 0.0:
        return "0"  # Covers both +0.0 and -0.0
    sign = "-" if f < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(f))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent  # value = 0.digits * 10^n

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits

    e = n - 1
    exp = f"e+{e}" if e >= 0 else f"e-{-e}"
    if k == 1:
        return sign + digits + exp
    return sign + digits[0] + "." + digits[1:] + exp
