"""
tap_auth/record.py — TAP token-auth Operation Record Data Model

Canonical data structures for signed token-auth operations. JSON Schema
is auto-exported from these Pydantic models, never hand-written.

Wire form (key order is significant, compact JSON):

    {"p":"tap","op":"token-auth","sig":{...},"hash":"...","salt":"...",
     "auth":[...]}                         or   "redeem":{...}}
"""

# NOTE: `from __future__ import annotations` is intentionally omitted.
# Pydantic resolves the field annotations at class creation time.

import json
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROTOCOL = "tap"
OPERATION = "token-auth"


class OperationKind(str, Enum):
    """Payload kinds of a token-auth operation.

    The value doubles as the wire key carrying the payload.
    """
    AUTH = "auth"
    REDEEM = "redeem"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

# Tickers the authority permits. Empty means every ticker it issues.
AuthPayload = List[str]


class RedeemItem(BaseModel):
    """One recipient entitlement inside a redeem operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tick: str = Field(..., description="Token ticker.")
    amt: str = Field(
        ...,
        description="Amount as a decimal string.",
        pattern=r"^[0-9]+(\.[0-9]+)?$",
    )
    address: str = Field(..., description="Recipient address.")


class RedeemPayload(BaseModel):
    """Recipients and amounts the authority lets claim, bound to an auth op."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    items: List[RedeemItem]
    auth: str = Field(
        ...,
        description="Reference to the prior auth operation (inscription id).",
    )
    data: str = Field(default="", description="Free-form data.")


Payload = Union[AuthPayload, RedeemPayload]

_AUTH_PAYLOAD = TypeAdapter(AuthPayload)


# ---------------------------------------------------------------------------
# Signature
# ---------------------------------------------------------------------------

class Signature(BaseModel):
    """Recoverable ECDSA signature, textual wire form.

    r and s are base-10 strings; v is the recovery id as a string.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    v: str = Field(..., pattern=r"^[0-3]$", description="Recovery id.")
    r: str = Field(..., pattern=r"^[0-9]{1,78}$", description="r, decimal.")
    s: str = Field(..., pattern=r"^[0-9]{1,78}$", description="s, decimal.")

    @property
    def recovery_id(self) -> int:
        return int(self.v)

    @property
    def r_int(self) -> int:
        return int(self.r)

    @property
    def s_int(self) -> int:
        return int(self.s)


# ---------------------------------------------------------------------------
# Top-level Record
# ---------------------------------------------------------------------------

class OperationRecord(BaseModel):
    """A single token-auth operation, ready for inscription.

    - p / op:  constant protocol and operation tags
    - sig:     signature over SHA-256(payload JSON + salt)
    - hash:    hex of that digest
    - salt:    caller-supplied uniqueness value
    - auth | redeem: the payload, keyed by operation kind

    sig and hash are derived; they are never part of the signed bytes.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    protocol: Literal["tap"] = Field(default=PROTOCOL, alias="p")
    operation: Literal["token-auth"] = Field(default=OPERATION, alias="op")
    sig: Optional[Signature] = Field(default=None)
    hash: Optional[str] = Field(
        default=None,
        description="SHA-256 of canonical message bytes, lowercase hex.",
        pattern=r"^[0-9a-f]{64}$",
    )
    salt: str
    auth: Optional[AuthPayload] = Field(default=None)
    redeem: Optional[RedeemPayload] = Field(default=None)

    @model_validator(mode="after")
    def validate_single_payload(self) -> "OperationRecord":
        if (self.auth is None) == (self.redeem is None):
            raise ValueError(
                "Exactly one of 'auth' or 'redeem' must be present"
            )
        return self

    @property
    def kind(self) -> OperationKind:
        return OperationKind.AUTH if self.auth is not None else OperationKind.REDEEM

    @property
    def payload(self) -> Payload:
        return self.auth if self.kind == OperationKind.AUTH else self.redeem

    def wire_dict(self) -> dict:
        """Return the record in wire key order, without the absent payload key."""
        d = self.model_dump(mode="json", by_alias=True)
        absent = OperationKind.REDEEM if self.kind == OperationKind.AUTH else OperationKind.AUTH
        d.pop(absent.value, None)
        return d

    def to_json(self) -> str:
        """Serialize to compact wire JSON (the inscription payload)."""
        return json.dumps(self.wire_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "OperationRecord":
        return cls.model_validate(json.loads(text))


def normalize_payload(kind: Union[OperationKind, str], payload: Any) -> Payload:
    """Coerce a caller payload into its model for the given kind.

    Raises:
        pydantic.ValidationError: If the payload does not fit the kind.
        ValueError: If kind is unknown.
    """
    kind = OperationKind(kind)
    if kind == OperationKind.AUTH:
        return _AUTH_PAYLOAD.validate_python(payload)
    if isinstance(payload, RedeemPayload):
        return payload
    return RedeemPayload.model_validate(payload)


# ---------------------------------------------------------------------------
# JSON Schema export
# ---------------------------------------------------------------------------

def export_json_schema() -> str:
    """Export the OperationRecord JSON Schema.

    Authoritative schema for non-Python implementations.
    Generated from Pydantic — never hand-edited.
    """
    schema = OperationRecord.model_json_schema(by_alias=True)
    return json.dumps(schema, indent=2)


if __name__ == "__main__":
    print(export_json_schema())
