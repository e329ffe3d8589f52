"""
tap_auth — TAP token-auth operation signing and verification.

__version__ is the package version. The wire protocol is identified by
the constant tags PROTOCOL ("tap") and OPERATION ("token-auth").
"""

__version__ = "0.1.0"

from .salt import new_salt
from .record import (
    OperationRecord,
    OperationKind,
    RedeemItem,
    RedeemPayload,
    Signature,
    PROTOCOL,
    OPERATION,
    export_json_schema,
)
from .canonical import (
    SerializationError,
    canonicalize,
    serialize_payload,
    stringify_salt,
)
from .crypto import (
    CURVE_ORDER,
    InvalidKey,
    KeyPair,
    RecoverableSignature,
    sha256_digest,
    sha256_hex,
    generate_keypair,
    keypair_from_private_key,
    derive_public_key,
    compress_public_key,
    private_key_verify,
    sign_digest,
    verify_digest,
    recover_public_key,
)
from .operation import (
    GeneratedOperation,
    VerificationReport,
    build_operation,
    build_auth,
    build_redeem,
    verify_operation,
    generate,
)
