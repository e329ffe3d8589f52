"""Salt generation for token-auth operations.

Every operation hash must be unique, so the salt mixed into the signed
message must never repeat. Callers that need to re-index their signed
operations should pass something externally unique (an inscription id).
Otherwise new_salt() gives a time-ordered UUID v7 (RFC 9562) whose
random bits come from the `secrets` CSPRNG.
"""

from __future__ import annotations

import secrets
import time
import uuid


def new_salt() -> str:
    """Generate a UUID v7 string for use as an operation salt.

    Format: 48-bit unix_ts_ms | 4-bit version(7) | 12-bit rand_a
            | 2-bit variant | 62-bit rand_b
    """
    timestamp_ms = time.time_ns() // 1_000_000

    uuid_bytes = bytearray(timestamp_ms.to_bytes(6, byteorder="big"))
    uuid_bytes += secrets.token_bytes(10)

    uuid_bytes[6] = (uuid_bytes[6] & 0x0F) | 0x70
    uuid_bytes[8] = (uuid_bytes[8] & 0x3F) | 0x80

    return str(uuid.UUID(bytes=bytes(uuid_bytes)))
