"""
Runtime settings for the token-auth tooling.

Read from the environment (prefix TAP_AUTH_) or a local .env file.
The library functions never consult these settings; only the CLI does.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class AuthoritySettings(BaseSettings):
    """Settings for signing operations on behalf of an authority."""

    private_key: Annotated[
        Optional[SecretStr],
        Field(
            default=None,
            description="Authority private key (64 hex chars), redacted from logs",
        ),
    ]

    log_level: Annotated[
        LogLevel,
        Field(default="WARNING", description="Root log level for the CLI"),
    ]

    model_config = SettingsConfigDict(
        env_prefix="TAP_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> AuthoritySettings:
    return AuthoritySettings()
