"""
Centralized configuration management for the Sealer service.

Pydantic v2 settings management: values are parsed once from the
environment (prefix ``SEALER_``), validated strictly, and frozen for the
lifetime of the process.

Layout constants (font sizes, margins, page size) are NOT configuration.
They are fixed design parameters of the sealed document and live in
``sealer.app.services.layout``.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

NonEmptyText = Annotated[
    str,
    Field(min_length=1),
]

OverflowPolicy = Literal["continue", "truncate"]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if a value is missing or malformed.
    """

    # ---------------------------------------------------------------------
    # Document identity
    # ---------------------------------------------------------------------

    product_label: Annotated[
        NonEmptyText,
        Field(
            default="™ Patent Pending Verum Omnis",
            description="Static label rendered in the footer of every page",
        ),
    ]

    app_version: Annotated[
        NonEmptyText,
        Field(
            default="5.1.0",
            description="Version string embedded in the sealing metadata",
        ),
    ]

    # ---------------------------------------------------------------------
    # Layout policy
    # ---------------------------------------------------------------------

    evidence_overflow: Annotated[
        OverflowPolicy,
        Field(
            default="continue",
            description=(
                "What happens when the evidence list does not fit the "
                "summary page. 'continue' flows the remaining entries onto "
                "additional pages; 'truncate' keeps a single summary page "
                "and drops them. Page counts match in both modes as long "
                "as the list fits; the entry cutoff N is derived from the "
                "two-line digest layout."
            ),
        ),
    ]

    qr_size_px: Annotated[
        int,
        Field(
            default=360,
            ge=64,
            le=2048,
            description="Target edge length of the QR raster image in pixels",
        ),
    ]

    # ---------------------------------------------------------------------
    # Operational Boundaries
    # ---------------------------------------------------------------------

    max_upload_size_mb: Annotated[
        int,
        Field(
            default=25,
            ge=1,
            le=100,
            description="Upper bound on the combined size of uploaded evidence",
        ),
    ]

    hash_cache_entries: Annotated[
        int,
        Field(
            default=1024,
            ge=1,
            description="Evidence digests kept in the hasher identity cache",
        ),
    ]

    submission_recipient: Annotated[
        NonEmptyText,
        Field(
            default="submissions@verum-foundation.org",
            description="Recipient of the counsel submission e-mail draft",
        ),
    ]

    log_level: Annotated[
        str,
        Field(
            default="INFO",
            description="Root logging level for the HTTP service",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="SEALER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ---------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ---------------------------------------------------------------------

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.strip().upper()
        if level not in allowed:
            raise ValueError(
                f"Unsupported log level '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return level


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for application settings.

    Uses an explicit singleton pattern within the FastAPI lifecycle.
    """
    return Settings()
