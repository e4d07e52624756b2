"""
Centralized configuration management for the Signer service.

Pydantic v2 settings management to enforce strict validation and
fast-failure on invalid configuration.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AfterValidator, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# The stamp font is declared with WinAnsiEncoding.
STAMP_TEXT_ENCODING = "cp1252"


def ensure_stamp_encodable(value: str) -> str:
    try:
        value.encode(STAMP_TEXT_ENCODING)
    except UnicodeEncodeError as exc:
        raise ValueError(
            f"stamp text must be representable in {STAMP_TEXT_ENCODING}: "
            f"{value[exc.start:exc.end]!r} is not"
        ) from None
    return value


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

StampLine = Annotated[
    str,
    Field(min_length=1, max_length=120),
    AfterValidator(ensure_stamp_encodable),
]

ColorComponent = Annotated[float, Field(ge=0.0, le=1.0)]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Every value has a working default so the service starts locally
    without any environment; invalid overrides fail at startup.
    """

    # ---------------------------------------------------------------------
    # Operational Boundaries
    # ---------------------------------------------------------------------

    max_pdf_size_mb: Annotated[
        int,
        Field(
            default=10,
            ge=1,
            le=100,
            description="Upload size limit enforced before signing",
        ),
    ]

    upload_dir: Annotated[
        Path,
        Field(
            default=Path("uploads"),
            description="Scratch directory for transient input/output files",
        ),
    ]

    # ---------------------------------------------------------------------
    # Signature Stamp Appearance
    # ---------------------------------------------------------------------

    stamp_label: StampLine = "Signed by Mock Server"
    stamp_location: StampLine = "Location: Dublin, Ireland"

    stamp_timezone: Annotated[
        str,
        Field(
            default="UTC",
            description="IANA timezone used for the stamp timestamp line",
        ),
    ]

    stamp_font: Annotated[
        str,
        Field(
            default="Helvetica-Bold",
            description="One of the standard 14 PDF fonts",
        ),
    ]

    stamp_font_size: Annotated[float, Field(default=13, gt=0, le=72)]
    stamp_margin: Annotated[float, Field(default=18, ge=0)]

    stamp_color: Tuple[ColorComponent, ColorComponent, ColorComponent] = (
        0.12,
        0.55,
        0.11,
    )

    stamp_opacity: Annotated[float, Field(default=0.98, ge=0.0, le=1.0)]

    # ---------------------------------------------------------------------
    # Transport / Runtime
    # ---------------------------------------------------------------------

    cors_allow_origins: List[str] = ["*"]

    log_level: Annotated[
        str,
        Field(
            default="INFO",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="SIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("stamp_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value.upper() == "UTC":
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"unknown IANA timezone: {value!r}") from exc
        return value

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process-wide settings singleton used when no explicit Settings
    instance is handed to the application factory.
    """
    return Settings()
