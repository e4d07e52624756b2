"""
Client-side configuration for the upload wizard.

The validator and signing client receive an explicit settings instance
at construction; nothing reads module-level constants, so tests can
override any limit or endpoint.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PDF_MEDIA_TYPE = "application/pdf"


class UploaderSettings(BaseSettings):
    """
    Limits and endpoint used by the upload wizard.
    """

    max_file_size_bytes: Annotated[
        int,
        Field(
            default=10 * 1024 * 1024,
            gt=0,
            description="Largest declared file size accepted for signing",
        ),
    ]

    accepted_media_type: Annotated[
        str,
        Field(
            default=PDF_MEDIA_TYPE,
            description="The only declared media type admitted",
        ),
    ]

    sign_endpoint: Annotated[
        AnyHttpUrl,
        Field(
            default="http://localhost:4000/sign",
            description="Signing service endpoint receiving the multipart POST",
        ),
    ]

    sign_timeout_seconds: Annotated[
        float,
        Field(
            default=60.0,
            gt=0,
            description="Overall cap for one signing attempt",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="UPLOADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def max_file_size_mb(self) -> float:
        return self.max_file_size_bytes / (1024 * 1024)


@lru_cache(maxsize=1)
def get_settings() -> UploaderSettings:
    return UploaderSettings()
