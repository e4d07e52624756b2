"""
HTTP client for the remote signing service.

One call to :meth:`SigningClient.sign` is exactly one POST. There is no
retry layer: whether to try again is the user's decision, made through
the wizard.
"""

from __future__ import annotations

import logging
from typing import Optional

import anyio
import httpx

from uploader.app.config import UploaderSettings
from uploader.app.schemas.files import Document
from uploader.app.schemas.outcomes import (
    FailureCause,
    Signed,
    SigningFailed,
    SigningResult,
)

logger = logging.getLogger("uploader.signing_client")

UPLOAD_FIELD = "pdf"


def _error_message(response: httpx.Response) -> Optional[str]:
    """
    Extract the ``error`` string from a structured failure body, if any.
    """
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None


class SigningClient:
    """
    Sends a Document to the signing endpoint and maps every outcome to a
    SigningResult.

    The underlying ``httpx.AsyncClient`` may be shared and injected; when
    omitted, the client owns one and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        settings: UploaderSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.endpoint = str(settings.sign_endpoint)
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.sign_timeout_seconds),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "SigningClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def sign(self, document: Document) -> SigningResult:
        files = {
            UPLOAD_FIELD: (document.name, document.content, document.media_type),
        }

        try:
            with anyio.fail_after(self.settings.sign_timeout_seconds):
                response = await self.client.post(
                    self.endpoint,
                    files=files,
                    timeout=self.settings.sign_timeout_seconds,
                )
                # Read the whole body under the same cap.
                content = await response.aread()
        except TimeoutError:
            logger.warning(
                "sign_request_timed_out",
                extra={"endpoint": self.endpoint},
            )
            return SigningFailed(
                cause=FailureCause.NETWORK_ERROR,
                detail=f"timed out after {self.settings.sign_timeout_seconds}s",
            )
        except httpx.RequestError as exc:
            # Transport failures, undecodable bodies and redirect loops alike.
            logger.warning(
                "sign_request_transport_error",
                extra={
                    "endpoint": self.endpoint,
                    "error_type": type(exc).__name__,
                },
            )
            return SigningFailed(
                cause=FailureCause.NETWORK_ERROR,
                detail=str(exc) or type(exc).__name__,
            )

        if response.is_success:
            return Signed(content=content)

        cause = (
            FailureCause.SERVER_REJECTED
            if response.is_client_error
            else FailureCause.SERVER_ERROR
        )

        logger.warning(
            "sign_request_failed",
            extra={
                "endpoint": self.endpoint,
                "status_code": response.status_code,
                "cause": cause.value,
            },
        )

        return SigningFailed(
            cause=cause,
            status_code=response.status_code,
            detail=_error_message(response),
        )
