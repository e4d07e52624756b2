import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Annotated, Optional

import anyio
from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from signer.app.core.config import Settings
from signer.app.services.stamping import (
    EncryptedPdfError,
    build_signature_stamp,
    stamp_pdf_file,
)
from signer.app.services.uploads import (
    UploadTooLarge,
    allocate_signed_path,
    discard,
    stage_upload,
)

logger = logging.getLogger("signer.api")

router = APIRouter(tags=["Signing"])

PDF_MEDIA_TYPE = "application/pdf"

# Headroom for multipart boundaries and part headers on top of the file.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def size_limit_message(settings: Settings) -> str:
    return f"File size exceeds {settings.max_pdf_size_mb}MB limit."


def max_request_bytes(settings: Settings) -> int:
    return settings.max_pdf_size_bytes + MULTIPART_OVERHEAD_BYTES


# =============================================================================
# Response type
# =============================================================================

class TransientFileResponse(FileResponse):
    """
    File response that deletes its scratch files once sending finished,
    whether or not the send itself succeeded.
    """

    def __init__(self, path: Path, *, cleanup: tuple[Path, ...], **kwargs):
        super().__init__(path, **kwargs)
        self._cleanup = cleanup

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except Exception:
            logger.exception("signed_pdf_send_failed")
            raise
        finally:
            discard(*self._cleanup)


# =============================================================================
# Dependency providers
# =============================================================================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@dataclass(frozen=True)
class StagedUpload:
    path: Path
    original_name: str


async def receive_pdf_upload(
    settings: Annotated[Settings, Depends(get_settings)],
    pdf: Annotated[
        Optional[UploadFile],
        File(description="PDF document to stamp"),
    ] = None,
) -> StagedUpload:
    """
    Transport-boundary pre-filter.

    Oversized bodies never get here (see ``limits``). This rejects
    non-PDF declared media types, then stages the file to a unique
    scratch path with the exact file size limit.
    """
    max_bytes = settings.max_pdf_size_bytes
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=size_limit_message(settings),
    )

    if pdf is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded.",
        )

    try:
        if pdf.content_type != PDF_MEDIA_TYPE:
            logger.warning(
                "invalid_media_type",
                extra={"content_type": pdf.content_type},
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only PDF files are allowed.",
            )

        try:
            path = await stage_upload(
                pdf,
                upload_dir=settings.upload_dir,
                max_bytes=max_bytes,
            )
        except UploadTooLarge as exc:
            raise too_large from exc
    finally:
        await pdf.close()

    return StagedUpload(path=path, original_name=pdf.filename or "document.pdf")


# =============================================================================
# POST /sign
# =============================================================================

@router.post(
    "/sign",
    summary="Stamp every page of a PDF with a visible signature block",
    response_class=FileResponse,
    responses={
        200: {
            "content": {PDF_MEDIA_TYPE: {}},
            "description": "Signed PDF",
        },
        400: {"description": "No file, wrong type or malformed upload"},
        413: {"description": "Payload too large"},
        415: {"description": "PDF is encrypted"},
        500: {"description": "Signing failure"},
    },
)
async def sign_pdf(
    upload: Annotated[StagedUpload, Depends(receive_pdf_upload)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TransientFileResponse:
    """
    Stamp the uploaded PDF and stream the result back.

    Both scratch files are removed on every exit path.
    """
    input_path = upload.path

    if Path(upload.original_name).suffix.lower() != ".pdf":
        discard(input_path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF files are allowed.",
        )

    signed_path: Optional[Path] = None

    try:
        signed_path = allocate_signed_path(settings.upload_dir, upload.original_name)
        stamp = build_signature_stamp(settings)

        await anyio.to_thread.run_sync(
            partial(
                stamp_pdf_file,
                input_pdf=input_path,
                output_pdf=signed_path,
                stamp=stamp,
            )
        )

        logger.info(
            "pdf_signed",
            extra={"original_name": upload.original_name},
        )

        return TransientFileResponse(
            signed_path,
            cleanup=(input_path, signed_path),
            media_type=PDF_MEDIA_TYPE,
            filename=f"signed-{upload.original_name}",
        )

    except EncryptedPdfError as exc:
        discard(input_path, signed_path)
        logger.warning(
            "encrypted_pdf_rejected",
            extra={"original_name": upload.original_name},
        )
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=(
                "PDF is password protected. "
                "Please remove the password and try again."
            ),
        ) from exc

    except Exception as exc:
        discard(input_path, signed_path)
        logger.exception(
            "signing_pipeline_failure",
            extra={
                "original_name": upload.original_name,
                "error_type": type(exc).__name__,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Signing failed: {exc}",
        ) from exc
