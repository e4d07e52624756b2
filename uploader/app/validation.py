"""
Client-side PDF admission checks.

Order matters: the declared media type and declared size are checked
synchronously before any byte is read, so obviously invalid selections
never pay for the structural parse.

Error handling policy:
    Only pikepdf.PdfError (and OSError while reading the selection) is
    translated into a rejection. Anything else is a bug in this module
    and surfaces to the caller.
"""

from __future__ import annotations

import logging
import re
from io import BytesIO

import anyio
import pikepdf

from uploader.app.config import UploaderSettings
from uploader.app.schemas.files import SelectedFile
from uploader.app.schemas.outcomes import (
    Accepted,
    Rejected,
    RejectionReason,
    ValidationOutcome,
)

logger = logging.getLogger("uploader.validation")

# pikepdf prefixes messages with a description of the input source, which
# for in-memory input is an object repr.
_SOURCE_PREFIX = re.compile(r"^(?:\w+\s*)?<[^>]*>(?:\s*\([^)]*\))?:\s*")
_OBJECT_REPR = re.compile(r"<[^<>]* object at 0x[0-9a-fA-F]+>")


def parser_message(raw: str) -> str:
    message = _SOURCE_PREFIX.sub("", raw, count=1)
    return _OBJECT_REPR.sub("input", message).strip()


def _parse_structure(content: bytes) -> ValidationOutcome:
    """
    Parse header, cross-reference table and trailer. Pages are never
    rendered.
    """
    try:
        with pikepdf.open(BytesIO(content)) as pdf:
            if pdf.is_encrypted:
                return Rejected(reason=RejectionReason.ENCRYPTED)
    except pikepdf.PasswordError:
        return Rejected(reason=RejectionReason.ENCRYPTED)
    except pikepdf.PdfError as exc:
        return Rejected(
            reason=RejectionReason.UNREADABLE,
            detail=parser_message(str(exc)),
        )

    return Accepted()


class PdfValidator:
    """
    Decides whether a selection may enter the preview step.

    Stateless apart from its settings; safe to call repeatedly on the
    same selection.
    """

    def __init__(self, settings: UploaderSettings):
        self.settings = settings

    def prefilter(self, file: SelectedFile) -> ValidationOutcome:
        """
        Cheap checks on declared metadata only.
        """
        if file.media_type != self.settings.accepted_media_type:
            return Rejected(reason=RejectionReason.NOT_A_PDF)

        if file.size > self.settings.max_file_size_bytes:
            return Rejected(
                reason=RejectionReason.TOO_LARGE,
                detail=f"{self.settings.max_file_size_mb:g} MB",
            )

        return Accepted()

    async def validate(self, file: SelectedFile) -> ValidationOutcome:
        outcome = self.prefilter(file)

        if isinstance(outcome, Accepted):
            try:
                content = await file.read()
            except OSError as exc:
                outcome = Rejected(
                    reason=RejectionReason.UNREADABLE,
                    detail=str(exc),
                )
            else:
                outcome = await anyio.to_thread.run_sync(
                    _parse_structure,
                    content,
                )

        if isinstance(outcome, Rejected):
            logger.info(
                "file_rejected",
                extra={
                    "file_name": file.name,
                    "reason": outcome.reason.value,
                },
            )

        return outcome
