"""
Visible signature stamping.

Every page of the input document receives a three-line text block
(label, timestamp with timezone, location) anchored to the bottom-right
corner. The widest line determines the shared left edge so the block
reads flush-right.

Trust boundary:
- This is a visible transparency note, NOT a cryptographic signature.
- Page content is never interpreted; the stamp is appended as an
  isolated content stream on top of the existing page content.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Annotated, Optional, Tuple
from zoneinfo import ZoneInfo

import pikepdf
from pikepdf import Dictionary, Name, Operator, String
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from reportlab.pdfbase.pdfmetrics import stringWidth

from signer.app.core.config import (
    STAMP_TEXT_ENCODING,
    Settings,
    ensure_stamp_encodable,
)

logger = logging.getLogger("signer.stamping")

# Baselines for the three lines, top to bottom, in points above the
# bottom edge of the media box.
LINE_BASELINES: Tuple[float, float, float] = (44.0, 30.0, 16.0)

TIMESTAMP_FORMAT = "%d/%m/%Y, %H:%M:%S"

StampText = Annotated[str, AfterValidator(ensure_stamp_encodable)]


class StampingError(RuntimeError):
    """Raised when a document cannot be loaded or stamped."""


class EncryptedPdfError(StampingError):
    """Raised when the input document is encrypted or password protected."""


# ------------------------------------------------------------------
# Stamp model
# ------------------------------------------------------------------

class SignatureStamp(BaseModel):
    """
    Appearance and text of the per-page signature block.
    """

    label: StampText
    timestamp: StampText
    location: StampText

    font: str = "Helvetica-Bold"
    font_size: float = Field(13, gt=0)
    margin: float = Field(18, ge=0)
    color: Tuple[float, float, float] = (0.12, 0.55, 0.11)
    opacity: float = Field(0.98, ge=0.0, le=1.0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def lines(self) -> Tuple[str, str, str]:
        return (self.label, self.timestamp, self.location)

    def block_width(self) -> float:
        """Width of the widest line at the configured font and size."""
        return max(
            stringWidth(line, self.font, self.font_size)
            for line in self.lines
        )


def format_stamp_timestamp(now: datetime, tz_name: str) -> str:
    """
    Render the timestamp line, e.g. ``16/10/2026, 23:16:00 (UTC)``.
    """
    tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    local = now.astimezone(tz)
    return f"{local.strftime(TIMESTAMP_FORMAT)} ({tz_name})"


def build_signature_stamp(
    settings: Settings,
    *,
    now: Optional[datetime] = None,
) -> SignatureStamp:
    """
    Build the stamp for a single signing request.

    The timestamp is fixed once per request so every page of a document
    carries the identical block.
    """
    moment = now or datetime.now(timezone.utc)

    return SignatureStamp(
        label=settings.stamp_label,
        timestamp=format_stamp_timestamp(moment, settings.stamp_timezone),
        location=settings.stamp_location,
        font=settings.stamp_font,
        font_size=settings.stamp_font_size,
        margin=settings.stamp_margin,
        color=settings.stamp_color,
        opacity=settings.stamp_opacity,
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _font_resource(pdf: pikepdf.Pdf, font: str) -> pikepdf.Object:
    return pdf.make_indirect(
        Dictionary(
            Type=Name.Font,
            Subtype=Name.Type1,
            BaseFont=Name("/" + font),
            Encoding=Name.WinAnsiEncoding,
        )
    )


def _opacity_resource(pdf: pikepdf.Pdf, opacity: float) -> pikepdf.Object:
    return pdf.make_indirect(
        Dictionary(
            Type=Name.ExtGState,
            ca=opacity,
            CA=opacity,
        )
    )


def _stamp_content(
    stamp: SignatureStamp,
    *,
    font_name: Name,
    gs_name: Name,
    x: float,
    y0: float,
) -> bytes:
    red, green, blue = stamp.color
    instructions = [
        ([], Operator("q")),
        ([gs_name], Operator("gs")),
        ([red, green, blue], Operator("rg")),
    ]

    for text, baseline in zip(stamp.lines, LINE_BASELINES):
        instructions.extend(
            [
                ([], Operator("BT")),
                ([font_name, stamp.font_size], Operator("Tf")),
                ([round(x, 3), round(y0 + baseline, 3)], Operator("Td")),
                ([String(text.encode(STAMP_TEXT_ENCODING))], Operator("Tj")),
                ([], Operator("ET")),
            ]
        )

    instructions.append(([], Operator("Q")))
    return pikepdf.unparse_content_stream(instructions)


def compute_block_origin(
    mediabox: Tuple[float, float, float, float],
    stamp: SignatureStamp,
) -> Tuple[float, float]:
    """
    Return ``(x, y0)``: the shared left edge of the block and the bottom
    of the media box the baselines are measured from.
    """
    x0, y0, x1, _ = mediabox
    width = x1 - x0
    return x0 + width - stamp.margin - stamp.block_width(), y0


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

def stamp_pdf(pdf_bytes: bytes, stamp: SignatureStamp) -> bytes:
    """
    Apply the signature block to every page and return the new document.

    Raises:
        EncryptedPdfError:
            If the document is encrypted, with or without a user password.
        StampingError:
            If the document cannot be parsed.
    """
    try:
        pdf = pikepdf.open(BytesIO(pdf_bytes))
    except pikepdf.PasswordError as exc:
        raise EncryptedPdfError("PDF is password protected") from exc
    except pikepdf.PdfError as exc:
        raise StampingError(f"Unable to load PDF: {exc}") from exc

    with pdf:
        if pdf.is_encrypted:
            raise EncryptedPdfError("PDF is password protected")

        font = _font_resource(pdf, stamp.font)
        gstate = _opacity_resource(pdf, stamp.opacity)

        for page in pdf.pages:
            box = tuple(float(v) for v in page.mediabox)
            x, y0 = compute_block_origin(box, stamp)

            font_name = page.add_resource(font, Name.Font, prefix="SigF")
            gs_name = page.add_resource(gstate, Name.ExtGState, prefix="SigGS")

            # Isolate existing content so its graphics state cannot leak
            # into the stamp.
            page.contents_add(pikepdf.Stream(pdf, b"q\n"), prepend=True)
            page.contents_add(pikepdf.Stream(pdf, b"\nQ\n"))
            page.contents_add(
                pikepdf.Stream(
                    pdf,
                    _stamp_content(
                        stamp,
                        font_name=font_name,
                        gs_name=gs_name,
                        x=x,
                        y0=y0,
                    ),
                )
            )

        buffer = BytesIO()
        pdf.save(buffer)

        logger.debug(
            "pdf_stamped",
            extra={"page_count": len(pdf.pages)},
        )

    return buffer.getvalue()


def stamp_pdf_file(
    *,
    input_pdf: Path,
    output_pdf: Path,
    stamp: SignatureStamp,
) -> Path:
    """
    File-to-file variant of :func:`stamp_pdf`.

    The output file is only created once stamping succeeded.
    """
    signed_bytes = stamp_pdf(input_pdf.read_bytes(), stamp)
    output_pdf.write_bytes(signed_bytes)
    return output_pdf
