"""
Transient upload staging.

Each request owns two scratch files inside the configured upload
directory: the staged input and the signed output. Names are derived
from a per-request unique token so concurrent requests can never collide,
even when they upload files with the same original name.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path

import anyio
from fastapi import UploadFile

logger = logging.getLogger("signer.uploads")

CHUNK_SIZE = 64 * 1024

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.]")


class UploadTooLarge(ValueError):
    """Raised when a staged upload exceeds the configured byte limit."""


def sanitize_filename(name: str | None) -> str:
    """
    Replace every character outside ``[a-zA-Z0-9.]`` with ``_``.
    """
    if not name:
        return "document.pdf"
    return _UNSAFE_CHARS.sub("_", name)


def _unique_token() -> str:
    return f"{time.time_ns()}-{uuid.uuid4().hex[:12]}"


def allocate_input_path(upload_dir: Path) -> Path:
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir / f"upload-{_unique_token()}"


def allocate_signed_path(upload_dir: Path, original_name: str | None) -> Path:
    """
    Collision-free output location: ``signed-<token>-<sanitized name>``.
    """
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir / f"signed-{_unique_token()}-{sanitize_filename(original_name)}"


async def stage_upload(
    upload: UploadFile,
    *,
    upload_dir: Path,
    max_bytes: int,
) -> Path:
    """
    Copy an uploaded file to a unique scratch path with a bounded read.

    Raises:
        UploadTooLarge:
            If the payload exceeds ``max_bytes``. The partial file is
            removed before raising.
    """
    target = allocate_input_path(upload_dir)
    written = 0

    try:
        async with await anyio.open_file(target, "wb") as fh:
            while chunk := await upload.read(CHUNK_SIZE):
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLarge(
                        f"upload exceeds {max_bytes} bytes"
                    )
                await fh.write(chunk)
    except BaseException:
        discard(target)
        raise

    logger.debug(
        "upload_staged",
        extra={"path": str(target), "size_bytes": written},
    )
    return target


def discard(*paths: Path | None) -> None:
    """
    Remove scratch files, ignoring files that are already gone.

    Cleanup must never mask the outcome of the request, so removal
    failures are logged rather than raised.
    """
    for path in paths:
        if path is None:
            continue
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "scratch_file_cleanup_failed",
                extra={"path": str(path)},
            )
