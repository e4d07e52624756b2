"""
File representations handled by the upload wizard.

``SelectedFile`` is what the user picked: declared metadata plus a lazily
readable byte source. ``Document`` is what the wizard holds once the
selection passed validation.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Optional

import anyio
from pydantic import BaseModel, ConfigDict, Field


class SelectedFile:
    """
    A user selection: declared name, media type and size, with content
    read on demand.

    Content is read at most once and cached, so validating the same
    selection repeatedly never re-reads storage.
    """

    __slots__ = ("name", "media_type", "size", "_content", "_path")

    def __init__(
        self,
        *,
        name: str,
        media_type: str,
        size: int,
        content: Optional[bytes] = None,
        path: Optional[Path] = None,
    ):
        if content is None and path is None:
            raise ValueError("SelectedFile needs either content or a path")

        self.name = name
        self.media_type = media_type
        self.size = size
        self._content = content
        self._path = path

    @classmethod
    def from_bytes(
        cls,
        name: str,
        content: bytes,
        media_type: str,
        *,
        size: Optional[int] = None,
    ) -> "SelectedFile":
        return cls(
            name=name,
            media_type=media_type,
            size=len(content) if size is None else size,
            content=content,
        )

    @classmethod
    def from_path(
        cls,
        path: Path,
        *,
        media_type: Optional[str] = None,
    ) -> "SelectedFile":
        """
        Declared media type is guessed from the extension, as a browser
        would, unless given explicitly.
        """
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            media_type=media_type or guessed or "application/octet-stream",
            size=path.stat().st_size,
            path=path,
        )

    async def read(self) -> bytes:
        if self._content is None:
            self._content = await anyio.Path(self._path).read_bytes()
        return self._content

    def __repr__(self) -> str:
        return (
            f"SelectedFile(name={self.name!r}, media_type={self.media_type!r}, "
            f"size={self.size})"
        )


class Document(BaseModel):
    """
    A validated PDF held by the wizard.
    """

    name: str = Field(..., min_length=1)
    media_type: str
    size: int = Field(..., ge=0)
    content: bytes = Field(..., repr=False)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def size_mb(self) -> float:
        return self.size / 1024 / 1024

    @property
    def download_name(self) -> str:
        return f"signed-{self.name}"
