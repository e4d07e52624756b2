"""
Preview handles: opaque, revocable references to byte content.

Every ``create_handle`` must be matched by exactly one
``release_handle``. The in-memory registry enforces the pairing instead
of assuming it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Protocol

logger = logging.getLogger("uploader.handles")


class UnknownHandleError(KeyError):
    """Raised when releasing a handle that is not live."""


class PreviewHandleProvider(Protocol):
    def create_handle(self, content: bytes) -> str:
        ...

    def release_handle(self, handle: str) -> None:
        ...


class InMemoryHandleRegistry:
    """
    Hands out ``blob:`` style URLs backed by an in-process mapping.
    """

    def __init__(self, scheme: str = "blob:pdf-signer") -> None:
        self._scheme = scheme
        self._live: Dict[str, bytes] = {}
        self.created = 0
        self.released = 0

    def create_handle(self, content: bytes) -> str:
        handle = f"{self._scheme}/{uuid.uuid4()}"
        self._live[handle] = content
        self.created += 1
        return handle

    def release_handle(self, handle: str) -> None:
        try:
            del self._live[handle]
        except KeyError:
            raise UnknownHandleError(handle) from None
        self.released += 1

    def resolve(self, handle: str) -> bytes:
        try:
            return self._live[handle]
        except KeyError:
            raise UnknownHandleError(handle) from None

    @property
    def live_handles(self) -> frozenset[str]:
        return frozenset(self._live)
