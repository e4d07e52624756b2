from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Protocol

from pydantic import BaseModel, ConfigDict, Field

from uploader.app.collaborators.handles import PreviewHandleProvider

logger = logging.getLogger("uploader.history")


class HistorySink(Protocol):
    """
    Receives completed signing results. The sink takes ownership of
    ``handle`` and is responsible for releasing it.
    """

    def record(self, name: str, timestamp: datetime, handle: str) -> None:
        ...


class HistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    signed_at: datetime
    handle: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class InMemoryHistoryStore:
    """
    Ordered list of signed documents with add/remove/clear.
    """

    def __init__(self, handles: PreviewHandleProvider) -> None:
        self._handles = handles
        self._entries: List[HistoryEntry] = []

    def record(self, name: str, timestamp: datetime, handle: str) -> None:
        entry = HistoryEntry(name=name, signed_at=timestamp, handle=handle)
        self._entries.append(entry)
        logger.debug("history_recorded", extra={"entry_id": entry.id})

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def remove(self, entry_id: str) -> bool:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                del self._entries[index]
                self._handles.release_handle(entry.handle)
                return True
        return False

    def clear(self) -> None:
        entries, self._entries = self._entries, []
        for entry in entries:
            self._handles.release_handle(entry.handle)

    def __len__(self) -> int:
        return len(self._entries)
