from .notifications import (
    LoggingNotifier,
    MemoryNotifier,
    NotificationSink,
    Severity,
)
from .handles import (
    InMemoryHandleRegistry,
    PreviewHandleProvider,
    UnknownHandleError,
)
from .history import HistoryEntry, HistorySink, InMemoryHistoryStore

__all__ = [
    "Severity",
    "NotificationSink",
    "LoggingNotifier",
    "MemoryNotifier",
    "PreviewHandleProvider",
    "InMemoryHandleRegistry",
    "UnknownHandleError",
    "HistorySink",
    "HistoryEntry",
    "InMemoryHistoryStore",
]
