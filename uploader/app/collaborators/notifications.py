from __future__ import annotations

import logging
from enum import Enum
from typing import List, Protocol, Tuple


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationSink(Protocol):
    """
    Fire-and-forget user notification (toast) delivery.

    Implementations must not raise into the wizard.
    """

    def notify(self, severity: Severity, message: str) -> None:
        ...


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """
    Routes notifications to a logger. Used by headless runs.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("uploader.notifications")

    def notify(self, severity: Severity, message: str) -> None:
        self._logger.log(
            _LOG_LEVELS[severity],
            message,
            extra={"severity": severity.value},
        )


class MemoryNotifier:
    """
    Collects notifications in order. Suitable for tests and for a
    presentation layer that drains messages on its own schedule.
    """

    def __init__(self) -> None:
        self.messages: List[Tuple[Severity, str]] = []

    def notify(self, severity: Severity, message: str) -> None:
        self.messages.append((severity, message))

    def drain(self) -> List[Tuple[Severity, str]]:
        drained, self.messages = self.messages, []
        return drained
