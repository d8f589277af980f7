from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
import uuid


class ProgressLevel(Enum):
    info = "info"
    success = "success"
    error = "error"
    pending = "pending"
    warn = "warn"

    def __str__(self):
        return self.value


LOGGING_LEVELS = {
    ProgressLevel.info: logging.INFO,
    ProgressLevel.success: logging.INFO,
    ProgressLevel.pending: logging.INFO,
    ProgressLevel.warn: logging.WARNING,
    ProgressLevel.error: logging.ERROR,
}


@dataclass
class ProgressEvent:
    id: str
    level: ProgressLevel
    message: str
    details: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


class ProgressReporter(ABC):
    """
    Receives the human readable progress of a flow. A pending event can
    later be updated in place through the id returned by emit.
    """

    @abstractmethod
    def emit(
        self, level: ProgressLevel, message: str, details: str | None = None
    ) -> str:
        pass

    @abstractmethod
    def update(
        self,
        event_id: str,
        level: ProgressLevel | str,
        message: str,
        details: str | None = None,
    ) -> None:
        pass

    def info(self, message: str, details: str | None = None) -> str:
        return self.emit(ProgressLevel.info, message, details)

    def success(self, message: str, details: str | None = None) -> str:
        return self.emit(ProgressLevel.success, message, details)

    def error(self, message: str, details: str | None = None) -> str:
        return self.emit(ProgressLevel.error, message, details)

    def pending(self, message: str, details: str | None = None) -> str:
        return self.emit(ProgressLevel.pending, message, details)

    def warn(self, message: str, details: str | None = None) -> str:
        return self.emit(ProgressLevel.warn, message, details)


class LoggingProgressReporter(ProgressReporter):
    """Mirrors progress events into the logging module."""

    def emit(
        self, level: ProgressLevel, message: str, details: str | None = None
    ) -> str:
        event_id = uuid.uuid4().hex[:8]
        self._log(level, message, details)
        return event_id

    def update(
        self,
        event_id: str,
        level: ProgressLevel | str,
        message: str,
        details: str | None = None,
    ) -> None:
        self._log(ProgressLevel(level), message, details)

    @staticmethod
    def _log(level: ProgressLevel, message: str, details: str | None) -> None:
        if details is None:
            logging.log(LOGGING_LEVELS[level], f"[{level}] {message}")
        else:
            logging.log(LOGGING_LEVELS[level], f"[{level}] {message} - {details}")


class ProgressLog(LoggingProgressReporter):
    """In memory list of progress events, updated in place."""
    events: list[ProgressEvent]

    def __init__(self) -> None:
        self.events = []

    def emit(
        self, level: ProgressLevel, message: str, details: str | None = None
    ) -> str:
        event_id = super().emit(level, message, details)
        self.events.append(ProgressEvent(event_id, level, message, details))
        return event_id

    def update(
        self,
        event_id: str,
        level: ProgressLevel | str,
        message: str,
        details: str | None = None,
    ) -> None:
        super().update(event_id, level, message, details)
        for event in self.events:
            if event.id == event_id:
                event.level = ProgressLevel(level)
                event.message = message
                event.details = details
                event.timestamp = datetime.now()

    def clear(self) -> None:
        self.events.clear()

    def levels(self) -> list[ProgressLevel]:
        return [event.level for event in self.events]

    def messages(self) -> list[str]:
        return [event.message for event in self.events]
