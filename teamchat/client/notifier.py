from typing import List, Protocol, Tuple
import logging

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Non-blocking toasts shown to the user."""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Sends toasts to the log; used when no UI is attached."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


class RecordingNotifier:
    """Keeps every toast as a ("success" | "error", message) pair."""

    def __init__(self):
        self.toasts: List[Tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.toasts.append(("success", message))

    def error(self, message: str) -> None:
        self.toasts.append(("error", message))

    @property
    def errors(self) -> List[str]:
        return [message for kind, message in self.toasts if kind == "error"]
