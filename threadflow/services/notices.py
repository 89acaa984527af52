"""Transient user-facing notices shared by the views."""

from collections import deque
from collections.abc import Iterator
from enum import StrEnum

from pydantic import BaseModel

from threadflow.core.config import settings
from threadflow.core.errors import ErrorSeverity, classify_error_with_response


class NoticeLevel(StrEnum):
    """Whether a notice reports a success or a failure."""

    SUCCESS = "success"
    ERROR = "error"


class Notice(BaseModel):
    """A short message shown to the user once."""

    level: NoticeLevel
    message: str
    suggestion: str | None = None
    code: str | None = None
    severity: ErrorSeverity | None = None


class NoticeQueue:
    """Bounded FIFO of notices; the oldest entries fall off when it is full."""

    def __init__(self, maxlen: int | None = None) -> None:
        self._notices: deque[Notice] = deque(maxlen=maxlen or settings.notice_history)

    def success(self, message: str) -> Notice:
        notice = Notice(level=NoticeLevel.SUCCESS, message=message)
        self._notices.append(notice)
        return notice

    def error(self, exception: BaseException) -> Notice:
        """Queue the user-facing rendering of ``exception``."""
        response = classify_error_with_response(exception)
        notice = Notice(
            level=NoticeLevel.ERROR,
            message=response.message,
            suggestion=response.suggestion,
            code=response.code,
            severity=response.severity,
        )
        self._notices.append(notice)
        return notice

    def drain(self) -> list[Notice]:
        """Return every queued notice and clear the queue."""
        drained = list(self._notices)
        self._notices.clear()
        return drained

    def __iter__(self) -> Iterator[Notice]:
        return iter(self._notices)

    def __len__(self) -> int:
        return len(self._notices)
