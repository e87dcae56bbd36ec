"""Derive notebook completion from its document count."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

PROGRESS_PER_DOCUMENT: Final[int] = 10
COMPLETION_THRESHOLD: Final[int] = 10
MAX_PROGRESS: Final[int] = 100


class InvalidInput(ValueError):
    """Raised when a progress input or override is out of range."""


class NotebookStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class NotebookProgress:
    """Progress percentage and status label for a notebook."""

    progress: int
    status: NotebookStatus

    def as_tuple(self) -> tuple[int, str]:
        return self.progress, self.status.value


def compute_progress(document_count: int) -> NotebookProgress:
    """Return the progress record for a notebook holding ``document_count`` documents.

    Each document is worth ``PROGRESS_PER_DOCUMENT`` percent, capped at 100.
    A notebook with no documents is not started; one at or past
    ``COMPLETION_THRESHOLD`` documents is completed.
    """

    if isinstance(document_count, bool) or not isinstance(document_count, int):
        raise InvalidInput(f"document count must be an integer, got {document_count!r}")
    if document_count < 0:
        raise InvalidInput(f"document count must be non-negative, got {document_count}")

    progress = min(MAX_PROGRESS, document_count * PROGRESS_PER_DOCUMENT)
    if document_count == 0:
        status = NotebookStatus.NOT_STARTED
    elif document_count >= COMPLETION_THRESHOLD:
        status = NotebookStatus.COMPLETED
    else:
        status = NotebookStatus.IN_PROGRESS
    return NotebookProgress(progress=progress, status=status)


def validate_override(progress: int | None, status: str | None) -> tuple[int | None, str | None]:
    """Check an explicit progress/status override before it is persisted."""

    if progress is not None:
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise InvalidInput("progress must be an integer")
        if not 0 <= progress <= MAX_PROGRESS:
            raise InvalidInput(f"progress must be between 0 and {MAX_PROGRESS}")
    if status is not None:
        try:
            status = NotebookStatus(status).value
        except ValueError as exc:
            allowed = ", ".join(item.value for item in NotebookStatus)
            raise InvalidInput(f"status must be one of: {allowed}") from exc
    return progress, status


__all__ = [
    "COMPLETION_THRESHOLD",
    "InvalidInput",
    "NotebookProgress",
    "NotebookStatus",
    "PROGRESS_PER_DOCUMENT",
    "compute_progress",
    "validate_override",
]
