"""Auxiliary log of AI conversations linked to topics and projects."""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, List
from uuid import uuid4

from .database import Database
from .progress import InvalidInput

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from .observability import MetricsRecorder

logger = logging.getLogger(__name__)

_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(slots=True)
class ConversationRecord:
    """Summary of a single conversation held with an AI provider."""

    id: str
    ai_provider: str
    title: str
    summary: str | None
    topic_key: str | None
    project_key: str | None
    section: str | None
    message_count: int
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ConversationRecord":
        return cls(
            id=row["id"],
            ai_provider=row["ai_provider"],
            title=row["title"],
            summary=row["summary"],
            topic_key=row["topic_key"],
            project_key=row["project_key"],
            section=row["section"],
            message_count=int(row["message_count"] or 0),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class ConversationLogStore:
    """SQLite-backed persistence for conversation records."""

    def __init__(self, database: Database, *, metrics: "MetricsRecorder" | None = None) -> None:
        self._db = database
        self._metrics = metrics

    def log_conversation(
        self,
        *,
        ai_provider: str,
        title: str,
        summary: str | None = None,
        topic_key: str | None = None,
        project_key: str | None = None,
        section: str | None = None,
        message_count: int = 0,
        timestamp: datetime | None = None,
    ) -> ConversationRecord:
        provider = _clean_text(ai_provider)
        title_clean = _clean_text(title)
        if not provider or not title_clean:
            raise InvalidInput("ai_provider and title are required")
        if message_count < 0:
            raise InvalidInput("message_count must be non-negative")

        recorded_at = (timestamp or _utc_now()).isoformat()
        record = ConversationRecord(
            id=uuid4().hex,
            ai_provider=provider.lower(),
            title=title_clean,
            summary=_clean_text(summary),
            topic_key=_clean_text(topic_key),
            project_key=_clean_text(project_key),
            section=_clean_text(section),
            message_count=message_count,
            created_at=recorded_at,
            updated_at=recorded_at,
        )
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO ai_conversations (
                    id, ai_provider, title, summary, topic_key, project_key, section,
                    message_count, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.ai_provider,
                    record.title,
                    record.summary,
                    record.topic_key,
                    record.project_key,
                    record.section,
                    record.message_count,
                    record.created_at,
                    record.updated_at,
                ),
            )
        logger.debug(
            "conversation.log.appended provider=%s project=%s record_id=%s",
            record.ai_provider,
            record.project_key,
            record.id,
        )
        if self._metrics:
            self._metrics.increment(
                "conversations.logged",
                provider=record.ai_provider,
                project_key=record.project_key or "",
            )
        return record

    def list_conversations(
        self,
        *,
        provider: str | None = None,
        project_key: str | None = None,
        limit: int = 50,
    ) -> List[ConversationRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if provider:
            clauses.append("ai_provider = ?")
            params.append(provider.strip().lower())
        if project_key:
            clauses.append("project_key = ?")
            params.append(project_key.strip())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._db.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM ai_conversations
                {where}
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (*params, limit),
            ).fetchall()
        return [ConversationRecord.from_row(row) for row in rows]


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = _WHITESPACE_PATTERN.sub(" ", str(value)).strip()
    return text or None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["ConversationLogStore", "ConversationRecord"]
