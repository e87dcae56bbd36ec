"""Registry of discussion topics grouped by project."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
import re
import sqlite3
from typing import Any, List
from uuid import uuid4

from .database import Database
from .progress import InvalidInput

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"


@dataclass(slots=True)
class Topic:
    id: str
    title: str
    topic_key: str
    project_key: str | None
    section: str | None
    description: str | None
    status: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Topic":
        return cls(**{key: row[key] for key in row.keys()})


class TopicStore:
    """SQLite-backed topic registry; only active topics are listed."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def create_topic(
        self,
        *,
        title: str,
        topic_key: str,
        project_key: str | None = None,
        section: str | None = None,
        description: str | None = None,
        status: str = ACTIVE_STATUS,
    ) -> Topic:
        title_clean = (title or "").strip()
        key_clean = self._slug(topic_key)
        if not title_clean or not key_clean:
            raise InvalidInput("title and topic_key are required")
        now = datetime.now(timezone.utc).isoformat()
        topic = Topic(
            id=uuid4().hex,
            title=title_clean,
            topic_key=key_clean,
            project_key=self._normalize(project_key),
            section=self._normalize(section),
            description=self._normalize(description),
            status=self._normalize(status) or ACTIVE_STATUS,
            created_at=now,
            updated_at=now,
        )
        record = topic.to_dict()
        with self._db.transaction() as conn:
            conn.execute(
                f"INSERT INTO topics ({', '.join(record)}) VALUES ({', '.join('?' for _ in record)})",
                tuple(record.values()),
            )
        logger.info("topic.created id=%s key=%s project=%s", topic.id, topic.topic_key, topic.project_key)
        return topic

    def list_topics(self, *, project_key: str | None = None, limit: int = 50) -> List[Topic]:
        params: list[Any] = [ACTIVE_STATUS]
        project_clause = ""
        if project_key:
            project_clause = "AND project_key = ?"
            params.append(project_key.strip())
        with self._db.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM topics
                WHERE status = ? {project_clause}
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (*params, limit),
            ).fetchall()
        return [Topic.from_row(row) for row in rows]

    @staticmethod
    def _slug(value: str | None) -> str:
        base = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower())
        return base.strip("-")

    @staticmethod
    def _normalize(value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


__all__ = ["ACTIVE_STATUS", "Topic", "TopicStore"]
