"""Substring search across topics, conversations, notebooks and documents."""

from __future__ import annotations

from contextlib import nullcontext
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List

from .database import Database, like_pattern
from .progress import InvalidInput
from .topics import ACTIVE_STATUS

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from .observability import MetricsRecorder

logger = logging.getLogger(__name__)

_EXCERPT_RADIUS = 80


@dataclass(slots=True)
class SearchResponse:
    query: str
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {"results": self.results, "query": self.query, "total": self.total}


class SearchService:
    """Case-insensitive matching of a free-text query against every content table.

    Each result kind is limited independently and returned in a fixed order:
    topics, conversations, notebooks, then documents.
    """

    def __init__(self, database: Database, *, metrics: "MetricsRecorder" | None = None) -> None:
        self._db = database
        self._metrics = metrics

    def search(self, query: str, *, project_key: str | None = None, limit: int = 20) -> SearchResponse:
        term = (query or "").strip()
        if not term:
            raise InvalidInput("query is required")
        pattern = like_pattern(term)
        project_key = (project_key or "").strip() or None

        timer = self._metrics.track_timing("search.duration") if self._metrics else nullcontext()
        with timer:
            results: List[dict[str, Any]] = []
            results.extend(self._search_topics(pattern, project_key, limit))
            results.extend(self._search_conversations(pattern, project_key, limit))
            results.extend(self._search_notebooks(pattern, limit))
            results.extend(self._search_documents(pattern, term, limit))

        logger.info("search.completed query=%r project=%s total=%s", term, project_key, len(results))
        if self._metrics:
            self._metrics.increment("search.queries", project_key=project_key or "")
        return SearchResponse(query=term, results=results)

    def _search_topics(self, pattern: str, project_key: str | None, limit: int) -> list[dict[str, Any]]:
        params: list[Any] = [pattern, pattern, pattern, ACTIVE_STATUS]
        project_clause = ""
        if project_key:
            project_clause = "AND project_key = ?"
            params.append(project_key)
        rows = self._fetch(
            f"""
            SELECT id, title, topic_key, project_key, section, description
            FROM topics
            WHERE (title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' OR topic_key LIKE ? ESCAPE '\\')
              AND status = ? {project_clause}
            ORDER BY updated_at DESC
            LIMIT ?
            """,
            (*params, limit),
        )
        return [{**row, "result_type": "topic"} for row in rows]

    def _search_conversations(self, pattern: str, project_key: str | None, limit: int) -> list[dict[str, Any]]:
        params: list[Any] = [pattern, pattern]
        project_clause = ""
        if project_key:
            project_clause = "AND project_key = ?"
            params.append(project_key)
        rows = self._fetch(
            f"""
            SELECT id, title, topic_key, project_key, section, summary AS description, ai_provider
            FROM ai_conversations
            WHERE (title LIKE ? ESCAPE '\\' OR summary LIKE ? ESCAPE '\\') {project_clause}
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (*params, limit),
        )
        return [{**row, "result_type": "conversation"} for row in rows]

    def _search_notebooks(self, pattern: str, limit: int) -> list[dict[str, Any]]:
        rows = self._fetch(
            """
            SELECT id, name AS title, category AS project_key, description, progress, status
            FROM notebooks
            WHERE name LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\'
            ORDER BY updated_at DESC
            LIMIT ?
            """,
            (pattern, pattern, limit),
        )
        return [{**row, "result_type": "notebook"} for row in rows]

    def _search_documents(self, pattern: str, term: str, limit: int) -> list[dict[str, Any]]:
        rows = self._fetch(
            """
            SELECT d.id, d.title, d.notebook_id, n.name AS notebook_name, n.category AS project_key, d.content
            FROM documents d
            JOIN notebooks n ON n.id = d.notebook_id
            WHERE d.title LIKE ? ESCAPE '\\' OR d.content LIKE ? ESCAPE '\\'
            ORDER BY d.updated_at DESC
            LIMIT ?
            """,
            (pattern, pattern, limit),
        )
        results = []
        for row in rows:
            content = row.pop("content")
            row["description"] = build_excerpt(content, term)
            row["result_type"] = "document"
            results.append(row)
        return results

    def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        with self._db.transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]


def build_excerpt(text: str | None, term: str, *, radius: int = _EXCERPT_RADIUS) -> str | None:
    """Return the slice of ``text`` surrounding the first match of ``term``."""

    if not text:
        return None
    index = text.lower().find(term.lower())
    if index < 0:
        index = 0
    start = max(index - radius, 0)
    end = min(index + len(term) + radius, len(text))
    excerpt = " ".join(text[start:end].split())
    if start > 0:
        excerpt = f"…{excerpt}"
    if end < len(text):
        excerpt = f"{excerpt}…"
    return excerpt


__all__ = ["SearchResponse", "SearchService", "build_excerpt"]
