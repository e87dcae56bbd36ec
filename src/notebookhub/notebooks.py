"""Notebook and document persistence."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
import sqlite3
from typing import TYPE_CHECKING, Any, List
from uuid import uuid4

from .database import Database
from .progress import InvalidInput, NotebookProgress, compute_progress, validate_override

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from .observability import MetricsRecorder

logger = logging.getLogger(__name__)

DEFAULT_ICON = "BookOpen"
DEFAULT_CATEGORY = "General"

_NOTEBOOK_COLUMNS = "n.id, n.name, n.description, n.icon, n.category, n.progress, n.status, n.created_at, n.updated_at"


class NotebookNotFound(LookupError):
    """Raised when a write targets a notebook that does not exist."""


@dataclass(slots=True)
class Notebook:
    """A categorized collection of documents with a derived completion indicator."""

    id: str
    name: str
    description: str | None
    icon: str
    category: str
    progress: int
    status: str
    created_at: str
    updated_at: str
    docs_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Document:
    """A titled unit of free text owned by one notebook."""

    id: str
    notebook_id: str
    title: str
    content: str | None
    order_index: int
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class NotebookStats:
    total_notebooks: int
    total_docs: int
    avg_progress: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalNotebooks": self.total_notebooks,
            "totalDocs": self.total_docs,
            "avgProgress": self.avg_progress,
        }


class NotebookStore:
    """SQLite-backed repository for notebooks and their documents.

    Adding or removing a document recomputes the owning notebook's progress and
    status in the same transaction, using the post-mutation document count.
    """

    def __init__(self, database: Database, *, metrics: "MetricsRecorder" | None = None) -> None:
        self._db = database
        self._metrics = metrics

    # Notebooks ----------------------------------------------------------------

    def list_notebooks(self) -> List[Notebook]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT {_NOTEBOOK_COLUMNS}, COUNT(d.id) AS docs_count
                FROM notebooks n
                LEFT JOIN documents d ON d.notebook_id = n.id
                GROUP BY n.id
                ORDER BY n.category, n.name
                """
            ).fetchall()
        return [self._notebook_from_row(row) for row in rows]

    def get_notebook(self, notebook_id: str) -> Notebook | None:
        with self._db.transaction() as conn:
            return self._fetch_notebook(conn, notebook_id)

    def count_notebooks(self) -> int:
        with self._db.transaction() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM notebooks").fetchone()[0])

    def create_notebook(
        self,
        name: str,
        *,
        description: str | None = None,
        icon: str | None = None,
        category: str | None = None,
    ) -> Notebook:
        name_clean = (name or "").strip()
        if not name_clean:
            raise InvalidInput("name is required")
        now = self._now()
        notebook = Notebook(
            id=uuid4().hex,
            name=name_clean,
            description=self._normalize(description),
            icon=self._normalize(icon) or DEFAULT_ICON,
            category=self._normalize(category) or DEFAULT_CATEGORY,
            progress=0,
            status=compute_progress(0).status.value,
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO notebooks (id, name, description, icon, category, progress, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    notebook.id,
                    notebook.name,
                    notebook.description,
                    notebook.icon,
                    notebook.category,
                    notebook.progress,
                    notebook.status,
                    notebook.created_at,
                    notebook.updated_at,
                ),
            )
        logger.info("notebook.created id=%s name=%s category=%s", notebook.id, notebook.name, notebook.category)
        self._increment("notebooks.created", category=notebook.category)
        return notebook

    def update_notebook(
        self,
        notebook_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        icon: str | None = None,
        category: str | None = None,
        progress: int | None = None,
        status: str | None = None,
    ) -> Notebook | None:
        """Apply a partial update; blank or missing fields keep their stored value.

        ``progress`` and ``status`` are an explicit override of the derived
        values and stay in place until the next document is added or removed.
        """

        progress, status = validate_override(progress, status)
        updates = {
            "name": self._normalize(name),
            "description": self._normalize(description),
            "icon": self._normalize(icon),
            "category": self._normalize(category),
            "progress": progress,
            "status": status,
        }
        changes = {key: value for key, value in updates.items() if value is not None}
        with self._db.transaction() as conn:
            if self._fetch_notebook(conn, notebook_id) is None:
                return None
            assignments = ", ".join(f"{column} = ?" for column in changes)
            if assignments:
                assignments += ", "
            conn.execute(
                f"UPDATE notebooks SET {assignments}updated_at = ? WHERE id = ?",
                (*changes.values(), self._now(), notebook_id),
            )
            updated = self._fetch_notebook(conn, notebook_id)
        logger.info("notebook.updated id=%s fields=%s", notebook_id, sorted(changes))
        return updated

    def delete_notebook(self, notebook_id: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM notebooks WHERE id = ?", (notebook_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("notebook.deleted id=%s", notebook_id)
            self._increment("notebooks.deleted")
            if self._metrics:
                self._metrics.remove_gauge("notebooks.progress", notebook_id=notebook_id)
        return deleted

    def refresh_progress(self, notebook_id: str) -> NotebookProgress:
        """Recompute and persist progress for a notebook from its current documents."""

        with self._db.transaction() as conn:
            if self._fetch_notebook(conn, notebook_id) is None:
                raise NotebookNotFound(f"Notebook {notebook_id} not found")
            return self._refresh_progress(conn, notebook_id)

    # Documents ----------------------------------------------------------------

    def list_documents(self, notebook_id: str) -> List[Document]:
        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM documents
                WHERE notebook_id = ?
                ORDER BY order_index, created_at
                """,
                (notebook_id,),
            ).fetchall()
        return [self._document_from_row(row) for row in rows]

    def get_document(self, document_id: str) -> Document | None:
        with self._db.transaction() as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return self._document_from_row(row) if row else None

    def create_document(
        self,
        notebook_id: str,
        title: str,
        *,
        content: str | None = None,
        order_index: int | None = None,
    ) -> Document:
        title_clean = (title or "").strip()
        if not title_clean:
            raise InvalidInput("title is required")
        now = self._now()
        document = Document(
            id=uuid4().hex,
            notebook_id=notebook_id,
            title=title_clean,
            content=content or None,
            order_index=order_index if order_index is not None else 0,
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction() as conn:
            if self._fetch_notebook(conn, notebook_id) is None:
                raise NotebookNotFound(f"Notebook {notebook_id} not found")
            conn.execute(
                """
                INSERT INTO documents (id, notebook_id, title, content, order_index, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.notebook_id,
                    document.title,
                    document.content,
                    document.order_index,
                    document.created_at,
                    document.updated_at,
                ),
            )
            result = self._refresh_progress(conn, notebook_id)
        logger.info(
            "notebook.document.created notebook=%s doc_id=%s progress=%s status=%s",
            notebook_id,
            document.id,
            result.progress,
            result.status.value,
        )
        self._increment("documents.created", notebook_id=notebook_id)
        return document

    def update_document(
        self,
        document_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        order_index: int | None = None,
    ) -> Document | None:
        updates = {
            "title": self._normalize(title),
            "content": content or None,
            "order_index": order_index,
        }
        changes = {key: value for key, value in updates.items() if value is not None}
        with self._db.transaction() as conn:
            if conn.execute("SELECT 1 FROM documents WHERE id = ?", (document_id,)).fetchone() is None:
                return None
            assignments = "".join(f"{column} = ?, " for column in changes)
            conn.execute(
                f"UPDATE documents SET {assignments}updated_at = ? WHERE id = ?",
                (*changes.values(), self._now(), document_id),
            )
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        logger.info("notebook.document.updated doc_id=%s fields=%s", document_id, sorted(changes))
        return self._document_from_row(row)

    def delete_document(self, document_id: str) -> bool:
        with self._db.transaction() as conn:
            row = conn.execute("SELECT notebook_id FROM documents WHERE id = ?", (document_id,)).fetchone()
            if row is None:
                return False
            notebook_id = row["notebook_id"]
            conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            result = self._refresh_progress(conn, notebook_id)
        logger.info(
            "notebook.document.deleted notebook=%s doc_id=%s progress=%s status=%s",
            notebook_id,
            document_id,
            result.progress,
            result.status.value,
        )
        self._increment("documents.deleted", notebook_id=notebook_id)
        return True

    # Stats --------------------------------------------------------------------

    def get_stats(self) -> NotebookStats:
        with self._db.transaction() as conn:
            row = conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM notebooks) AS total_notebooks,
                    (SELECT COUNT(*) FROM documents) AS total_docs,
                    (SELECT CAST(ROUND(COALESCE(AVG(progress), 0)) AS INTEGER) FROM notebooks) AS avg_progress
                """
            ).fetchone()
        return NotebookStats(
            total_notebooks=int(row["total_notebooks"]),
            total_docs=int(row["total_docs"]),
            avg_progress=int(row["avg_progress"]),
        )

    # Internals ----------------------------------------------------------------

    def _refresh_progress(self, conn: sqlite3.Connection, notebook_id: str) -> NotebookProgress:
        count = conn.execute(
            "SELECT COUNT(*) FROM documents WHERE notebook_id = ?",
            (notebook_id,),
        ).fetchone()[0]
        result = compute_progress(int(count))
        conn.execute(
            "UPDATE notebooks SET progress = ?, status = ?, updated_at = ? WHERE id = ?",
            (result.progress, result.status.value, self._now(), notebook_id),
        )
        if self._metrics:
            self._metrics.set_gauge("notebooks.progress", result.progress, notebook_id=notebook_id)
        return result

    def _fetch_notebook(self, conn: sqlite3.Connection, notebook_id: str) -> Notebook | None:
        row = conn.execute(
            f"""
            SELECT {_NOTEBOOK_COLUMNS}, COUNT(d.id) AS docs_count
            FROM notebooks n
            LEFT JOIN documents d ON d.notebook_id = n.id
            WHERE n.id = ?
            GROUP BY n.id
            """,
            (notebook_id,),
        ).fetchone()
        return self._notebook_from_row(row) if row else None

    def _increment(self, metric: str, **tags: Any) -> None:
        if self._metrics:
            self._metrics.increment(metric, **tags)

    @staticmethod
    def _notebook_from_row(row: sqlite3.Row) -> Notebook:
        return Notebook(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            icon=row["icon"],
            category=row["category"],
            progress=int(row["progress"]),
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            docs_count=int(row["docs_count"] or 0),
        )

    @staticmethod
    def _document_from_row(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            notebook_id=row["notebook_id"],
            title=row["title"],
            content=row["content"],
            order_index=int(row["order_index"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _normalize(value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()


__all__ = ["Document", "Notebook", "NotebookNotFound", "NotebookStats", "NotebookStore"]
