from __future__ import annotations

from pathlib import Path

import pytest

from notebookhub.database import Database
from notebookhub.notebooks import NotebookStore


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    return Database(tmp_path / "hub.sqlite")


@pytest.fixture()
def notebook_store(database: Database) -> NotebookStore:
    return NotebookStore(database)
