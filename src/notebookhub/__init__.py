"""Notebook Hub application package."""

from __future__ import annotations

from .config import Settings
from .progress import InvalidInput, NotebookProgress, NotebookStatus, compute_progress

__all__ = [
    "Settings",
    "InvalidInput",
    "NotebookProgress",
    "NotebookStatus",
    "compute_progress",
    "create_app",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'notebookhub' has no attribute {name}")
