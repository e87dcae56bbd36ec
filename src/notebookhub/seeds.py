"""Loading and applying the default notebook catalogue."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import List

import yaml

from .notebooks import DEFAULT_CATEGORY, DEFAULT_ICON, NotebookStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SeedNotebook:
    name: str
    description: str | None = None
    icon: str = DEFAULT_ICON
    category: str = DEFAULT_CATEGORY


class SeedLoadError(RuntimeError):
    """Raised when the seed file cannot be parsed."""


def load_seed_notebooks(path: str | Path) -> List[SeedNotebook]:
    """Load seed notebooks from a YAML file; return an empty list if it is missing."""

    seed_path = Path(path)
    if not seed_path.exists():
        logger.warning("seeds.file.missing path=%s", seed_path)
        return []

    try:
        data = yaml.safe_load(seed_path.read_text(encoding="utf-8")) or []
    except yaml.YAMLError as exc:
        raise SeedLoadError(f"Seed file {seed_path} is not valid YAML") from exc
    if isinstance(data, dict):
        data = data.get("notebooks") or []
    if not isinstance(data, list):
        raise SeedLoadError(f"Seed file {seed_path} must contain a list of notebooks")

    seeds: list[SeedNotebook] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        description = str(item.get("description") or "").strip() or None
        seeds.append(
            SeedNotebook(
                name=name,
                description=description,
                icon=str(item.get("icon") or DEFAULT_ICON).strip(),
                category=str(item.get("category") or DEFAULT_CATEGORY).strip(),
            )
        )
    return seeds


def seed_default_notebooks(store: NotebookStore, seeds: List[SeedNotebook]) -> int:
    """Insert ``seeds`` into an empty store. Returns how many notebooks were created."""

    if store.count_notebooks() > 0:
        logger.info("seeds.skipped reason=notebooks_exist")
        return 0
    for seed in seeds:
        store.create_notebook(
            seed.name,
            description=seed.description,
            icon=seed.icon,
            category=seed.category,
        )
    logger.info("seeds.applied count=%s", len(seeds))
    return len(seeds)


__all__ = ["SeedLoadError", "SeedNotebook", "load_seed_notebooks", "seed_default_notebooks"]
