"""CLI for creating the Notebook Hub database and seeding default notebooks."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from notebookhub.config import Settings
from notebookhub.database import Database
from notebookhub.notebooks import NotebookStore
from notebookhub.seeds import SeedLoadError, load_seed_notebooks, seed_default_notebooks


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create the Notebook Hub tables and seed default notebooks")
    parser.add_argument(
        "--database",
        dest="database_path",
        help="SQLite database file (defaults to DATABASE_PATH or DATA_DIR/notebooks.sqlite)",
    )
    parser.add_argument(
        "--seed-file",
        dest="seed_path",
        help="YAML file listing default notebooks (defaults to SEED_NOTEBOOKS_PATH)",
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Create tables only",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")

    settings = Settings.from_env()
    db_path = Path(args.database_path).resolve() if args.database_path else settings.resolved_database_path()
    database = Database(db_path)
    store = NotebookStore(database)
    print(f"Database ready at {database.path}")

    if not args.no_seed:
        try:
            seeds = load_seed_notebooks(args.seed_path or settings.seed_path)
        except SeedLoadError as exc:
            print(f"Error setting up database: {exc}", file=sys.stderr)
            return 1
        created = seed_default_notebooks(store, seeds)
        if created:
            print(f"Inserted {created} default notebook{'s' if created != 1 else ''}")
        else:
            print("Notebooks already exist, skipping seed data")

    total = store.count_notebooks()
    print(f"Database setup complete! {total} notebook{'s' if total != 1 else ''} ready.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
