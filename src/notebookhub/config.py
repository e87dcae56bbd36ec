"""Configuration helpers for the Notebook Hub application."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import TYPE_CHECKING, Final

from dotenv import load_dotenv

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from .observability import MetricsRecorder

load_dotenv()

_DEFAULT_DATA_DIR: Final[str] = "data"
_DEFAULT_SEED_PATH: Final[str] = "seeds/notebooks.yaml"
_DEFAULT_SPINE_API_URL: Final[str] = "https://spine.integratewise.online"
_DEFAULT_SPINE_TIMEOUT: Final[float] = 10.0
_DEFAULT_SEARCH_LIMIT: Final[int] = 20
_DEFAULT_LIST_LIMIT: Final[int] = 50
_DEFAULT_MAX_LIST_LIMIT: Final[int] = 200
_DEFAULT_NAMESPACE: Final[str] = "notebookhub"


def _env_optional_bool(name: str) -> bool | None:
    """Read an optional boolean environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    msg = f"Environment variable {name} must be a boolean value (true/false)."
    raise ValueError(msg)


def _env_bool(name: str, default: bool) -> bool:
    value = _env_optional_bool(name)
    return default if value is None else value


def _env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    """Read an integer environment variable, falling back when unset or blank."""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc
    if min_value is not None and value < min_value:
        raise ValueError(f"Environment variable {name} must be >= {min_value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    data_dir: str = _DEFAULT_DATA_DIR
    database_path: str | None = None
    seed_path: str = _DEFAULT_SEED_PATH
    seed_on_startup: bool = True
    spine_api_url: str = _DEFAULT_SPINE_API_URL
    spine_timeout: float = _DEFAULT_SPINE_TIMEOUT
    search_default_limit: int = _DEFAULT_SEARCH_LIMIT
    list_default_limit: int = _DEFAULT_LIST_LIMIT
    max_list_limit: int = _DEFAULT_MAX_LIST_LIMIT
    observability_metrics_enabled: bool = True
    observability_namespace: str = _DEFAULT_NAMESPACE
    observability_prometheus_enabled: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings by reading environment variables."""

        return cls(
            data_dir=os.getenv("DATA_DIR", _DEFAULT_DATA_DIR),
            database_path=os.getenv("DATABASE_PATH") or None,
            seed_path=os.getenv("SEED_NOTEBOOKS_PATH", _DEFAULT_SEED_PATH),
            seed_on_startup=_env_bool("SEED_ON_STARTUP", True),
            spine_api_url=os.getenv("SPINE_API_URL", _DEFAULT_SPINE_API_URL),
            spine_timeout=_env_float("SPINE_TIMEOUT", _DEFAULT_SPINE_TIMEOUT),
            search_default_limit=_env_int("SEARCH_DEFAULT_LIMIT", _DEFAULT_SEARCH_LIMIT, min_value=1),
            list_default_limit=_env_int("LIST_DEFAULT_LIMIT", _DEFAULT_LIST_LIMIT, min_value=1),
            max_list_limit=_env_int("MAX_LIST_LIMIT", _DEFAULT_MAX_LIST_LIMIT, min_value=1),
            observability_metrics_enabled=_env_bool("OBSERVABILITY_METRICS_ENABLED", True),
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", _DEFAULT_NAMESPACE),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
        )

    def resolved_database_path(self) -> Path:
        """Return the SQLite database file, defaulting to a file under ``data_dir``."""

        if self.database_path:
            return Path(self.database_path).expanduser().resolve()
        return Path(self.data_dir).resolve() / "notebooks.sqlite"

    def clamp_limit(self, value: int | None, *, default: int | None = None) -> int:
        fallback = default if default is not None else self.list_default_limit
        if value is None:
            return min(fallback, self.max_list_limit)
        return min(max(value, 1), self.max_list_limit)

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Instantiate the configured metrics recorder."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )


__all__ = ["Settings"]
