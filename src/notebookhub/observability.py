"""Metrics emitted as structured log lines, optionally mirrored to Prometheus."""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Iterator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_PROM_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")

_PROM_KINDS = {
    "counter": (Counter, "counter"),
    "gauge": (Gauge, "gauge"),
    "histogram": (Histogram, "duration"),
}


class MetricsRecorder:
    """Record counters, gauges and timings for the hub."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        namespace: str = "notebookhub",
        logger: logging.Logger | None = None,
        prometheus_enabled: bool = False,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._enabled = enabled
        self._namespace = namespace.strip() or "notebookhub"
        self._logger = logger or logging.getLogger("notebookhub.metrics")
        self._registry: CollectorRegistry | None = None
        if prometheus_enabled:
            self._registry = registry if registry is not None else CollectorRegistry()
        # (kind, metric) -> (collector, tag keys); the first call fixes the label set.
        self._collectors: dict[tuple[str, str], tuple[Any, tuple[str, ...]]] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def prometheus_enabled(self) -> bool:
        return self._registry is not None

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render_prometheus(self) -> bytes:
        if self._registry is None:
            raise RuntimeError("Prometheus export is disabled")
        return generate_latest(self._registry)

    def increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        if not self._enabled:
            return
        value = int(value)
        clean_tags = _clean(tags)
        self._emit(metric, {"value": value}, clean_tags)
        self._collector("counter", metric, clean_tags).inc(max(value, 0))

    def set_gauge(self, metric: str, value: float, **tags: Any) -> None:
        if not self._enabled:
            return
        clean_tags = _clean(tags)
        self._emit(metric, {"value": value}, clean_tags)
        self._collector("gauge", metric, clean_tags).set(float(value))

    def record_timing(self, metric: str, duration_seconds: float, **tags: Any) -> None:
        """Log the duration in milliseconds; Prometheus observes seconds."""

        if not self._enabled:
            return
        seconds = max(duration_seconds, 0.0)
        clean_tags = _clean(tags)
        self._emit(metric, {"duration_ms": round(seconds * 1000.0, 4)}, clean_tags)
        self._collector("histogram", metric, clean_tags).observe(seconds)

    @contextmanager
    def track_timing(self, metric: str, **tags: Any) -> Iterator[None]:
        if not self._enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(metric, time.perf_counter() - start, **tags)

    def _emit(self, metric: str, fields: dict[str, Any], tags: dict[str, Any]) -> None:
        parts = [f"{key}={_stringify(value)}" for key, value in sorted(fields.items())]
        parts += [f"{key}={_stringify(value)}" for key, value in sorted(tags.items())]
        message = f"{self._namespace}.{metric}"
        if parts:
            message = f"{message} {' '.join(parts)}"
        self._logger.info(message)

    def _collector(self, kind: str, metric: str, tags: dict[str, Any]) -> Any:
        """Return the labelled child for ``metric``, or a no-op when Prometheus is off."""

        if self._registry is None:
            return _NullCollector()
        collector, label_keys = self._registered(kind, metric, tags)
        if not label_keys:
            return collector
        return collector.labels(*self._label_values(label_keys, tags))

    def remove_gauge(self, metric: str, **tags: Any) -> None:
        """Drop one labelled gauge series so it is no longer exported."""

        entry = self._collectors.get(("gauge", metric))
        if entry is None:
            return
        collector, label_keys = entry
        if label_keys:
            collector.remove(*self._label_values(label_keys, _clean(tags)))

    def _registered(self, kind: str, metric: str, tags: dict[str, Any]) -> tuple[Any, tuple[str, ...]]:
        key = (kind, metric)
        entry = self._collectors.get(key)
        if entry is None:
            label_keys = tuple(sorted(tags))
            factory, description = _PROM_KINDS[kind]
            collector = factory(
                self._prom_metric_name(metric),
                f"{metric} {description}",
                labelnames=[_PROM_NAME_RE.sub("_", name) or "label" for name in label_keys],
                registry=self._registry,
            )
            entry = self._collectors[key] = (collector, label_keys)
        return entry

    @staticmethod
    def _label_values(label_keys: tuple[str, ...], tags: dict[str, Any]) -> list[str]:
        # Missing tags export as empty labels; tags outside the label set stay log-only.
        return [_stringify(tags[name]) if name in tags else "" for name in label_keys]

    def _prom_metric_name(self, metric: str) -> str:
        namespace = _PROM_NAME_RE.sub("_", self._namespace)
        return f"{namespace}_{_PROM_NAME_RE.sub('_', metric)}".strip("_")


class _NullCollector:
    def inc(self, amount: float = 1) -> None:
        return None

    def set(self, value: float) -> None:
        return None

    def observe(self, value: float) -> None:
        return None


def _clean(tags: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in tags.items() if value is not None}


def _stringify(value: Any) -> str:
    if isinstance(value, float):
        return f"{int(value)}" if value.is_integer() else f"{value:.4f}"
    return str(value)


__all__ = ["MetricsRecorder"]
