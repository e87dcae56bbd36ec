"""Client for the external spine service health endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


class SpineUnavailable(RuntimeError):
    """Raised when the spine service cannot be reached or returns bad data."""


class SpineClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpineClient":
        return cls(settings.spine_api_url, timeout=settings.spine_timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def health(self) -> Any:
        """Fetch and decode the spine ``/health`` payload."""

        url = f"{self._base_url}/health"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            logger.error("spine.health.error url=%s error=%s", url, exc)
            raise SpineUnavailable(f"Spine request failed: {exc}") from exc
        except ValueError as exc:
            logger.error("spine.health.decode_failed url=%s", url)
            raise SpineUnavailable("Spine returned a non-JSON response") from exc


__all__ = ["SpineClient", "SpineUnavailable"]
