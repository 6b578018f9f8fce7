"""Third-party metadata lookups used while saving media.

Only the rating normalization needed by POST /add lives here; the upstream
formats never reach the storage core.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from core.config import settings
from core.models import Category

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^([\d.]+)")


class UpstreamAPIError(Exception):
    """Raised when a third-party metadata request fails."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Upstream API error {status_code}: {message}")


def normalize_rating(value: str | float | None, scale: float = 10.0) -> int | None:
    """Map a rating on ``scale`` (e.g. IMDb's "7.8" out of 10) to 0-100."""
    if value is None:
        return None
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value.strip())
        if not match:
            return None
        try:
            value = float(match.group(1))
        except ValueError:
            return None
    return max(0, min(100, round(float(value) * 100 / scale)))


class MetadataClient:
    """Client for the TMDb and OMDb endpoints used to look up IMDb ratings.

    Requests time out after ``UPSTREAM_TIMEOUT_SECONDS`` and follow at most
    ``UPSTREAM_MAX_REDIRECTS`` redirects.
    """

    TMDB_BASE_URL = "https://api.themoviedb.org/3"
    OMDB_BASE_URL = "https://www.omdbapi.com/"

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
            follow_redirects=True,
            max_redirects=settings.UPSTREAM_MAX_REDIRECTS,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamAPIError(e.response.status_code, e.response.reason_phrase) from e
        except httpx.RequestError as e:
            raise UpstreamAPIError(0, f"Request failed: {e}") from e
        except ValueError as e:
            raise UpstreamAPIError(0, f"Invalid JSON from {url}") from e

    async def imdb_id(self, tmdb_id: str, category: Category, tmdb_api_key: str) -> str | None:
        media_type = "movie" if category == Category.movies else "tv"
        data = await self._get_json(
            f"{self.TMDB_BASE_URL}/{media_type}/{tmdb_id}",
            {"api_key": tmdb_api_key, "append_to_response": "external_ids"},
        )
        return (data.get("external_ids") or {}).get("imdb_id") or data.get("imdb_id")

    async def imdb_rating(
        self,
        tmdb_id: str,
        category: Category,
        tmdb_api_key: str,
        omdb_api_key: str,
    ) -> int | None:
        """IMDb rating on the 0-100 scale, or None when unavailable."""
        imdb_id = await self.imdb_id(tmdb_id, category, tmdb_api_key)
        if not imdb_id:
            return None

        data = await self._get_json(self.OMDB_BASE_URL, {"i": imdb_id, "apikey": omdb_api_key})
        raw = data.get("imdbRating")
        if data.get("Response") != "True" or not raw or raw == "N/A":
            return None

        rating = normalize_rating(raw)
        logger.info("Using IMDb rating %s/10 (%s) for %s", raw, rating, imdb_id)
        return rating
