"""
External search service client.

The feed engine hands free-text `filter=search;<text>` off to this service,
which answers with an ordered list of matching document ids:

  POST /search   { "index": "creations", "query": "...", "limit": 500 }
  →              { "ids": ["65f0...", ...] }

When `settings.search_service_url` is unset the client is disabled and the
engine matches the text against the feed's search columns instead.
"""
import logging
from typing import Optional

import httpx

from feed_api.config import settings
from feed_api.query.errors import SearchUnavailable
from feed_api.telemetry import SEARCH_ERRORS_TOTAL

logger = logging.getLogger(__name__)


class SearchClient:
    def __init__(self) -> None:
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(settings.search_service_url)

    async def start(self) -> None:
        if not self.enabled:
            logger.info("No search service configured, using store-side matching")
            return
        self._http = httpx.AsyncClient(
            base_url=settings.search_service_url,
            timeout=settings.search_timeout_seconds,
        )

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def search_ids(self, index: str, query: str) -> list[str]:
        if self._http is None:
            raise SearchUnavailable("search client not started")
        payload = {
            "index": index,
            "query": query,
            "limit": settings.search_max_results,
        }
        try:
            resp = await self._http.post("/search", json=payload)
            resp.raise_for_status()
            return [str(i) for i in resp.json()["ids"]]
        except Exception as exc:
            logger.warning("Search service unavailable: %s", exc)
            SEARCH_ERRORS_TOTAL.inc()
            raise SearchUnavailable(str(exc)) from exc


# Singleton
search_client = SearchClient()
