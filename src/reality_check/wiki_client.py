from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .models import WikiSummary

logger = logging.getLogger(__name__)

WIKI_PAGE_BASE = "https://en.wikipedia.org/wiki/"


def wiki_page_url(title: str) -> str:
    return WIKI_PAGE_BASE + quote(title.replace(" ", "_"), safe="_()")


def mock_summary(title: str) -> WikiSummary:
    return WikiSummary(
        title=title,
        extract=(
            f"{title} is a significant topic with multiple dimensions and implications. "
            "This overview provides essential context and background information for understanding the subject matter."
        ),
        url=wiki_page_url(title),
        thumbnail=None,
        source="mock",
    )


class WikipediaClient:
    """
    Encyclopedic context from the MediaWiki action API.

    `get_topic_context` returns None when the page does not exist. Transport
    failures degrade to a mock summary of the same shape, flagged with
    source="mock".
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_base: str = "https://en.wikipedia.org/w/api.php",
        timeout_s: float = 10.0,
    ) -> None:
        self._client = client
        self._api_base = api_base
        self._timeout = httpx.Timeout(timeout_s)

    async def _query(self, params: Dict[str, str]) -> Dict[str, Any]:
        r = await self._client.get(
            self._api_base,
            params={"action": "query", "format": "json", **params},
            headers={"User-Agent": "RealityCheck/2.0"},
            timeout=self._timeout,
        )
        r.raise_for_status()
        return r.json()

    async def get_topic_context(self, topic: str) -> Optional[WikiSummary]:
        topic = (topic or "").strip()
        if not topic:
            return None

        try:
            data = await self._query(
                {
                    "prop": "extracts|pageimages",
                    "exintro": "true",
                    "explaintext": "true",
                    "exsectionformat": "plain",
                    "piprop": "original",
                    "redirects": "1",
                    "titles": topic,
                }
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Wikipedia lookup failed for %r: %s", topic, e)
            return mock_summary(topic)

        pages = (data.get("query") or {}).get("pages") or {}
        page = next(iter(pages.values()), None) if isinstance(pages, dict) else None
        if not page or "missing" in page or "invalid" in page:
            return None

        title = str(page.get("title") or topic)
        extract = str(page.get("extract") or "").strip()
        if not extract:
            return None

        return WikiSummary(
            title=title,
            extract=extract,
            url=wiki_page_url(title),
            thumbnail=(page.get("original") or {}).get("source"),
        )
