from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from .endpoint_pool import EndpointPool
from .errors import EndpointError
from .models import RawArticle, SearchResult, SearchResultSet, utc_now_iso
from .query_pack import build_fact_check_query
from .sources import domain_of

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "RealityCheck/2.0",
}

NEWS_CATEGORIES: Dict[str, List[str]] = {
    "technology": ["ai", "tech", "software", "computer", "digital", "cyber"],
    "health": ["health", "medical", "disease", "vaccine", "hospital", "doctor"],
    "politics": ["government", "election", "political", "congress", "senate", "president"],
    "climate": ["climate", "environment", "weather", "carbon", "emission", "green"],
    "business": ["business", "economy", "market", "stock", "financial", "company"],
    "science": ["science", "research", "study", "discovery", "experiment", "scientist"],
}


def _first_str(item: Dict[str, Any], *keys: str) -> str:
    for k in keys:
        v = item.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def _relevance(item: Dict[str, Any]) -> Optional[float]:
    raw = item.get("relevance", item.get("score"))
    if raw is None or isinstance(raw, bool):
        return None
    try:
        v = float(raw)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(1.0, v))


def normalize_results(data: Dict[str, Any]) -> List[SearchResult]:
    """
    Normalize provider result shapes into SearchResult:
      title, content, url, published_date, relevance, engine
    Items without a URL are dropped.
    """
    out: List[SearchResult] = []
    items = data.get("results") or []
    if not isinstance(items, list):
        return out

    for it in items:
        if not isinstance(it, dict):
            continue
        url = _first_str(it, "url", "link", "href")
        if not url:
            continue
        title = _first_str(it, "title")
        out.append(
            SearchResult(
                title=title,
                content=_first_str(it, "content", "snippet", "description") or title,
                url=url,
                published_date=_first_str(it, "publishedDate", "published_date", "pubdate") or None,
                relevance=_relevance(it),
                engine=_first_str(it, "engine") or None,
            )
        )
    return out


def word_overlap(query: str, text: str) -> float:
    """Share of query words that appear (as substring either way) in the text."""
    query_words = [w for w in query.lower().split() if w]
    text_words = [w for w in (text or "").lower().split() if w]
    if not query_words:
        return 0.0
    matches = 0
    for word in query_words:
        if any(word in tw or tw in word for tw in text_words):
            matches += 1
    return matches / len(query_words)


def categorize_news(text: str) -> str:
    lower = (text or "").lower()
    for category, keywords in NEWS_CATEGORIES.items():
        if any(k in lower for k in keywords):
            return category
    return "general"


def mock_search_results(query: str) -> SearchResultSet:
    return SearchResultSet(
        results=[
            SearchResult(
                title=f"Latest developments in {query}",
                content=f"Recent analysis and updates regarding {query} with comprehensive coverage and expert insights.",
                url=f"https://example.com/search/{quote(query, safe='')}",
                published_date=utc_now_iso(),
            )
        ],
        suggestions=[f"{query} news", f"{query} analysis", f"{query} timeline"],
        total_results=1,
        instance=None,
        source="mock",
    )


class SearchGateway:
    """
    SearXNG metasearch behind an EndpointPool.

    A failing endpoint is skipped in favour of the next one in rotation, at
    most once per endpoint. When none answer, a mock result set is returned;
    callers never see an exception from `search`.
    """

    def __init__(
        self,
        pool: EndpointPool,
        client: httpx.AsyncClient,
        *,
        timeout_s: float = 10.0,
        engines: str = "google,bing,duckduckgo,startpage",
    ) -> None:
        self._pool = pool
        self._client = client
        self._timeout = httpx.Timeout(timeout_s)
        self._engines = engines

    async def _query_endpoint(self, endpoint: str, query: str, categories: Sequence[str]) -> SearchResultSet:
        params = {
            "q": query,
            "format": "json",
            "categories": ",".join(categories),
            "engines": self._engines,
            "safesearch": "1",
        }
        try:
            r = await self._client.get(
                f"{endpoint}/search",
                params=params,
                headers=DEFAULT_HEADERS,
                timeout=self._timeout,
            )
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise EndpointError(endpoint, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise EndpointError(endpoint, f"non-JSON body: {e}") from e

        if not isinstance(data, dict):
            raise EndpointError(endpoint, f"unexpected payload type {type(data).__name__}")

        results = normalize_results(data)
        total = data.get("number_of_results")
        suggestions = [str(s) for s in (data.get("suggestions") or []) if str(s).strip()]
        return SearchResultSet(
            results=results,
            suggestions=suggestions,
            total_results=int(total) if isinstance(total, (int, float)) and total else len(results),
            instance=endpoint,
            source="searxng",
        )

    async def search(self, query: str, categories: Sequence[str] = ("general",)) -> SearchResultSet:
        # each search walks its own ordering so concurrent searches can't skip endpoints
        order = self._pool.rotation()
        for attempt, endpoint in enumerate(order):
            try:
                return await self._query_endpoint(endpoint, query, categories)
            except EndpointError as e:
                logger.warning("SearXNG attempt %d/%d failed: %s", attempt + 1, len(order), e)

        logger.warning("All %d SearXNG endpoints failed for %r, using mock results", len(order), query)
        return mock_search_results(query)

    async def search_news(self, query: str) -> List[RawArticle]:
        found = await self.search(query, ["news"])
        articles: List[RawArticle] = []
        for r in found.results:
            if not (r.published_date or "news" in r.url):
                continue
            articles.append(
                RawArticle(
                    title=r.title,
                    description=r.content or r.title,
                    url=r.url,
                    published_at=r.published_date or utc_now_iso(),
                    source_name=f"{domain_of(r.url)} ({categorize_news(r.title + ' ' + r.content)})",
                )
            )
        return articles

    async def search_fact_checks(self, claim: str) -> List[Dict[str, Any]]:
        found = await self.search(build_fact_check_query(claim), ["general"])
        return [
            {
                "title": r.title,
                "url": r.url,
                "snippet": r.content,
                "source": domain_of(r.url),
                "relevance": word_overlap(claim, f"{r.title} {r.content}"),
            }
            for r in found.results
        ]
