from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from .models import SearchResult, TopicContext
from .searxng_client import SearchGateway
from .wiki_client import WikipediaClient

logger = logging.getLogger(__name__)


class ContextRetriever:
    """Background for a topic: encyclopedic summary plus a few related search hits, fetched together."""

    def __init__(
        self,
        wiki: WikipediaClient,
        gateway: Optional[SearchGateway] = None,
        *,
        related_limit: int = 3,
    ) -> None:
        self._wiki = wiki
        self._gateway = gateway
        self._related_limit = related_limit

    async def _related(self, topic: str) -> List[SearchResult]:
        if self._gateway is None:
            return []
        found = await self._gateway.search(topic, ["general"])
        hits = [r for r in found.results if r.url and (r.title or r.content)]
        return hits[: self._related_limit]

    async def retrieve(self, topic: str) -> TopicContext:
        summary, related = await asyncio.gather(
            self._wiki.get_topic_context(topic),
            self._related(topic),
        )
        return TopicContext(topic=topic, summary=summary, related_results=related)

    async def retrieve_many(self, topics: Iterable[str]) -> List[TopicContext]:
        """Look up every topic in parallel and keep only those with an encyclopedic summary."""
        topics = [t for t in topics if t and t.strip()]
        if not topics:
            return []
        contexts = await asyncio.gather(*(self.retrieve(t) for t in topics))
        kept = [c for c in contexts if c.summary is not None]
        logger.debug("context: %d/%d topics had a summary", len(kept), len(topics))
        return kept


def context_citations(contexts: Iterable[TopicContext]) -> List[str]:
    return [c.citation_url for c in contexts if c.citation_url]
