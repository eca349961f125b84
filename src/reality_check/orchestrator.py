from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional, Set

from .claim_verifier import ClaimVerifier
from .image_analyzer import ImageAnalyzer
from .models import Article, RawArticle
from .news_sources import ArticleProvider
from .storage import Storage
from .summarizer import Summarizer

logger = logging.getLogger(__name__)

CLAIM_TEXT_LIMIT = 500


class BackgroundRunner:
    """
    Fire-and-forget task spawner.

    Tasks are kept referenced until they finish; an exception inside one is
    logged and counted instead of being left unobserved on the event loop.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0
        self.completed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[object], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background: %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.error("background: %s failed: %s: %s", task.get_name(), type(exc).__name__, exc)
            return
        self.completed += 1

    async def drain(self) -> None:
        """Wait until every spawned task (including ones spawned while waiting) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class IngestionOrchestrator:
    def __init__(
        self,
        provider: ArticleProvider,
        storage: Storage,
        image_analyzer: ImageAnalyzer,
        verifier: ClaimVerifier,
        summarizer: Summarizer,
        *,
        runner: Optional[BackgroundRunner] = None,
        page_size: int = 20,
    ) -> None:
        self._provider = provider
        self._storage = storage
        self._image_analyzer = image_analyzer
        self._verifier = verifier
        self._summarizer = summarizer
        self.runner = runner or BackgroundRunner()
        self._page_size = page_size

    async def ingest(self, sector: str = "general") -> List[Article]:
        """
        Pull a page of articles for `sector`, store the ones not seen before and
        schedule their analysis. Returns the newly stored articles without
        waiting for any analysis to finish.
        """
        result = await self._provider.fetch(sector, self._page_size)

        stored: List[Article] = []
        skipped = 0
        failed = 0
        for raw in result.articles:
            if not (raw.title.strip() and raw.description.strip()):
                skipped += 1
                continue
            try:
                if await self._storage.article_exists(raw.url):
                    skipped += 1
                    continue
                article = await self._storage.insert_article(Article.from_raw(raw, sector))
            except Exception:
                logger.exception("ingest: could not store %s", raw.url)
                failed += 1
                continue

            stored.append(article)
            self._schedule(article, raw)

        logger.info(
            "ingest: sector=%s source=%s stored=%d skipped=%d failed=%d",
            sector,
            result.source,
            len(stored),
            skipped,
            failed,
        )
        return stored

    def _schedule(self, article: Article, raw: RawArticle) -> None:
        if article.image_url:
            self.runner.spawn(self._assess_image(article), name=f"image:{article.id}")
        claim = f"{raw.title} {raw.description}"
        self.runner.spawn(self._verify_and_strategize(article, claim), name=f"verify:{article.id}")

    async def _assess_image(self, article: Article) -> None:
        assessment = await self._image_analyzer.assess(article.image_url, article_id=article.id)
        await self._storage.insert_image_assessment(assessment)

    async def _verify_and_strategize(self, article: Article, claim: str) -> None:
        verdict = await self._verifier.verify(claim[:CLAIM_TEXT_LIMIT], article_id=article.id)
        await self._storage.insert_verdict(verdict)
        strategy = await self._summarizer.strategize(verdict)
        await self._storage.insert_strategy(strategy)
        logger.debug("ingest: %s verdict=%s priority=%s", article.id, verdict.status, strategy.priority)
