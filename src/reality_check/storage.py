from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol, TypeVar

from pydantic import ValidationError

from .errors import StorageError
from .models import Article, ImageAssessment, Strategy, VerificationVerdict

logger = logging.getLogger(__name__)

R = TypeVar("R", ImageAssessment, VerificationVerdict, Strategy)


class Storage(Protocol):
    async def article_exists(self, url: str) -> bool:
        ...

    async def insert_article(self, article: Article) -> Article:
        ...

    async def insert_image_assessment(self, assessment: ImageAssessment) -> ImageAssessment:
        ...

    async def insert_verdict(self, verdict: VerificationVerdict) -> VerificationVerdict:
        ...

    async def insert_strategy(self, strategy: Strategy) -> Strategy:
        ...


class InMemoryStorage:
    """
    Articles keyed by URL; one assessment, verdict and strategy per article.

    Every insert is write-once: a record whose key is already stored comes back
    as the stored record unchanged, so the URL behaves as a unique key even if
    two ingestions race past `article_exists`, and a verdict is never replaced.
    """

    def __init__(self) -> None:
        self.articles: Dict[str, Article] = {}
        self.image_assessments: Dict[str, ImageAssessment] = {}
        self.verdicts: Dict[str, VerificationVerdict] = {}
        self.strategies: Dict[str, Strategy] = {}
        self._lock = asyncio.Lock()

    async def article_exists(self, url: str) -> bool:
        return url in self.articles

    async def insert_article(self, article: Article) -> Article:
        async with self._lock:
            existing = self.articles.get(article.url)
            if existing is not None:
                logger.debug("storage: %s already stored as %s", article.url, existing.id)
                return existing
            self.articles[article.url] = article
            await self._changed()
            return article

    def _key(self, article_id: Optional[str]) -> str:
        if not article_id:
            raise StorageError("record has no article_id")
        return article_id

    async def _insert_once(self, table: Dict[str, R], record: R, kind: str) -> R:
        key = self._key(record.article_id)
        async with self._lock:
            existing = table.get(key)
            if existing is not None:
                logger.debug("storage: %s for %s already stored", kind, key)
                return existing
            table[key] = record
            await self._changed()
            return record

    async def insert_image_assessment(self, assessment: ImageAssessment) -> ImageAssessment:
        return await self._insert_once(self.image_assessments, assessment, "image assessment")

    async def insert_verdict(self, verdict: VerificationVerdict) -> VerificationVerdict:
        return await self._insert_once(self.verdicts, verdict, "verdict")

    async def insert_strategy(self, strategy: Strategy) -> Strategy:
        return await self._insert_once(self.strategies, strategy, "strategy")

    def article_by_id(self, article_id: str) -> Optional[Article]:
        return next((a for a in self.articles.values() if a.id == article_id), None)

    def list_articles(self, sector: Optional[str] = None) -> List[Article]:
        items = [a for a in self.articles.values() if sector is None or a.sector == sector]
        return sorted(items, key=lambda a: a.published_at, reverse=True)

    async def _changed(self) -> None:
        """Hook for subclasses that persist; called with the lock held."""


class JsonFileStorage(InMemoryStorage):
    """InMemoryStorage mirrored to a single JSON document after every write."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self.articles = {a["url"]: Article.model_validate(a) for a in raw.get("articles", [])}
            self.image_assessments = {
                k: ImageAssessment.model_validate(v) for k, v in (raw.get("image_assessments") or {}).items()
            }
            self.verdicts = {k: VerificationVerdict.model_validate(v) for k, v in (raw.get("verdicts") or {}).items()}
            self.strategies = {k: Strategy.model_validate(v) for k, v in (raw.get("strategies") or {}).items()}
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValidationError) as e:
            raise StorageError(f"cannot read store {self.path}: {e}") from e
        logger.info("storage: loaded %d articles from %s", len(self.articles), self.path)

    def _dump(self) -> str:
        return json.dumps(
            {
                "articles": [a.model_dump() for a in self.articles.values()],
                "image_assessments": {k: v.model_dump() for k, v in self.image_assessments.items()},
                "verdicts": {k: v.model_dump() for k, v in self.verdicts.items()},
                "strategies": {k: v.model_dump() for k, v in self.strategies.items()},
            },
            indent=2,
            ensure_ascii=False,
        )

    async def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._dump(), encoding="utf-8")
