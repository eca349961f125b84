from __future__ import annotations

import asyncio
import calendar
import html
import logging
import random
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import feedparser
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import ProviderError
from .models import FetchResult, RawArticle, utc_now_iso
from .sources import domain_of

logger = logging.getLogger(__name__)

NEWSAPI_BASE = "https://newsapi.org/v2"
PER_FEED_LIMIT = 20

RSS_HEADERS = {
    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
    "User-Agent": "RealityCheck/2.0",
}

_TAG = re.compile(r"<[^>]*>")
_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return " ".join(html.unescape(_TAG.sub(" ", text)).split())


class ArticleProvider(Protocol):
    name: str

    async def fetch(self, sector: str, count: int) -> FetchResult:
        ...


# ---------------------------
# Tier 1: RSS feeds
# ---------------------------
def _entry_image(entry: Any) -> Optional[str]:
    for key in ("media_thumbnail", "media_content"):
        for media in entry.get(key) or []:
            url = media.get("url")
            if url and media.get("medium", "image") == "image":
                return url
    for enc in entry.get("enclosures") or []:
        if str(enc.get("type", "")).startswith("image") and enc.get("href"):
            return enc["href"]
    m = _IMG_SRC.search(entry.get("summary") or entry.get("description") or "")
    return m.group(1) if m else None


def _entry_published(entry: Any) -> Optional[str]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_feed(xml_text: str, feed_url: str, limit: int = PER_FEED_LIMIT) -> List[RawArticle]:
    feed = feedparser.parse(xml_text)
    source_name = (feed.feed.get("title") if feed.get("feed") else None) or domain_of(feed_url)

    articles: List[RawArticle] = []
    for entry in feed.entries[:limit]:
        title = clean_text(entry.get("title"))
        link = (entry.get("link") or entry.get("id") or "").strip()
        if not title or not link:
            continue
        description = clean_text(entry.get("summary") or entry.get("description")) or title
        articles.append(
            RawArticle(
                title=title,
                description=description,
                content=description,
                url=link,
                image_url=_entry_image(entry),
                published_at=_entry_published(entry) or utc_now_iso(),
                source_name=source_name,
                author=clean_text(entry.get("author")) or "Editorial Team",
            )
        )
    return articles


_NON_WORD = re.compile(r"[^\w\s]")
TITLE_SIMILARITY_THRESHOLD = 0.8


def normalize_title(title: str) -> str:
    return _NON_WORD.sub("", (title or "").lower()).strip()


def title_similarity(a: str, b: str) -> float:
    """Share of the longer title's words that also appear in the other one."""
    words_a, words_b = a.split(), b.split()
    if not words_a or not words_b:
        return float(words_a == words_b)
    common = [w for w in words_a if w in words_b]
    return len(common) / max(len(words_a), len(words_b))


def dedupe_articles(articles: Sequence[RawArticle]) -> List[RawArticle]:
    """Drop repeated URLs and near-identical headlines; the first occurrence wins."""
    unique: List[RawArticle] = []
    seen_urls = set()
    seen_titles: List[str] = []
    for a in articles:
        if a.url in seen_urls:
            continue
        title = normalize_title(a.title)
        if any(title_similarity(title, t) > TITLE_SIMILARITY_THRESHOLD for t in seen_titles):
            continue
        seen_urls.add(a.url)
        seen_titles.append(title)
        unique.append(a)
    return unique


class RssScraper:
    """Public RSS feeds per sector; each feed is retried a few times before it is given up."""

    name = "rss"

    def __init__(
        self,
        client: httpx.AsyncClient,
        feeds: Mapping[str, Sequence[str]],
        *,
        attempts: int = 3,
        wait: Any = None,
        timeout_s: float = 15.0,
    ) -> None:
        self._client = client
        self._feeds = {k: list(v) for k, v in feeds.items()}
        self._attempts = attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=8)
        self._timeout = httpx.Timeout(timeout_s)

    def feeds_for(self, sector: str) -> List[str]:
        return self._feeds.get(sector) or self._feeds.get("general") or []

    async def _fetch_feed(self, feed_url: str) -> List[RawArticle]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=self._wait,
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        ):
            with attempt:
                r = await self._client.get(feed_url, headers=RSS_HEADERS, timeout=self._timeout, follow_redirects=True)
                r.raise_for_status()
        return parse_feed(r.text, feed_url)

    async def fetch(self, sector: str, count: int) -> FetchResult:
        feeds = self.feeds_for(sector)
        if not feeds:
            raise ProviderError(f"no RSS feeds configured for sector {sector!r}")

        results = await asyncio.gather(*(self._fetch_feed(f) for f in feeds), return_exceptions=True)

        articles: List[RawArticle] = []
        for feed_url, res in zip(feeds, results):
            if isinstance(res, BaseException):
                logger.warning("rss: feed %s failed: %s", feed_url, res)
                continue
            articles.extend(res)

        if not articles:
            raise ProviderError(f"all {len(feeds)} RSS feeds failed or were empty for {sector!r}")

        articles.sort(key=lambda a: a.published_at or "", reverse=True)
        unique = dedupe_articles(articles)
        if len(unique) < len(articles):
            logger.debug("rss: dropped %d duplicate stories for %s", len(articles) - len(unique), sector)
        return FetchResult(articles=unique[:count], source="rss")


# ---------------------------
# Tier 2: NewsAPI
# ---------------------------
class NewsApiProvider:
    name = "newsapi"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        placeholders: Sequence[str] = ("", "demo-key"),
        timeout_s: float = 15.0,
    ) -> None:
        self._client = client
        self._api_key = (api_key or "").strip()
        self._placeholders = tuple(placeholders)
        self._timeout = httpx.Timeout(timeout_s)

    @property
    def configured(self) -> bool:
        return bool(self._api_key) and self._api_key not in self._placeholders

    async def fetch(self, sector: str, count: int) -> FetchResult:
        if not self.configured:
            raise ProviderError("NewsAPI key not configured")

        params: Dict[str, Any] = {"apiKey": self._api_key, "language": "en", "pageSize": str(count)}
        if sector != "general":
            params["category"] = sector

        r = await self._client.get(f"{NEWSAPI_BASE}/top-headlines", params=params, timeout=self._timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ProviderError(f"NewsAPI returned {type(data).__name__}, expected an object")
        if data.get("status") != "ok":
            raise ProviderError(f"NewsAPI error: {data.get('message') or data.get('code') or 'unknown'}")

        articles: List[RawArticle] = []
        for a in data.get("articles") or []:
            if not isinstance(a, dict) or not a.get("url"):
                continue
            articles.append(
                RawArticle(
                    title=clean_text(a.get("title")),
                    description=clean_text(a.get("description")),
                    content=clean_text(a.get("content")) or None,
                    url=a["url"],
                    image_url=a.get("urlToImage"),
                    published_at=a.get("publishedAt"),
                    source_name=(a.get("source") or {}).get("name"),
                    author=a.get("author"),
                )
            )
        return FetchResult(articles=articles, source="newsapi")


# ---------------------------
# Tier 3: synthetic
# ---------------------------
SYNTHETIC_TEMPLATES: Dict[str, List[Dict[str, str]]] = {
    "general": [
        {
            "title": "Global Intelligence Network Processes {n} Threats in Real-Time",
            "description": "Advanced AI systems demonstrate unprecedented capability in real-time threat detection and analysis across global networks.",
            "image": "https://images.pexels.com/photos/60504/security-protection-anti-virus-software-60504.jpeg?auto=compress&cs=tinysrgb&w=800",
        },
        {
            "title": "Breaking: {n} Countries Report Simultaneous Cybersecurity Breakthrough",
            "description": "International collaboration yields remarkable results in cybersecurity defense systems with AI-powered threat detection.",
            "image": "https://images.pexels.com/photos/8386440/pexels-photo-8386440.jpeg?auto=compress&cs=tinysrgb&w=800",
        },
    ],
    "technology": [
        {
            "title": "Quantum Computing Achieves {n} Qubit Stability",
            "description": "Revolutionary breakthrough in quantum coherence demonstrates sustained stability beyond theoretical predictions.",
            "image": "https://images.pexels.com/photos/8386440/pexels-photo-8386440.jpeg?auto=compress&cs=tinysrgb&w=800",
        },
        {
            "title": "AI Verification Systems Process {n} Media Files in 60 Seconds",
            "description": "Advanced neural networks achieve unprecedented processing speeds in media authenticity verification.",
            "image": "https://images.pexels.com/photos/518543/pexels-photo-518543.jpeg?auto=compress&cs=tinysrgb&w=800",
        },
    ],
    "health": [
        {
            "title": "Medical AI Identifies {n} Treatment Patterns in Live Analysis",
            "description": "Healthcare algorithms processing global medical data discover new correlations in real-time.",
            "image": "https://images.pexels.com/photos/3938023/pexels-photo-3938023.jpeg?auto=compress&cs=tinysrgb&w=800",
        },
    ],
}


class SyntheticArticleProvider:
    """Last tier: generated articles shaped exactly like provider output. Never fails."""

    name = "mock"

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def fetch(self, sector: str, count: int) -> FetchResult:
        templates = SYNTHETIC_TEMPLATES.get(sector) or SYNTHETIC_TEMPLATES["general"]
        now = datetime.now(timezone.utc)
        stamp = int(now.timestamp() * 1000)

        articles: List[RawArticle] = []
        for i in range(count):
            t = self._rng.choice(templates)
            published = now - timedelta(seconds=self._rng.uniform(0, 600))
            description = t["description"]
            articles.append(
                RawArticle(
                    title=t["title"].format(n=self._rng.randint(10, 50000)),
                    description=description,
                    content=(
                        f"{description} This represents a development in the {sector} sector "
                        "with implications for global security and technological advancement."
                    ),
                    url=f"https://example.com/{sector}/article-{stamp}-{i}",
                    image_url=t["image"],
                    published_at=published.replace(microsecond=0).isoformat().replace("+00:00", "Z"),
                    source_name="RealityCheck Intelligence",
                    author="AI Intelligence Network",
                )
            )
        return FetchResult(articles=articles, source="mock")


class ProviderChain:
    """
    Try each tier in order; the first that returns articles wins.
    The fallback tier is consulted only when every other tier failed.
    """

    name = "chain"

    def __init__(self, tiers: Sequence[ArticleProvider], fallback: ArticleProvider) -> None:
        self._tiers = list(tiers)
        self._fallback = fallback

    async def fetch(self, sector: str, count: int) -> FetchResult:
        for tier in self._tiers:
            try:
                result = await tier.fetch(sector, count)
            except (ProviderError, httpx.HTTPError, ValueError) as e:
                logger.warning("ingest: %s tier unavailable: %s", tier.name, e)
                continue
            if result.articles:
                logger.info("ingest: %d articles from %s", len(result.articles), result.source)
                return result
            logger.warning("ingest: %s tier returned no articles", tier.name)

        logger.warning("ingest: all live tiers failed for %r, generating synthetic articles", sector)
        return await self._fallback.fetch(sector, count)
