from __future__ import annotations

import asyncio
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from rich import print, print_json

from . import __version__
from .claim_verifier import ClaimVerifier
from .config import AppConfig, load_config, repo_root
from .context import ContextRetriever
from .endpoint_pool import EndpointPool
from .image_analyzer import ImageAnalyzer
from .llm_backends import JsonBackend, backend_from_config
from .models import Article, article_id_for_url, utc_now_iso
from .news_sources import NewsApiProvider, ProviderChain, RssScraper, SyntheticArticleProvider
from .orchestrator import IngestionOrchestrator
from .searxng_client import SearchGateway
from .storage import JsonFileStorage
from .summarizer import Summarizer
from .timeline import TimelineBuilder
from .wiki_client import WikipediaClient


@dataclass
class Components:
    cfg: AppConfig
    client: httpx.AsyncClient
    rng: random.Random
    backend: JsonBackend
    gateway: SearchGateway
    retriever: ContextRetriever
    verifier: ClaimVerifier
    image_analyzer: ImageAnalyzer
    summarizer: Summarizer
    timeline: TimelineBuilder


@asynccontextmanager
async def open_components(cfg: Optional[AppConfig] = None) -> AsyncIterator[Components]:
    """Wire every component around one shared HTTP client and one seeded RNG."""
    cfg = cfg or load_config()
    rng = random.Random(cfg.random_seed)
    backend = backend_from_config(cfg)

    async with httpx.AsyncClient() as client:
        gateway = SearchGateway(
            EndpointPool(cfg.search_endpoints),
            client,
            timeout_s=cfg.search_timeout_s,
            engines=cfg.search_engines,
        )
        wiki = WikipediaClient(client, api_base=cfg.wiki_api_base, timeout_s=cfg.search_timeout_s)
        retriever = ContextRetriever(wiki, gateway)
        yield Components(
            cfg=cfg,
            client=client,
            rng=rng,
            backend=backend,
            gateway=gateway,
            retriever=retriever,
            verifier=ClaimVerifier(retriever, backend, rng=rng),
            image_analyzer=ImageAnalyzer(client, policy=cfg.source_policy, rng=rng),
            summarizer=Summarizer(retriever, gateway, backend, rng=rng),
            timeline=TimelineBuilder(gateway, backend),
        )


def build_provider(c: Components) -> ProviderChain:
    tiers = [RssScraper(c.client, c.cfg.rss_feeds)]
    if not c.cfg.use_free_sources_only:
        tiers.append(NewsApiProvider(c.client, c.cfg.newsapi_key, placeholders=c.cfg.placeholders))
    return ProviderChain(tiers, fallback=SyntheticArticleProvider(c.rng))


def cmd_ping() -> None:
    cfg = load_config()
    root = repo_root()

    print(f"[bold]reality-check[/bold] version={__version__}")
    print(f"env={cfg.env}")
    print(f"repo_root={root}")
    print(f"settings.yaml exists={(root / 'configs' / 'settings.yaml').exists()}")

    # Key presence only (never print keys)
    print(f"OPENAI_API_KEY present={cfg.primary_backend_present}")
    print(f"CLAUDE_API_KEY present={cfg.secondary_backend_present}")
    print(f"NEWSAPI_KEY present={cfg.newsapi_key_present}")
    print(f"generative backend={backend_from_config(cfg).name}")

    print(f"search endpoints count={len(cfg.search_endpoints)}")
    for e in cfg.search_endpoints:
        print(f"  - {e}")
    print(f"rss sectors={', '.join(sorted(cfg.rss_feeds)) or '-'}")
    print(f"storage_path={cfg.storage_path}")


def cmd_search(query: str, news: bool = False, fact_check: bool = False) -> None:
    async def run() -> None:
        async with open_components() as c:
            if fact_check:
                print_json(data=await c.gateway.search_fact_checks(query))
                return
            if news:
                articles = await c.gateway.search_news(query)
                print_json(data=[a.model_dump() for a in articles])
                return
            found = await c.gateway.search(query)
            print(f"source={found.source} instance={found.instance} total={found.total_results}")
            for r in found.results:
                print(f"- [bold]{r.title}[/bold] {r.url}")

    asyncio.run(run())


def cmd_verify(claim: str) -> None:
    async def run() -> None:
        async with open_components() as c:
            verdict = await c.verifier.verify(claim)
            print(f"[bold]{verdict.status}[/bold] confidence={verdict.confidence_score} backend={verdict.backend}")
            print(verdict.reasoning)
            for url in verdict.citations:
                print(f"  - {url}")
            if verdict.red_flags:
                print(f"red_flags={', '.join(verdict.red_flags)}")

    asyncio.run(run())


def cmd_assess_image(url: str) -> None:
    async def run() -> None:
        async with open_components() as c:
            assessment = await c.image_analyzer.assess(url)
            print_json(assessment.model_dump_json())

    asyncio.run(run())


def cmd_summarize(title: str, content: str = "", verify: bool = False) -> None:
    async def run() -> None:
        async with open_components() as c:
            article = Article(
                id=article_id_for_url(title),
                url="",
                title=title,
                content=content,
                published_at=utc_now_iso(),
            )
            verdict = await c.verifier.verify(f"{title} {content}".strip(), article.id) if verify else None
            summary = await c.summarizer.summarize(article, verdict)
            print_json(summary.model_dump_json())

    asyncio.run(run())


def cmd_timeline(topic: str) -> None:
    async def run() -> None:
        async with open_components() as c:
            tl = await c.timeline.build(topic)
            print(f"[bold]{tl.topic}[/bold] events={len(tl.events)} analysis_backend={tl.analysis.backend}")
            for e in tl.events:
                print(f"  {e.date}  ({e.relevance:.2f})  {e.title}  [{e.source}]")
            print(tl.analysis.summary)

    asyncio.run(run())


def cmd_ingest(sector: str = "general") -> None:
    async def run() -> None:
        async with open_components() as c:
            storage = JsonFileStorage(c.cfg.storage_path)
            orchestrator = IngestionOrchestrator(
                build_provider(c),
                storage,
                c.image_analyzer,
                c.verifier,
                c.summarizer,
                page_size=c.cfg.page_size,
            )
            stored = await orchestrator.ingest(sector)
            print(f"stored={len(stored)} sector={sector}")
            for a in stored:
                print(f"  - {a.id} {a.title}")

            # Let background analysis finish before the client closes
            await orchestrator.runner.drain()
            print(
                f"analysis completed={orchestrator.runner.completed} "
                f"failed={orchestrator.runner.failures} store={storage.path}"
            )

    asyncio.run(run())
