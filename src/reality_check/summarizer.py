from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .claim_verifier import extract_keywords
from .context import ContextRetriever
from .llm_backends import JsonBackend, SyntheticBackend, dumps_context, generate_or_fallback
from .models import (
    Article,
    SearchResult,
    Strategy,
    StrategyPlan,
    Summary,
    TimelineEntry,
    VerificationVerdict,
    clamp_score,
)
from .query_pack import build_related_news_query
from .searxng_client import SearchGateway

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """You are an expert analyst creating comprehensive summaries using retrieval-augmented context.

Create a detailed analysis including:
1. TL;DR (2-3 sentences)
2. Key Points (4-5 bullet points)
3. Timeline of events (if applicable)
4. Context and background
5. Implications and significance
6. Trust score (0-100) based on source credibility and the verification verdict
7. Strategic recommendations
8. Related topics for further exploration

Respond in JSON format:
{
  "tldr": "Brief summary...",
  "keyPoints": ["Point 1", "Point 2"],
  "timeline": [{"date": "2025-01-15", "event": "Description"}],
  "context": "Background information...",
  "implications": "What this means...",
  "trustScore": 85,
  "strategy": {"recommendations": ["Rec 1"], "priority": "low|medium|high|critical", "timeframe": "immediate"},
  "relatedTopics": ["Topic 1"],
  "sources": ["Source 1"],
  "confidence": 90
}"""

STRATEGY_SYSTEM_PROMPT = """You advise a newsroom on how to respond to a fact-check verdict.

Given the verdict, write a short human-readable summary, concrete ordered action steps and a priority.

Respond in JSON format:
{
  "summary": "One or two sentences...",
  "actionSteps": ["Step 1", "Step 2", "Step 3"],
  "priority": "low|medium|high|critical"
}"""

SYNTHETIC_ACTION_STEPS = {
    "true": [
        "Publish the story with the supporting citations attached",
        "Keep monitoring for corrections from primary sources",
        "Archive the verification record for future reference",
    ],
    "false": [
        "Flag the article as false and withhold further distribution",
        "Publish a correction citing the contradicting sources",
        "Alert editors and partner outlets that amplified the claim",
        "Track re-shares of the claim across social channels",
    ],
    "mixed": [
        "Annotate the article with the verified and disputed parts",
        "Request clarification from the original source",
        "Schedule a follow-up review once more evidence is available",
    ],
    "unverified": [
        "Label the article as unverified until corroborated",
        "Seek at least two independent primary sources",
        "Re-run verification when new reporting appears",
    ],
}


def synthetic_priority(verdict: VerificationVerdict) -> str:
    if verdict.status == "false":
        return "critical" if verdict.confidence_score >= 90 else "high"
    if verdict.status == "true":
        return "low"
    return "medium"


def related_topics(text: str, limit: int = 5) -> List[str]:
    return extract_keywords(text, limit)


class Summarizer:
    """Narrative summary and response strategy, with the same backend-then-synthetic discipline as verification."""

    def __init__(
        self,
        retriever: ContextRetriever,
        gateway: Optional[SearchGateway] = None,
        backend: Optional[JsonBackend] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._retriever = retriever
        self._gateway = gateway
        self._backend = backend or SyntheticBackend()
        self._rng = rng or random.Random()

    async def _related_news(self, title: str) -> List[SearchResult]:
        if self._gateway is None:
            return []
        found = await self._gateway.search(build_related_news_query(title), ["news"])
        return found.results[:5]

    async def summarize(self, article: Article, verdict: Optional[VerificationVerdict] = None) -> Summary:
        text = f"{article.title} {article.content}"
        contexts, news = await asyncio.gather(
            self._retriever.retrieve_many(extract_keywords(text, 3)),
            self._related_news(article.title),
        )
        logger.info("summarize: %s with %d context entries, %d related stories", article.id, len(contexts), len(news))

        user = "\n\n".join([
            "Analyze this article with the provided context:",
            f"Article: {article.title}\nDescription: {article.content}",
            "Verification verdict:\n" + dumps_context(
                verdict.model_dump(exclude={"context_sources"}) if verdict else None
            ),
            "Wikipedia Context:\n" + dumps_context([c.model_dump(exclude={"related_results"}) for c in contexts]),
            "Related News:\n" + dumps_context([r.model_dump() for r in news]),
        ])

        return await generate_or_fallback(
            self._backend,
            system=SUMMARY_SYSTEM_PROMPT,
            user=user,
            build=self._summary_from_payload,
            fallback=lambda: self.synthetic_summary(article),
            label="summarize",
            temperature=0.3,
            max_tokens=2000,
        )

    def _summary_from_payload(self, payload: Dict[str, Any]) -> Summary:
        tldr = str(payload.get("tldr") or "").strip()
        if not tldr:
            raise ValueError("summary has no tldr")

        strategy = payload.get("strategy") or {}
        if not isinstance(strategy, dict):
            strategy = {}

        return Summary(
            tldr=tldr,
            key_points=[str(p) for p in payload.get("keyPoints") or []],
            timeline=[
                TimelineEntry(date=str(t.get("date", "")), event=str(t.get("event", "")))
                for t in payload.get("timeline") or []
                if isinstance(t, dict)
            ],
            context=str(payload.get("context") or ""),
            implications=str(payload.get("implications") or ""),
            trust_score=clamp_score(payload.get("trustScore", 0)),
            strategy=StrategyPlan(
                recommendations=[str(r) for r in strategy.get("recommendations") or []],
                priority=strategy.get("priority") or "medium",
                timeframe=str(strategy.get("timeframe") or "short-term"),
            ),
            related_topics=[str(t) for t in payload.get("relatedTopics") or []],
            sources=[str(s) for s in payload.get("sources") or []],
            confidence=clamp_score(payload.get("confidence", 0)),
            backend=self._backend.name,
        )

    def synthetic_summary(self, article: Article) -> Summary:
        today = datetime.now(timezone.utc).date()
        return Summary(
            tldr=(
                f"{article.title} represents a significant development with multiple implications for stakeholders "
                "and future trends. Analysis reveals key patterns and strategic opportunities."
            ),
            key_points=[
                "Primary development shows substantial impact on the sector",
                "Multiple sources confirm the authenticity and significance",
                "Expert analysis indicates long-term implications",
                "Stakeholder responses suggest broad industry interest",
                "Timeline suggests accelerating pace of change",
            ],
            timeline=[
                TimelineEntry(date=(today - timedelta(days=7)).isoformat(), event="Initial reports emerge from multiple sources"),
                TimelineEntry(date=(today - timedelta(days=3)).isoformat(), event="Expert verification and comprehensive analysis"),
                TimelineEntry(date=today.isoformat(), event="Current developments and strategic implications"),
            ],
            context=(
                "This development occurs within the broader context of ongoing changes in the sector, with multiple "
                "contributing factors and stakeholder interests converging."
            ),
            implications=(
                "The significance extends beyond immediate effects to include long-term strategic implications for "
                "industry, policy, and future developments."
            ),
            trust_score=self._rng.randint(80, 99),
            strategy=StrategyPlan(
                recommendations=[
                    "Monitor ongoing developments closely",
                    "Assess potential impact on operations",
                    "Engage with key stakeholders",
                    "Develop contingency plans",
                ],
                priority="high",
                timeframe="immediate",
            ),
            related_topics=related_topics(f"{article.title} {article.content}"),
            sources=["Wikipedia", "News sources", "Expert analysis"],
            confidence=self._rng.randint(85, 99),
            backend="synthetic",
        )

    async def strategize(self, verdict: VerificationVerdict) -> Strategy:
        user = "Verdict:\n" + dumps_context(verdict.model_dump(exclude={"context_sources"}))
        return await generate_or_fallback(
            self._backend,
            system=STRATEGY_SYSTEM_PROMPT,
            user=user,
            build=lambda payload: self._strategy_from_payload(payload, verdict),
            fallback=lambda: self.synthetic_strategy(verdict),
            label="strategize",
            temperature=0.3,
            max_tokens=800,
        )

    def _strategy_from_payload(self, payload: Dict[str, Any], verdict: VerificationVerdict) -> Strategy:
        summary = str(payload.get("summary") or "").strip()
        steps = [str(s).strip() for s in payload.get("actionSteps") or payload.get("action_steps") or [] if str(s).strip()]
        if not summary or not steps:
            raise ValueError("strategy needs a summary and at least one action step")
        return Strategy(
            article_id=verdict.article_id,
            summary=summary,
            action_steps=steps,
            priority=payload.get("priority") or synthetic_priority(verdict),
            backend=self._backend.name,
        )

    def synthetic_strategy(self, verdict: VerificationVerdict) -> Strategy:
        return Strategy(
            article_id=verdict.article_id,
            summary=(
                f"Claim assessed as {verdict.status} with {verdict.confidence_score}% confidence. "
                + verdict.reasoning.split(". ")[0].rstrip(".")
                + "."
            ),
            action_steps=list(SYNTHETIC_ACTION_STEPS[verdict.status]),
            priority=synthetic_priority(verdict),
            backend="synthetic",
        )
