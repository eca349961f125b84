from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .llm_backends import JsonBackend, SyntheticBackend, generate_or_fallback
from .models import (
    CauseEffect,
    SearchResult,
    Timeline,
    TimelineAnalysis,
    TimelineEvent,
    clamp_score,
    utc_today,
)
from .query_pack import build_timeline_queries
from .searxng_client import SearchGateway
from .sources import domain_of

logger = logging.getLogger(__name__)

RESULTS_PER_QUERY = 3
SEARCH_EVENT_LIMIT = 10
TIMELINE_LIMIT = 15
DEFAULT_RELEVANCE = 0.5

_MONTHS = {
    "jan": "01", "january": "01",
    "feb": "02", "february": "02",
    "mar": "03", "march": "03",
    "apr": "04", "april": "04",
    "may": "05",
    "jun": "06", "june": "06",
    "jul": "07", "july": "07",
    "aug": "08", "august": "08",
    "sep": "09", "sept": "09", "september": "09",
    "oct": "10", "october": "10",
    "nov": "11", "november": "11",
    "dec": "12", "december": "12",
}

DATE_PATTERNS: list[re.Pattern] = [
    # 2022-06-27 or 2022/6/27
    re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b"),
    # 27-Jun-2022 or 27 June 2022
    re.compile(r"\b(\d{1,2})[-\s]([A-Za-z]{3,9})[-\s](\d{4})\b"),
    # 06/27/2022 (month first, as SearXNG snippets from US sites use)
    re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})\b"),
]

ANALYSIS_SYSTEM_PROMPT = """Analyze the timeline of events and provide insights about patterns, causes, effects, and future implications.

Respond in JSON format:
{
  "summary": "Overview of the timeline...",
  "keyPatterns": ["Pattern 1", "Pattern 2"],
  "causeEffect": [{"cause": "X", "effect": "Y", "confidence": 85}],
  "futurePredictions": ["Prediction 1", "Prediction 2"],
  "significance": "Why this timeline matters..."
}"""


def _valid_iso(y: str, mo: str, d: str) -> Optional[str]:
    if not (y.isdigit() and mo.isdigit() and d.isdigit()):
        return None
    if not (1 <= int(mo) <= 12 and 1 <= int(d) <= 31):
        return None
    return f"{y}-{mo.zfill(2)}-{d.zfill(2)}"


def _to_iso_date_from_match(m: re.Match) -> Optional[str]:
    a, b, c = m.groups()

    # YYYY-MM-DD
    if len(a) == 4:
        return _valid_iso(a, b, c)

    # DD-Mon-YYYY
    if b.isalpha():
        mon = _MONTHS.get(b.lower())
        return _valid_iso(c, mon, a) if mon else None

    # MM/DD/YYYY
    return _valid_iso(c, a, b)


def extract_date(text: str) -> Optional[str]:
    for pat in DATE_PATTERNS:
        m = pat.search(text or "")
        if not m:
            continue
        iso = _to_iso_date_from_match(m)
        if iso:
            return iso
    return None


def event_date(result: SearchResult) -> str:
    """Published date if the provider gave one, else the first date in the snippet, else today."""
    published = (result.published_date or "").strip()
    if published:
        # ISO timestamps only match once the time part is cut off; RFC 2822 needs the whole string
        iso = extract_date(published[:10]) or extract_date(published)
        if iso:
            return iso
    return extract_date(result.content) or utc_today()


def rank_events(events: Iterable[TimelineEvent], limit: int) -> List[TimelineEvent]:
    """Highest relevance first; among equals, most recent first."""
    return sorted(events, key=lambda e: (e.relevance, e.date), reverse=True)[:limit]


def synthetic_analysis(topic: str) -> TimelineAnalysis:
    return TimelineAnalysis(
        summary=f"The timeline for {topic} shows accelerating development with increasing stakeholder engagement and expert validation.",
        key_patterns=[
            "Accelerating pace of development",
            "Increasing expert attention",
            "Growing stakeholder involvement",
            "Expanding scope of implications",
        ],
        cause_effect=[
            CauseEffect(cause="Initial development", effect="Expert attention", confidence=85),
            CauseEffect(cause="Expert validation", effect="Stakeholder engagement", confidence=78),
            CauseEffect(cause="Stakeholder interest", effect="Accelerated development", confidence=82),
        ],
        future_predictions=[
            "Continued acceleration of development",
            "Increased regulatory attention",
            "Broader industry adoption",
            "Long-term strategic implications",
        ],
        significance=f"This timeline demonstrates the rapid evolution and growing importance of {topic} in the current landscape.",
        backend="synthetic",
    )


class TimelineBuilder:
    def __init__(self, gateway: SearchGateway, backend: Optional[JsonBackend] = None) -> None:
        self._gateway = gateway
        self._backend = backend or SyntheticBackend()

    async def search_events(self, topic: str) -> List[TimelineEvent]:
        events: List[TimelineEvent] = []
        for query in build_timeline_queries(topic):
            found = await self._gateway.search(query, ["general", "news"])
            for r in found.results[:RESULTS_PER_QUERY]:
                events.append(
                    TimelineEvent(
                        topic=topic,
                        date=event_date(r),
                        title=r.title or r.content[:120],
                        description=r.content or r.title,
                        source=domain_of(r.url),
                        url=r.url or None,
                        relevance=r.relevance if r.relevance is not None else DEFAULT_RELEVANCE,
                    )
                )
        return rank_events(events, SEARCH_EVENT_LIMIT)

    async def analyze(self, topic: str, events: List[TimelineEvent]) -> TimelineAnalysis:
        lines = "\n".join(f"{e.date}: {e.title} - {e.description}" for e in events)
        return await generate_or_fallback(
            self._backend,
            system=ANALYSIS_SYSTEM_PROMPT,
            user=f'Analyze this timeline for "{topic}":\n\nEvents:\n{lines}',
            build=self._analysis_from_payload,
            fallback=lambda: synthetic_analysis(topic),
            label="timeline",
            temperature=0.4,
            max_tokens=1000,
        )

    def _analysis_from_payload(self, payload: Dict[str, Any]) -> TimelineAnalysis:
        summary = str(payload.get("summary") or "").strip()
        if not summary:
            raise ValueError("timeline analysis has no summary")
        return TimelineAnalysis(
            summary=summary,
            key_patterns=[str(p) for p in payload.get("keyPatterns") or []],
            cause_effect=[
                CauseEffect(
                    cause=str(ce.get("cause", "")),
                    effect=str(ce.get("effect", "")),
                    confidence=clamp_score(ce.get("confidence", 75)),
                )
                for ce in payload.get("causeEffect") or []
                if isinstance(ce, dict)
            ],
            future_predictions=[str(p) for p in payload.get("futurePredictions") or []],
            significance=str(payload.get("significance") or ""),
            backend=self._backend.name,
        )

    async def build(self, topic: str, events: Iterable[TimelineEvent] = ()) -> Timeline:
        topic = topic.strip()
        found = await self.search_events(topic)
        ranked = rank_events([*events, *found], TIMELINE_LIMIT)
        logger.info("timeline: %r -> %d events (%d from search)", topic, len(ranked), len(found))
        analysis = await self.analyze(topic, ranked)
        return Timeline(topic=topic, events=ranked, analysis=analysis)
