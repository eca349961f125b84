from __future__ import annotations

from .sources import FACT_CHECK_SITES


def _dedupe(queries: list[str]) -> list[str]:
    seen = set()
    out = []
    for q in queries:
        qn = " ".join(q.split())
        key = qn.lower()
        if key not in seen:
            seen.add(key)
            out.append(qn)
    return out


def build_timeline_queries(topic: str) -> list[str]:
    """
    The four phrasings used to reconstruct how a topic unfolded.
    Order matters: earlier queries contribute first when relevance ties.
    """
    t = topic.strip()
    return _dedupe([
        f'"{t}" timeline chronology',
        f'"{t}" history development',
        f'when did "{t}" start',
        f'"{t}" latest developments',
    ])


def build_fact_check_query(claim: str) -> str:
    sites = " OR ".join(f"site:{s}" for s in FACT_CHECK_SITES)
    return " ".join(f'"{claim.strip()}" {sites}'.split())


def build_related_news_query(title: str) -> str:
    return " ".join(f'"{title.strip()}" OR related news'.split())
