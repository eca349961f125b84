from __future__ import annotations

import logging
import random
import re
from typing import Any, Dict, Iterable, List, Optional

from .context import ContextRetriever, context_citations
from .llm_backends import JsonBackend, SyntheticBackend, dumps_context, generate_or_fallback
from .models import VERDICT_STATUSES, TopicContext, VerificationVerdict, clamp_score

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should",
})

BASE_CITATIONS = (
    "https://en.wikipedia.org/wiki/Fact_checking",
    "https://www.reuters.com/fact-check/",
)

SYNTHETIC_REASONING = {
    "true": (
        "Analysis indicates the core claims are supported by credible sources including Wikipedia references. "
        "Cross-verification with multiple sources confirms accuracy."
    ),
    "false": (
        "Multiple inconsistencies found with verified information from Wikipedia and other reliable sources. "
        "Claims contradict established facts."
    ),
    "mixed": (
        "Some elements of the claim are accurate while others are misleading or lack sufficient evidence. "
        "Wikipedia context provides partial support."
    ),
    "unverified": (
        "Insufficient reliable sources available to confirm or deny the claims. "
        "Wikipedia context provides limited relevant information."
    ),
}

VERIFY_SYSTEM_PROMPT = """You are an expert fact-checker with access to Wikipedia context. Analyze the given text claim step by step using the provided context.

Your analysis should:
1. Break down the claim into verifiable components
2. Cross-reference with the provided Wikipedia context
3. Consider the credibility of implicit assertions
4. Identify any potential red flags or inconsistencies
5. Provide a confidence score (0-100)
6. Classify as: true, false, mixed, or unverified

Respond in JSON format:
{
  "verificationStatus": "true|false|mixed|unverified",
  "confidenceScore": 85,
  "reasoning": "Step-by-step analysis with Wikipedia context...",
  "citations": ["source1", "source2"],
  "redFlags": ["flag1", "flag2"],
  "wikiSupport": "How Wikipedia context supports or contradicts the claim"
}"""

_WORD_SPLIT = re.compile(r"\W+")


def extract_keywords(text: str, limit: int = 3) -> List[str]:
    """First `limit` non-stop-words longer than three characters, in text order."""
    words = _WORD_SPLIT.split((text or "").lower())
    keywords = [w for w in words if len(w) > 3 and w not in STOP_WORDS]
    return keywords[:limit]


def merge_citations(*groups: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for group in groups:
        for c in group:
            c = str(c or "").strip()
            if c and c not in seen:
                seen.add(c)
                out.append(c)
    return out


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


class ClaimVerifier:
    def __init__(
        self,
        retriever: ContextRetriever,
        backend: Optional[JsonBackend] = None,
        *,
        rng: Optional[random.Random] = None,
        keyword_limit: int = 3,
    ) -> None:
        self._retriever = retriever
        self._backend = backend or SyntheticBackend()
        self._rng = rng or random.Random()
        self._keyword_limit = keyword_limit

    async def verify(self, claim_text: str, article_id: Optional[str] = None) -> VerificationVerdict:
        claim_text = (claim_text or "").strip()
        topics = extract_keywords(claim_text, self._keyword_limit)
        contexts = await self._retriever.retrieve_many(topics)
        logger.info("verify: %d keywords, %d context entries via %s", len(topics), len(contexts), self._backend.name)

        user = f'Analyze this claim: "{claim_text}"\n\nWikipedia Context:\n' + dumps_context(
            [c.model_dump(exclude={"related_results"}) for c in contexts]
        )

        return await generate_or_fallback(
            self._backend,
            system=VERIFY_SYSTEM_PROMPT,
            user=user,
            build=lambda payload: self._from_payload(payload, claim_text, contexts, article_id),
            fallback=lambda: self.synthetic_verdict(claim_text, contexts, article_id),
            label="verify",
            temperature=0.3,
            max_tokens=1200,
        )

    def _from_payload(
        self,
        payload: Dict[str, Any],
        claim_text: str,
        contexts: List[TopicContext],
        article_id: Optional[str],
    ) -> VerificationVerdict:
        status = str(payload.get("verificationStatus", payload.get("status", ""))).strip().lower()
        if status not in VERDICT_STATUSES:
            raise ValueError(f"unknown verification status {status!r}")

        reasoning = str(payload.get("reasoning") or "").strip()
        if not reasoning:
            raise ValueError("verdict has no reasoning")

        raw_confidence = payload.get("confidenceScore", payload.get("confidence"))
        if raw_confidence is None:
            raise KeyError("confidenceScore")

        return VerificationVerdict(
            article_id=article_id,
            claim_text=claim_text,
            status=status,
            confidence_score=clamp_score(raw_confidence),
            reasoning=reasoning,
            citations=merge_citations(_string_list(payload.get("citations")), context_citations(contexts)),
            red_flags=_string_list(payload.get("redFlags", payload.get("red_flags"))),
            context_sources=contexts,
            wiki_support=str(payload.get("wikiSupport") or ""),
            backend=self._backend.name,
            fallback=False,
        )

    def synthetic_verdict(
        self,
        claim_text: str,
        contexts: List[TopicContext],
        article_id: Optional[str] = None,
    ) -> VerificationVerdict:
        status = self._rng.choice(VERDICT_STATUSES)
        confidence = self._rng.randint(60, 99)
        return VerificationVerdict(
            article_id=article_id,
            claim_text=claim_text,
            status=status,
            confidence_score=confidence,
            reasoning=SYNTHETIC_REASONING[status],
            citations=merge_citations(BASE_CITATIONS, context_citations(contexts)),
            red_flags=["Contradicts verified data", "Lacks credible sources"] if status == "false" else [],
            context_sources=contexts,
            wiki_support=(
                "Wikipedia context provides relevant background information for verification."
                if contexts
                else "Limited Wikipedia context available."
            ),
            backend="synthetic",
            fallback=True,
        )
