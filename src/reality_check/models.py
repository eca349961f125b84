from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


VerdictStatus = Literal["true", "false", "mixed", "unverified"]
ImageStatus = Literal["verified", "suspicious", "manipulated"]
Priority = Literal["low", "medium", "high", "critical"]

VERDICT_STATUSES: tuple[str, ...] = ("true", "false", "mixed", "unverified")
PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def article_id_for_url(url: str) -> str:
    return hashlib.sha256((url or "").strip().encode("utf-8", errors="ignore")).hexdigest()[:16]


def clamp_score(value: Any, lo: int = 0, hi: int = 100) -> int:
    try:
        v = int(round(float(value)))
    except (TypeError, ValueError):
        v = lo
    return max(lo, min(hi, v))


# ---------------------------
# Articles
# ---------------------------
class RawArticle(BaseModel):
    """Article as delivered by a provider, before it is stored."""
    title: str = ""
    description: str = ""
    content: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    published_at: Optional[str] = None
    source_name: Optional[str] = None
    author: Optional[str] = None


class FetchResult(BaseModel):
    articles: List[RawArticle] = Field(default_factory=list)
    source: str


class Article(BaseModel):
    id: str
    url: str
    title: str
    content: str = ""
    image_url: Optional[str] = None
    sector: str = "general"
    published_at: str
    ingested_at: str = Field(default_factory=utc_now_iso)

    @classmethod
    def from_raw(cls, raw: RawArticle, sector: str) -> "Article":
        return cls(
            id=article_id_for_url(raw.url),
            url=raw.url,
            title=raw.title,
            content=raw.description or raw.content or "",
            image_url=raw.image_url,
            sector=sector,
            published_at=raw.published_at or utc_now_iso(),
        )


# ---------------------------
# Search + context
# ---------------------------
class SearchResult(BaseModel):
    title: str = ""
    content: str = ""
    url: str = ""
    published_date: Optional[str] = None
    relevance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    engine: Optional[str] = None


class SearchResultSet(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    total_results: int = 0
    instance: Optional[str] = None
    source: str = "searxng"


class WikiSummary(BaseModel):
    title: str
    extract: str = ""
    url: str
    thumbnail: Optional[str] = None
    source: str = "wikipedia"


class TopicContext(BaseModel):
    topic: str
    summary: Optional[WikiSummary] = None
    related_results: List[SearchResult] = Field(default_factory=list)

    @property
    def citation_url(self) -> Optional[str]:
        return self.summary.url if self.summary else None


# ---------------------------
# Verification
# ---------------------------
class VerificationVerdict(BaseModel):
    article_id: Optional[str] = None
    claim_text: str = ""
    status: VerdictStatus
    confidence_score: int = Field(ge=0, le=100)
    reasoning: str
    citations: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    context_sources: List[TopicContext] = Field(default_factory=list)
    wiki_support: str = ""
    backend: str = "synthetic"
    fallback: bool = False


class ColorSignals(BaseModel):
    unique_colors: int
    total_pixels: int
    color_diversity: float
    dominant_colors: List[Dict[str, Any]] = Field(default_factory=list)


class CompressionSignals(BaseModel):
    blockiness: float
    artifacts: float
    compression_level: float


class ManipulationSignals(BaseModel):
    edge_artifacts: bool = False
    color_inconsistencies: bool = False

    @property
    def active_count(self) -> int:
        return int(self.edge_artifacts) + int(self.color_inconsistencies)


class ImageSignals(BaseModel):
    width: int
    height: int
    aspect_ratio: float
    color: ColorSignals
    compression: CompressionSignals
    manipulation: ManipulationSignals


class UrlContext(BaseModel):
    domain: str = "unknown"
    service: str = "unknown"
    credibility: str = "low"
    sources: List[str] = Field(default_factory=list)
    has_timestamp: bool = False
    has_id: bool = False


class ImageAssessment(BaseModel):
    article_id: Optional[str] = None
    image_url: str
    match_count: int = 0
    authenticity_score: int = Field(ge=0, le=100)
    status: ImageStatus
    signals: Optional[ImageSignals] = None
    url_context: UrlContext = Field(default_factory=UrlContext)
    reasoning: str
    fallback: bool = False
    analyzed_at: str = Field(default_factory=utc_now_iso)


# ---------------------------
# Summaries + strategy
# ---------------------------
class TimelineEntry(BaseModel):
    date: str
    event: str


class StrategyPlan(BaseModel):
    recommendations: List[str] = Field(default_factory=list)
    priority: Priority = "medium"
    timeframe: str = "short-term"

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, v: Any) -> Any:
        return str(v).strip().lower() if v is not None else "medium"


class Summary(BaseModel):
    tldr: str
    key_points: List[str] = Field(default_factory=list)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    context: str = ""
    implications: str = ""
    trust_score: int = Field(ge=0, le=100)
    strategy: StrategyPlan = Field(default_factory=StrategyPlan)
    related_topics: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100)
    generated_at: str = Field(default_factory=utc_now_iso)
    backend: str = "synthetic"


class Strategy(BaseModel):
    article_id: Optional[str] = None
    summary: str
    action_steps: List[str] = Field(default_factory=list)
    priority: Priority = "medium"
    backend: str = "synthetic"

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, v: Any) -> Any:
        return str(v).strip().lower() if v is not None else "medium"


# ---------------------------
# Timeline
# ---------------------------
class TimelineEvent(BaseModel):
    topic: str
    date: str = Field(..., description="ISO date YYYY-MM-DD")
    title: str
    description: str = ""
    source: str = "unknown"
    url: Optional[str] = None
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)


class CauseEffect(BaseModel):
    cause: str
    effect: str
    confidence: int = Field(default=75, ge=0, le=100)


class TimelineAnalysis(BaseModel):
    summary: str
    key_patterns: List[str] = Field(default_factory=list)
    cause_effect: List[CauseEffect] = Field(default_factory=list)
    future_predictions: List[str] = Field(default_factory=list)
    significance: str = ""
    backend: str = "synthetic"


class Timeline(BaseModel):
    topic: str
    events: List[TimelineEvent] = Field(default_factory=list, max_length=15)
    analysis: TimelineAnalysis
    generated_at: str = Field(default_factory=utc_now_iso)
    source: str = "rag-timeline"
