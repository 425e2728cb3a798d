"""Models for the lyrics resolution API contract and pipeline."""

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


class LanguageTag(StrEnum):
    KO = "ko"
    JA = "ja"
    ZH = "zh"
    EN = "en"
    UNKNOWN = "unknown"


class ParseSource(StrEnum):
    """Which normalization strategy produced an artist/title pair."""

    FIELDS = "fields"
    GROQ = "groq"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"
    DASH = "dash"
    BY = "by"
    ROSTER = "roster"
    TWO_TOKENS = "two_tokens"
    IDENTICAL = "identical"


class Query(BaseModel):
    """Canonical artist/title pair handed to providers."""

    model_config = {"frozen": True}

    artist: str
    title: str
    raw_text: str | None = None


class ResolveRequest(BaseModel):
    """Request body for POST /lyrics/resolve."""

    artist: str | None = None
    title: str | None = None
    raw_text: str | None = Field(default=None, alias="rawText")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _strip(self) -> "ResolveRequest":
        self.artist = (self.artist or "").strip() or None
        self.title = (self.title or "").strip() or None
        self.raw_text = (self.raw_text or "").strip() or None
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.artist or self.title or self.raw_text)


class LyricsCandidate(BaseModel):
    """One provider's proposed lyrics plus metadata."""

    text: str
    synced_text: str | None = None
    source: str
    confidence: float = Field(ge=0.0, le=1.0)
    has_timestamps: bool = False
    language: LanguageTag | None = None
    url: str | None = None
    search_time_ms: int = 0
    artist: str | None = None
    title: str | None = None

    @property
    def length(self) -> int:
        return len(self.text)


class ResolveResponse(BaseModel):
    """Response from the lyrics resolver."""

    success: bool
    result: LyricsCandidate | None = None
    alternatives: list[LyricsCandidate] = []
    language: LanguageTag = LanguageTag.UNKNOWN
    error: str | None = None
    artist: str | None = None
    title: str | None = None
    parse_source: ParseSource | None = None
    cached: bool = False
    consolidated: bool = False
    cache_stats: dict | None = None


class NormalizedQuery(BaseModel):
    """Normalizer output: the pair plus the strategy that produced it."""

    artist: str
    title: str
    source: ParseSource

    def to_query(self, raw_text: str | None = None) -> Query:
        return Query(artist=self.artist, title=self.title, raw_text=raw_text)


@dataclass
class RankedResult:
    """Ordered, deduplicated candidates with a designated best."""

    candidates: list[LyricsCandidate]

    @property
    def best(self) -> LyricsCandidate:
        return self.candidates[0]

    @property
    def alternatives(self) -> list[LyricsCandidate]:
        return self.candidates[1:]


@dataclass
class ConsolidationRequest:
    """A short high-precision reference plus longer candidates to verify against it."""

    reference: LyricsCandidate
    candidates: list[LyricsCandidate] = field(default_factory=list)
    artist: str = ""
    title: str = ""
