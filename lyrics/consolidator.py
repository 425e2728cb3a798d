"""Multi-LLM cross-verification of candidate transcripts.

When at least two full-length candidates exist, several LLM backends are
asked at once to check them against a short high-precision reference and
produce one corrected transcript. The first usable answer wins and the
other requests are cancelled. That favors latency over a majority vote.
When every backend fails, the caller keeps the top-ranked candidate.
"""

import logging

from core.exceptions import ConsolidationFailure
from core.strategies import Attempt, first_success
from llm.client import LLMBackend
from lyrics.models import ConsolidationRequest, LyricsCandidate, RankedResult
from lyrics.quality import are_same_song, clean_lyrics, is_usable_lyrics

logger = logging.getLogger(__name__)

MAX_CONSOLIDATION_BACKENDS = 3
# Strongest general models first; Groq is the cheap last resort.
CONSOLIDATION_ORDER = ("anthropic", "openai", "gemini", "perplexity", "groq")
CONSOLIDATED_SOURCE = "consolidated"

SYSTEM_PROMPT = """You are a meticulous lyrics editor. You verify and merge song lyrics from several sources.
Return only the final lyrics text: no commentary, no headings, no markdown, no explanations.
Keep the song's original language and script; never translate or romanize.
If none of the sources contain this song's lyrics, reply with exactly NO_LYRICS_FOUND."""

PROMPT_TEMPLATE = """Song: "{title}" by {artist}

REFERENCE (highly accurate but possibly incomplete):
{reference}

CANDIDATES (more complete but less verified):
{candidates}

Instructions:
1. Verify each candidate against the reference; the reference wins on any conflicting line
2. Choose the most complete and accurate version of the song
3. Correct typos, missing lines and wrongly ordered sections
4. Keep every verse, chorus and bridge with line breaks
5. Return the lyrics text only"""


def build_prompt(request: ConsolidationRequest) -> str:
    candidates = "\n\n".join(
        f"--- Candidate {number} ({candidate.source}) ---\n{candidate.text}"
        for number, candidate in enumerate(request.candidates, start=1)
    )
    return PROMPT_TEMPLATE.format(
        artist=request.artist or request.reference.artist or "",
        title=request.title or request.reference.title or "",
        reference=f"--- Reference ({request.reference.source}) ---\n{request.reference.text}",
        candidates=candidates,
    )


class Consolidator:
    """Races LLM backends to merge ranked candidates into one transcript."""

    def __init__(
        self,
        backends: list[LLMBackend] | None = None,
        timeout: float = 30.0,
        min_length: int = 400,
    ):
        """Initialize the consolidator.

        Args:
            backends: LLM backends in preference order; at most three are used
            timeout: Deadline in seconds for the whole race
            min_length: Characters needed for a candidate to count as full-length
        """
        self.backends = (backends or [])[:MAX_CONSOLIDATION_BACKENDS]
        self.timeout = timeout
        self.min_length = min_length

    @property
    def enabled(self) -> bool:
        return bool(self.backends)

    def is_full(self, candidate: LyricsCandidate) -> bool:
        return candidate.length >= self.min_length

    def select(
        self,
        ranked: RankedResult,
        artist: str = "",
        title: str = "",
    ) -> ConsolidationRequest | None:
        """Pick the reference and the candidates to verify, or None if there is nothing to merge.

        The reference is the best-ranked partial transcript. Without one, the
        top full-length candidate takes its place.
        """
        full = [candidate for candidate in ranked.candidates if self.is_full(candidate)]
        if len(full) < 2:
            return None

        partial = [candidate for candidate in ranked.candidates if not self.is_full(candidate)]
        reference = partial[0] if partial else full[0]
        candidates = [
            candidate
            for candidate in full
            if candidate is not reference and candidate.source != reference.source
        ]
        if not candidates:
            return None
        return ConsolidationRequest(
            reference=reference, candidates=candidates, artist=artist, title=title
        )

    def _accept(self, request: ConsolidationRequest):
        sources = [request.reference.text] + [candidate.text for candidate in request.candidates]

        def accept(text: str) -> bool:
            if not is_usable_lyrics(text):
                return False
            return any(are_same_song(text, source) for source in sources)

        return accept

    def _attempt(self, backend: LLMBackend, prompt: str) -> Attempt[str]:
        async def run() -> str | None:
            reply = await backend.complete(
                prompt,
                system=SYSTEM_PROMPT,
                temperature=0.2,
                max_tokens=4000,
            )
            return clean_lyrics(reply)

        return Attempt(name=backend.name, run=run)

    async def merge(self, request: ConsolidationRequest) -> str:
        """Ask every backend concurrently and return the first usable transcript.

        Raises:
            ConsolidationFailure: If no backend produced usable text in time
        """
        if not self.backends:
            raise ConsolidationFailure("No consolidation backends configured")

        prompt = build_prompt(request)
        outcome = await first_success(
            [self._attempt(backend, prompt) for backend in self.backends],
            accept=self._accept(request),
            concurrent=True,
            deadline=self.timeout,
        )
        if outcome.value is None:
            raise ConsolidationFailure(
                "No consolidation backend returned usable lyrics",
                {"outcomes": {name: str(status) for name, status in outcome.outcomes.items()}},
            )

        logger.info(
            f"Consolidated {len(request.candidates)} candidates via {outcome.winner} "
            f"in {outcome.elapsed_ms:.0f}ms ({len(outcome.value)} chars)"
        )
        return outcome.value

    async def consolidate(
        self,
        reference: LyricsCandidate,
        candidates: list[LyricsCandidate],
        artist: str = "",
        title: str = "",
    ) -> str | None:
        """Merged text, or None when consolidation fails."""
        request = ConsolidationRequest(
            reference=reference, candidates=candidates, artist=artist, title=title
        )
        try:
            return await self.merge(request)
        except ConsolidationFailure as e:
            logger.warning(f"Consolidation failed for {artist} - {title}: {e.message} {e.details}")
            return None

    async def consolidate_ranked(
        self,
        ranked: RankedResult,
        artist: str = "",
        title: str = "",
    ) -> LyricsCandidate | None:
        """Merge a ranked result into a new ``consolidated`` candidate, if it qualifies."""
        if not self.enabled:
            return None
        request = self.select(ranked, artist, title)
        if request is None:
            return None

        text = await self.consolidate(request.reference, request.candidates, artist, title)
        if text is None:
            return None

        participants = [request.reference, *request.candidates]
        best = ranked.best
        return LyricsCandidate(
            text=text,
            source=CONSOLIDATED_SOURCE,
            confidence=max(candidate.confidence for candidate in participants),
            has_timestamps=False,
            language=best.language,
            artist=best.artist or artist,
            title=best.title or title,
        )
