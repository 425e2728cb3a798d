"""Lyrics text heuristics: cleanup, refusal detection, completeness.

Shared by the LLM-backed providers (to reject non-lyrics answers), the
consolidator (to reject refusals), and the scrapers (to tidy extracted text).
"""

import re

from rapidfuzz import fuzz

NO_LYRICS_SENTINEL = "NO_LYRICS_FOUND"
NO_LYRICS_MARKERS = (NO_LYRICS_SENTINEL, "LYRICS_NOT_FOUND")

# Phrases LLMs use when they answer about lyrics instead of with them.
META_TEXT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"I cannot access",
        r"I don't have.*real-time",
        r"real-time web content",
        r"search directly",
        r"I'd recommend",
        r"To find.*lyrics",
        r"actual current URLs",
        r"I cannot provide",
        r"I can't provide",
        r"I'm unable to",
        r"I am unable to",
        r"copyright(?:ed)? (?:material|lyrics)",
        r"please check",
        r"you can search",
        r"visit.*website",
        r"try searching",
    )
]

CONVERSATIONAL_WORDS = re.compile(
    r"\b(I|you|your|we|our|please|would|could|should)\b", re.IGNORECASE
)
CONVERSATIONAL_RATIO = 0.1
# Lyrics are full of "I" and "you"; only short, unbroken prose is judged by ratio.
PROSE_MAX_LINES = 3

LRC_TIMESTAMP = re.compile(r"\[\d{1,3}:\d{2}(?:[.:]\d{1,3})?\]")
LRC_METADATA_LINE = re.compile(r"^\[(?:ar|ti|al|by|offset|length|re|ve):.*\]$", re.IGNORECASE)
CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, as LLMs often add one."""
    return CODE_FENCE.sub("", text.strip()).strip()


def clean_lyrics(text: str | None) -> str:
    """Normalize line endings and spacing and collapse runs of blank lines."""
    if not text:
        return ""
    text = strip_code_fences(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ").replace("\u00a0", " ")
    text = re.sub(r"[ ]{2,}", " ", text)
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def strip_timestamps(synced: str) -> str:
    """Turn LRC text into plain lyrics: markers and metadata tags removed."""
    lines = []
    for line in synced.split("\n"):
        stripped = line.strip()
        if LRC_METADATA_LINE.match(stripped):
            continue
        lines.append(LRC_TIMESTAMP.sub("", stripped).strip())
    return clean_lyrics("\n".join(lines))


def has_timestamps(text: str | None) -> bool:
    """Check whether text carries inline LRC time markers."""
    return bool(text) and LRC_TIMESTAMP.search(text) is not None


def is_meta_text(text: str) -> bool:
    """Detect an LLM explanation or refusal masquerading as lyrics."""
    if any(pattern.search(text) for pattern in META_TEXT_PATTERNS):
        return True

    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) > PROSE_MAX_LINES:
        return False
    words = text.split()
    conversational = len(CONVERSATIONAL_WORDS.findall(text))
    return conversational / max(len(words), 1) > CONVERSATIONAL_RATIO


def is_refusal(text: str | None) -> bool:
    """True for empty output, a no-lyrics marker, or LLM meta-text."""
    if not text or not text.strip():
        return True
    if any(marker in text for marker in NO_LYRICS_MARKERS):
        return True
    return is_meta_text(text)


def is_usable_lyrics(text: str | None, min_length: int = 1) -> bool:
    """Non-empty, not a refusal, not an HTML page, and at least ``min_length`` long."""
    if text is None or is_refusal(text):
        return False
    if len(text) < min_length:
        return False
    lowered = text[:500].lower()
    return "<html" not in lowered and "<!doctype" not in lowered


# ---------------------------------------------------------------------------
# Completeness heuristics
# ---------------------------------------------------------------------------

def is_only_first_verse(text: str) -> bool:
    """Heuristic for a transcript that stops after the first verse."""
    lines = [line for line in text.split("\n") if line.strip()]
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    return len(lines) < 12 and len(paragraphs) <= 2


def are_same_song(first: str, second: str, min_matches: int = 2) -> bool:
    """Check whether two transcripts open with the same lines.

    At least ``min_matches`` of the first five non-empty lines must closely
    match a line among the other transcript's first five.
    """
    if not first or not second:
        return False

    head1 = [line.strip().lower() for line in first.split("\n") if line.strip()][:5]
    head2 = [line.strip().lower() for line in second.split("\n") if line.strip()][:5]
    if not head1 or not head2:
        return False

    needed = min(min_matches, len(head1), len(head2))
    matches = 0
    for line in head1:
        if any(fuzz.partial_ratio(line, other) >= 90 for other in head2):
            matches += 1
    return matches >= needed
