"""Unicode-range language classification for lyrics queries."""

from lyrics.models import LanguageTag

# Tested in this order; the first fraction above its threshold wins.
THRESHOLDS: tuple[tuple[LanguageTag, float], ...] = (
    (LanguageTag.KO, 0.3),
    (LanguageTag.JA, 0.2),
    (LanguageTag.ZH, 0.3),
    (LanguageTag.EN, 0.5),
)

HANGUL_RANGES = ((0xAC00, 0xD7AF), (0x1100, 0x11FF), (0x3130, 0x318F))
KANA_RANGES = ((0x3040, 0x309F), (0x30A0, 0x30FF))
CJK_RANGES = ((0x4E00, 0x9FFF),)


def _in_ranges(code: int, ranges: tuple[tuple[int, int], ...]) -> bool:
    return any(low <= code <= high for low, high in ranges)


def _is_latin(char: str) -> bool:
    return ("a" <= char <= "z") or ("A" <= char <= "Z")


def script_fractions(text: str) -> dict[LanguageTag, float]:
    """Fraction of non-whitespace characters that belong to each language's script.

    Japanese counts kana plus ideographs, but ideographs only when at least
    one kana character is present. Without kana, shared ideographs are Chinese.
    """
    chars = [c for c in text if not c.isspace()]
    total = len(chars)
    if total == 0:
        return {tag: 0.0 for tag, _ in THRESHOLDS}

    hangul = kana = cjk = latin = 0
    for char in chars:
        code = ord(char)
        if _in_ranges(code, HANGUL_RANGES):
            hangul += 1
        elif _in_ranges(code, KANA_RANGES):
            kana += 1
        elif _in_ranges(code, CJK_RANGES):
            cjk += 1
        elif _is_latin(char):
            latin += 1

    japanese = kana + cjk if kana else 0
    return {
        LanguageTag.KO: hangul / total,
        LanguageTag.JA: japanese / total,
        LanguageTag.ZH: cjk / total,
        LanguageTag.EN: latin / total,
    }


def classify(text: str) -> LanguageTag:
    """Tag text as ko/ja/zh/en, or unknown when no script clears its threshold."""
    fractions = script_fractions(text)
    for tag, threshold in THRESHOLDS:
        if fractions[tag] > threshold:
            return tag
    return LanguageTag.UNKNOWN
