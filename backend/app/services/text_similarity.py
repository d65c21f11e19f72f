"""
Lightweight text-similarity heuristics used by gap analysis and the
qualitative bridge.

- trigram_similarity / jaccard: pg_trgm-style Jaccard over padded word trigrams
- tokenize / keyword_overlap: share of finding keywords found in a text
"""
import re

_WORD_RE = re.compile(r"[^\W_]+")
_SPLIT_RE = re.compile(r"\W+")


def trigrams(text: str) -> set[str]:
    """Word trigrams with pg_trgm padding (two leading, one trailing blank)."""
    grams: set[str] = set()
    for word in _WORD_RE.findall((text or "").lower()):
        padded = f"  {word} "
        grams.update(padded[i:i + 3] for i in range(len(padded) - 2))
    return grams


def jaccard(a_grams: set[str], b_grams: set[str]) -> float:
    """Jaccard similarity of two precomputed trigram sets (0.0 – 1.0)."""
    if not a_grams or not b_grams:
        return 0.0
    return len(a_grams & b_grams) / len(a_grams | b_grams)


def trigram_similarity(a: str, b: str) -> float:
    """Jaccard similarity between the trigram sets of two strings (0.0 – 1.0)."""
    return jaccard(trigrams(a), trigrams(b))


def tokenize(text: str, min_length: int = 4) -> list[str]:
    """Lower-cased distinct words of at least ``min_length`` chars, in order."""
    words = (w for w in _SPLIT_RE.split((text or "").lower()) if len(w) >= min_length)
    return list(dict.fromkeys(words))


def keyword_overlap(tokens: list[str], text: str) -> tuple[float, list[str]]:
    """Fraction of ``tokens`` occurring as substrings of ``text``.

    Returns (similarity, matched tokens). An empty token list scores 0.
    """
    if not tokens:
        return 0.0, []
    haystack = (text or "").lower()
    matched = [t for t in tokens if t in haystack]
    return len(matched) / len(tokens), matched
