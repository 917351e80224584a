"""Text normalization and token-set similarity for description matching."""

from __future__ import annotations

import re
import unicodedata

STOPWORDS = frozenset(
    {"de", "la", "el", "los", "las", "and", "the", "for", "con", "sin", "por", "para"}
)

MIN_TOKEN_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace.

    Examples:
        >>> normalize_text("Hormigón  Armado (HA-30)")
        'hormigon armado ha 30'
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFD", str(text).strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str | None) -> list[str]:
    return [
        token
        for token in normalize_text(text).split(" ")
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def token_set(text: str | None) -> frozenset[str]:
    return frozenset(tokenize(text))


def similarity_score(element_tokens: frozenset[str], wbs_tokens: frozenset[str]) -> float:
    """Score = max(coverage, jaccard).

    Coverage is the share of the WBS tokens found in the element text;
    Jaccard is intersection over union. Empty sets score 0.
    """
    if not element_tokens or not wbs_tokens:
        return 0.0

    intersection = len(element_tokens & wbs_tokens)
    coverage = intersection / len(wbs_tokens)
    jaccard = intersection / len(element_tokens | wbs_tokens)
    return max(coverage, jaccard)
