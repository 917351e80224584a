"""Category label resolution.

A human category label ("Curtain Panels / Mullions") does not always match
the token the AEC Data Model schema uses, so a list of candidate tokens is
generated and each one is tried with two filter shapes until a query
returns rows.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from wbsmatch.aec.client import ElementPageSource
from wbsmatch.aec.elements import BULK_CONTEXT_FILTER, fetch_rows_by_filter, summarize_compliance
from wbsmatch.config import AecConfig
from wbsmatch.exceptions import InvalidCategory, UnresolvableCategory
from wbsmatch.models import CategoryResolution, ModelElement

logger = structlog.get_logger(__name__)

_WORD_SPLIT = re.compile(r"[^a-zA-Z0-9]+")
_SYNTAX_ERROR = re.compile(r"Error with query syntax|Lexical error", re.IGNORECASE)


def singularize_word(word: str) -> str:
    if not word:
        return ""
    lowered = word.lower()
    if lowered.endswith("ies"):
        return f"{word[:-3]}y"
    if lowered.endswith("sses"):
        return word
    if lowered.endswith("s") and len(word) > 3:
        return word[:-1]
    return word


def _capitalize(word: str) -> str:
    return f"{word[0].upper()}{word[1:]}" if word else ""


def build_category_candidates(
    category: str, aliases: Mapping[str, Sequence[str]] | None = None
) -> list[str]:
    """Build the ordered, de-duplicated list of query tokens for a label.

    Order: raw label, compact form, PascalCase, singular compact,
    singular PascalCase, then any configured aliases for the exact label.

    Raises:
        InvalidCategory: If the label is empty
    """
    raw = str(category or "").strip()
    if not raw:
        raise InvalidCategory("Missing category")

    candidates: list[str] = []

    def push(candidate: str) -> None:
        candidate = str(candidate or "").strip()
        if candidate and candidate not in candidates:
            candidates.append(candidate)

    push(raw)

    words = [w for w in _WORD_SPLIT.split(raw) if w]
    singular = [w for w in (singularize_word(w) for w in words) if w]

    push("".join(words))
    push("".join(_capitalize(w) for w in words))
    push("".join(singular))
    push("".join(_capitalize(w) for w in singular))

    if aliases is None:
        aliases = AecConfig().category_aliases
    for alias in aliases.get(raw, ()):
        push(alias)

    if not candidates:
        raise InvalidCategory(f"Invalid category token: {raw}")
    return candidates


def quote_if_needed(token: str) -> str:
    return f"'{token}'" if re.search(r"\s", token) else token


def category_filter_with_context(token: str) -> str:
    return f"property.name.category=={quote_if_needed(token)} and {BULK_CONTEXT_FILTER}"


def category_filter(token: str) -> str:
    return f"property.name.category=={quote_if_needed(token)}"


def build_filter_attempts(candidates: Sequence[str]) -> list[tuple[str, str]]:
    """Pair every token with the context-filtered shape first, then the bare one."""
    attempts: list[tuple[str, str]] = []
    for token in candidates:
        attempts.append((token, category_filter_with_context(token)))
        attempts.append((token, category_filter(token)))
    return attempts


def is_filter_syntax_error(error: BaseException) -> bool:
    return bool(_SYNTAX_ERROR.search(str(error)))


class AttemptStatus(str, Enum):
    ROWS = "rows"
    EMPTY = "empty"
    SYNTAX_ERROR = "syntax-error"


@dataclass
class AttemptOutcome:
    """Tagged result of one ``(token, filter)`` attempt."""

    status: AttemptStatus
    token: str
    property_filter: str
    rows: list[ModelElement]
    error: str = ""


async def _attempt(
    source: ElementPageSource, model_id: str, token: str, property_filter: str
) -> AttemptOutcome:
    try:
        rows = await fetch_rows_by_filter(source, model_id, property_filter)
    except Exception as exc:
        if not is_filter_syntax_error(exc):
            raise
        return AttemptOutcome(AttemptStatus.SYNTAX_ERROR, token, property_filter, [], str(exc))

    status = AttemptStatus.ROWS if rows else AttemptStatus.EMPTY
    return AttemptOutcome(status, token, property_filter, rows)


async def resolve_category_elements(
    source: ElementPageSource,
    model_id: str,
    category: str,
    aliases: Mapping[str, Sequence[str]] | None = None,
) -> CategoryResolution:
    """Fetch the elements of a category, trying candidate tokens in order.

    - First attempt with rows wins.
    - If all attempts are empty, the first empty attempt is returned.
    - Syntax errors skip to the next attempt; if every attempt is a syntax
      error, ``UnresolvableCategory`` is raised with the last message.
    - Any other error propagates immediately.
    """
    if not str(model_id or "").strip():
        raise ValueError("model_id is required")

    label = str(category or "").strip()
    attempts = build_filter_attempts(build_category_candidates(label, aliases))

    first_empty: AttemptOutcome | None = None
    last_syntax_error: AttemptOutcome | None = None

    for token, property_filter in attempts:
        outcome = await _attempt(source, model_id, token, property_filter)

        if outcome.status is AttemptStatus.ROWS:
            logger.info(
                "category_resolved",
                model_id=model_id,
                category=label,
                token=token,
                property_filter=property_filter,
                elements=len(outcome.rows),
            )
            return _resolution(outcome)

        if outcome.status is AttemptStatus.EMPTY:
            first_empty = first_empty or outcome
        else:
            logger.info(
                "category_filter_skipped",
                model_id=model_id,
                token=token,
                property_filter=property_filter,
                error=outcome.error,
            )
            last_syntax_error = outcome

    if first_empty is not None:
        logger.info("category_empty", model_id=model_id, category=label, token=first_empty.token)
        return _resolution(first_empty)

    raise UnresolvableCategory(label, last_syntax_error.error if last_syntax_error else "")


def _resolution(outcome: AttemptOutcome) -> CategoryResolution:
    return CategoryResolution(
        rows=outcome.rows,
        resolved_token=outcome.token,
        filter_used=outcome.property_filter,
        summary=summarize_compliance(outcome.rows),
    )
