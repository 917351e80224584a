"""Element-to-WBS matcher.

Tiers, in strict priority order (the first tier that accepts wins):

1. Assembly code equals a WBS code              -> confidence 1.0
2. Longest WBS code that prefixes the assembly  -> confidence 0.9
3. Description token similarity, with an ambiguity guard
4. Unmatched
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from wbsmatch.config import MatchingConfig
from wbsmatch.matching.text import similarity_score, token_set
from wbsmatch.models import MatchStrategy, ModelElement, WbsItem
from wbsmatch.wbs.codes import normalize_wbs_code


@dataclass(frozen=True)
class MatchDecision:
    """Outcome of matching one element."""

    matched_code: str | None
    matched_title: str | None
    confidence: float
    strategy: MatchStrategy

    @classmethod
    def unmatched(cls) -> MatchDecision:
        return cls(None, None, 0.0, MatchStrategy.UNMATCHED)


def element_text(element: ModelElement) -> str:
    """Free text used for description matching."""
    parts = [
        element.assembly_description,
        element.element_name,
        element.family_name,
        element.category,
        element.type_mark,
        element.description,
    ]
    return " ".join(part.strip() for part in parts if part and part.strip())


class WbsMatcher:
    """Matches elements against a fixed list of WBS items.

    Lookup structures are built once per WBS set, so a matcher can be reused
    for every element of a run.
    """

    def __init__(self, items: Sequence[WbsItem], config: MatchingConfig | None = None):
        self.config = config or MatchingConfig()
        self.items = list(items)
        self._by_code = {item.code: item for item in self.items}
        # Longest code first so the first prefix hit is the deepest one
        self._by_length = sorted(self.items, key=lambda item: len(item.code), reverse=True)
        self._tokens = [(item, token_set(f"{item.code} {item.title}")) for item in self.items]

    def match(self, element: ModelElement) -> MatchDecision:
        assembly_code = normalize_wbs_code(element.assembly_code)

        if assembly_code:
            decision = self._match_assembly_code(assembly_code)
            if decision is not None:
                return decision

        return self._match_description(element) or MatchDecision.unmatched()

    def _match_assembly_code(self, assembly_code: str) -> MatchDecision | None:
        direct = self._by_code.get(assembly_code)
        if direct is not None:
            return MatchDecision(
                direct.code,
                direct.title,
                self.config.exact_match_confidence,
                MatchStrategy.ASSEMBLY_CODE_EXACT,
            )

        for item in self._by_length:
            if assembly_code == item.code or assembly_code.startswith(f"{item.code}."):
                return MatchDecision(
                    item.code,
                    item.title,
                    self.config.prefix_match_confidence,
                    MatchStrategy.ASSEMBLY_CODE_PREFIX,
                )
        return None

    def _match_description(self, element: ModelElement) -> MatchDecision | None:
        element_tokens = token_set(element_text(element))

        best: tuple[WbsItem, float] | None = None
        second_best = 0.0

        for item, tokens in self._tokens:
            score = similarity_score(element_tokens, tokens)
            if best is None or score > best[1]:
                if best is not None:
                    second_best = best[1]
                best = (item, score)
            elif score > second_best:
                # a tie with the best also lands here and makes the gap zero
                second_best = score

        if best is None:
            return None

        item, score = best
        if (
            score >= self.config.description_match_threshold
            and score - second_best >= self.config.ambiguous_gap_threshold
        ):
            return MatchDecision(
                item.code, item.title, round(score, 4), MatchStrategy.DESCRIPTION_SIMILARITY
            )
        return None


def match_element(
    element: ModelElement, items: Sequence[WbsItem], config: MatchingConfig | None = None
) -> MatchDecision:
    """Convenience function: match one element against a WBS item list."""
    return WbsMatcher(items, config).match(element)
