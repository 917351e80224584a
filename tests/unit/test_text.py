"""Unit tests for description text normalization and similarity."""

from __future__ import annotations

import pytest

from wbsmatch.matching.text import normalize_text, similarity_score, token_set, tokenize


class TestNormalizeText:
    def test_lowercase_and_accents(self):
        assert normalize_text("Hormigón ARMADO") == "hormigon armado"

    def test_punctuation_becomes_space(self):
        assert normalize_text("Wall/Partition-Type_A") == "wall partition type a"

    def test_whitespace_collapsed(self):
        assert normalize_text("  Interior    Walls ") == "interior walls"

    def test_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""


class TestTokenize:
    def test_short_tokens_and_stopwords_dropped(self):
        assert tokenize("The Wall of the Lobby and a Door for 3.2.1") == [
            "wall",
            "lobby",
            "door",
        ]

    def test_spanish_stopwords_dropped(self):
        assert tokenize("Muros de la Planta para Sótano") == ["muros", "planta", "sotano"]


class TestSimilarityScore:
    def test_coverage_wins_when_wbs_title_is_short(self):
        element = token_set("Interior Wall Type A")
        wbs = token_set("3.5 Interior Walls")
        # intersection {interior}: coverage 1/2, jaccard 1/4
        assert similarity_score(element, wbs) == pytest.approx(0.5)

    def test_identical_sets_score_one(self):
        tokens = token_set("Mechanical Ductwork Installation")
        assert similarity_score(tokens, tokens) == 1.0

    def test_no_overlap_scores_zero(self):
        assert similarity_score(token_set("Roof Membrane"), token_set("Foundation Pour")) == 0.0

    def test_empty_sets_score_zero(self):
        assert similarity_score(frozenset(), token_set("Foundation Pour")) == 0.0
        assert similarity_score(token_set("Foundation Pour"), frozenset()) == 0.0
