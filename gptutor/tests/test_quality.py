"""Tests for structural answer quality scoring."""
from __future__ import annotations

import pytest

from gptutor.models.answer import Concept, ParsedAnswer
from gptutor.services.parser import parse_answer
from gptutor.services.quality import count_score, lens_score, score_answer

_PROMPTS = [
    "What is your strongest alternative right now?",
    "Who loses most if the negotiation stalls?",
    "Which assumption would change your choice?",
    "How will you know the plan is working?",
]
_CONCEPTS = [Concept("BATNA"), Concept("ZOPA"), Concept("SWOT Analysis"), Concept("Decision Tree")]


def _words(count: int) -> str:
    return " ".join(["option"] * count)


def _answer(lens_words: int, prompts: int = 4, narrative: str = "A team chooses a supplier.") -> ParsedAnswer:
    return ParsedAnswer(
        strategic_lens=_words(lens_words),
        narrative=narrative,
        follow_up_prompts=_PROMPTS[:prompts],
    )


def test_complete_answer_scores_full_marks_and_high_status() -> None:
    quality = score_answer(_answer(120), _CONCEPTS)

    assert quality.score == 100
    assert quality.status == "high"
    assert quality.lens_words == 120
    assert quality.actionable_prompts == 4
    assert quality.concept_count == 4
    assert quality.missing_fields == ()


def test_empty_answer_scores_zero_and_lists_missing_fields() -> None:
    quality = score_answer(ParsedAnswer(), [])

    assert quality.score == 0
    assert quality.status == "low"
    assert quality.missing_fields == ("strategic_lens", "narrative", "follow_up_prompts", "concepts")


def test_long_lens_is_consistent_rather_than_high() -> None:
    quality = score_answer(_answer(250), _CONCEPTS)

    assert quality.score == 88
    assert quality.status == "consistent"


def test_thin_answer_is_low_even_when_complete() -> None:
    quality = score_answer(_answer(60, prompts=1), _CONCEPTS[:1])

    assert quality.missing_fields == ()
    assert quality.status == "low"


def test_short_prompts_are_not_actionable() -> None:
    parsed = _answer(120)
    parsed.follow_up_prompts = ["Why?", "And then what?"] + _PROMPTS[:1]

    assert score_answer(parsed, _CONCEPTS).actionable_prompts == 1


def test_parsed_concepts_are_counted_when_no_filtered_list_is_given() -> None:
    parsed = _answer(120)
    parsed.concepts = ["BATNA: Best alternative", "ZOPA: Overlap"]

    assert score_answer(parsed).concept_count == 2


@pytest.mark.parametrize("extra", [_answer(120, prompts=3), _answer(60, prompts=4)])
def test_score_is_monotonic_in_each_component(extra: ParsedAnswer) -> None:
    fewer_concepts = score_answer(extra, _CONCEPTS[:2]).score
    more_concepts = score_answer(extra, _CONCEPTS).score
    assert more_concepts >= fewer_concepts

    more_prompts = ParsedAnswer(
        strategic_lens=extra.strategic_lens,
        narrative=extra.narrative,
        follow_up_prompts=_PROMPTS,
    )
    assert score_answer(more_prompts, _CONCEPTS).score >= score_answer(extra, _CONCEPTS).score


def test_score_band_helpers() -> None:
    assert [lens_score(words) for words in (0, 10, 50, 100, 150, 151, 300, 301)] == [0, 30, 70, 100, 100, 70, 70, 30]
    assert [count_score(count) for count in (0, 1, 2, 3, 4, 9)] == [0, 25, 60, 80, 100, 100]


def test_parse_and_score_reference_answer(high_answer: str) -> None:
    parsed = parse_answer(high_answer)
    quality = score_answer(parsed)

    assert quality.score == 100
    assert quality.status == "high"
