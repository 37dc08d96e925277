"""Tests for turning endpoint payloads into processed answer bundles."""
from __future__ import annotations

import logging
from typing import Any, Callable

import pytest

from gptutor.models.answer import NARRATIVE_SENTINEL, STRATEGIC_LENS_SENTINEL
from gptutor.services.answers import normalise_prompts, process_response


def test_process_response_parses_filters_and_scores(make_payload: Callable[..., dict[str, Any]]) -> None:
    bundle = process_response(make_payload())

    assert [concept.term for concept in bundle.concepts] == [
        "BATNA",
        "SWOT Analysis",
        "Decision Tree",
        "Stakeholder Alignment",
    ]
    assert bundle.quality.score == 100
    assert bundle.quality.status == "high"


def test_concepts_not_discussed_in_the_answer_are_dropped(make_payload: Callable[..., dict[str, Any]]) -> None:
    answer = (
        "**Strategic Thinking Lens:** Protect your BATNA.\n"
        "**Concepts/Tools:**\n- BATNA: Best alternative\n- Financial Modeling: Projections"
    )
    bundle = process_response(make_payload(answer))

    assert [concept.term for concept in bundle.concepts] == ["BATNA"]
    assert len(bundle.parsed.concepts) == 2


@pytest.mark.parametrize("payload", [None, {}, {"data": "oops"}, {"data": {"answer": 12}}])
def test_malformed_payload_yields_sentinels_and_low_quality(
    payload: Any, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        bundle = process_response(payload)

    assert bundle.parsed.strategic_lens == STRATEGIC_LENS_SENTINEL
    assert bundle.parsed.narrative == NARRATIVE_SENTINEL
    assert bundle.concepts == []
    assert bundle.quality.status == "low"
    assert any(getattr(record, "event", None) == "answer.shape_failure" for record in caplog.records)


def test_structured_fields_fill_gaps_in_free_text(make_payload: Callable[..., dict[str, Any]]) -> None:
    payload = make_payload(
        "**Story in Action:** A negotiator walks away.",
        strategicThinkingLens="Know your BATNA before the first offer.",
        followUpPrompts="1. What is your walk-away point? 2. Who else could you sell to?",
        concepts="BATNA: Best alternative, ZOPA: Overlap",
        conceptScores=[0.8, 0.2],
    )
    bundle = process_response(payload)

    assert bundle.parsed.strategic_lens == "Know your BATNA before the first offer."
    assert bundle.parsed.follow_up_prompts == ["What is your walk-away point?", "Who else could you sell to?"]
    assert [concept.term for concept in bundle.concepts] == ["BATNA"]


def test_tooltips_merge_spans_with_provided_mapping(make_payload: Callable[..., dict[str, Any]]) -> None:
    answer = '**Strategic Thinking Lens:** Know your <span class="tooltip" data-tooltip="Walk-away option">BATNA</span>.'
    bundle = process_response(make_payload(answer, tooltips={"ZOPA": "Overlap zone"}))

    assert bundle.tooltips == {"BATNA": "Walk-away option", "ZOPA": "Overlap zone"}
    assert bundle.parsed.strategic_lens == "Know your BATNA."


def test_normalise_prompts_accepts_lists_and_strings() -> None:
    assert normalise_prompts(["  First prompt ", "", "Second"]) == ["First prompt", "Second"]
    assert normalise_prompts("- One\n- Two") == ["One", "Two"]
    assert normalise_prompts(None) == []
