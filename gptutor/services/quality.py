"""Heuristic quality scoring for parsed tutor answers."""
from __future__ import annotations

from typing import Sequence

from gptutor.models.answer import Concept, ParsedAnswer, QualityAssessment, QualityStatus
from gptutor.utils.text import word_count

LENS_WEIGHT = 0.4
PROMPT_WEIGHT = 0.3
CONCEPT_WEIGHT = 0.3

ACTIONABLE_PROMPT_MIN_CHARS = 20
MIN_PROMPTS = 2
MIN_CONCEPTS = 2
MIN_LENS_WORDS = 50
HIGH_LENS_BAND = (80, 200)


def score_answer(parsed: ParsedAnswer, concepts: Sequence[Concept] | None = None) -> QualityAssessment:
    """Score ``parsed`` on structure rather than raw length.

    ``concepts`` should be the relevance-filtered list; when omitted the
    parsed concept candidates are counted instead.
    """

    if concepts is None:
        concepts = [Concept.from_candidate(candidate) for candidate in parsed.concepts]

    lens_words = word_count(parsed.strategic_lens) if parsed.has_strategic_lens else 0
    actionable = sum(
        1 for prompt in parsed.follow_up_prompts if len(prompt.strip()) > ACTIONABLE_PROMPT_MIN_CHARS
    )
    concept_count = len(concepts)

    score = round(
        LENS_WEIGHT * lens_score(lens_words)
        + PROMPT_WEIGHT * count_score(actionable)
        + CONCEPT_WEIGHT * count_score(concept_count)
    )

    missing = _missing_fields(parsed, concept_count)
    return QualityAssessment(
        score=max(0, min(100, score)),
        status=_status(missing, lens_words, actionable, concept_count),
        lens_words=lens_words,
        actionable_prompts=actionable,
        concept_count=concept_count,
        missing_fields=missing,
    )


def lens_score(words: int) -> int:
    if words <= 0:
        return 0
    if 100 <= words <= 150:
        return 100
    if 50 <= words <= 300:
        return 70
    return 30


def count_score(count: int) -> int:
    if count >= 4:
        return 100
    if count == 3:
        return 80
    if count == 2:
        return 60
    if count == 1:
        return 25
    return 0


def _missing_fields(parsed: ParsedAnswer, concept_count: int) -> tuple[str, ...]:
    missing: list[str] = []
    if not parsed.has_strategic_lens:
        missing.append("strategic_lens")
    if not parsed.has_narrative:
        missing.append("narrative")
    if not parsed.follow_up_prompts:
        missing.append("follow_up_prompts")
    if concept_count == 0:
        missing.append("concepts")
    return tuple(missing)


def _status(missing: Sequence[str], lens_words: int, prompts: int, concepts: int) -> QualityStatus:
    if missing:
        return "low"
    if prompts < MIN_PROMPTS or concepts < MIN_CONCEPTS or lens_words < MIN_LENS_WORDS:
        return "low"
    low, high = HIGH_LENS_BAND
    if low <= lens_words <= high:
        return "high"
    return "consistent"


__all__ = ["count_score", "lens_score", "score_answer"]
