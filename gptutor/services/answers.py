"""Turn an endpoint payload into a parsed, filtered and scored answer bundle."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from gptutor.models.answer import Concept, ParsedAnswer, QualityAssessment
from gptutor.services.concepts import (
    CANDIDATE_FIELDS,
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_THRESHOLD,
    extract_concepts,
    select_candidates,
)
from gptutor.services.parser import extract_tooltips, parse_answer
from gptutor.services.quality import score_answer
from gptutor.utils.text import clean_section, split_list_lines

logger = logging.getLogger(__name__)

_NUMBERED_PROMPT_RE = re.compile(r"\s*\d+[.)]\s+")


@dataclass(slots=True)
class AnswerBundle:
    """Everything the UI renders for one endpoint answer."""

    parsed: ParsedAnswer
    concepts: list[Concept]
    quality: QualityAssessment
    tooltips: dict[str, str] = field(default_factory=dict)


def process_response(
    payload: Mapping[str, Any] | Any,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
) -> AnswerBundle:
    """Parse, filter and score a successful endpoint payload.

    A payload whose ``data`` block is malformed is not an error: it yields
    sentinel sections and a ``low`` assessment so callers always have
    something to render.
    """

    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, Mapping):
        logger.warning("Endpoint payload missing data block", extra={"event": "answer.shape_failure"})
        data = {}

    answer = data.get("answer")
    if not isinstance(answer, str):
        logger.warning("Endpoint payload missing answer text", extra={"event": "answer.shape_failure"})
        answer = ""

    parsed = parse_answer(answer)
    _apply_structured_fields(parsed, data)

    source: dict[str, Any] = {name: data.get(name) for name in CANDIDATE_FIELDS}
    if parsed.concepts:
        source["conceptsToolsPractice"] = parsed.concepts
    else:
        source["conceptScores"] = data.get("conceptScores")
        parsed.concepts = select_candidates(source)

    discussion = parsed.discussion_text()
    concepts = extract_concepts(
        source,
        threshold,
        discussion or None,
        context_window=context_window,
    )
    quality = score_answer(parsed, concepts)

    provided_tooltips = data.get("tooltips")
    tooltips = extract_tooltips(
        answer,
        provided_tooltips if isinstance(provided_tooltips, Mapping) else None,
    )
    return AnswerBundle(parsed=parsed, concepts=concepts, quality=quality, tooltips=tooltips)


def _apply_structured_fields(parsed: ParsedAnswer, data: Mapping[str, Any]) -> None:
    """Fill sections the free text lacked from structured payload fields."""

    if not parsed.has_strategic_lens:
        lens = clean_section(data.get("strategicThinkingLens"))
        if lens:
            parsed.strategic_lens = lens

    if not parsed.follow_up_prompts:
        parsed.follow_up_prompts = normalise_prompts(data.get("followUpPrompts"))


def normalise_prompts(value: Any) -> list[str]:
    """Coerce a structured ``followUpPrompts`` field into a list of prompts."""

    if isinstance(value, str):
        if "\n" in value:
            return split_list_lines(value)
        return [item for item in (clean_section(part) for part in _NUMBERED_PROMPT_RE.split(value)) if item]
    if isinstance(value, (list, tuple)):
        return [item for item in (clean_section(part) for part in value) if item]
    return []


__all__ = ["AnswerBundle", "normalise_prompts", "process_response"]
