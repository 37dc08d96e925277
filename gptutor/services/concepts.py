"""Concept extraction and strict relevance filtering for tutor answers."""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence

from gptutor.models.answer import Concept
from gptutor.utils.text import strip_annotations, strip_emphasis

logger = logging.getLogger(__name__)

MAX_CONCEPTS = 5
DEFAULT_THRESHOLD = 0.3
DEFAULT_CONTEXT_WINDOW = 200

CANDIDATE_FIELDS: tuple[str, ...] = (
    "conceptsToolsPractice",
    "concepts",
    "tools",
    "practice",
)

CONCEPT_ALIASES: dict[str, tuple[str, ...]] = {
    "Decision Tree": (
        "decision tree",
        "branching decision",
        "decision branches",
        "tree diagram",
        "branching paths",
        "decision tree analysis",
    ),
    "Strategic Framing": (
        "strategic frame",
        "reframe",
        "structure decision",
        "define options",
        "clarify goals",
        "frame your decision",
    ),
    "Risk Assessment": (
        "risk assessment",
        "assess risk",
        "risk evaluation",
        "risk analysis",
        "assess the risks",
    ),
    "Stakeholder Alignment": ("stakeholder alignment", "align stakeholders", "stakeholder engagement"),
    "Risk Tolerance Assessment": ("risk tolerance", "tolerance assessment", "risk profile assessment"),
    "SWOT Analysis": ("swot analysis", "strengths weaknesses opportunities threats"),
    "Cost-Benefit Analysis": ("cost-benefit analysis", "cost benefit analysis", "financial impact analysis"),
    "BATNA": ("batna", "best alternative to negotiated agreement", "best alternative"),
    "ZOPA": ("zopa", "zone of possible agreement", "negotiation zone"),
    "Market Research": ("market research", "market analysis", "customer research", "research the market"),
    "Competitive Analysis": ("competitive analysis", "competitor analysis", "competitive assessment"),
    "Financial Modeling": ("financial modeling", "financial model", "financial projection"),
    "Scenario Planning": ("scenario planning", "scenario analysis", "what-if analysis"),
    "Stakeholder Analysis": ("stakeholder analysis", "stakeholder mapping", "key players analysis"),
}

# Concepts whose names are everyday words need a supporting context word nearby.
CONTEXT_WORDS: dict[str, tuple[str, ...]] = {
    "Decision Tree": (
        "map",
        "options",
        "scenario",
        "outcomes",
        "analyze",
        "framework",
        "branches",
        "visual",
        "path",
        "choice",
        "alternative",
    ),
}

RUN_ON_CONCEPT_TERMS: tuple[str, ...] = tuple(CONCEPT_ALIASES) + (
    "Reservation Point",
    "Reservation Price",
    "Zone of Possible Agreement (ZOPA)",
)

_CANONICAL_BY_NAME = {name.lower(): name for name in CONCEPT_ALIASES}
_STRING_DELIMITER_RE = re.compile(r"\\n|,|\n")

Span = tuple[int, int]


def extract_concepts(
    candidates: Any,
    threshold: float = DEFAULT_THRESHOLD,
    answer_text: str | None = None,
    *,
    scores: Sequence[Any] | None = None,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    limit: int = MAX_CONCEPTS,
) -> list[Concept]:
    """Return a deduplicated, capped list of concepts relevant to ``answer_text``.

    ``candidates`` is either a response-like mapping, in which case the first
    populated legacy field wins, or a plain sequence/string of candidates. When
    ``scores`` (or the mapping's ``conceptScores``) is supplied, candidates
    scoring below ``threshold`` are dropped before the relevance filter runs.
    """

    raw_list = select_candidates(candidates)
    if scores is None and isinstance(candidates, Mapping):
        supplied = candidates.get("conceptScores")
        if isinstance(supplied, Sequence) and not isinstance(supplied, str):
            scores = supplied

    if threshold > 0 and scores is not None:
        raw_list = [
            candidate
            for index, candidate in enumerate(raw_list)
            if _score_at(scores, index) >= threshold
        ]

    concepts = list(_normalise(raw_list))

    if isinstance(answer_text, str) and answer_text.strip():
        concepts = [
            concept
            for concept in concepts
            if is_relevant(concept.term or concept.definition, answer_text, context_window=context_window)
        ]

    seen: set[str] = set()
    deduped: list[Concept] = []
    for concept in concepts:
        key = concept.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        deduped.append(concept)
    return deduped[: max(0, limit)]


def select_candidates(candidates: Any) -> list[Any]:
    """Return the raw candidate list from the first populated source field."""

    if isinstance(candidates, Mapping):
        for name in CANDIDATE_FIELDS:
            extracted = _coerce_candidates(candidates.get(name))
            if extracted:
                return extracted
        return []
    return _coerce_candidates(candidates)


def is_relevant(term: str, text: str, *, context_window: int = DEFAULT_CONTEXT_WINDOW) -> bool:
    """Return ``True`` when ``term`` is actually discussed in ``text``.

    A match needs the term, one of its aliases, or (for candidates that embed
    a known alias) the related canonical concept to appear as a whole word.
    Context-gated concepts also need a context word within ``context_window``
    characters of a match.
    """

    lower_term = " ".join(term.split()).lower()
    if not lower_term or not isinstance(text, str):
        return False
    haystack = strip_emphasis(strip_annotations(text)).lower()

    canonical = _CANONICAL_BY_NAME.get(lower_term)
    spans = _find(lower_term, haystack)
    if not spans and canonical:
        spans = _find_any(CONCEPT_ALIASES[canonical], haystack)

    if not spans:
        for name, aliases in CONCEPT_ALIASES.items():
            if not any(alias in lower_term for alias in aliases):
                continue
            spans = _find(name.lower(), haystack) + _find_any(aliases, haystack)
            if spans:
                canonical = canonical or name
                break

    if not spans:
        return False

    context = CONTEXT_WORDS.get(canonical or "")
    if not context:
        return True
    return _has_nearby_context(spans, context, haystack, context_window)


def _has_nearby_context(spans: list[Span], words: Iterable[str], haystack: str, window: int) -> bool:
    word_spans = _find_any(words, haystack)
    for start, end in spans:
        for word_start, word_end in word_spans:
            if word_end >= start - window and word_start <= end + window:
                return True
    return False


def _coerce_candidates(value: Any) -> list[Any]:
    if isinstance(value, str):
        return [part.strip() for part in _STRING_DELIMITER_RE.split(value) if part.strip()]
    if isinstance(value, Mapping):
        return [item for item in value.values() if isinstance(item, str) and item.strip()]
    if isinstance(value, Sequence) and value:
        return list(value)
    return []


def _normalise(raw_list: Iterable[Any]) -> Iterable[Concept]:
    for candidate in raw_list:
        if not isinstance(candidate, (str, Mapping)):
            logger.debug("Skipping non-text concept candidate %r", candidate, extra={"event": "concepts.skip"})
            continue
        concept = Concept.from_candidate(candidate)
        if concept.term or concept.definition:
            yield concept


def _score_at(scores: Sequence[Any], index: int) -> float:
    try:
        return float(scores[index] or 0)
    except (IndexError, TypeError, ValueError):
        return 0.0


@lru_cache(maxsize=512)
def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)")


def _find(phrase: str, haystack: str) -> list[Span]:
    return [match.span() for match in _phrase_pattern(phrase).finditer(haystack)]


def _find_any(phrases: Iterable[str], haystack: str) -> list[Span]:
    spans: list[Span] = []
    for phrase in phrases:
        spans.extend(_find(phrase, haystack))
    return spans


__all__ = [
    "CANDIDATE_FIELDS",
    "CONCEPT_ALIASES",
    "CONTEXT_WORDS",
    "MAX_CONCEPTS",
    "RUN_ON_CONCEPT_TERMS",
    "extract_concepts",
    "is_relevant",
    "select_candidates",
]
