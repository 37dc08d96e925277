"""Domain models describing a parsed tutor answer and its quality assessment."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Union

from gptutor.utils.text import strip_list_marker

STRATEGIC_LENS_SENTINEL = "No strategic thinking lens available"
NARRATIVE_SENTINEL = "No story available"

QualityStatus = Literal["low", "consistent", "high"]

ConceptCandidate = Union[str, Mapping[str, Any]]


@dataclass(slots=True)
class Concept:
    """A term/definition pair proposed as relevant to a query."""

    term: str
    definition: str = ""

    @property
    def label(self) -> str:
        """Return the ``"Term: Definition"`` rendering used by the UI."""

        if self.term and self.definition:
            return f"{self.term}: {self.definition}"
        return self.term or self.definition

    @property
    def dedupe_key(self) -> str:
        """Case-insensitive identity used when removing duplicates."""

        if self.term:
            return self.term.strip().lower()
        return self.label.strip().lower()

    @classmethod
    def from_candidate(cls, candidate: ConceptCandidate) -> "Concept":
        """Normalise a raw string or mapping candidate into a :class:`Concept`."""

        if isinstance(candidate, Mapping):
            term = str(candidate.get("term") or "").strip()
            definition = str(candidate.get("definition") or "").strip()
            if not term and definition:
                term, definition = _split_term(definition)
            return cls(term=strip_list_marker(term), definition=definition)

        text = strip_list_marker(str(candidate))
        term, definition = _split_term(text)
        return cls(term=term, definition=definition)

    def as_dict(self) -> dict[str, str]:
        return {"term": self.term, "definition": self.definition}


def _split_term(text: str) -> tuple[str, str]:
    index = text.find(":")
    if index > 0:
        return text[:index].strip(), text[index + 1 :].strip()
    return text.strip(), ""


@dataclass(slots=True)
class ParsedAnswer:
    """The four canonical sections extracted from a raw model answer."""

    strategic_lens: str = STRATEGIC_LENS_SENTINEL
    narrative: str = NARRATIVE_SENTINEL
    follow_up_prompts: list[str] = field(default_factory=list)
    concepts: list[ConceptCandidate] = field(default_factory=list)

    @property
    def has_strategic_lens(self) -> bool:
        return bool(self.strategic_lens.strip()) and self.strategic_lens != STRATEGIC_LENS_SENTINEL

    @property
    def has_narrative(self) -> bool:
        return bool(self.narrative.strip()) and self.narrative != NARRATIVE_SENTINEL

    def discussion_text(self) -> str:
        """Return the prose sections that concepts must be discussed in."""

        parts: list[str] = []
        if self.has_strategic_lens:
            parts.append(self.strategic_lens)
        if self.has_narrative:
            parts.append(self.narrative)
        parts.extend(self.follow_up_prompts)
        return "\n".join(parts)

    def as_dict(self) -> dict[str, object]:
        """Serialise the sections for JSON responses."""

        return {
            "strategic_lens": self.strategic_lens,
            "narrative": self.narrative,
            "follow_up_prompts": list(self.follow_up_prompts),
            "concepts": [
                dict(concept) if isinstance(concept, Mapping) else concept
                for concept in self.concepts
            ],
        }


@dataclass(slots=True, frozen=True)
class QualityAssessment:
    """Heuristic quality score derived from a parsed answer."""

    score: int
    status: QualityStatus
    lens_words: int = 0
    actionable_prompts: int = 0
    concept_count: int = 0
    missing_fields: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "score": self.score,
            "status": self.status,
            "lens_words": self.lens_words,
            "actionable_prompts": self.actionable_prompts,
            "concept_count": self.concept_count,
            "missing_fields": list(self.missing_fields),
        }


__all__ = [
    "Concept",
    "ConceptCandidate",
    "NARRATIVE_SENTINEL",
    "ParsedAnswer",
    "QualityAssessment",
    "QualityStatus",
    "STRATEGIC_LENS_SENTINEL",
]
