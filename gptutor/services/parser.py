"""Section parser that splits a tutor answer into its four canonical sections."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from gptutor.models.answer import (
    NARRATIVE_SENTINEL,
    STRATEGIC_LENS_SENTINEL,
    ParsedAnswer,
)
from gptutor.services.concepts import RUN_ON_CONCEPT_TERMS
from gptutor.utils.text import (
    clean_section,
    extract_tooltip_spans,
    split_list_lines,
    strip_annotations,
)

logger = logging.getLogger(__name__)

LENS = "strategic_lens"
NARRATIVE = "narrative"
PROMPTS = "follow_up_prompts"
CONCEPTS = "concepts"

SECTION_TITLES: dict[str, str] = {
    "strategic thinking lens": LENS,
    "story in action": NARRATIVE,
    "follow-up prompts": PROMPTS,
    "follow up prompts": PROMPTS,
    "reflection prompts": PROMPTS,
    "concepts/tools": CONCEPTS,
    "concepts/tools/practice": CONCEPTS,
    "concepts/tools/practice reference": CONCEPTS,
    "concepts & tools": CONCEPTS,
    "concepts": CONCEPTS,
    "tools": CONCEPTS,
    "practice": CONCEPTS,
}

# A header is a bold run that opens a line, optionally behind markdown hashes.
_HEADER_RE = re.compile(r"^[ \t]*(?:#{1,6}[ \t]*)?\*\*([^*\n]+?)\*\*[ \t]*:?", re.MULTILINE)

_KNOWN_TERM_RE = re.compile(
    r"(?<![\w(])("
    + "|".join(re.escape(term) for term in sorted(RUN_ON_CONCEPT_TERMS, key=len, reverse=True))
    + r")\s*:"
)
_SENTENCE_TERM_RE = re.compile(r"(?<=[.;!?])\s+([A-Z][\w'()/&-]*(?:[ \t]+[\w'()/&-]+){0,5})\s*:")
_LEADING_TERM_RE = re.compile(r"^([A-Z][\w'()/&-]*(?:[ \t]+[\w'()/&-]+){0,5})\s*:")


@dataclass(slots=True, frozen=True)
class _HeaderToken:
    section: str
    start: int
    end: int


def parse_answer(raw: Any) -> ParsedAnswer:
    """Parse ``raw`` into a :class:`ParsedAnswer`.

    Header tokens are recognised first and every span between two recognised
    headers belongs to the earlier one. Missing sections resolve to their
    sentinel value or an empty list, so the result is always complete.
    """

    if not isinstance(raw, str) or not raw.strip():
        return ParsedAnswer()

    sections = _collect_sections(raw)
    parsed = ParsedAnswer()

    lens = clean_section(strip_annotations(sections.get(LENS, "")))
    if lens:
        parsed.strategic_lens = lens

    narrative = clean_section(strip_annotations(sections.get(NARRATIVE, "")))
    if narrative:
        parsed.narrative = narrative

    parsed.follow_up_prompts = split_list_lines(strip_annotations(sections.get(PROMPTS, "")))
    parsed.concepts = list(split_concept_block(strip_annotations(sections.get(CONCEPTS, ""))))
    return parsed


def split_concept_block(block: str) -> list[str]:
    """Split the raw concept block into ``"Term: Definition"`` strings.

    Multi-line blocks are split one concept per line. A single run-on line is
    split on recognisable ``Term:`` boundaries when at least two are found,
    otherwise on commas.
    """

    text = clean_section(block)
    if not text:
        return []
    if "\n" in text:
        return split_list_lines(text)

    boundaries = _term_boundaries(text)
    if len(boundaries) >= 2 and boundaries[0][0] == 0:
        concepts: list[str] = []
        for index, (start, colon) in enumerate(boundaries):
            stop = boundaries[index + 1][0] if index + 1 < len(boundaries) else len(text)
            term = text[start:colon].strip()
            definition = clean_section(text[colon + 1 : stop]).rstrip(" ,;")
            concepts.append(f"{term}: {definition}" if definition else term)
        return concepts

    return [item for item in (clean_section(part) for part in text.split(",")) if item]


def extract_tooltips(raw: Any, provided: Mapping[str, Any] | None = None) -> dict[str, str]:
    """Merge annotation-span tooltips from ``raw`` with a provided mapping."""

    tooltips = extract_tooltip_spans(raw)
    for term, definition in (provided or {}).items():
        if isinstance(term, str) and isinstance(definition, str) and definition.strip():
            tooltips[term.strip()] = definition.strip()
    return tooltips


def _collect_sections(raw: str) -> dict[str, str]:
    tokens = list(_header_tokens(raw))
    sections: dict[str, str] = {}
    for index, token in enumerate(tokens):
        stop = tokens[index + 1].start if index + 1 < len(tokens) else len(raw)
        content = raw[token.end : stop]
        if token.section in sections and sections[token.section].strip():
            logger.debug("Ignoring repeated section", extra={"event": "parser.duplicate_section", "section": token.section})
            continue
        sections[token.section] = content
    if not tokens:
        logger.debug("No recognised section headers in answer", extra={"event": "parser.no_headers"})
    return sections


def _header_tokens(raw: str) -> Iterable[_HeaderToken]:
    for match in _HEADER_RE.finditer(raw):
        title = match.group(1).strip().rstrip(":").strip().lower()
        section = SECTION_TITLES.get(title)
        if section is None:
            logger.debug("Unknown section header %r", title, extra={"event": "parser.unknown_header"})
            continue
        yield _HeaderToken(section=section, start=match.start(), end=match.end())


def _term_boundaries(text: str) -> list[tuple[int, int]]:
    """Return ``(term_start, colon_index)`` pairs for run-on concept text."""

    by_colon: dict[int, int] = {}
    leading = _LEADING_TERM_RE.match(text)
    if leading:
        by_colon[leading.end() - 1] = 0
    for match in _SENTENCE_TERM_RE.finditer(text):
        by_colon[match.end() - 1] = match.start(1)
    for match in _KNOWN_TERM_RE.finditer(text):
        by_colon[match.end() - 1] = match.start(1)
    return sorted((start, colon) for colon, start in by_colon.items())


__all__ = [
    "NARRATIVE_SENTINEL",
    "SECTION_TITLES",
    "STRATEGIC_LENS_SENTINEL",
    "extract_tooltips",
    "parse_answer",
    "split_concept_block",
]
