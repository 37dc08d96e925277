"""Utilities for cleaning answer text produced by the tutor model."""
from __future__ import annotations

import re
from typing import Any


_TRAILING_SEPARATOR_RE = re.compile(r"\s*(?:[-–—]+|=+|_+)\s*$")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])(?:\s+|$)")
_TOOLTIP_SPAN_RE = re.compile(
    r"<span\s+class=\"tooltip\"\s+data-tooltip=\"([^\"]+)\"\s*>([^<]+)</span>",
    re.IGNORECASE,
)
_MARKDOWN_EMPHASIS_RE = re.compile(r"([*_]{1,3})([^*_\n]+)\1")
_WORD_RE = re.compile(r"\b[\w'-]+\b")


def clean_section(value: Any) -> str:
    """Trim ``value`` and drop stray separator runs left at its end.

    The generator occasionally closes a section with ``---``, ``===`` or ``___``
    artefacts. Non-string values return an empty string.
    """

    if not isinstance(value, str):
        return ""
    text = value.strip()
    while True:
        stripped = _TRAILING_SEPARATOR_RE.sub("", text).strip()
        if stripped == text:
            return text
        text = stripped


def strip_list_marker(line: str) -> str:
    """Remove one leading bullet or ``1.`` style marker from ``line``."""

    return _LIST_MARKER_RE.sub("", line, count=1).strip()


def split_list_lines(block: str) -> list[str]:
    """Tokenise a list-shaped block into cleaned, non-empty entries."""

    items: list[str] = []
    for raw_line in block.splitlines():
        cleaned = clean_section(strip_list_marker(raw_line))
        if cleaned:
            items.append(cleaned)
    return items


def extract_tooltip_spans(value: Any) -> dict[str, str]:
    """Return ``{term: definition}`` for every annotation span in ``value``."""

    if not isinstance(value, str):
        return {}
    return {term.strip(): definition.strip() for definition, term in _TOOLTIP_SPAN_RE.findall(value)}


def strip_annotations(value: str) -> str:
    """Replace annotation spans with their visible term."""

    return _TOOLTIP_SPAN_RE.sub(r"\2", value)


def strip_emphasis(value: str) -> str:
    """Remove inline bold/italic markers while keeping the emphasised text."""

    return _MARKDOWN_EMPHASIS_RE.sub(r"\2", value)


def word_count(value: Any) -> int:
    if not isinstance(value, str):
        return 0
    return len(_WORD_RE.findall(value))


__all__ = [
    "clean_section",
    "extract_tooltip_spans",
    "split_list_lines",
    "strip_annotations",
    "strip_emphasis",
    "strip_list_marker",
    "word_count",
]
