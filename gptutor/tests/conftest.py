"""Shared fixtures and helpers for the test suite."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

import pytest


_LENS = "Anchor on your BATNA and secure stakeholder alignment early. " + " ".join(
    ["Weigh each option against long term goals."] * 15
)

HIGH_QUALITY_ANSWER = f"""**Strategic Thinking Lens:** {_LENS}

**Story in Action:** A founder weighs two acquisition offers and walks away from the weaker one.

**Follow-up Prompts:**
1. What is your best alternative if this deal collapses tomorrow?
2. How would a SWOT analysis change the way you frame the offer?
3. Which stakeholders must agree before you commit to a path?
4. What outcomes would a decision tree reveal across your options?

**Concepts/Tools/Practice Reference:**
- BATNA: Best alternative to a negotiated agreement
- SWOT Analysis: Strengths, weaknesses, opportunities and threats
- Decision Tree: Visual map of choices and their outcomes
- Stakeholder Alignment: Getting key players to agree on a direction
"""

LOW_QUALITY_ANSWER = "**Strategic Thinking Lens:** Think harder about it."


def build_payload(answer: Any = HIGH_QUALITY_ANSWER, **data: Any) -> dict[str, Any]:
    """Return a successful endpoint payload wrapping ``answer``."""

    body: dict[str, Any] = {"answer": answer, "processing_time": 1.5, "model": "tutor-test"}
    body.update(data)
    return {"status": "success", "data": body}


class StubEndpoint:
    """Scripted stand-in for :class:`EndpointClient` used by orchestrator tests.

    ``responses`` maps a query to a queue of outcomes; an outcome is either a
    payload mapping or an exception instance to raise. Queries without a
    scripted outcome receive ``default``.
    """

    def __init__(
        self,
        responses: Mapping[str, list[Any]] | None = None,
        *,
        default: Any = None,
    ) -> None:
        self.responses = {query: list(outcomes) for query, outcomes in (responses or {}).items()}
        self.default = build_payload() if default is None else default
        self.calls: list[tuple[str, str, str]] = []

    async def exchange(self, query: str, course_id: str, user_id: str) -> Mapping[str, Any]:
        self.calls.append((query, course_id, user_id))
        await asyncio.sleep(0)
        queue = self.responses.get(query)
        outcome = queue.pop(0) if queue else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def queries(self) -> list[str]:
        return [query for query, _, _ in self.calls]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_endpoint() -> Callable[..., StubEndpoint]:
    """Provide a factory that builds scripted endpoint stubs."""

    return StubEndpoint


@pytest.fixture()
def make_payload() -> Callable[..., dict[str, Any]]:
    return build_payload


@pytest.fixture()
def high_answer() -> str:
    return HIGH_QUALITY_ANSWER


@pytest.fixture()
def low_answer() -> str:
    return LOW_QUALITY_ANSWER
