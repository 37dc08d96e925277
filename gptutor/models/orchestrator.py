"""State containers owned by the query orchestrator."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from gptutor.models.answer import Concept, ParsedAnswer, QualityAssessment


class WarmStatus(str, Enum):
    """Lifecycle of the remote endpoint as observed by one orchestrator."""

    COLD = "cold"
    WARMING = "warming"
    WARM = "warm"


CacheKey = tuple[str, str]


@dataclass(slots=True)
class CacheEntry:
    """A processed answer bundle stored for a ``(query, course)`` pair."""

    query: str
    course_id: str
    response: Mapping[str, Any]
    parsed: ParsedAnswer
    concepts: list[Concept]
    quality: QualityAssessment
    created_at: float
    tooltips: dict[str, str] = field(default_factory=dict)
    attempts: int = 1

    @property
    def key(self) -> CacheKey:
        return (self.query, self.course_id)

    @property
    def metadata(self) -> dict[str, Any]:
        """Response metadata reported by the endpoint, when present."""

        data = self.response.get("data") if isinstance(self.response, Mapping) else None
        if not isinstance(data, Mapping):
            return {}
        return {
            name: data[name]
            for name in ("processing_time", "model", "timestamp")
            if data.get(name) is not None
        }

    def as_dict(self) -> dict[str, object]:
        """Serialise the entry for API responses and the CLI."""

        data = self.response.get("data") if isinstance(self.response, Mapping) else None
        answer = data.get("answer") if isinstance(data, Mapping) else None
        return {
            "query": self.query,
            "course_id": self.course_id,
            "answer": answer if isinstance(answer, str) else "",
            "sections": self.parsed.as_dict(),
            "concepts": [concept.as_dict() for concept in self.concepts],
            "quality": self.quality.as_dict(),
            "tooltips": dict(self.tooltips),
            "attempts": self.attempts,
            "metadata": self.metadata,
        }


@dataclass(slots=True)
class EndpointWarmState:
    """Warm-up status and rolling health counters for the remote endpoint."""

    status: WarmStatus = WarmStatus.COLD
    consecutive_failures: int = 0
    last_failure_time: float | None = None
    total_queries: int = 0
    successful_queries: int = 0
    recent_failures: deque[float] = field(default_factory=lambda: deque(maxlen=32))

    @property
    def is_warmed_up(self) -> bool:
        return self.status is WarmStatus.WARM

    @property
    def failed_queries(self) -> int:
        return self.total_queries - self.successful_queries

    @property
    def failure_rate(self) -> float:
        if not self.total_queries:
            return 0.0
        return self.failed_queries / self.total_queries

    def record_success(self) -> None:
        self.total_queries += 1
        self.successful_queries += 1
        self.consecutive_failures = 0

    def record_cache_hit(self) -> None:
        """Count a cached answer as served without ending a failure run."""

        self.total_queries += 1
        self.successful_queries += 1

    def record_failure(self, now: float) -> None:
        self.total_queries += 1
        self.consecutive_failures += 1
        self.last_failure_time = now
        self.recent_failures.append(now)

    def failures_since(self, cutoff: float) -> int:
        return sum(1 for moment in self.recent_failures if moment >= cutoff)

    def reset_health(self) -> None:
        """Zero the windowed health counters.

        The current failure run and the warm status are left untouched; only a
        successful exchange ends a failure run.
        """

        self.last_failure_time = None
        self.total_queries = 0
        self.successful_queries = 0
        self.recent_failures.clear()


@dataclass(slots=True, frozen=True)
class CacheStats:
    """Snapshot of the orchestrator's cache and endpoint health."""

    cached_queries: int
    warm_status: WarmStatus
    total_queries: int
    successful_queries: int
    consecutive_failures: int

    @property
    def is_warmed_up(self) -> bool:
        return self.warm_status is WarmStatus.WARM

    def as_dict(self) -> dict[str, object]:
        return {
            "cached_queries": self.cached_queries,
            "warm_status": self.warm_status.value,
            "is_warmed_up": self.is_warmed_up,
            "total_queries": self.total_queries,
            "successful_queries": self.successful_queries,
            "consecutive_failures": self.consecutive_failures,
        }
