"""Query orchestrator that caches answers, warms the endpoint, and gates quality."""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping

from gptutor.models.answer import QualityAssessment
from gptutor.models.orchestrator import (
    CacheEntry,
    CacheKey,
    CacheStats,
    EndpointWarmState,
    WarmStatus,
)
from gptutor.services.answers import AnswerBundle, process_response
from gptutor.services.client import ExchangeError, QueryRejectedError, SupportsExchange

logger = logging.getLogger(__name__)

WARMUP_QUERY = "What is strategic planning?"
WARMUP_COURSE = "decision"

_COOLED_DOWN_SAMPLE = 5
_EVICTION_RATIO = 0.8


@dataclass(slots=True, frozen=True)
class OrchestratorSettings:
    """Tunable thresholds for caching, retries, and health tracking."""

    min_quality_score: int = 70
    max_entries: int = 50
    max_age_seconds: float = 3600.0
    consecutive_failure_limit: int = 3
    cold_reset_failures: int = 5
    failure_rate_min_samples: int = 10
    recent_failure_limit: int = 3
    recent_failure_window_seconds: float = 60.0
    concept_threshold: float = 0.3
    context_window: int = 200
    user_id: str = "default"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OrchestratorSettings":
        """Build settings from ``GPTUTOR_*`` environment variables."""

        env = os.environ if environ is None else environ
        names = {
            "min_quality_score": "GPTUTOR_MIN_QUALITY",
            "max_entries": "GPTUTOR_CACHE_MAX_ENTRIES",
            "max_age_seconds": "GPTUTOR_CACHE_MAX_AGE",
            "consecutive_failure_limit": "GPTUTOR_CONSECUTIVE_FAILURE_LIMIT",
            "cold_reset_failures": "GPTUTOR_COLD_RESET_FAILURES",
            "context_window": "GPTUTOR_CONTEXT_WINDOW",
        }
        overrides: dict[str, Any] = {}
        defaults = cls()
        for item in fields(cls):
            env_name = names.get(item.name)
            raw = env.get(env_name) if env_name else None
            if not raw:
                continue
            default = getattr(defaults, item.name)
            try:
                overrides[item.name] = type(default)(raw)
            except ValueError:
                logger.warning(
                    "Invalid %s value %r; using %s", env_name, raw, default, extra={"event": "config.invalid"}
                )
        user_id = (env.get("GPTUTOR_USER_ID") or "").strip()
        if user_id:
            overrides["user_id"] = user_id
        return cls(**overrides)


class QueryOrchestrator:
    """Sole entry point through which the application obtains tutor answers.

    Owns the response cache, the endpoint warm-up state machine
    (``COLD -> WARMING -> WARM``), a one-shot quality retry, and the health
    counters that drive cache eviction. Everything runs on one event loop, so
    the only coordination needed is the shared warm-up task.
    """

    def __init__(
        self,
        client: SupportsExchange,
        *,
        settings: OrchestratorSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.settings = settings or OrchestratorSettings()
        self._clock = clock
        self._cache: dict[CacheKey, CacheEntry] = {}
        self._state = EndpointWarmState()
        self._warmup_task: asyncio.Future[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def warm_status(self) -> WarmStatus:
        return self._state.status

    @property
    def is_warmed_up(self) -> bool:
        return self._state.is_warmed_up

    async def query(self, text: str, course_id: str, *, force_refresh: bool = False) -> CacheEntry:
        """Return the processed answer for ``text`` within ``course_id``.

        Cache hits return immediately. Misses warm the endpoint if needed,
        exchange, parse and score the answer, and retry once when the score is
        below ``min_quality_score``. ``force_refresh`` discards any cached
        entry first.
        """

        key = _cache_key(text, course_id)
        try:
            if force_refresh:
                self._cache.pop(key, None)
            else:
                cached = self._lookup(key)
                if cached is not None:
                    return self._cache_hit(cached)

            await self._ensure_warm()

            if not force_refresh:
                cached = self._lookup(key)
                if cached is not None:
                    return self._cache_hit(cached)

            entry = await self._fetch(*key)
            self._cache[entry.key] = entry
            logger.info(
                "Query answered quality=%s score=%s attempts=%s",
                entry.quality.status,
                entry.quality.score,
                entry.attempts,
                extra={"event": "query.answered", "course_id": key[1]},
            )
            return entry
        finally:
            self._manage_cache()

    async def submit_query(self, text: str, course_id: str) -> CacheEntry:
        """Entry point used by UI collaborators."""

        return await self.query(text, course_id)

    async def warm_up(self) -> None:
        """Pre-warm the endpoint unless it is already warm."""

        if self._state.is_warmed_up:
            logger.debug("Endpoint already warm; skipping pre-warm", extra={"event": "warmup.skipped"})
            return
        await self._ensure_warm()

    async def check_and_warm_up_if_needed(self) -> bool:
        """Re-warm the endpoint when recent answers suggest it has cooled down.

        Returns ``True`` when a warm-up was run or joined.
        """

        if not self.has_cooled_down():
            return False
        logger.info("Endpoint appears cooled down; re-warming", extra={"event": "warmup.rewarm"})
        if self._warmup_task is None:
            self._state.status = WarmStatus.COLD
        await self._ensure_warm()
        return True

    async def refresh_low_quality_entries(self) -> int:
        """Re-fetch cached answers scoring below ``min_quality_score``.

        A fresh answer replaces the cached one only when it clears the
        threshold; failed or still-low refreshes keep the old entry. Returns
        the number of entries replaced.
        """

        threshold = self.settings.min_quality_score
        stale = [
            entry
            for entry in self._cache.values()
            if entry.quality.score < threshold and entry.key != (WARMUP_QUERY, WARMUP_COURSE)
        ]
        replaced = 0
        for entry in stale:
            try:
                response, bundle = await self._exchange(entry.query, entry.course_id)
            except (ExchangeError, QueryRejectedError) as exc:
                logger.warning(
                    "Could not refresh cached answer: %s", exc, extra={"event": "cache.refresh_failed"}
                )
                continue
            if bundle.quality.score < threshold:
                logger.info(
                    "Refreshed answer still below threshold score=%s",
                    bundle.quality.score,
                    extra={"event": "cache.refresh_low", "course_id": entry.course_id},
                )
                continue
            fresh = self._build_entry(entry.key, response, bundle, attempts=1)
            self._cache[fresh.key] = fresh
            replaced += 1
        if stale:
            logger.info(
                "Refreshed %s of %s low-quality cached answers",
                replaced,
                len(stale),
                extra={"event": "cache.refreshed"},
            )
        return replaced

    def get_query_quality(self, text: str, course_id: str) -> QualityAssessment | None:
        entry = self._lookup(_cache_key(text, course_id))
        return entry.quality if entry is not None else None

    def should_suggest_retry(self, text: str, course_id: str) -> bool:
        quality = self.get_query_quality(text, course_id)
        return quality is not None and quality.status == "low"

    def clear_cache(self) -> None:
        """Drop every entry, reset health counters and return to ``COLD``."""

        self._cache.clear()
        self._state.reset_health()
        self._state.consecutive_failures = 0
        if self._warmup_task is None:
            self._state.status = WarmStatus.COLD
        logger.info("Query cache cleared", extra={"event": "cache.cleared"})

    def cache_stats(self) -> CacheStats:
        return CacheStats(
            cached_queries=len(self._cache),
            warm_status=self._state.status,
            total_queries=self._state.total_queries,
            successful_queries=self._state.successful_queries,
            consecutive_failures=self._state.consecutive_failures,
        )

    def has_cooled_down(self) -> bool:
        """Return ``True`` when recent answers average below the quality bar."""

        recent = sorted(self._cache.values(), key=lambda entry: entry.created_at)[-_COOLED_DOWN_SAMPLE:]
        if not recent:
            return False
        average = sum(entry.quality.score for entry in recent) / len(recent)
        return average < self.settings.min_quality_score

    def estimated_processing_time(self) -> str:
        if not self._state.is_warmed_up or self.has_cooled_down():
            return "15-20 seconds"
        return "10-15 seconds"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _lookup(self, key: CacheKey) -> CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self.settings.max_age_seconds:
            del self._cache[key]
            return None
        return entry

    def _cache_hit(self, entry: CacheEntry) -> CacheEntry:
        self._state.record_cache_hit()
        logger.debug("Using cached answer", extra={"event": "query.cache_hit", "course_id": entry.course_id})
        return entry

    async def _ensure_warm(self) -> None:
        if self._state.is_warmed_up:
            return
        if self._warmup_task is None:
            self._state.status = WarmStatus.WARMING
            self._warmup_task = asyncio.ensure_future(self._perform_warm_up())
        await asyncio.shield(self._warmup_task)

    async def _perform_warm_up(self) -> None:
        logger.info("Warming up tutor endpoint", extra={"event": "warmup.start"})
        try:
            response, bundle = await self._exchange(WARMUP_QUERY, WARMUP_COURSE)
        except (ExchangeError, QueryRejectedError) as exc:
            logger.warning(
                "Endpoint warm-up failed; continuing cold: %s", exc, extra={"event": "warmup.failed"}
            )
            if self._state.status is WarmStatus.WARMING:
                self._state.status = WarmStatus.COLD
        else:
            entry = self._build_entry((WARMUP_QUERY, WARMUP_COURSE), response, bundle, attempts=1)
            self._cache[entry.key] = entry
            logger.info(
                "Endpoint warmed up score=%s threshold=%s",
                bundle.quality.score,
                self.settings.min_quality_score,
                extra={"event": "warmup.complete"},
            )
            if bundle.quality.score >= self.settings.min_quality_score:
                await self.refresh_low_quality_entries()
        finally:
            self._warmup_task = None

    async def _fetch(self, text: str, course_id: str) -> CacheEntry:
        response, bundle = await self._exchange(text, course_id)
        attempts = 1

        if bundle.quality.score < self.settings.min_quality_score:
            logger.info(
                "Answer quality %s below threshold %s; retrying once",
                bundle.quality.score,
                self.settings.min_quality_score,
                extra={"event": "query.retry", "course_id": course_id},
            )
            attempts = 2
            response, bundle = await self._exchange(text, course_id)

        return self._build_entry((text, course_id), response, bundle, attempts=attempts)

    async def _exchange(self, text: str, course_id: str) -> tuple[Mapping[str, Any], AnswerBundle]:
        try:
            response = await self._client.exchange(text, course_id, self.settings.user_id)
        except QueryRejectedError:
            self._record_success()
            logger.info("Query rejected by endpoint", extra={"event": "query.rejected", "course_id": course_id})
            raise
        except ExchangeError:
            self._state.record_failure(self._clock())
            logger.warning(
                "Endpoint exchange failed (consecutive=%s)",
                self._state.consecutive_failures,
                extra={"event": "query.exchange_failed", "course_id": course_id},
            )
            raise

        bundle = process_response(
            response,
            threshold=self.settings.concept_threshold,
            context_window=self.settings.context_window,
        )
        self._record_success()
        return response, bundle

    def _record_success(self) -> None:
        self._state.record_success()
        if self._state.status is not WarmStatus.WARM:
            self._state.status = WarmStatus.WARM

    def _build_entry(
        self,
        key: CacheKey,
        response: Mapping[str, Any],
        bundle: AnswerBundle,
        *,
        attempts: int,
    ) -> CacheEntry:
        return CacheEntry(
            query=key[0],
            course_id=key[1],
            response=response,
            parsed=bundle.parsed,
            concepts=bundle.concepts,
            quality=bundle.quality,
            tooltips=bundle.tooltips,
            attempts=attempts,
            created_at=self._clock(),
        )

    def _manage_cache(self) -> None:
        now = self._clock()
        settings = self.settings

        expired = [key for key, entry in self._cache.items() if now - entry.created_at > settings.max_age_seconds]
        for key in expired:
            del self._cache[key]

        if len(self._cache) > settings.max_entries:
            target = int(settings.max_entries * _EVICTION_RATIO)
            oldest = sorted(self._cache.items(), key=lambda item: item[1].created_at)
            for key, _ in oldest[: len(self._cache) - target]:
                del self._cache[key]
            logger.info("Evicted oldest cache entries", extra={"event": "cache.evicted", "remaining": target})

        reason = self._health_clear_reason(now)
        if reason is None:
            return

        force_cold = self._state.consecutive_failures >= settings.cold_reset_failures
        self._cache.clear()
        self._state.reset_health()
        if force_cold and self._state.status is WarmStatus.WARM:
            self._state.status = WarmStatus.COLD
        logger.warning(
            "Cleared query cache after endpoint failures (%s)",
            reason,
            extra={"event": "cache.health_clear", "forced_cold": force_cold},
        )

    def _health_clear_reason(self, now: float) -> str | None:
        state = self._state
        settings = self.settings
        if state.consecutive_failures >= settings.consecutive_failure_limit:
            return f"{state.consecutive_failures} consecutive failures"
        if state.total_queries >= settings.failure_rate_min_samples and state.failure_rate > 0.5:
            return f"failure rate {state.failure_rate:.0%} over {state.total_queries} queries"
        recent = state.failures_since(now - settings.recent_failure_window_seconds)
        if recent >= settings.recent_failure_limit:
            return f"{recent} failures in {settings.recent_failure_window_seconds:.0f}s"
        return None


def _cache_key(text: str, course_id: str) -> CacheKey:
    query = (text or "").strip()
    if not query:
        raise ValueError("Query must not be empty.")
    return (query, (course_id or "").strip())


__all__ = [
    "OrchestratorSettings",
    "QueryOrchestrator",
    "WARMUP_COURSE",
    "WARMUP_QUERY",
]
