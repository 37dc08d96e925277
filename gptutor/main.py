"""FastAPI application exposing the GPTutor answer pipeline."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

from gptutor.models.course import COURSES, DEFAULT_COURSE, get_course
from gptutor.services.client import EndpointClient, ExchangeError, QueryRejectedError
from gptutor.services.orchestrator import OrchestratorSettings, QueryOrchestrator

app = FastAPI(title="GPTutor Answer Pipeline")

logger = logging.getLogger(__name__)


def _build_debug_detail(exc: Exception) -> dict[str, str]:
    """Return a serialisable mapping describing ``exc`` for debugging."""

    message = str(exc).strip()
    return {
        "type": type(exc).__name__,
        "message": message or "No exception message provided.",
    }


@lru_cache(maxsize=1)
def _cached_orchestrator() -> QueryOrchestrator:
    """Create the process-wide orchestrator backed by the configured endpoint."""

    return QueryOrchestrator(EndpointClient(), settings=OrchestratorSettings.from_env())


def get_orchestrator() -> QueryOrchestrator:
    """FastAPI dependency returning the shared QueryOrchestrator instance."""

    return _cached_orchestrator()


class QueryRequest(BaseModel):
    """API payload submitted by clients asking the tutor a question."""

    query: str = Field(..., description="The question to ask the tutor.")
    course_id: str = Field(DEFAULT_COURSE, description="Practice lab the question belongs to.")

    @field_validator("query")
    @classmethod
    def _ensure_query_not_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Query must not be empty.")
        return cleaned

    @property
    def resolved_course(self) -> str:
        """Return a known course identifier, falling back to the default lab."""

        return get_course(self.course_id).id


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/courses")
def list_courses() -> dict[str, object]:
    return {
        "default": DEFAULT_COURSE,
        "courses": [course.as_dict() for course in COURSES.values()],
    }


async def _answer(payload: QueryRequest, orchestrator: QueryOrchestrator, *, force_refresh: bool) -> dict[str, object]:
    course_id = payload.resolved_course
    logger.info(
        "Tutor query received",
        extra={
            "event": "tutor.request",
            "course_id": course_id,
            "query_length": len(payload.query),
            "force_refresh": force_refresh,
        },
    )

    try:
        entry = await orchestrator.query(payload.query, course_id, force_refresh=force_refresh)
    except QueryRejectedError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": exc.message, "rejected": True},
        ) from exc
    except ExchangeError as exc:
        logger.exception("Tutor endpoint unavailable", extra={"event": "tutor.error", "reason": "exchange"})
        raise HTTPException(
            status_code=502,
            detail={
                "message": "Tutor service temporarily unavailable. Please retry.",
                "retryable": True,
                "debug": _build_debug_detail(exc),
            },
        ) from exc

    result = entry.as_dict()
    result["suggest_retry"] = entry.quality.status == "low"
    return result


@app.post("/api/query")
async def submit_query(
    payload: QueryRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> dict[str, object]:
    """Return the parsed, filtered and scored answer for a question."""

    return await _answer(payload, orchestrator, force_refresh=False)


@app.post("/api/query/retry")
async def retry_query(
    payload: QueryRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> dict[str, object]:
    """Re-run a question, bypassing any cached answer."""

    return await _answer(payload, orchestrator, force_refresh=True)


@app.post("/api/warmup")
async def warm_up(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> dict[str, object]:
    await orchestrator.warm_up()
    return {
        "warm_status": orchestrator.warm_status.value,
        "estimated_processing_time": orchestrator.estimated_processing_time(),
    }


@app.post("/api/warmup/check")
async def check_warm_up(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> dict[str, object]:
    """Re-warm the endpoint only when recent answers suggest it has cooled down."""

    rewarmed = await orchestrator.check_and_warm_up_if_needed()
    return {
        "rewarmed": rewarmed,
        "warm_status": orchestrator.warm_status.value,
        "estimated_processing_time": orchestrator.estimated_processing_time(),
    }


@app.get("/api/cache/stats")
def cache_stats(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> dict[str, object]:
    stats = orchestrator.cache_stats().as_dict()
    stats["estimated_processing_time"] = orchestrator.estimated_processing_time()
    return stats


@app.delete("/api/cache")
def clear_cache(orchestrator: QueryOrchestrator = Depends(get_orchestrator)) -> dict[str, object]:
    orchestrator.clear_cache()
    return orchestrator.cache_stats().as_dict()
