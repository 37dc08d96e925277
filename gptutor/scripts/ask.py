"""Submit one question to the tutor endpoint and print the processed answer.

The script runs the full answer pipeline (warm-up, exchange, section parsing,
concept filtering, quality scoring and the one-shot quality retry) and prints
the resulting bundle as JSON on stdout.

Configuration comes from the same ``GPTUTOR_*`` environment variables as the
web application; ``--api-url`` overrides ``GPTUTOR_API_URL``.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Sequence

from gptutor.models.course import COURSES, DEFAULT_COURSE
from gptutor.services.client import EndpointClient, ExchangeError, QueryRejectedError
from gptutor.services.orchestrator import OrchestratorSettings, QueryOrchestrator

LOGGER = logging.getLogger("gptutor.ask")


def _configure_logging() -> None:
    level_name = os.getenv("GPTUTOR_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s", stream=sys.stderr)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ask the GPTutor endpoint a question")
    parser.add_argument("question", help="Question to send to the tutor")
    parser.add_argument(
        "--course",
        choices=sorted(COURSES),
        default=os.getenv("GPTUTOR_COURSE", DEFAULT_COURSE),
        help="Practice lab the question belongs to (default: env or decision)",
    )
    parser.add_argument(
        "--api-url",
        default=os.getenv("GPTUTOR_API_URL"),
        help="Base URL of the tutor inference endpoint",
    )
    parser.add_argument(
        "--skip-warmup",
        action="store_true",
        help="Do not send the warm-up probe before the question",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, orchestrator: QueryOrchestrator) -> dict[str, object]:
    if not args.skip_warmup:
        await orchestrator.warm_up()
    entry = await orchestrator.query(args.question, args.course)
    return entry.as_dict()


def main(argv: Sequence[str] | None = None, *, orchestrator: QueryOrchestrator | None = None) -> int:
    _configure_logging()
    args = _parse_args(argv)
    LOGGER.info("ASK_START course=%s", args.course)

    if orchestrator is None:
        orchestrator = QueryOrchestrator(
            EndpointClient(args.api_url),
            settings=OrchestratorSettings.from_env(),
        )

    try:
        payload = asyncio.run(_run(args, orchestrator))
    except QueryRejectedError as exc:
        LOGGER.warning("ASK_REJECTED %s", exc.message)
        print(json.dumps({"rejected": True, "message": exc.message}, ensure_ascii=False))
        return 2
    except ExchangeError:
        LOGGER.exception("Tutor endpoint request failed")
        return 1

    print(json.dumps(payload, ensure_ascii=False))
    LOGGER.info("ASK_COMPLETE score=%s", payload["quality"]["score"])  # type: ignore[index]
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
