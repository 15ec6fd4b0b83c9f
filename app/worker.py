from __future__ import annotations

import argparse
import asyncio
import logging

from app.clock import utcnow
from app.db import SessionLocal
from app.logging_utils import configure_logging
from app.schemas.scheduler import RunReport
from app.services.scheduler import Scheduler
from app.settings import settings

HEARTBEAT_EVERY = 15

logger = logging.getLogger("medcalls_worker")


async def _run_once() -> RunReport:
    scheduler = Scheduler.from_session_factory(SessionLocal)
    return await scheduler.run_once(utcnow())


async def run_loop() -> None:
    logger.info("Call scheduler worker started (every %ss)", settings.SCHEDULER_POLL_INTERVAL_SEC)
    tick = 0
    while True:
        try:
            report = await _run_once()
            tick += 1
            if report.batches_triggered or report.errors:
                logger.info("Run report: %s", report.model_dump_json())
            elif tick % HEARTBEAT_EVERY == 0:
                logger.info("Call scheduler heartbeat (ticks=%s)", tick)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Call scheduler error: %s", exc)
        await asyncio.sleep(settings.SCHEDULER_POLL_INTERVAL_SEC)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Batch medication call scheduler")
    parser.add_argument("--once", action="store_true", help="run a single pass and print the report")
    args = parser.parse_args(argv)

    configure_logging()
    if args.once:
        report = asyncio.run(_run_once())
        print(report.model_dump_json(indent=2))
        return 0 if report.success else 1
    asyncio.run(run_loop())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
