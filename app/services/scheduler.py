from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.clock import as_utc_naive
from app.schemas.scheduler import DispatchDetail, RunReport
from app.services.anchors import find_anchors
from app.services.calls import CallProvider
from app.services.dispatch import BatchDispatcher
from app.services.identity import UserDirectory
from app.services.store import MedicationStore
from app.services.sweep import sweep

logger = logging.getLogger("medcalls.scheduler")


def summarize(details: list[DispatchDetail], errors: list[str] | None = None) -> RunReport:
    report = RunReport(details=details, errors=list(errors or []))
    for detail in details:
        if detail.status == "triggered":
            report.batches_triggered += 1
            report.total_meds += detail.medication_count
        elif detail.status == "error":
            report.errors.append(f"{detail.user_id}: {detail.error}")
    report.success = not (report.batches_triggered == 0 and report.errors)
    return report


class Scheduler:
    def __init__(self, store: MedicationStore, dispatcher: BatchDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher

    @classmethod
    def from_session_factory(
        cls,
        session_factory: Callable[[], Session],
        provider: CallProvider | None = None,
    ) -> "Scheduler":
        store = MedicationStore(session_factory)
        directory = UserDirectory(session_factory)
        return cls(store, BatchDispatcher(store, directory, provider))

    async def run_once(self, now: dt.datetime) -> RunReport:
        """One scheduling pass: anchors, sweep, then concurrent per-user dispatch.

        Per-user failures end up in the report. Only
        :class:`~app.services.store.StoreUnavailableError` escapes.
        """
        ran_at = as_utc_naive(now)
        anchors = await find_anchors(self.store, now)
        if not anchors:
            logger.debug("No anchor medications due")
            return RunReport(ran_at=ran_at)

        swept = await sweep(self.store, anchors.user_ids, now)
        if not swept:
            logger.debug(
                "Sweep found nothing to call for anchor medications %s",
                sorted(a.medication.id for a in anchors.anchors),
            )
            return RunReport(anchor_count=anchors.count, ran_at=ran_at)

        user_ids = list(swept.batches)
        results = await asyncio.gather(
            *(self.dispatcher.dispatch(user_id, swept.batches[user_id], now) for user_id in user_ids),
            return_exceptions=True,
        )

        details: list[DispatchDetail] = []
        for user_id, result in zip(user_ids, results):
            if isinstance(result, BaseException):
                logger.error("Unexpected dispatch failure for user %s: %s", user_id, result)
                result = DispatchDetail(
                    user_id=user_id,
                    medication_count=len(swept.batches[user_id]),
                    status="error",
                    error=f"Unexpected error: {result}",
                )
            details.append(result)

        report = summarize(details)
        report.anchor_count = anchors.count
        report.ran_at = ran_at
        logger.info(
            "Run finished: %s triggered, %s meds, %s errors",
            report.batches_triggered,
            report.total_meds,
            len(report.errors),
        )
        return report
