from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass

from app.clock import as_utc_naive, utcnow
from app.services.store import MedicationStore, StoreUnavailableError

logger = logging.getLogger("medcalls.retry_accounting")


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    stamped: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.ok


async def commit_attempt(
    store: MedicationStore,
    medication_ids: list[int],
    now: dt.datetime | None = None,
) -> CommitResult:
    """Stamp ``last_called_at`` and bump ``retry_count`` for every id before a call.

    Updates are issued one per id, concurrently. The result is ok only when
    every update landed; rows already stamped by a failed batch stay stamped
    and the rest are picked up again on the next run.
    """
    ids = list(dict.fromkeys(medication_ids))
    if not ids:
        return CommitResult(True)

    called_at = as_utc_naive(now) if now is not None else utcnow()
    try:
        counts = await store.retry_counts(ids)
    except StoreUnavailableError as exc:
        logger.error("Could not read retry counts for %s: %s", ids, exc)
        return CommitResult(False, failed=tuple(ids), reason=str(exc))

    missing = [med_id for med_id in ids if med_id not in counts]
    if missing:
        logger.error("Medications %s vanished before stamping; nothing updated", missing)
        return CommitResult(False, failed=tuple(missing), reason=f"Medications not found: {missing}")

    results = await asyncio.gather(
        *(store.stamp_call(med_id, (counts[med_id] or 0) + 1, called_at) for med_id in ids),
        return_exceptions=True,
    )

    stamped, failed = [], []
    for med_id, outcome in zip(ids, results):
        if isinstance(outcome, BaseException):
            logger.error("Failed to stamp medication %s: %s", med_id, outcome)
            failed.append(med_id)
        else:
            logger.debug("Stamped medication %s: retry_count %s -> %s", med_id, counts[med_id], counts[med_id] + 1)
            stamped.append(med_id)

    if failed:
        logger.error("%s/%s stamp updates failed", len(failed), len(ids))
        return CommitResult(
            False,
            stamped=tuple(stamped),
            failed=tuple(failed),
            reason=f"{len(failed)} of {len(ids)} stamp updates failed",
        )
    logger.info("Stamped %s medications at %s", len(stamped), called_at.isoformat())
    return CommitResult(True, stamped=tuple(stamped))
