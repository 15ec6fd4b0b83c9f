from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from app.clock import add_minutes, format_hhmm, is_valid_hhmm, minutes_since, window_crosses_midnight
from app.services.anchors import cooldown_threshold
from app.services.store import MedicationSnapshot, MedicationStore
from app.settings import settings

logger = logging.getLogger("medcalls.sweep")


@dataclass(frozen=True)
class MedicationItem:
    id: int
    name: str
    time: str


@dataclass
class SweepResult:
    batches: dict[int, list[MedicationItem]] = field(default_factory=dict)

    @property
    def user_ids(self) -> set[int]:
        return set(self.batches)

    @property
    def medication_count(self) -> int:
        return sum(len(items) for items in self.batches.values())

    def __bool__(self) -> bool:
        return bool(self.batches)


def _merge(*groups: list[MedicationSnapshot]) -> list[MedicationSnapshot]:
    # earlier groups win on duplicate ids
    seen: set[int] = set()
    merged = []
    for group in groups:
        for med in group:
            if med.id in seen:
                continue
            seen.add(med.id)
            merged.append(med)
    return merged


async def sweep(store: MedicationStore, anchor_users: set[int], now: dt.datetime) -> SweepResult:
    """Collect every medication that should ride along in each anchor user's call.

    Upcoming items within the sweep window plus overdue items whose cooldown
    expired. Users outside ``anchor_users`` are never introduced.
    """
    result = SweepResult()
    if not anchor_users:
        return result

    now_time = format_hhmm(now)
    window_end = add_minutes(now_time, settings.SWEEP_WINDOW_MIN)
    threshold = cooldown_threshold(now)
    if window_crosses_midnight(now_time, window_end):
        logger.info("Sweep window %s-%s crosses midnight", now_time, window_end)

    upcoming = await store.upcoming(now_time, window_end)
    overdue = await store.overdue_retries(now_time, threshold)
    logger.info(
        "Sweep %s-%s: %s upcoming, %s overdue retries",
        now_time,
        window_end,
        len(upcoming),
        len(overdue),
    )

    for med in _merge(upcoming, overdue):
        if med.user_id not in anchor_users:
            continue
        if not is_valid_hhmm(med.time):
            logger.warning("Skipping medication %s with malformed time %r", med.id, med.time)
            continue
        result.batches.setdefault(med.user_id, []).append(MedicationItem(med.id, med.name, med.time))

    # upcoming in dial order from now, overdue items after them
    for items in result.batches.values():
        items.sort(key=lambda item: (minutes_since(item.time, now_time), item.id))

    for user_id, items in result.batches.items():
        logger.info("User %s: %s meds (%s)", user_id, len(items), ", ".join(i.name for i in items))
    return result
