from __future__ import annotations

import datetime as dt
import enum
import logging
from dataclasses import dataclass, field

from app.clock import as_utc_naive, format_hhmm
from app.services.store import MedicationSnapshot, MedicationStore
from app.settings import settings

logger = logging.getLogger("medcalls.anchors")


class AnchorKind(str, enum.Enum):
    FIRST_CALL = "first_call"
    RETRY = "retry"


@dataclass(frozen=True)
class Anchor:
    kind: AnchorKind
    medication: MedicationSnapshot


@dataclass
class AnchorResult:
    anchors: list[Anchor] = field(default_factory=list)

    @property
    def user_ids(self) -> set[int]:
        return {a.medication.user_id for a in self.anchors}

    @property
    def count(self) -> int:
        return len(self.anchors)

    def count_of(self, kind: AnchorKind) -> int:
        return sum(1 for a in self.anchors if a.kind is kind)

    def __bool__(self) -> bool:
        return bool(self.anchors)


def cooldown_threshold(now: dt.datetime) -> dt.datetime:
    return as_utc_naive(now) - dt.timedelta(minutes=settings.SNOOZE_COOLDOWN_MIN)


async def find_anchors(store: MedicationStore, now: dt.datetime) -> AnchorResult:
    """Medications due this minute (first call) or whose snooze cooldown expired (retry).

    The two predicates stay separate: a first call needs an exact clock-minute
    match, a retry ignores ``time`` and only looks at the elapsed cooldown.
    """
    now_time = format_hhmm(now)
    threshold = cooldown_threshold(now)
    logger.debug(
        "Anchor scan at %s (cooldown threshold %s, max retries %s)",
        now_time,
        threshold.isoformat(),
        settings.MAX_RETRY_COUNT,
    )

    first_calls = await store.first_call_candidates(now_time)
    retries = await store.retry_candidates(threshold)

    result = AnchorResult(
        [Anchor(AnchorKind.FIRST_CALL, med) for med in first_calls]
        + [Anchor(AnchorKind.RETRY, med) for med in retries]
    )
    if not result:
        return result

    logger.info(
        "Found %s anchor medications for %s users (first call: %s, retry: %s)",
        result.count,
        len(result.user_ids),
        len(first_calls),
        len(retries),
    )
    if logger.isEnabledFor(logging.DEBUG):
        cooling, exhausted = await store.skip_counts(threshold)
        logger.debug("Skipped %s medications in cooldown, %s at retry limit", cooling, exhausted)
    return result
