from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.models.medication import Medication
from app.settings import settings

logger = logging.getLogger("medcalls.store")

T = TypeVar("T")


class StoreUnavailableError(RuntimeError):
    """The medication store could not be queried at all."""


@dataclass(frozen=True)
class MedicationSnapshot:
    id: int
    user_id: int
    name: str
    time: str
    retry_count: int
    last_called_at: dt.datetime | None


def _snapshot(med: Medication) -> MedicationSnapshot:
    return MedicationSnapshot(
        id=med.id,
        user_id=med.user_id,
        name=med.name,
        time=med.time,
        retry_count=med.retry_count,
        last_called_at=med.last_called_at,
    )


def _cooled_down(threshold: dt.datetime):
    # inclusive: a call exactly one cooldown ago is eligible again
    return and_(Medication.last_called_at.is_not(None), Medication.last_called_at <= threshold)


class MedicationStore:
    """Async facade over the medications table.

    Each operation opens its own session and runs in a worker thread, so
    independent operations (the per-id stamps of one batch) can overlap.
    Reads raise :class:`StoreUnavailableError` when the database fails.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, fn: Callable[[Session], T]) -> T:
        def _work() -> T:
            with self._session_factory() as db:
                return fn(db)

        try:
            return await asyncio.to_thread(_work)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Medication store query failed: {exc}") from exc

    async def _select(self, *criteria) -> list[MedicationSnapshot]:
        def _query(db: Session) -> list[MedicationSnapshot]:
            rows = db.execute(
                select(Medication)
                .where(Medication.is_taken.is_(False), *criteria)
                .order_by(Medication.time.asc(), Medication.id.asc())
            ).scalars()
            return [_snapshot(row) for row in rows]

        return await self._run(_query)

    async def first_call_candidates(self, now_time: str) -> list[MedicationSnapshot]:
        return await self._select(Medication.retry_count == 0, Medication.time == now_time)

    async def retry_candidates(self, cooldown_threshold: dt.datetime) -> list[MedicationSnapshot]:
        return await self._select(
            _cooled_down(cooldown_threshold),
            Medication.retry_count < settings.MAX_RETRY_COUNT,
        )

    async def upcoming(self, now_time: str, window_end: str) -> list[MedicationSnapshot]:
        if window_end < now_time:
            in_window = or_(Medication.time >= now_time, Medication.time <= window_end)
        else:
            in_window = and_(Medication.time >= now_time, Medication.time <= window_end)
        return await self._select(Medication.retry_count < settings.MAX_RETRY_COUNT, in_window)

    async def overdue_retries(self, now_time: str, cooldown_threshold: dt.datetime) -> list[MedicationSnapshot]:
        return await self._select(
            _cooled_down(cooldown_threshold),
            Medication.time < now_time,
            Medication.retry_count < settings.MAX_RETRY_COUNT,
        )

    async def retry_counts(self, medication_ids: list[int]) -> dict[int, int]:
        def _query(db: Session) -> dict[int, int]:
            rows = db.execute(
                select(Medication.id, Medication.retry_count).where(Medication.id.in_(medication_ids))
            ).all()
            return {row.id: row.retry_count for row in rows}

        return await self._run(_query)

    async def stamp_call(self, medication_id: int, retry_count: int, called_at: dt.datetime) -> None:
        def _update(db: Session) -> None:
            result = db.execute(
                update(Medication)
                .where(Medication.id == medication_id)
                .values(last_called_at=called_at, retry_count=retry_count)
            )
            if result.rowcount != 1:
                db.rollback()
                raise LookupError(f"Medication {medication_id} not found for update")
            db.commit()

        await self._run(_update)

    async def skip_counts(self, cooldown_threshold: dt.datetime) -> tuple[int, int]:
        """(cooling down, retry limit reached) among pending medications."""

        def _query(db: Session) -> tuple[int, int]:
            counts = crud.medication_state_counts(db, cooldown_threshold)
            return counts["cooling_down"], counts["exhausted"]

        return await self._run(_query)
