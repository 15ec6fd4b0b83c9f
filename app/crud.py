from __future__ import annotations

import datetime as dt
from typing import Iterable

from sqlalchemy import select, and_, func, update
from sqlalchemy.orm import Session

from app.models.medication import Medication
from app.models.user import User
from app.schemas.medications import MedicationDraft, UserCreate
from app.settings import settings


def create_user(db: Session, data: UserCreate) -> User:
    user = User(
        full_name=(data.full_name or "").strip() or None,
        email=(data.email or "").strip() or None,
        phone_number=(data.phone_number or "").strip() or None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()


def create_medications(db: Session, user_id: int, draft: MedicationDraft) -> list[Medication]:
    """One row per chosen time of day."""
    rows = [
        Medication(
            user_id=user_id,
            name=draft.name,
            dosage=draft.dosage.strip(),
            time=time,
            is_taken=False,
            retry_count=0,
        )
        for time in draft.times
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows


def get_medication(db: Session, medication_id: int) -> Medication | None:
    return db.execute(select(Medication).where(Medication.id == medication_id)).scalar_one_or_none()


def list_medications(db: Session, user_id: int) -> list[Medication]:
    return list(
        db.execute(
            select(Medication)
            .where(Medication.user_id == user_id)
            .order_by(Medication.time.asc(), Medication.id.asc())
        ).scalars()
    )


def set_taken(db: Session, medication_id: int, is_taken: bool = True) -> Medication | None:
    med = get_medication(db, medication_id)
    if not med:
        return None
    med.is_taken = is_taken
    db.add(med)
    db.commit()
    db.refresh(med)
    return med


def delete_medication(db: Session, medication_id: int) -> bool:
    med = get_medication(db, medication_id)
    if not med:
        return False
    db.delete(med)
    db.commit()
    return True


def mark_taken_many(db: Session, medication_ids: Iterable[int]) -> int:
    ids = list(medication_ids)
    if not ids:
        return 0
    result = db.execute(
        update(Medication)
        .where(and_(Medication.id.in_(ids), Medication.is_taken.is_(False)))
        .values(is_taken=True)
    )
    db.commit()
    return int(result.rowcount or 0)


def medication_state_counts(db: Session, cooldown_threshold: dt.datetime) -> dict[str, int]:
    """Pending, cooling-down, exhausted and taken medication counts."""
    pending = Medication.is_taken.is_(False)
    under_limit = Medication.retry_count < settings.MAX_RETRY_COUNT

    def _count(*criteria) -> int:
        return int(db.execute(select(func.count()).select_from(Medication).where(*criteria)).scalar_one())

    return {
        "pending": _count(pending, under_limit),
        "cooling_down": _count(pending, under_limit, Medication.last_called_at > cooldown_threshold),
        "exhausted": _count(pending, Medication.retry_count >= settings.MAX_RETRY_COUNT),
        "taken": _count(Medication.is_taken.is_(True)),
    }
