from __future__ import annotations

import datetime as dt

from app import crud
from app.clock import utcnow
from app.db import describe_db
from app.settings import settings


def build_scheduler_debug(db, now: dt.datetime | None = None) -> dict:
    info = describe_db(db.get_bind())
    threshold = (now or utcnow()) - dt.timedelta(minutes=settings.SNOOZE_COOLDOWN_MIN)
    return {"dialect": info["dialect"], **crud.medication_state_counts(db, threshold)}
