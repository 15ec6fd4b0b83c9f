from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field


OutcomeStatus = Literal["triggered", "skipped", "error"]


class DispatchDetail(BaseModel):
    user_id: int
    medication_count: int
    status: OutcomeStatus
    error: str | None = None
    call_reference: str | None = None


class RunReport(BaseModel):
    success: bool = True
    batches_triggered: int = 0
    total_meds: int = 0
    anchor_count: int = 0
    errors: list[str] = Field(default_factory=list)
    details: list[DispatchDetail] = Field(default_factory=list)
    ran_at: dt.datetime | None = None


class DebugCounts(BaseModel):
    dialect: str
    pending: int
    cooling_down: int
    exhausted: int
    taken: int
