from __future__ import annotations

import datetime as dt
from pydantic import BaseModel, Field, field_validator

from app.clock import is_valid_hhmm


MAX_TIMES_PER_DAY = 5
CALL_RESPONSE_VALUES = {"confirmed", "declined", "no_answer"}


class UserCreate(BaseModel):
    full_name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=254)
    phone_number: str | None = Field(default=None, max_length=32)


class UserOut(BaseModel):
    id: int
    full_name: str | None
    email: str | None
    phone_number: str | None
    is_active: bool

    class Config:
        from_attributes = True


class MedicationDraft(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    dosage: str = Field(default="", max_length=120)
    times: list[str] = Field(min_length=1, max_length=MAX_TIMES_PER_DAY)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("times")
    @classmethod
    def _times(cls, v: list[str]) -> list[str]:
        cleaned = []
        for raw in v:
            value = raw.strip()
            if not is_valid_hhmm(value):
                raise ValueError(f"time must be HH:MM, got {raw!r}")
            if value not in cleaned:
                cleaned.append(value)
        return cleaned


class MedicationOut(BaseModel):
    id: int
    user_id: int
    name: str
    dosage: str
    time: str
    is_taken: bool
    last_called_at: dt.datetime | None
    retry_count: int

    class Config:
        from_attributes = True


class CallResponseIn(BaseModel):
    medication_ids: list[int] = Field(min_length=1)
    response: str = Field(description="confirmed|declined|no_answer")
    call_reference: str | None = Field(default=None, max_length=64)

    @field_validator("response")
    @classmethod
    def _response(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CALL_RESPONSE_VALUES:
            raise ValueError(f"response must be one of: {sorted(CALL_RESPONSE_VALUES)}")
        return v


class CallResponseOut(BaseModel):
    response: str
    updated: int
