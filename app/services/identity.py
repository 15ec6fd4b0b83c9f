from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from app import crud
from app.settings import settings

logger = logging.getLogger("medcalls.identity")

_PHONE_NOISE = re.compile(r"[\s\-().]")


@dataclass(frozen=True)
class Identity:
    user_id: int
    phone: str
    name: str


def normalize_phone(raw: str, country_code: str | None = None) -> str:
    """E.164-ish normalization: national ``0...`` numbers get the country code."""
    phone = _PHONE_NOISE.sub("", raw.strip())
    cc = (country_code or settings.PHONE_COUNTRY_CODE).lstrip("+")
    if phone.startswith("00"):
        phone = "+" + phone[2:]
    elif phone.startswith("0"):
        phone = f"+{cc}{phone[1:]}"
    if not phone.startswith("+"):
        phone = "+" + phone
    return phone


def display_name(full_name: str | None, email: str | None) -> str:
    if full_name and full_name.strip():
        return full_name.strip()
    if email and "@" in email:
        local = email.split("@", 1)[0].strip()
        if local:
            return local
    return "User"


class UserDirectory:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _lookup(self, user_id: int) -> Identity | None:
        with self._session_factory() as db:
            user = crud.get_user(db, user_id)
            if not user or not user.is_active:
                logger.warning("Could not resolve user %s", user_id)
                return None
            if not (user.phone_number or "").strip():
                logger.warning("User %s has no phone number", user_id)
                return None
            return Identity(
                user_id=user.id,
                phone=normalize_phone(user.phone_number),
                name=display_name(user.full_name, user.email),
            )

    async def resolve(self, user_id: int) -> Identity | None:
        return await asyncio.to_thread(self._lookup, user_id)
