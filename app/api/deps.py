from typing import Callable

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.services.calls import CallProvider
from app.services.scheduler import Scheduler
from app.settings import settings


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_provider() -> CallProvider | None:
    # None: the dispatcher builds one from settings when a call is due
    return None


def get_scheduler(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    provider: CallProvider | None = Depends(get_provider),
) -> Scheduler:
    return Scheduler.from_session_factory(session_factory, provider)
