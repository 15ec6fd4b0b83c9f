from __future__ import annotations

import datetime as dt
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.api.deps import get_scheduler, require_api_key
from app.clock import utcnow
from app.schemas.scheduler import RunReport
from app.services.scheduler import Scheduler
from app.services.store import StoreUnavailableError

logger = logging.getLogger("medcalls.api")

router = APIRouter(prefix="/scheduler", tags=["scheduler"], dependencies=[Depends(require_api_key)])


@router.post("/run", response_model=RunReport)
async def run_scheduler(
    now: dt.datetime | None = Query(default=None, description="Override the run instant (ISO 8601)"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    try:
        return await scheduler.run_once(now or utcnow())
    except StoreUnavailableError as exc:
        logger.error("Scheduler run failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc), "timestamp": utcnow().isoformat()},
        )
