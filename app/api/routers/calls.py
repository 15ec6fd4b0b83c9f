import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app import crud
from app.api.deps import require_api_key
from app.db import get_db
from app.schemas.medications import CallResponseIn, CallResponseOut

logger = logging.getLogger("medcalls.api")

router = APIRouter(prefix="/calls", tags=["calls"], dependencies=[Depends(require_api_key)])


@router.post("/response", response_model=CallResponseOut)
def call_response(payload: CallResponseIn, db: Session = Depends(get_db)):
    updated = 0
    if payload.response == "confirmed":
        updated = crud.mark_taken_many(db, payload.medication_ids)
    logger.info(
        "Call %s response %s for medications %s (%s marked taken)",
        payload.call_reference or "-",
        payload.response,
        payload.medication_ids,
        updated,
    )
    return CallResponseOut(response=payload.response, updated=updated)
