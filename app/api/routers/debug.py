from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_api_key
from app.db import get_db
from app.debug_info import build_scheduler_debug
from app.schemas.scheduler import DebugCounts

router = APIRouter(prefix="/debug", tags=["debug"], dependencies=[Depends(require_api_key)])


@router.get("/scheduler", response_model=DebugCounts)
def debug_scheduler(db: Session = Depends(get_db)):
    return build_scheduler_debug(db)
