from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app import crud
from app.api.deps import require_api_key
from app.db import get_db
from app.schemas.medications import MedicationOut

router = APIRouter(prefix="/medications", tags=["medications"], dependencies=[Depends(require_api_key)])


@router.post("/{medication_id}/take", response_model=MedicationOut)
def take_medication(medication_id: int, db: Session = Depends(get_db)):
    med = crud.set_taken(db, medication_id, True)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    return med


@router.delete("/{medication_id}")
def delete_medication(medication_id: int, db: Session = Depends(get_db)):
    if not crud.delete_medication(db, medication_id):
        raise HTTPException(status_code=404, detail="Medication not found")
    return {"ok": True}


@router.post("/{medication_id}/untake", response_model=MedicationOut)
def untake_medication(medication_id: int, db: Session = Depends(get_db)):
    med = crud.set_taken(db, medication_id, False)
    if not med:
        raise HTTPException(status_code=404, detail="Medication not found")
    return med
