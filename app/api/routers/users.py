from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app import crud
from app.api.deps import require_api_key
from app.db import get_db
from app.schemas.medications import MedicationDraft, MedicationOut, UserCreate, UserOut

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=UserOut)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    return crud.create_user(db, payload)


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db)):
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/{user_id}/medications", response_model=list[MedicationOut])
def add_medications(user_id: int, payload: MedicationDraft, db: Session = Depends(get_db)):
    if not crud.get_user(db, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return crud.create_medications(db, user_id, payload)


@router.get("/{user_id}/medications", response_model=list[MedicationOut])
def list_medications(user_id: int, db: Session = Depends(get_db)):
    return crud.list_medications(db, user_id)
