from fastapi import APIRouter, Depends, Query
from pydantic import Field
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.auth import require_roles
from jabuspark.core.database import get_db
from jabuspark.core.errors import ValidationError
from jabuspark.models.orm import MODE_LENGTH, NAME_LENGTH, REF_LENGTH, User
from jabuspark.services import banks as bank_store

router = APIRouter()


class BankCreate(CamelModel):
    course_id: str = Field(min_length=1, max_length=REF_LENGTH)
    title: str = Field(min_length=1, max_length=NAME_LENGTH)
    mode: str = Field(min_length=1, max_length=MODE_LENGTH)
    # Items are checked one by one so errors can name the offending index
    questions: List[Dict[str, Any]]


@router.get("")
def list_banks(course_id: Optional[str] = Query(None, alias="courseId"), db: Session = Depends(get_db)):
    return ok({"banks": bank_store.list_banks(db, course_id)})


@router.get("/get")
def get_bank_by_query(id: str = Query(""), db: Session = Depends(get_db)):
    if not id:
        raise ValidationError("Missing id")
    return ok({"bank": bank_store.get_bank(db, id)})


@router.get("/{bank_id}")
def get_bank(bank_id: str, db: Session = Depends(get_db)):
    return ok({"bank": bank_store.get_bank(db, bank_id)})


@router.post("", status_code=201)
def create_bank(payload: BankCreate, user: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    bank_id = bank_store.create_bank(db, user.id, payload.course_id, payload.title, payload.mode, payload.questions)
    return ok({"bankId": bank_id})


@router.delete("")
def delete_bank(id: str = Query(""), user: User = Depends(require_roles("admin")), db: Session = Depends(get_db)):
    if not id:
        raise ValidationError("Missing id")
    bank_store.delete_bank(db, id)
    return ok({"deleted": True})
