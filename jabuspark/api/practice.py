from fastapi import APIRouter, Depends
from pydantic import Field
from typing import Optional
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.auth import get_current_user
from jabuspark.core.database import get_db
from jabuspark.models.orm import ID_LENGTH, INT_MAX, REF_LENGTH, User
from jabuspark.services.progress import reset_bank, submit_answer

router = APIRouter()


class AnswerSubmit(CamelModel):
    bank_id: str = Field(min_length=1, max_length=ID_LENGTH)
    question_id: str = Field(min_length=1, max_length=REF_LENGTH)
    selected_index: int
    seconds_spent: Optional[int] = Field(default=0, le=INT_MAX)


class BankReset(CamelModel):
    bank_id: str = Field(min_length=1, max_length=ID_LENGTH)


@router.post("/submit")
def submit(payload: AnswerSubmit, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = submit_answer(
        db, user.id, payload.bank_id, payload.question_id,
        payload.selected_index, payload.seconds_spent or 0,
    )
    return ok(data)


@router.post("/reset")
def reset(payload: BankReset, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    reset_bank(db, user.id, payload.bank_id)
    return ok({"reset": True})
