from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.auth import get_current_user
from jabuspark.core.database import get_db
from jabuspark.models.orm import REF_LENGTH, SavedKind, User
from jabuspark.services.progress import get_progress
from jabuspark.services.saved import toggle_saved

router = APIRouter()


class SaveToggle(CamelModel):
    kind: SavedKind
    id: str = Field(min_length=1, max_length=REF_LENGTH)


@router.get("/progress")
def progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(get_progress(db, user.id))


@router.post("/save/toggle")
def save_toggle(payload: SaveToggle, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok({"saved": toggle_saved(db, user.id, payload.kind, payload.id)})
