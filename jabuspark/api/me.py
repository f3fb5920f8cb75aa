from fastapi import APIRouter, Depends
from pydantic import Field
from typing import Annotated, List, Optional
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.auth import get_current_user
from jabuspark.core.database import get_db
from jabuspark.models.orm import INT_MAX, REF_LENGTH, User
from jabuspark.services.accounts import UNSET, safe_user, update_profile

router = APIRouter()


CourseId = Annotated[str, Field(max_length=REF_LENGTH)]


class ProfilePatch(CamelModel):
    faculty_id: Optional[str] = Field(default=None, max_length=REF_LENGTH)
    department_id: Optional[str] = Field(default=None, max_length=REF_LENGTH)
    level: Optional[int] = Field(default=None, ge=0, le=INT_MAX)
    course_ids: Optional[List[CourseId]] = None


@router.get("")
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok({"user": safe_user(db, user)})


@router.patch("/profile")
def patch_profile(payload: ProfilePatch, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    sent = payload.model_fields_set
    update_profile(
        db, user,
        faculty_id=payload.faculty_id if "faculty_id" in sent else UNSET,
        department_id=payload.department_id if "department_id" in sent else UNSET,
        level=payload.level if "level" in sent else UNSET,
        course_ids=payload.course_ids if "course_ids" in sent else UNSET,
    )
    return ok({"user": safe_user(db, user)})
