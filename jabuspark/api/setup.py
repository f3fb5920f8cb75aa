import secrets

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import EmailStr, Field, field_validator
from typing import Optional
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.config import DEFAULT_SETUP_KEY, Settings, app_settings
from jabuspark.core.database import get_db
from jabuspark.core.errors import Forbidden
from jabuspark.models.orm import NAME_LENGTH
from jabuspark.services.accounts import create_admin

router = APIRouter()


class AdminSetup(CamelModel):
    email: Optional[EmailStr] = None
    password: str
    full_name: Optional[str] = Field(default=None, max_length=NAME_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


@router.post("/create-admin")
def create_admin_account(payload: AdminSetup, key: str = Query(""), db: Session = Depends(get_db),
                         settings: Settings = Depends(app_settings)):
    configured = settings.SETUP_KEY.get_secret_value()
    if not configured or configured == DEFAULT_SETUP_KEY:
        raise Forbidden("Setup key not configured")
    if not secrets.compare_digest(key.encode(), configured.encode()):
        raise Forbidden("Invalid setup key")
    email = payload.email or settings.SETUP_ADMIN_EMAIL
    message, created = create_admin(db, email, payload.password, payload.full_name or settings.SETUP_ADMIN_NAME)
    body = ok({"message": message, "email": email.strip().lower()})
    if created:
        body["data"]["note"] = "Change the password after first login."
        return JSONResponse(status_code=201, content=body)
    return body
