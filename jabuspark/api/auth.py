from fastapi import APIRouter, Depends, Request
from pydantic import EmailStr, Field, field_validator
from typing import Optional
from sqlalchemy.orm import Session

from jabuspark.api.schemas import CamelModel, ok
from jabuspark.core.auth import client_info, get_optional_token, issue_session, revoke_session
from jabuspark.core.config import Settings, app_settings
from jabuspark.core.database import get_db
from jabuspark.models.orm import NAME_LENGTH
from jabuspark.services.accounts import authenticate, register, safe_user

router = APIRouter()


class RegisterIn(CamelModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = Field(default=None, max_length=NAME_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class LoginIn(CamelModel):
    email: str
    password: str


@router.post("/register", status_code=201)
def register_user(payload: RegisterIn, request: Request, db: Session = Depends(get_db),
                  settings: Settings = Depends(app_settings)):
    user = register(db, payload.email, payload.password, payload.full_name)
    ip, ua = client_info(request)
    token, expires_at = issue_session(db, user, settings.SESSION_TTL_DAYS, ip, ua)
    return ok({"token": token, "expiresAt": expires_at.isoformat(), "user": safe_user(db, user)})


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db),
          settings: Settings = Depends(app_settings)):
    user = authenticate(db, payload.email, payload.password)
    ip, ua = client_info(request)
    token, expires_at = issue_session(db, user, settings.SESSION_TTL_DAYS, ip, ua)
    return ok({"token": token, "expiresAt": expires_at.isoformat(), "user": safe_user(db, user)})


@router.post("/logout")
def logout(token: Optional[str] = Depends(get_optional_token), db: Session = Depends(get_db)):
    if token:
        revoke_session(db, token)
    return ok({"loggedOut": True})
