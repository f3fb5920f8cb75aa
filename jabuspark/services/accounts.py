"""
Accounts: registration, login, the safe user view, profile updates and the
one-off admin setup routine.
"""
from datetime import date
import logging
import re
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jabuspark.core.auth import hash_password, verify_password
from jabuspark.core.database import insert_ignore
from jabuspark.core.errors import Conflict, Unauthorized, ValidationError
from jabuspark.models.orm import Profile, Role, User, UserCourse, utc_today
from jabuspark.services.progress import ensure_progress

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_ADMIN_PASSWORD_LENGTH = 8

_SEPARATORS = re.compile(r"[._-]+")

# Sentinel for "field not sent" in partial updates
UNSET: Any = object()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def guess_full_name(email: str) -> str:
    local = email.split("@", 1)[0] or "JABU STUDENT"
    return _SEPARATORS.sub(" ", local).strip().upper()


def safe_user(db: Session, user: User) -> Dict[str, Any]:
    """Public view of a user with profile and selected courses attached."""
    profile = {"facultyId": None, "departmentId": None, "level": None, "courseIds": []}
    p = db.get(Profile, user.id)
    if p is not None:
        profile["facultyId"] = p.faculty_id
        profile["departmentId"] = p.department_id
        profile["level"] = int(p.level) if p.level is not None else None
    profile["courseIds"] = list(db.scalars(
        select(UserCourse.course_id).where(UserCourse.user_id == user.id).order_by(UserCourse.course_id)
    ))
    return {
        "id": user.id,
        "email": user.email,
        "fullName": user.full_name,
        "role": user.role,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "profile": profile,
    }


def _create_user(db: Session, email: str, password: str, full_name: str, role: Role, today: date) -> User:
    user = User(email=email, password_hash=hash_password(password), full_name=full_name, role=role.value)
    db.add(user)
    db.flush()
    db.add(Profile(user_id=user.id))
    db.flush()
    ensure_progress(db, user.id, today)
    return user


def register(db: Session, email: str, password: str, full_name: Optional[str] = None,
             today: Optional[date] = None) -> User:
    email = normalize_email(email)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    full_name = (full_name or "").strip() or guess_full_name(email)

    if db.scalar(select(User.id).where(User.email == email).limit(1)) is not None:
        raise Conflict("Email already registered")
    try:
        user = _create_user(db, email, password, full_name, Role.STUDENT, today or utc_today())
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")
    except Exception:
        db.rollback()
        logger.error(f"Registration failed for {email}", exc_info=True)
        raise
    logger.info(f"Registered user {user.id}")
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.scalar(select(User).where(User.email == normalize_email(email)).limit(1))
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    return user


def update_profile(db: Session, user: User, faculty_id: Any = UNSET, department_id: Any = UNSET,
                   level: Any = UNSET, course_ids: Any = UNSET) -> None:
    """Partial profile update.

    Omitted or None fields stay as they are. ``course_ids`` replaces the whole set.
    """
    changes = {}
    if faculty_id is not UNSET and faculty_id is not None:
        changes["faculty_id"] = str(faculty_id)
    if department_id is not UNSET and department_id is not None:
        changes["department_id"] = str(department_id)
    if level is not UNSET and level is not None:
        changes["level"] = int(level)

    try:
        insert_ignore(db, Profile, user_id=user.id)
        if changes:
            db.execute(update(Profile).where(Profile.user_id == user.id).values(**changes))
        if course_ids is not UNSET and course_ids is not None:
            _replace_courses(db, user.id, course_ids)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Profile update failed for user {user.id}", exc_info=True)
        raise
    db.expire_all()


def _replace_courses(db: Session, user_id: str, course_ids: Iterable[Any]) -> None:
    db.execute(delete(UserCourse).where(UserCourse.user_id == user_id))
    seen = set()
    for cid in course_ids:
        cid = str(cid)
        if cid == "" or cid in seen:
            continue
        seen.add(cid)
        db.add(UserCourse(user_id=user_id, course_id=cid))
    db.flush()


def create_admin(db: Session, email: str, password: str, full_name: str,
                 today: Optional[date] = None) -> tuple[str, bool]:
    """Create an admin or promote an existing user.

    Returns the outcome message and whether a new account was created.
    """
    email = normalize_email(email)
    if len(password) < MIN_ADMIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters")

    existing = db.scalar(select(User).where(User.email == email).limit(1))
    if existing is not None:
        if existing.role == Role.ADMIN.value:
            return "Admin already exists", False
        existing.role = Role.ADMIN.value
        db.commit()
        logger.info(f"Promoted user {existing.id} to admin")
        return "User promoted to admin", False

    try:
        user = _create_user(db, email, password, full_name, Role.ADMIN, today or utc_today())
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Admin setup failed for {email}", exc_info=True)
        raise
    logger.info(f"Created admin {user.id}")
    return "Admin created", True
