from datetime import date, datetime, timezone
import enum
import uuid

from sqlalchemy import (
    BigInteger, Integer, String, Text, ForeignKey, JSON, Date, DateTime,
    UniqueConstraint, CheckConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jabuspark.core.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; DATETIME columns hold UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def new_id() -> str:
    return str(uuid.uuid4())


# Column widths; request models validate against the same limits
ID_LENGTH = 36
REF_LENGTH = 64
MODE_LENGTH = 32
NAME_LENGTH = 255
INT_MAX = 2_147_483_647


class Role(str, enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"


class SavedKind(str, enum.Enum):
    PAST_QUESTIONS = "pastQuestions"
    MATERIALS = "materials"
    QUESTIONS = "questions"


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(NAME_LENGTH), default="")
    role: Mapped[str] = mapped_column(String(16), default=Role.STUDENT.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class UserSession(Base):
    __tablename__ = "sessions"
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    ip: Mapped[str] = mapped_column(String(64), default="")
    user_agent: Mapped[str] = mapped_column(String(255), default="")

    user: Mapped[User] = relationship()


class Profile(Base):
    __tablename__ = "profiles"
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    faculty_id: Mapped[str | None] = mapped_column(String(REF_LENGTH), nullable=True)
    department_id: Mapped[str | None] = mapped_column(String(REF_LENGTH), nullable=True)
    level: Mapped[int | None] = mapped_column(Integer, nullable=True)


class UserCourse(Base):
    __tablename__ = "user_courses"
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(REF_LENGTH), primary_key=True)


class Bank(Base):
    __tablename__ = "banks"
    __table_args__ = (Index("idx_banks_course", "course_id"),)
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    course_id: Mapped[str] = mapped_column(String(REF_LENGTH))
    title: Mapped[str] = mapped_column(String(NAME_LENGTH))
    mode: Mapped[str] = mapped_column(String(MODE_LENGTH))
    created_by: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    questions: Mapped[list["Question"]] = relationship(back_populates="bank", cascade="all, delete-orphan")


class Question(Base):
    __tablename__ = "questions"
    bank_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("banks.id", ondelete="CASCADE"), primary_key=True)
    id: Mapped[str] = mapped_column(String(REF_LENGTH), primary_key=True)
    prompt: Mapped[str] = mapped_column(Text)
    options: Mapped[list] = mapped_column(JSON)
    answer_index: Mapped[int] = mapped_column(Integer)
    explanation: Mapped[str] = mapped_column(Text, default="")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    bank: Mapped[Bank] = relationship(back_populates="questions")


class UserBankStats(Base):
    __tablename__ = "user_bank_stats"
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    # No FK: stats outlive a deleted bank until the user resets them
    bank_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    answered_ids: Mapped[list] = mapped_column(JSON, default=list)
    correct_ids: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class UserProgress(Base):
    __tablename__ = "user_progress"
    __table_args__ = (
        CheckConstraint("accuracy >= 0 AND accuracy <= 100", name="ck_progress_accuracy"),
        CheckConstraint("study_seconds >= 0", name="ck_progress_study_seconds"),
    )
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    streak: Mapped[int] = mapped_column(Integer, default=1)
    accuracy: Mapped[int] = mapped_column(Integer, default=0)
    total_answered: Mapped[int] = mapped_column(Integer, default=0)
    correct_answered: Mapped[int] = mapped_column(Integer, default=0)
    study_seconds: Mapped[int] = mapped_column(BigInteger, default=0)
    last_active: Mapped[date] = mapped_column(Date, default=utc_today)


class SavedItem(Base):
    __tablename__ = "saved_items"
    __table_args__ = (UniqueConstraint("user_id", "kind", "item_id", name="uq_saved_item"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    kind: Mapped[str] = mapped_column(String(MODE_LENGTH))
    item_id: Mapped[str] = mapped_column(String(REF_LENGTH))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
