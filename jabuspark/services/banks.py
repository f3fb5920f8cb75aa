"""
Question bank store: banks and their ordered multiple-choice questions.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jabuspark.core.errors import Conflict, NotFound, ValidationError
from jabuspark.models.orm import MODE_LENGTH, NAME_LENGTH, REF_LENGTH, Bank, Question, new_id

logger = logging.getLogger(__name__)


def _clean_question(raw: Dict[str, Any], i: int) -> Dict[str, Any]:
    # Legacy payloads use prompt/explain instead of question/explanation
    prompt = str(raw.get("question") or raw.get("prompt") or "").strip()
    options = raw.get("options")
    if not prompt or not isinstance(options, list) or len(options) < 2:
        raise ValidationError(f"Invalid question at index {i}")
    try:
        answer_index = int(raw.get("answerIndex") or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"answerIndex out of range at index {i}")
    if answer_index < 0 or answer_index >= len(options):
        raise ValidationError(f"answerIndex out of range at index {i}")
    qid = raw.get("id")
    qid = "" if qid is None else str(qid)
    if len(qid) > REF_LENGTH:
        raise ValidationError(f"Question id too long at index {i}")
    return {
        "id": qid or new_id(),
        "prompt": prompt,
        "options": [str(o) for o in options],
        "answer_index": answer_index,
        "explanation": str(raw.get("explanation") or raw.get("explain") or ""),
        "sort_order": i + 1,
    }


def create_bank(db: Session, created_by: str, course_id: str, title: str, mode: str,
                questions: Sequence[Dict[str, Any]]) -> str:
    course_id, title, mode = course_id.strip(), title.strip(), mode.strip()
    if not course_id or not title or not mode:
        raise ValidationError("Invalid payload")
    if len(course_id) > REF_LENGTH or len(title) > NAME_LENGTH or len(mode) > MODE_LENGTH:
        raise ValidationError("Invalid payload")
    if not questions:
        raise ValidationError("questions must be a non-empty array")
    cleaned = [_clean_question(q, i) for i, q in enumerate(questions)]
    ids = [q["id"] for q in cleaned]
    if len(set(ids)) != len(ids):
        raise Conflict("Duplicate question id")

    bank = Bank(course_id=course_id, title=title, mode=mode, created_by=created_by)
    try:
        db.add(bank)
        db.flush()
        for q in cleaned:
            db.add(Question(bank_id=bank.id, **q))
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.error("Bank creation conflicted", exc_info=True)
        raise Conflict("Duplicate question id")
    except Exception:
        db.rollback()
        logger.error("Bank creation rolled back", exc_info=True)
        raise
    logger.info(f"Bank {bank.id} created by {created_by} with {len(cleaned)} questions")
    return bank.id


def list_banks(db: Session, course_id: Optional[str] = None) -> List[Dict[str, Any]]:
    counts = (
        select(Question.bank_id, func.count().label("n"))
        .group_by(Question.bank_id)
        .subquery()
    )
    stmt = (
        select(Bank, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.bank_id == Bank.id)
        .order_by(Bank.created_at.desc(), Bank.id.desc())
    )
    if course_id:
        stmt = stmt.where(Bank.course_id == course_id)
    return [
        {"id": b.id, "courseId": b.course_id, "title": b.title, "mode": b.mode, "questionCount": int(n)}
        for b, n in db.execute(stmt).all()
    ]


def question_view(q: Question) -> Dict[str, Any]:
    return {
        "id": q.id,
        "question": q.prompt,
        "options": list(q.options or []),
        "answerIndex": int(q.answer_index),
        "explanation": q.explanation or "",
    }


def get_bank(db: Session, bank_id: str) -> Dict[str, Any]:
    bank = db.get(Bank, bank_id)
    if bank is None:
        raise NotFound("Not found")
    questions = db.scalars(
        select(Question).where(Question.bank_id == bank_id).order_by(Question.sort_order, Question.id)
    ).all()
    return {
        "id": bank.id,
        "courseId": bank.course_id,
        "title": bank.title,
        "mode": bank.mode,
        "questions": [question_view(q) for q in questions],
    }


def delete_bank(db: Session, bank_id: str) -> None:
    bank = db.get(Bank, bank_id)
    if bank is None:
        raise NotFound("Not found")
    try:
        db.delete(bank)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Deleting bank {bank_id} rolled back", exc_info=True)
        raise
    logger.info(f"Bank {bank_id} deleted")
