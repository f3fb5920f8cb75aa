"""
Practice submissions and progress aggregation.

A submission touches two records: the per-(user, bank) answered/correct id sets and
the per-user counters (streak, accuracy, totals, study time). Both are written in one
transaction. Submissions by the same user serialize on the user's progress row: the
row is upserted, then an atomic counter UPDATE takes its lock before anything is
read back.
"""
from datetime import date, timedelta
import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from jabuspark.core.database import insert_ignore
from jabuspark.core.errors import NotFound
from jabuspark.models.orm import (
    Question, SavedItem, SavedKind, UserBankStats, UserProgress, utc_today, utcnow,
)

logger = logging.getLogger(__name__)


def next_streak(streak: int, last_active: Optional[date], today: date) -> int:
    """Consecutive-day streak after activity on ``today``."""
    if last_active == today:
        return streak
    if last_active == today - timedelta(days=1):
        return max(1, streak + 1)
    return 1


def compute_accuracy(correct: int, total: int) -> int:
    """Percentage of correct answers, rounded half up."""
    if total <= 0:
        return 0
    # floor(correct / total * 100 + 0.5) in integer arithmetic
    return (correct * 200 + total) // (total * 2)


def default_progress(today: date) -> Dict[str, Any]:
    return {
        "streak": 1,
        "accuracy": 0,
        "totalAnswered": 0,
        "correctAnswered": 0,
        "studySeconds": 0,
        "lastActive": today.isoformat(),
    }


def progress_snapshot(p: UserProgress) -> Dict[str, Any]:
    return {
        "streak": int(p.streak),
        "accuracy": int(p.accuracy),
        "totalAnswered": int(p.total_answered),
        "correctAnswered": int(p.correct_answered),
        "studySeconds": int(p.study_seconds),
        "lastActive": p.last_active.isoformat(),
    }


def ensure_progress(db: Session, user_id: str, today: date) -> None:
    insert_ignore(
        db, UserProgress, user_id=user_id, streak=1, accuracy=0, total_answered=0,
        correct_answered=0, study_seconds=0, last_active=today,
    )


def _record_answer(stats: UserBankStats, question_id: str, is_correct: bool) -> None:
    answered = list(stats.answered_ids or [])
    correct = list(stats.correct_ids or [])
    if question_id not in answered:
        answered.append(question_id)
    # A correct answer sticks; later wrong attempts never remove it
    if is_correct and question_id not in correct:
        correct.append(question_id)
    # Reassign so the JSON columns are flagged dirty
    stats.answered_ids = answered
    stats.correct_ids = correct
    stats.updated_at = utcnow()


def submit_answer(
    db: Session,
    user_id: str,
    bank_id: str,
    question_id: str,
    selected_index: int,
    seconds_spent: int = 0,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    today = today or utc_today()
    q = db.scalar(select(Question).where(Question.bank_id == bank_id, Question.id == question_id).limit(1))
    if q is None:
        raise NotFound("Question not found")

    answer_index = int(q.answer_index)
    # selected_index is not range-checked: anything out of range is simply wrong
    is_correct = selected_index == answer_index
    seconds = max(0, int(seconds_spent or 0))

    try:
        ensure_progress(db, user_id, today)
        db.execute(
            update(UserProgress)
            .where(UserProgress.user_id == user_id)
            .values(
                total_answered=UserProgress.total_answered + 1,
                correct_answered=UserProgress.correct_answered + (1 if is_correct else 0),
                study_seconds=UserProgress.study_seconds + seconds,
            )
            .execution_options(synchronize_session=False)
        )
        progress = db.scalar(
            select(UserProgress)
            .where(UserProgress.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        progress.streak = next_streak(progress.streak, progress.last_active, today)
        progress.accuracy = compute_accuracy(progress.correct_answered, progress.total_answered)
        progress.last_active = today

        insert_ignore(db, UserBankStats, user_id=user_id, bank_id=bank_id, answered_ids=[], correct_ids=[], updated_at=utcnow())
        stats = db.scalar(
            select(UserBankStats)
            .where(UserBankStats.user_id == user_id, UserBankStats.bank_id == bank_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        _record_answer(stats, question_id, is_correct)

        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Submission rolled back for user {user_id} bank {bank_id} question {question_id}", exc_info=True)
        raise

    logger.info(f"User {user_id} answered {bank_id}/{question_id} correct={is_correct}")
    return {
        "result": {
            "bankId": bank_id,
            "questionId": question_id,
            "selectedIndex": selected_index,
            "answerIndex": answer_index,
            "isCorrect": is_correct,
            "explanation": q.explanation or "",
        },
        "progress": progress_snapshot(progress),
        "bankStats": {
            "answeredIds": list(stats.answered_ids),
            "correctIds": list(stats.correct_ids),
        },
    }


def reset_bank(db: Session, user_id: str, bank_id: str) -> None:
    """Forget per-question history for one bank. Lifetime counters are kept."""
    db.execute(delete(UserBankStats).where(UserBankStats.user_id == user_id, UserBankStats.bank_id == bank_id))
    db.commit()
    logger.info(f"User {user_id} reset bank {bank_id}")


def get_progress(db: Session, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or utc_today()
    p = db.get(UserProgress, user_id)
    snapshot = progress_snapshot(p) if p is not None else default_progress(today)

    saved: Dict[str, list] = {k.value: [] for k in SavedKind}
    rows = db.execute(
        select(SavedItem.kind, SavedItem.item_id)
        .where(SavedItem.user_id == user_id)
        .order_by(SavedItem.created_at.desc(), SavedItem.id.desc())
    ).all()
    for kind, item_id in rows:
        if kind in saved:
            saved[kind].append(item_id)

    answers = {}
    for s in db.scalars(select(UserBankStats).where(UserBankStats.user_id == user_id)):
        answers[s.bank_id] = {
            "answeredIds": list(s.answered_ids or []),
            "correctIds": list(s.correct_ids or []),
        }

    return {"progress": {**snapshot, "saved": saved}, "answers": answers}
