"""Relational queries used by the grading core.

Read functions return flat rows exactly as the join produces them; folding
them into nested shapes is left to `quizcore.services`. Every database
failure is re-raised as `PersistenceError` with the original error chained.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import and_, case, func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizcore.database import unit_of_work
from quizcore.errors import PersistenceError
from quizcore.models import Difficulty, GivenAnswer, Option, Question, Quiz, Submission, Theme

logger = logging.getLogger(__name__)


@dataclass
class UserStatsRow:
    total_quizzes: Optional[int] = None
    avg_score: Optional[float] = None
    total_answers: Optional[int] = None
    total_correct: Optional[int] = None


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceError(f"failed to {action}: {exc.__class__.__name__}") from exc


def ping(db: Session):
    with _store_errors("ping database"):
        db.execute(text("SELECT 1"))


def get_quiz_answers(db: Session, quiz_id: int):
    """One row per (question, option) of the quiz, in no particular order."""
    with _store_errors(f"load answer key for quiz {quiz_id}"):
        return (
            db.query(
                Question.id.label("question_id"),
                Question.subject.label("subject"),
                Option.id.label("option_id"),
                Option.body.label("option_body"),
                Option.is_correct.label("is_correct"),
            )
            .join(Option, Option.question_id == Question.id)
            .filter(Question.quiz_id == quiz_id)
            .all()
        )


def save_submission_stats(
    db: Session,
    submission: Submission,
    given_answers: Iterable,
    difficulties: Iterable,
) -> Submission:
    """Insert a submission with its given answers and difficulties atomically.

    `submission` is an unsaved `Submission`; its generated id is assigned by
    the first flush and copied onto every dependent row. Joins an enclosing
    `unit_of_work` when there is one.
    """
    given_answers = list(given_answers)
    difficulties = list(difficulties)
    with _store_errors(f"save submission for quiz {submission.quiz_id}"):
        with unit_of_work(db):
            db.add(submission)
            db.flush()

            for draft in given_answers:
                db.add(
                    GivenAnswer(
                        submission_id=submission.id,
                        question_id=draft.question_id,
                        option_id=draft.option_id,
                        is_correct=draft.is_correct,
                    )
                )
            for draft in difficulties:
                db.add(Difficulty(submission_id=submission.id, subject=draft.subject))
            db.flush()

    logger.info(
        "Submission %s saved (%s given answers, %s difficulties)",
        submission.id,
        len(given_answers),
        len(difficulties),
    )
    return submission


def get_submission_details(db: Session, submission_id: int):
    """One row per (question, option) of the submitted quiz, ordered by question then option."""
    with _store_errors(f"load details of submission {submission_id}"):
        return (
            db.query(
                Submission.id.label("submission_id"),
                Submission.quiz_id.label("quiz_id"),
                Quiz.name.label("quiz_name"),
                Theme.name.label("theme_name"),
                Submission.score.label("score"),
                Submission.submitted_at.label("submitted_at"),
                Question.id.label("question_id"),
                Question.body.label("question_body"),
                Question.subject.label("subject"),
                Option.id.label("option_id"),
                Option.body.label("option_body"),
                Option.is_correct.label("is_correct"),
                GivenAnswer.option_id.label("chosen_option_id"),
                GivenAnswer.is_correct.label("answered_correctly"),
            )
            .select_from(Submission)
            .join(Quiz, Submission.quiz_id == Quiz.id)
            .join(Theme, Quiz.theme_id == Theme.id)
            .join(Question, Question.quiz_id == Quiz.id)
            .join(Option, Option.question_id == Question.id)
            .outerjoin(
                GivenAnswer,
                and_(GivenAnswer.submission_id == Submission.id, GivenAnswer.question_id == Question.id),
            )
            .filter(Submission.id == submission_id)
            .order_by(Question.id.asc(), Option.id.asc())
            .all()
        )


def get_user_stats(db: Session, user_id: int) -> UserStatsRow:
    """Aggregate counters for a user; every field is None when they never submitted."""
    with _store_errors(f"load stats of user {user_id}"):
        submissions = (
            db.query(
                func.count(Submission.id).label("total_quizzes"),
                func.avg(Submission.score).label("avg_score"),
            )
            .filter(Submission.user_id == user_id)
            .one()
        )
        answers = (
            db.query(
                func.count(GivenAnswer.id).label("total_answers"),
                func.sum(case((GivenAnswer.is_correct.is_(True), 1), else_=0)).label("total_correct"),
            )
            .join(Submission, GivenAnswer.submission_id == Submission.id)
            .filter(Submission.user_id == user_id)
            .one()
        )

    if not submissions.total_quizzes:
        return UserStatsRow()
    return UserStatsRow(
        total_quizzes=submissions.total_quizzes,
        avg_score=submissions.avg_score,
        total_answers=answers.total_answers,
        total_correct=answers.total_correct,
    )


def get_user_submissions(db: Session, user_id: int):
    with _store_errors(f"load submission history of user {user_id}"):
        return (
            db.query(
                Submission.id.label("submission_id"),
                Submission.quiz_id.label("quiz_id"),
                Quiz.name.label("quiz_name"),
                Theme.name.label("theme_name"),
                Submission.score.label("score"),
                Submission.submitted_at.label("submitted_at"),
            )
            .join(Quiz, Submission.quiz_id == Quiz.id)
            .join(Theme, Quiz.theme_id == Theme.id)
            .filter(Submission.user_id == user_id)
            .order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .all()
        )
