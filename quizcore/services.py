import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizcore import store
from quizcore.database import unit_of_work
from quizcore.errors import InvalidInputError, NotFoundError, PersistenceError
from quizcore.models import Submission

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"[+-]?[0-9]+")
_ID_MIN = -(2**63)
_ID_MAX = 2**63 - 1


@dataclass
class AnswerKeyEntry:
    question_id: int
    subject: Optional[str] = None
    correct_option_text: Optional[str] = None
    options: Dict[str, int] = field(default_factory=dict)


@dataclass
class GivenAnswerDraft:
    question_id: int
    option_id: Optional[int]
    is_correct: bool


@dataclass
class DifficultyDraft:
    subject: Optional[str]


@dataclass
class GradingResult:
    score: float
    correct_count: int
    total_count: int
    given_answers: List[GivenAnswerDraft]
    difficulties: List[DifficultyDraft]


def parse_identifier(token: Optional[str]) -> Optional[int]:
    """Parse an ASCII base-10 token that fits a signed 64-bit column, else None."""
    if token is None or not _ID_PATTERN.fullmatch(token):
        return None
    value = int(token)
    if not _ID_MIN <= value <= _ID_MAX:
        return None
    return value


def _require_identifier(token: Optional[str], field_name: str) -> int:
    if token is None or not token.strip():
        raise InvalidInputError(f"'{field_name}' must not be blank")
    value = parse_identifier(token)
    if value is None:
        raise InvalidInputError(f"invalid {field_name}: {token!r}")
    return value


def build_answer_key(rows) -> Dict[int, AnswerKeyEntry]:
    """Fold flat (question, option) rows into an answer key keyed by question id.

    The subject is the first non-null value seen. Duplicate option texts and
    multiple correct options are logged but resolved last-write-wins; the
    data is expected to carry neither.
    """
    key: Dict[int, AnswerKeyEntry] = {}
    for row in rows:
        entry = key.get(row.question_id)
        if entry is None:
            entry = key[row.question_id] = AnswerKeyEntry(question_id=row.question_id)

        if entry.subject is None and row.subject is not None:
            entry.subject = row.subject

        if row.option_body in entry.options and entry.options[row.option_body] != row.option_id:
            logger.warning(
                "Question %s has duplicate option text %r; only option %s stays selectable",
                row.question_id,
                row.option_body,
                row.option_id,
            )
        entry.options[row.option_body] = row.option_id

        if row.is_correct:
            if entry.correct_option_text is not None:
                logger.warning(
                    "Question %s has more than one correct option; using %r",
                    row.question_id,
                    row.option_body,
                )
            entry.correct_option_text = row.option_body
    return key


def grade_answers(key: Dict[int, AnswerKeyEntry], answers: Iterable) -> GradingResult:
    """Grade submitted answers against an answer key.

    Answers with an unparseable question id, or one outside the key, are
    skipped. The score is computed over every question in the key, so
    unanswered questions count as missed.
    """
    correct_count = 0
    total_count = len(key)
    given_answers: List[GivenAnswerDraft] = []
    difficulties: List[DifficultyDraft] = []

    for answer in answers:
        question_id = parse_identifier(answer.question_id)
        if question_id is None:
            logger.warning("Skipping answer with invalid question_id %r", answer.question_id)
            continue

        entry = key.get(question_id)
        if entry is None:
            logger.warning("Skipping answer for question %s, which is not part of the quiz", question_id)
            continue

        is_correct = answer.selected_option == entry.correct_option_text
        if is_correct:
            correct_count += 1
        else:
            difficulties.append(DifficultyDraft(subject=entry.subject))

        given_answers.append(
            GivenAnswerDraft(
                question_id=question_id,
                option_id=entry.options.get(answer.selected_option),
                is_correct=is_correct,
            )
        )

    score = (correct_count / total_count) * 100.0 if total_count else 0.0
    return GradingResult(
        score=score,
        correct_count=correct_count,
        total_count=total_count,
        given_answers=given_answers,
        difficulties=difficulties,
    )


def build_submission_detail(rows) -> dict:
    """Regroup per-option detail rows into a submission -> questions -> options tree.

    Rows must be ordered by question id then option id; questions are
    emitted in the order they are first seen.
    """
    if not rows:
        raise NotFoundError("submission not found or has no questions")

    first = rows[0]
    questions: Dict[int, dict] = {}
    for row in rows:
        question = questions.get(row.question_id)
        if question is None:
            question = questions[row.question_id] = {
                "pergunta_id": row.question_id,
                "corpo_pergunta": row.question_body,
                "assunto": row.subject,
                "opcoes": [],
                "resposta_utilizador": None,
                "resposta_correta": "",
                "acertou": bool(row.answered_correctly),
            }

        question["opcoes"].append({"resposta_id": row.option_id, "corpo": row.option_body})
        if row.is_correct:
            question["resposta_correta"] = row.option_body
        if row.chosen_option_id is not None and row.chosen_option_id == row.option_id:
            question["resposta_utilizador"] = row.option_body

    return {
        "submission_id": first.submission_id,
        "quiz_id": first.quiz_id,
        "quiz_nome": first.quiz_name,
        "tema_nome": first.theme_name,
        "pontuacao": first.score,
        "data_hora": first.submitted_at,
        "perguntas": list(questions.values()),
    }


def summarize_user_stats(user_id: int, row: store.UserStatsRow) -> dict:
    answered = row.total_answers or 0
    correct = row.total_correct or 0
    accuracy = (correct / answered) * 100.0 if answered else 0.0
    return {
        "user_id": str(user_id),
        "total_quizzes_realizados": row.total_quizzes or 0,
        "total_perguntas_respondidas": answered,
        "total_acertos": correct,
        "total_erros": answered - correct,
        "percentagem_acerto": accuracy,
        "pontuacao_media": float(row.avg_score or 0.0),
    }


class QuizGradingService:
    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self.clock = clock

    def submit_answers(self, db: Session, payload) -> dict:
        quiz_id = _require_identifier(payload.quiz_id, "quiz_id")
        user_id = _require_identifier(payload.user_id, "user_id")

        logger.info(
            "Grading submission (quiz_id=%s, user_id=%s, answers=%s)", quiz_id, user_id, len(payload.answers)
        )
        try:
            with unit_of_work(db):
                key = build_answer_key(store.get_quiz_answers(db, quiz_id))
                if not key:
                    raise NotFoundError(f"quiz {quiz_id} not found or has no answer key")

                result = grade_answers(key, payload.answers)
                saved = store.save_submission_stats(
                    db,
                    Submission(submitted_at=self.clock(), score=result.score, user_id=user_id, quiz_id=quiz_id),
                    result.given_answers,
                    result.difficulties,
                )
        except SQLAlchemyError as exc:
            # commit runs outside the store's own error wrapping
            raise PersistenceError(f"failed to commit submission for quiz {quiz_id}") from exc

        return {
            "submission_id": saved.id,
            "score": saved.score,
            "correct_count": result.correct_count,
            "total_count": result.total_count,
            "message": f"Submission saved. {result.correct_count} of {result.total_count} correct.",
        }

    def get_submission_details(self, db: Session, submission_id: str) -> dict:
        parsed_id = _require_identifier(submission_id, "submission_id")
        return build_submission_detail(store.get_submission_details(db, parsed_id))

    def get_user_stats(self, db: Session, user_id: str) -> dict:
        parsed_id = _require_identifier(user_id, "user_id")
        return summarize_user_stats(parsed_id, store.get_user_stats(db, parsed_id))

    def get_user_submissions(self, db: Session, user_id: str) -> List[dict]:
        parsed_id = _require_identifier(user_id, "user_id")
        return [
            {
                "submission_id": row.submission_id,
                "quiz_id": row.quiz_id,
                "quiz_nome": row.quiz_name,
                "tema_nome": row.theme_name,
                "pontuacao": row.score,
                "data_hora": row.submitted_at,
            }
            for row in store.get_user_submissions(db, parsed_id)
        ]

    def check_health(self, db: Session) -> dict:
        try:
            store.ping(db)
            database = "UP"
        except PersistenceError as exc:
            logger.error("Database health check failed: %s", exc.__cause__)
            database = "DOWN"
        return {"status": database, "dependencies": {"database": database}}
