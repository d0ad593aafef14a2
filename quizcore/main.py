import logging
from typing import List

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Response
from sqlalchemy.orm import Session

from quizcore.config import settings
from quizcore.database import Base, engine, get_db
from quizcore.errors import InvalidInputError, NotFoundError, QuizCoreError
from quizcore.schemas import (
    HealthResponse,
    SubmissionDetailResponse,
    SubmissionRequest,
    SubmissionResponse,
    UserStatsResponse,
    UserSubmissionHistoryResponse,
)
from quizcore.services import QuizGradingService


app = FastAPI(title="quizcore")
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)
service = QuizGradingService()

Base.metadata.create_all(bind=engine)


def _raise_http_error(operation: str, exc: QuizCoreError, internal_detail: str):
    if isinstance(exc, NotFoundError):
        logger.warning("404 in %s: %s", operation, exc)
        raise HTTPException(status_code=404, detail=f"Resource not found: {exc}") from exc
    if isinstance(exc, InvalidInputError):
        logger.warning("400 in %s: %s", operation, exc)
        raise HTTPException(status_code=400, detail=f"Invalid input: {exc}") from exc
    logger.error("500 in %s: %s", operation, exc, exc_info=exc)
    raise HTTPException(status_code=500, detail=internal_detail) from exc


@app.get("/api/health", response_model=HealthResponse)
def health(response: Response, db: Session = Depends(get_db)):
    status = service.check_health(db)
    if status["dependencies"]["database"] == "DOWN":
        response.status_code = 503
    return status


@app.post("/api/v1/quiz/submit", response_model=SubmissionResponse)
def submit_answers(payload: SubmissionRequest, db: Session = Depends(get_db)):
    try:
        return service.submit_answers(db, payload)
    except QuizCoreError as exc:
        _raise_http_error("submit_answers", exc, "Internal failure while processing the submission")


@app.get(
    "/api/v1/submission/details",
    response_model=SubmissionDetailResponse,
    response_model_exclude_none=True,
)
def get_submission_details(submission_id: str = "", db: Session = Depends(get_db)):
    try:
        return service.get_submission_details(db, submission_id)
    except QuizCoreError as exc:
        _raise_http_error("get_submission_details", exc, "Internal failure while loading submission details")


@app.get("/api/v1/user/stats", response_model=UserStatsResponse)
def get_user_stats(user_id: str = "", db: Session = Depends(get_db)):
    try:
        return service.get_user_stats(db, user_id)
    except QuizCoreError as exc:
        _raise_http_error("get_user_stats", exc, "Internal failure while loading statistics")


@app.get("/api/v1/user/submissions", response_model=List[UserSubmissionHistoryResponse])
def get_user_submissions(user_id: str = "", db: Session = Depends(get_db)):
    try:
        return service.get_user_submissions(db, user_id)
    except QuizCoreError as exc:
        _raise_http_error("get_user_submissions", exc, "Internal failure while loading submission history")


def run():
    uvicorn.run("quizcore.main:app", host="0.0.0.0", port=settings.PORT)
