import os
import tempfile
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool
import pytest

# Must run before quizcore.config is imported by any test module.
_TEST_DB = Path(tempfile.gettempdir()) / "quizcore_test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"


@pytest.fixture
def memory_db():
    """A Session bound to a fresh in-memory SQLite database with all tables."""
    from quizcore.database import Base
    import quizcore.models  # noqa: F401

    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def seed_quiz():
    """Return a helper that stores a user and a quiz whose answer key is `questions`.

    `questions` is a list of (subject, body, options, correct_option) tuples.
    """
    from quizcore.models import Option, Question, Quiz, Theme, User

    def _seed(session, questions, *, user_name="ana", theme_name="Geography", quiz_name="Capitals"):
        user = User(name=user_name)
        theme = session.query(Theme).filter(Theme.name == theme_name).first() or Theme(name=theme_name)
        quiz = Quiz(name=quiz_name, theme=theme)
        session.add_all([user, quiz])
        for subject, body, options, correct in questions:
            question = Question(subject=subject, body=body, quiz=quiz)
            question.options = [Option(body=text, is_correct=text == correct) for text in options]
            session.add(question)
        session.commit()
        return user, quiz

    return _seed
