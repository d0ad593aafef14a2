from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from quizcore.database import Base, SessionLocal, engine
from quizcore.main import app
from quizcore.models import GivenAnswer, Option, Question, Quiz, Submission, Theme, User
from quizcore.services import QuizGradingService

client = TestClient(app)
state = {}


def setup_module():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        student = User(name="student")
        newcomer = User(name="newcomer")
        quiz = Quiz(name="General knowledge", theme=Theme(name="Trivia"))
        db.add_all([student, newcomer, quiz])
        for subject, body, options, correct in [
            ("geography", "Capital of France?", ["Paris", "Lyon", "Nice", "Lille"], "Paris"),
            ("arithmetic", "Six times seven?", ["42", "0", "13", "67"], "42"),
            (None, "Largest planet?", ["Jupiter", "Mars", "Venus", "Earth"], "Jupiter"),
        ]:
            question = Question(subject=subject, body=body, quiz=quiz)
            question.options = [Option(body=text, is_correct=text == correct) for text in options]
            db.add(question)
        db.commit()

        state["student_id"] = student.id
        state["newcomer_id"] = newcomer.id
        state["quiz_id"] = quiz.id
        state["question_ids"] = sorted(q.id for q in quiz.questions)


def submit(answers, user_id=None):
    return client.post(
        "/api/v1/quiz/submit",
        json={
            "quiz_id": str(state["quiz_id"]),
            "user_id": str(user_id or state["student_id"]),
            "answers": answers,
        },
    )


def test_health_endpoint():
    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json() == {"status": "UP", "dependencies": {"database": "UP"}}


def test_submit_and_fetch_details():
    geo_id, math_id, planet_id = state["question_ids"]
    response = submit(
        [
            {"question_id": str(geo_id), "selected_option": "Paris"},
            {"question_id": str(math_id), "selected_option": "0"},
            {"question_id": "not-a-number", "selected_option": "Paris"},
        ]
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["correct_count"] == 1
    assert payload["total_count"] == 3
    assert abs(payload["score"] - 100 / 3) < 1e-9
    assert "1 of 3" in payload["message"]

    details = client.get("/api/v1/submission/details", params={"submission_id": payload["submission_id"]})
    assert details.status_code == 200
    data = details.json()
    assert data["quiz_nome"] == "General knowledge"
    assert data["tema_nome"] == "Trivia"
    assert [q["pergunta_id"] for q in data["perguntas"]] == [geo_id, math_id, planet_id]
    assert all(len(q["opcoes"]) == 4 for q in data["perguntas"])

    geo, math, planet = data["perguntas"]
    assert geo["acertou"] is True
    assert geo["resposta_utilizador"] == "Paris"
    assert geo["assunto"] == "geography"
    assert math["acertou"] is False
    assert math["resposta_utilizador"] == "0"
    assert math["resposta_correta"] == "42"
    assert planet["acertou"] is False
    assert planet["resposta_correta"] == "Jupiter"
    assert "resposta_utilizador" not in planet
    assert "assunto" not in planet


def test_submit_unknown_option_text_is_recorded_without_option():
    geo_id, _, _ = state["question_ids"]
    response = submit([{"question_id": str(geo_id), "selected_option": "Marseille"}])
    assert response.status_code == 200
    submission_id = response.json()["submission_id"]

    with SessionLocal() as db:
        answer = db.query(GivenAnswer).filter(GivenAnswer.submission_id == submission_id).one()
        assert answer.option_id is None
        assert answer.is_correct is False


def test_submit_without_answers_scores_zero():
    response = submit([])
    assert response.status_code == 200
    payload = response.json()
    assert payload["score"] == 0
    assert payload["correct_count"] == 0
    assert payload["total_count"] == 3


def test_duplicate_answers_abort_the_whole_submission():
    geo_id, _, _ = state["question_ids"]
    with SessionLocal() as db:
        before = db.query(Submission).count()

    response = submit(
        [
            {"question_id": str(geo_id), "selected_option": "Paris"},
            {"question_id": str(geo_id), "selected_option": "Lyon"},
        ]
    )
    assert response.status_code == 500

    with SessionLocal() as db:
        assert db.query(Submission).count() == before


def test_submit_rejects_invalid_identifiers():
    response = client.post(
        "/api/v1/quiz/submit",
        json={"quiz_id": "abc", "user_id": "1", "answers": []},
    )
    assert response.status_code == 400

    response = client.post(
        "/api/v1/quiz/submit",
        json={"quiz_id": str(state["quiz_id"]), "user_id": "", "answers": []},
    )
    assert response.status_code == 400


def test_submit_unknown_quiz_is_not_found():
    response = client.post(
        "/api/v1/quiz/submit",
        json={"quiz_id": "987654", "user_id": str(state["student_id"]), "answers": []},
    )
    assert response.status_code == 404


def test_submission_details_errors():
    assert client.get("/api/v1/submission/details").status_code == 400
    assert client.get("/api/v1/submission/details", params={"submission_id": "x"}).status_code == 400
    assert client.get("/api/v1/submission/details", params={"submission_id": "987654"}).status_code == 404


def test_user_stats_for_user_without_submissions():
    response = client.get("/api/v1/user/stats", params={"user_id": state["newcomer_id"]})
    assert response.status_code == 200
    assert response.json() == {
        "user_id": str(state["newcomer_id"]),
        "total_quizzes_realizados": 0,
        "total_perguntas_respondidas": 0,
        "total_acertos": 0,
        "total_erros": 0,
        "percentagem_acerto": 0.0,
        "pontuacao_media": 0.0,
    }


def test_user_stats_and_history(monkeypatch):
    start = datetime(2030, 1, 1, 9, 0)
    ticks = iter([start, start + timedelta(hours=1)])
    monkeypatch.setattr("quizcore.main.service", QuizGradingService(clock=lambda: next(ticks)))
    geo_id, math_id, planet_id = state["question_ids"]

    with SessionLocal() as db:
        user = User(name="stats-user")
        db.add(user)
        db.commit()
        user_id = user.id

    first = submit(
        [
            {"question_id": str(geo_id), "selected_option": "Paris"},
            {"question_id": str(math_id), "selected_option": "42"},
            {"question_id": str(planet_id), "selected_option": "Jupiter"},
        ],
        user_id=user_id,
    ).json()
    second = submit([{"question_id": str(geo_id), "selected_option": "Lyon"}], user_id=user_id).json()
    assert first["score"] == 100.0
    assert second["score"] == 0.0

    stats = client.get("/api/v1/user/stats", params={"user_id": user_id}).json()
    assert stats["total_quizzes_realizados"] == 2
    assert stats["total_perguntas_respondidas"] == 4
    assert stats["total_acertos"] == 3
    assert stats["total_erros"] == 1
    assert stats["percentagem_acerto"] == 75.0
    assert stats["pontuacao_media"] == 50.0

    history = client.get("/api/v1/user/submissions", params={"user_id": user_id})
    assert history.status_code == 200
    rows = history.json()
    assert [row["submission_id"] for row in rows] == [second["submission_id"], first["submission_id"]]
    assert rows[0]["quiz_nome"] == "General knowledge"
    assert rows[0]["tema_nome"] == "Trivia"


def test_user_stats_rejects_invalid_user_id():
    assert client.get("/api/v1/user/stats", params={"user_id": "abc"}).status_code == 400
    assert client.get("/api/v1/user/submissions").status_code == 400


def test_out_of_range_identifiers_are_rejected():
    too_big = "99999999999999999999"

    assert client.get("/api/v1/user/stats", params={"user_id": too_big}).status_code == 400
    assert client.get("/api/v1/submission/details", params={"submission_id": too_big}).status_code == 400
    response = client.post(
        "/api/v1/quiz/submit",
        json={"quiz_id": too_big, "user_id": str(state["student_id"]), "answers": []},
    )
    assert response.status_code == 400
    assert "quiz_id" in response.json()["detail"]
