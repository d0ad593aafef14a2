from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class UserAnswer(BaseModel):
    question_id: str
    selected_option: str


class SubmissionRequest(BaseModel):
    quiz_id: str
    user_id: str
    answers: List[UserAnswer] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    submission_id: int
    score: float
    correct_count: int
    total_count: int
    message: str


class AnswerOptionDetail(BaseModel):
    resposta_id: int
    corpo: str


class QuestionDetailResponse(BaseModel):
    pergunta_id: int
    corpo_pergunta: str
    assunto: Optional[str] = None
    opcoes: List[AnswerOptionDetail] = Field(default_factory=list)
    resposta_utilizador: Optional[str] = None
    resposta_correta: str = ""
    acertou: bool = False


class SubmissionDetailResponse(BaseModel):
    submission_id: int
    quiz_id: int
    quiz_nome: str
    tema_nome: str
    pontuacao: float
    data_hora: datetime
    perguntas: List[QuestionDetailResponse]


class UserStatsResponse(BaseModel):
    user_id: str
    total_quizzes_realizados: int = 0
    total_perguntas_respondidas: int = 0
    total_acertos: int = 0
    total_erros: int = 0
    percentagem_acerto: float = 0.0
    pontuacao_media: float = 0.0


class UserSubmissionHistoryResponse(BaseModel):
    submission_id: int
    quiz_id: int
    quiz_nome: str
    tema_nome: str
    pontuacao: float
    data_hora: datetime


class HealthResponse(BaseModel):
    status: str
    dependencies: Dict[str, str]
