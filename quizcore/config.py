"""Application settings, read from the environment (and a local `.env`)."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE = Path(__file__).resolve().parent.parent


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


class Settings:
    DATABASE_URL: str
    DB_STATEMENT_TIMEOUT_MS: int
    DB_ECHO: bool
    LOG_LEVEL: str
    PORT: int

    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'quizcore.db'}")
        self.DB_STATEMENT_TIMEOUT_MS = _int_env("DB_STATEMENT_TIMEOUT_MS", 30000)
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.PORT = _int_env("PORT", 8080)
        self._validate()

    def _validate(self):
        if self.DB_STATEMENT_TIMEOUT_MS <= 0:
            raise RuntimeError("DB_STATEMENT_TIMEOUT_MS must be positive")


settings = Settings()
