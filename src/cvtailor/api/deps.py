from __future__ import annotations

from collections.abc import Generator

from sqlalchemy.orm import Session

from cvtailor.db.session import get_db_session
from cvtailor.llm.router import LLMRouter


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_llm() -> LLMRouter:
    return LLMRouter()
