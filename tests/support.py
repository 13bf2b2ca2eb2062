from __future__ import annotations

import asyncio
import json
from typing import Any

from sqlalchemy.orm import Session

from cvtailor.db.repositories import Repository, to_profile_snapshot
from cvtailor.errors import ConfigurationError
from cvtailor.types import JobSpec, ProfileSnapshot, SourceDocument

SUMMARY = "Data engineer with eight years of experience building batch and streaming pipelines."

CV_TEXT = (
    "Jane Doe\n"
    "Senior Data Engineer, Acme Corp (2019-2024)\n"
    "- Cut nightly batch runtime by 40% by moving jobs to Airflow\n"
    "Data Engineer, Globex (2016-2019)\n"
    "- Built the first Python ingestion service\n"
    "Education: MSc Computer Science\n"
)

PROJECT_TEXT = "Volunteer maintainer of an open source SQL linter used by Umbrella Labs."

EXTRACTION = {
    "skills": [
        {"skill": "Python", "source": "cv.txt", "context": "Built ingestion service", "confidence": "demonstrated"},
        {"skill": "Airflow", "source": "cv.txt", "context": "Moved nightly jobs", "confidence": "explicit"},
    ],
    "achievements": [
        {"description": "Cut nightly batch runtime", "metrics": "40%", "source": "cv.txt"},
    ],
    "credentials": [{"type": "degree", "name": "MSc Computer Science", "source": "cv.txt"}],
    "companies": ["Acme Corp", "Globex"],
}

CV_DOCUMENT = {
    "headline": "Senior Data Engineer",
    "executiveSummary": "Data engineer with eight years of pipeline experience.",
    "careerHighlights": ["Cut nightly batch runtime by 40%"],
    "coreCompetencies": ["Python", "Airflow"],
    "experience": [
        {"company": "Acme Corp", "title": "Senior Data Engineer", "period": "2019-2024", "bullets": ["Cut runtime by 40%"]},
        {"company": "Globex", "title": "Data Engineer", "period": "2016-2019", "bullets": ["Built ingestion service"]},
    ],
}

BRIEFING_DOCUMENT = {
    "title": "Interview briefing: Lead Data Engineer",
    "summary": "Focus on pipeline ownership.",
    "sections": [{"heading": "Why you fit", "content": "Eight years of pipeline work."}],
    "interviewQuestions": [],
    "talkingPoints": ["Airflow migration"],
    "experience": [{"company": "Acme Corp", "relevance": "Owned the batch platform"}],
}

COVER_LETTER_DOCUMENT = {
    "subject": "Application: Lead Data Engineer",
    "greeting": "Dear Initrode hiring team,",
    "paragraphs": [
        "At Acme Corp I owned the nightly batch platform and cut its runtime by 40%.",
        "Before that I built the ingestion service at Globex.",
    ],
    "closing": "I would welcome a conversation about the platform team.",
    "signature": "Jane Doe",
    "experience": [{"company": "Acme Corp", "relevance": "Batch platform ownership"}, {"company": "Globex"}],
}

JOB = JobSpec(
    job_title="Lead Data Engineer",
    company_name="Initrode",
    job_description="Lead the data platform team. Python, Airflow and SQL required.",
)


class FakeLLM:
    """Scripted stand-in for ``LLMRouter``.

    Replies are given per task; a list is consumed in order with the last reply
    repeated. Dicts are returned as JSON text and exceptions are raised.
    """

    def __init__(
        self,
        *,
        extract: Any = None,
        writer: Any = None,
        refine: Any = None,
        available: bool = True,
    ):
        self.replies = {
            "extract": self._as_list(extract),
            "writer": self._as_list(writer),
            "refine": self._as_list(refine),
        }
        self.available = available
        self.gate: asyncio.Event | None = None
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def _as_list(value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def ensure_available(self, task: str) -> None:
        if not self.available:
            raise ConfigurationError(f"no LLM provider configured for task '{task}'")

    async def complete(
        self,
        *,
        task: str,
        system: str,
        prompt: str | None = None,
        messages: list[dict[str, str]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        self.ensure_available(task)
        self.calls.append(
            {
                "task": task,
                "system": system,
                "prompt": prompt,
                "messages": list(messages or []),
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.gate is not None:
            await self.gate.wait()

        replies = self.replies[task]
        if not replies:
            raise AssertionError(f"unexpected '{task}' call")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    def calls_for(self, task: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["task"] == task]


def seed_profile(
    db: Session,
    *,
    summary: str = SUMMARY,
    documents: tuple[tuple[str, str, str], ...] = (("cv.txt", "cv", CV_TEXT),),
) -> tuple[ProfileSnapshot, list[SourceDocument]]:
    repo = Repository(db)
    profile = repo.create_profile(
        "Jane Doe", email="jane@example.com", phone="+45 1234 5678", location="Copenhagen", summary=summary
    )
    for name, kind, text in documents:
        repo.add_document(profile.id, name=name, kind=kind, text_content=text)
    return to_profile_snapshot(profile), repo.source_documents(profile.id)
