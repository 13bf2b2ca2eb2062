"""Fact inventory extraction.

The inventory is the only bridge between a candidate's free text and the
document generator, so anything coming back from the model is rebuilt field by
field before the rest of the pipeline sees it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from pydantic import ValidationError

from cvtailor.config import Settings, get_settings
from cvtailor.core.fingerprint import fact_documents
from cvtailor.errors import FactExtractionError
from cvtailor.llm.prompts import FACT_EXTRACTION_SYSTEM_PROMPT, FACT_EXTRACTION_USER_PROMPT
from cvtailor.llm.providers import parse_json_object
from cvtailor.types import (
    Achievement,
    Credential,
    FactInventory,
    Skill,
    SourceDocument,
)

logger = logging.getLogger(__name__)

_CONFIDENCE_TIERS = ("explicit", "demonstrated", "mentioned")
_CREDENTIAL_TYPES = ("degree", "certification", "title")


class TextGenerator(Protocol):
    def ensure_available(self, task: str) -> None: ...

    async def complete(
        self,
        *,
        task: str,
        system: str,
        prompt: str | None = None,
        messages: list[dict[str, str]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str: ...


def validate_confidence(value: Any) -> str:
    return value if value in _CONFIDENCE_TIERS else "mentioned"


def validate_credential_type(value: Any) -> str:
    return value if value in _CREDENTIAL_TYPES else "title"


def sanitize_inventory(raw: Any) -> FactInventory:
    """Rebuild an inventory from untrusted parsed JSON. Never raises."""
    inventory = FactInventory()
    if not isinstance(raw, dict):
        return inventory

    skills = raw.get("skills")
    if isinstance(skills, list):
        inventory.skills = [
            Skill(
                skill=item["skill"],
                source=str(item.get("source") or "Unknown"),
                context=str(item.get("context") or ""),
                confidence=validate_confidence(item.get("confidence")),
            )
            for item in skills
            if isinstance(item, dict) and isinstance(item.get("skill"), str)
        ]

    achievements = raw.get("achievements")
    if isinstance(achievements, list):
        for item in achievements:
            if not isinstance(item, dict) or not isinstance(item.get("description"), str):
                continue
            metrics = item.get("metrics")
            inventory.achievements.append(
                Achievement(
                    description=item["description"],
                    metrics=metrics if isinstance(metrics, str) and metrics.strip() else None,
                    source=str(item.get("source") or "Unknown"),
                )
            )

    credentials = raw.get("credentials")
    if isinstance(credentials, list):
        inventory.credentials = [
            Credential(
                type=validate_credential_type(item.get("type")),
                name=item["name"],
                source=str(item.get("source") or "Unknown"),
            )
            for item in credentials
            if isinstance(item, dict) and isinstance(item.get("name"), str)
        ]

    companies = raw.get("companies")
    if isinstance(companies, list):
        inventory.companies = [
            item.strip() for item in companies if isinstance(item, str) and item.strip()
        ]

    return inventory


def decode_inventory(raw: Any) -> FactInventory:
    """Strict schema decode, falling back to the permissive sanitizer."""
    try:
        return FactInventory.model_validate(raw)
    except ValidationError as exc:
        logger.info("Fact inventory failed strict decode (%s errors); sanitizing", exc.error_count())
        return sanitize_inventory(raw)


def build_extraction_body(profile_summary: str, documents: Iterable[SourceDocument]) -> str:
    body = ""
    if profile_summary and profile_summary.strip():
        body += f"--- Professional Summary ---\n{profile_summary}\n\n"

    for doc in fact_documents(documents):
        if doc.text_content.strip():
            body += f"--- {doc.name} ({doc.kind}) ---\n{doc.text_content}\n\n"
    return body


class FactExtractor:
    def __init__(self, llm: TextGenerator, settings: Settings | None = None):
        self.llm = llm
        self.settings = settings or get_settings()

    async def run_extraction(
        self, profile_summary: str, documents: Iterable[SourceDocument]
    ) -> FactInventory:
        """Extract facts, raising ``FactExtractionError`` on any failure."""
        body = build_extraction_body(profile_summary, documents)
        if not body.strip():
            return FactInventory()

        try:
            text = await self.llm.complete(
                task="extract",
                system=FACT_EXTRACTION_SYSTEM_PROMPT,
                prompt=FACT_EXTRACTION_USER_PROMPT.format(document_body=body),
                max_tokens=self.settings.extraction_max_tokens,
                temperature=0.0,
            )
        except Exception as exc:
            raise FactExtractionError(f"fact extraction call failed: {exc}") from exc

        try:
            parsed = parse_json_object(text)
        except ValueError as exc:
            raise FactExtractionError(f"fact extraction returned invalid JSON: {exc}") from exc

        inventory = decode_inventory(parsed)
        logger.info("Fact extraction succeeded counts=%s", inventory.counts())
        return inventory

    async def extract_facts(
        self, profile_summary: str, documents: Iterable[SourceDocument]
    ) -> FactInventory:
        """Like ``run_extraction`` but returns an empty inventory instead of raising."""
        try:
            return await self.run_extraction(profile_summary, list(documents))
        except Exception as exc:
            logger.warning("Fact extraction failed; continuing with empty inventory: %s", exc)
            return FactInventory()
