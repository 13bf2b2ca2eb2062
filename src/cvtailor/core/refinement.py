from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session

from cvtailor.config import Settings, get_settings
from cvtailor.core.fact_cache import FactCache
from cvtailor.core.facts import FactExtractor, TextGenerator
from cvtailor.core.generator import inventory_json, render_document_context, source_texts
from cvtailor.core.validation import validate_generated_document
from cvtailor.db.repositories import Repository, to_generated_document, to_profile_snapshot
from cvtailor.errors import GenerationError, InputError, NotFoundError
from cvtailor.llm.prompts import LANGUAGE_INSTRUCTIONS, REFINE_SYSTEM_PROMPT
from cvtailor.llm.providers import parse_json_object
from cvtailor.llm.router import LLMRouter, safe_messages
from cvtailor.types import ChatMessage, GeneratedDocument

logger = logging.getLogger(__name__)

DOCUMENT_LABELS = {"cv": "tailored CV", "briefing": "interview briefing", "cover_letter": "cover letter"}


class DocumentRefiner:
    """Regenerates a whole stored document from a free-text edit request.

    Callers pass the current document and the full conversation every time;
    nothing about the conversation is kept server side. The stored document is
    overwritten only when the new version validates.
    """

    def __init__(
        self,
        session: Session,
        llm: TextGenerator | None = None,
        *,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.llm = llm or LLMRouter(self.settings)
        self.cache = FactCache(session, FactExtractor(self.llm, self.settings), self.settings)

    async def refine(
        self,
        document_id: int,
        current_document: dict[str, Any],
        user_request: str,
        conversation_history: Iterable[ChatMessage | dict[str, Any]] = (),
    ) -> GeneratedDocument:
        if not user_request or not user_request.strip():
            raise InputError("refinement request must not be empty")
        if not isinstance(current_document, dict) or not current_document:
            raise InputError("current document must be a non-empty JSON object")

        row = self.repo.get_generated_document(document_id)
        if row is None:
            raise NotFoundError(f"generated document {document_id} not found")
        self.llm.ensure_available("refine")

        profile = to_profile_snapshot(self.repo.require_profile(row.profile_id))
        documents = self.repo.source_documents(row.profile_id)

        try:
            inventory = await self.cache.resolve(profile, documents)
            system = REFINE_SYSTEM_PROMPT.format(
                document_label=DOCUMENT_LABELS.get(row.document_type, "document"),
                candidate_name=profile.name or "the candidate",
                language_instruction=LANGUAGE_INSTRUCTIONS.get(row.language, LANGUAGE_INSTRUCTIONS["en"]),
                document_context=render_document_context(documents) or "No documents provided",
                fact_inventory_json=inventory_json(inventory),
                job_description=row.job_description,
                current_document_json=json.dumps(current_document, indent=2, ensure_ascii=False),
            )
            messages = [
                *safe_messages(list(conversation_history)),
                {"role": "user", "content": user_request.strip()},
            ]
            text = await self.llm.complete(
                task="refine",
                system=system,
                messages=messages,
                max_tokens=self.settings.generation_max_tokens,
                temperature=self.settings.generation_temperature,
            )
            content = validate_generated_document(
                parse_json_object(text),
                document_type=row.document_type,
                inventory=inventory,
                source_texts=source_texts(profile, documents),
            )
        except Exception as exc:
            message = str(exc) or "refinement failed"
            logger.warning("Refinement failed document_id=%s error=%s", document_id, message)
            if isinstance(exc, GenerationError):
                raise
            raise GenerationError(message) from exc

        updated = self.repo.update_generated_document(
            document_id, content=content, status="ready", clear_error=True
        )
        return to_generated_document(updated)
