from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session

from cvtailor.config import Settings, get_settings
from cvtailor.core.events import EventBus, ProgressCallback, get_event_bus, progress_event
from cvtailor.core.fact_cache import FactCache
from cvtailor.core.facts import FactExtractor, TextGenerator
from cvtailor.core.templates import get_template
from cvtailor.core.validation import DOCUMENT_SCHEMAS, validate_generated_document
from cvtailor.db.repositories import Repository, to_generated_document, to_profile_snapshot
from cvtailor.errors import GenerationError, InputError
from cvtailor.llm.prompts import (
    BRIEFING_SYSTEM_PROMPT,
    COVER_LETTER_SYSTEM_PROMPT,
    CV_SYSTEM_PROMPT,
    GENERATION_USER_PROMPT,
    LANGUAGE_INSTRUCTIONS,
)
from cvtailor.llm.providers import parse_json_object
from cvtailor.llm.router import LLMRouter
from cvtailor.types import (
    FactInventory,
    GeneratedDocument,
    JobSpec,
    ProfileSnapshot,
    SourceDocument,
    TemplateConfig,
)

logger = logging.getLogger(__name__)


def render_document_context(documents: Iterable[SourceDocument]) -> str:
    documents = list(documents)
    resumes = [doc for doc in documents if doc.kind == "cv"]
    others = [doc for doc in documents if doc.kind != "cv"]

    context = ""
    if resumes:
        context += (
            "<resume>\n"
            + "\n\n".join(f"--- {doc.name} ---\n{doc.text_content}" for doc in resumes)
            + "\n</resume>\n\n"
        )
    if others:
        context += (
            "<supporting_documents>\n"
            + "\n\n".join(f"--- {doc.name} ({doc.kind}) ---\n{doc.text_content}" for doc in others)
            + "\n</supporting_documents>\n\n"
        )
    return context


def source_texts(profile: ProfileSnapshot, documents: Iterable[SourceDocument]) -> list[str]:
    return [profile.summary, *(doc.text_content for doc in documents)]


def inventory_json(inventory: FactInventory) -> str:
    return json.dumps(inventory.to_payload(), indent=2, ensure_ascii=False)


class DocumentGenerator:
    """Builds job-tailored documents that may only draw on a candidate's facts.

    Each call persists a ``generating`` placeholder, resolves the fact
    inventory (cache first), issues exactly one generation request, validates
    the reply and stores it as ``ready``. Any failure after the placeholder is
    written marks the record ``failed`` and is re-raised as ``GenerationError``.
    """

    def __init__(
        self,
        session: Session,
        llm: TextGenerator | None = None,
        *,
        settings: Settings | None = None,
        event_bus: EventBus | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.llm = llm or LLMRouter(self.settings)
        self.extractor = FactExtractor(self.llm, self.settings)
        self.cache = FactCache(session, self.extractor, self.settings)
        self.event_bus = event_bus or get_event_bus()

    async def generate_for_profile(
        self,
        profile_id: int,
        job: JobSpec,
        template: TemplateConfig | None = None,
        *,
        document_type: str = "cv",
        on_status: ProgressCallback | None = None,
    ) -> GeneratedDocument:
        profile = to_profile_snapshot(self.repo.require_profile(profile_id))
        documents = self.repo.source_documents(profile_id)
        return await self.generate(
            profile, documents, job, template, document_type=document_type, on_status=on_status
        )

    async def generate(
        self,
        profile: ProfileSnapshot,
        documents: Iterable[SourceDocument],
        job: JobSpec,
        template: TemplateConfig | None = None,
        *,
        document_type: str = "cv",
        on_status: ProgressCallback | None = None,
    ) -> GeneratedDocument:
        template = template or TemplateConfig()
        documents = list(documents)
        self._check_inputs(profile, job, template, document_type)
        self.llm.ensure_available("writer")

        await self._notify(profile.id, None, "saving", "Initializing...", on_status)
        row = self.repo.create_generated_document(
            profile_id=profile.id,
            document_type=document_type,
            job_title=job.job_title.strip(),
            company_name=job.company_name.strip(),
            job_description=job.job_description,
            company_url=job.company_url,
            template=template.template if document_type == "cv" else "",
            language=template.language,
            custom_notes=template.custom_notes,
        )
        document_id = row.id

        try:
            await self._notify(profile.id, document_id, "extracting", "Analyzing your experience...", on_status)
            inventory = await self.cache.resolve(profile, documents)

            await self._notify(profile.id, document_id, "generating", "Tailoring your document...", on_status)
            system, prompt = self.build_request(
                profile=profile,
                documents=documents,
                job=job,
                template=template,
                inventory=inventory,
                document_type=document_type,
            )
            text = await self.llm.complete(
                task="writer",
                system=system,
                prompt=prompt,
                max_tokens=self.settings.generation_max_tokens,
                temperature=self.settings.generation_temperature,
            )
            content = validate_generated_document(
                parse_json_object(text),
                document_type=document_type,
                inventory=inventory,
                source_texts=source_texts(profile, documents),
            )
        except Exception as exc:
            message = str(exc) or f"{document_type} generation failed"
            logger.exception("Document generation failed document_id=%s", document_id)
            self.repo.update_generated_document(document_id, status="failed", error=message)
            await self._notify(profile.id, document_id, "failed", message, on_status)
            if isinstance(exc, GenerationError):
                raise
            raise GenerationError(message) from exc

        await self._notify(profile.id, document_id, "saving", "Saving your document...", on_status)
        row = self.repo.update_generated_document(document_id, content=content, status="ready", clear_error=True)
        await self._notify(profile.id, document_id, "done", "Document ready", on_status)
        return to_generated_document(row)

    async def generate_cv(
        self,
        profile: ProfileSnapshot,
        documents: Iterable[SourceDocument],
        job: JobSpec,
        template: TemplateConfig | None = None,
        *,
        on_status: ProgressCallback | None = None,
    ) -> GeneratedDocument:
        return await self.generate(profile, documents, job, template, document_type="cv", on_status=on_status)

    async def generate_briefing(
        self,
        profile: ProfileSnapshot,
        documents: Iterable[SourceDocument],
        job: JobSpec,
        template: TemplateConfig | None = None,
        *,
        on_status: ProgressCallback | None = None,
    ) -> GeneratedDocument:
        return await self.generate(
            profile, documents, job, template, document_type="briefing", on_status=on_status
        )

    async def generate_cover_letter(
        self,
        profile: ProfileSnapshot,
        documents: Iterable[SourceDocument],
        job: JobSpec,
        template: TemplateConfig | None = None,
        *,
        on_status: ProgressCallback | None = None,
    ) -> GeneratedDocument:
        return await self.generate(
            profile, documents, job, template, document_type="cover_letter", on_status=on_status
        )

    def build_request(
        self,
        *,
        profile: ProfileSnapshot,
        documents: list[SourceDocument],
        job: JobSpec,
        template: TemplateConfig,
        inventory: FactInventory,
        document_type: str,
    ) -> tuple[str, str]:
        company = job.company_name.strip()
        if document_type == "cv":
            spec = get_template(template.template)
            system = CV_SYSTEM_PROMPT.format(template_guidance=spec.guidance)
            task_instruction = (
                f"Create a tailored CV using the {spec.name} template for the {job.job_title} role "
                f"at {company or 'the company'}. Include ALL work experience from the documents."
            )
        elif document_type == "cover_letter":
            system = COVER_LETTER_SYSTEM_PROMPT
            task_instruction = (
                f"Write a cover letter from {profile.name} for the {job.job_title} role "
                f"at {company or 'the company'}. Sign it with the candidate's name."
            )
        else:
            system = BRIEFING_SYSTEM_PROMPT
            task_instruction = (
                f"Prepare an interview briefing for the {job.job_title} role at {company or 'the company'}."
            )

        prompt = GENERATION_USER_PROMPT.format(
            job_title=job.job_title,
            company_name=company or "Not specified",
            company_url_line=f"Company URL: {job.company_url}\n" if job.company_url else "",
            job_description=job.job_description,
            fact_inventory_json=inventory_json(inventory),
            candidate_name=profile.name,
            candidate_email=profile.email,
            candidate_phone=profile.phone,
            candidate_location=profile.location,
            candidate_summary=f"\nProfessional Summary:\n{profile.summary}" if profile.summary else "",
            document_context=render_document_context(documents),
            language_instruction=LANGUAGE_INSTRUCTIONS.get(template.language, LANGUAGE_INSTRUCTIONS["en"]),
            custom_notes=f"Additional notes: {template.custom_notes}" if template.custom_notes else "",
            task_instruction=task_instruction,
        )
        return system, prompt

    def _check_inputs(
        self, profile: ProfileSnapshot, job: JobSpec, template: TemplateConfig, document_type: str
    ) -> None:
        if profile.id is None:
            raise InputError("profile must be persisted before generating documents")
        if document_type not in DOCUMENT_SCHEMAS:
            raise InputError(f"document type must be one of {sorted(DOCUMENT_SCHEMAS)}")
        if not job.job_title.strip():
            raise InputError("job title is required")
        if not job.job_description.strip():
            raise InputError("job description is required")
        if document_type == "cv":
            get_template(template.template)

    async def _notify(
        self,
        profile_id: int | None,
        document_id: int | None,
        phase: str,
        message: str,
        on_status: ProgressCallback | None,
    ) -> None:
        if on_status is not None:
            result: Any = on_status(phase, message)
            if inspect.isawaitable(result):
                await result
        if profile_id is not None:
            await self.event_bus.publish(
                profile_id,
                progress_event(profile_id=profile_id, document_id=document_id, phase=phase, message=message),
            )
