from __future__ import annotations

import asyncio

import pytest
from support import BRIEFING_DOCUMENT, COVER_LETTER_DOCUMENT, CV_DOCUMENT, EXTRACTION, JOB, FakeLLM, seed_profile

from cvtailor.core.events import EventBus
from cvtailor.core.fact_cache import FactCache
from cvtailor.core.facts import FactExtractor
from cvtailor.core.generator import DocumentGenerator
from cvtailor.core.templates import get_template
from cvtailor.db.repositories import Repository
from cvtailor.db.session import SessionLocal
from cvtailor.errors import (
    ConfigurationError,
    FabricationError,
    GenerationError,
    InputError,
    NotFoundError,
)
from cvtailor.types import JobSpec, TemplateConfig


def _generator(db, llm: FakeLLM) -> DocumentGenerator:
    return DocumentGenerator(db, llm, event_bus=EventBus())


def test_generate_cv_end_to_end_reports_progress_and_persists_ready_document() -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)
    phases: list[str] = []

    async def on_status(phase: str, message: str) -> None:
        phases.append(phase)

    with SessionLocal() as db:
        profile, _ = seed_profile(db)
        document = asyncio.run(
            _generator(db, llm).generate_for_profile(
                profile.id, JOB, TemplateConfig(template="hybrid", custom_notes="Keep it to two pages"), on_status=on_status
            )
        )

        assert document.status == "ready"
        assert document.document_type == "cv"
        assert document.template == "hybrid"
        assert document.content == CV_DOCUMENT
        stored = Repository(db).get_generated_document(document.id)
        assert stored.status == "ready"
        assert stored.error is None

    assert phases == ["saving", "extracting", "generating", "saving", "done"]

    writer_call = llm.calls_for("writer")[0]
    assert get_template("hybrid").guidance in writer_call["system"]
    assert "Job Title: Lead Data Engineer" in writer_call["prompt"]
    assert '"Acme Corp"' in writer_call["prompt"]
    assert "<resume>" in writer_call["prompt"]
    assert "Additional notes: Keep it to two pages" in writer_call["prompt"]
    assert "Write all content in English." in writer_call["prompt"]


def test_generate_uses_cached_inventory_without_extraction_call() -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        asyncio.run(FactCache(db, FactExtractor(llm)).generate_and_cache(profile, documents))
        assert len(llm.calls_for("extract")) == 1

        asyncio.run(_generator(db, llm).generate_cv(profile, documents, JOB))

    assert len(llm.calls_for("extract")) == 1
    assert len(llm.calls_for("writer")) == 1


def test_extraction_failure_falls_back_to_document_text_grounding() -> None:
    llm = FakeLLM(extract=RuntimeError("extractor timed out"), writer=CV_DOCUMENT)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        document = asyncio.run(_generator(db, llm).generate_cv(profile, documents, JOB))

    assert document.status == "ready"
    assert '"companies": []' in llm.calls_for("writer")[0]["prompt"]


def test_fabricated_company_marks_document_failed() -> None:
    invented = {
        **CV_DOCUMENT,
        "experience": [*CV_DOCUMENT["experience"], {"company": "Initech", "title": "CTO"}],
    }
    llm = FakeLLM(extract=EXTRACTION, writer=invented)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        with pytest.raises(FabricationError) as excinfo:
            asyncio.run(_generator(db, llm).generate(profile, documents, JOB))
        assert excinfo.value.untraceable == ["Initech"]

        [row] = Repository(db).list_generated_documents(profile.id)
        assert row.status == "failed"
        assert "Initech" in row.error
        assert row.content_json == {}


@pytest.mark.parametrize(
    "writer_reply",
    [
        "Sorry, I cannot help with that.",
        {"headline": "Senior Data Engineer", "experience": []},
        RuntimeError("model overloaded"),
    ],
)
def test_unusable_writer_output_raises_generation_error(writer_reply) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=writer_reply)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        with pytest.raises(GenerationError):
            asyncio.run(_generator(db, llm).generate(profile, documents, JOB))

        [row] = Repository(db).list_generated_documents(profile.id)
        assert row.status == "failed"
        assert row.error


def test_generate_briefing_has_no_template() -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=BRIEFING_DOCUMENT)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        document = asyncio.run(
            _generator(db, llm).generate_briefing(profile, documents, JOB, TemplateConfig(language="da"))
        )

    assert document.document_type == "briefing"
    assert document.template == ""
    assert document.content["title"] == BRIEFING_DOCUMENT["title"]
    assert "Danish" in llm.calls_for("writer")[0]["prompt"]
    assert "interview briefing" in llm.calls_for("writer")[0]["prompt"]


def test_generate_cover_letter_is_grounded_and_signed() -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=COVER_LETTER_DOCUMENT)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        document = asyncio.run(
            _generator(db, llm).generate_cover_letter(
                profile, documents, JOB, TemplateConfig(template="executive", custom_notes="Mention relocation")
            )
        )
        stored = Repository(db).get_generated_document(document.id)
        assert stored.document_type == "cover_letter"
        assert stored.status == "ready"

    assert document.template == ""
    assert document.content["paragraphs"] == COVER_LETTER_DOCUMENT["paragraphs"]
    writer_call = llm.calls_for("writer")[0]
    assert "cover letter" in writer_call["system"]
    assert "Write a cover letter from Jane Doe for the Lead Data Engineer role at Initrode" in writer_call["prompt"]
    assert "Additional notes: Mention relocation" in writer_call["prompt"]
    assert '"Acme Corp"' in writer_call["prompt"]


def test_cover_letter_naming_an_unknown_employer_is_rejected() -> None:
    letter = {**COVER_LETTER_DOCUMENT, "experience": [{"company": "Initech", "relevance": "Led the TPS rewrite"}]}
    llm = FakeLLM(extract=EXTRACTION, writer=letter)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        with pytest.raises(FabricationError):
            asyncio.run(_generator(db, llm).generate_cover_letter(profile, documents, JOB))
        [row] = Repository(db).list_generated_documents(profile.id)
        assert row.document_type == "cover_letter"
        assert row.status == "failed"


@pytest.mark.parametrize(
    ("job", "template", "document_type"),
    [
        (JobSpec(job_title="  ", job_description="Build things"), None, "cv"),
        (JobSpec(job_title="Engineer", job_description=""), None, "cv"),
        (JOB, TemplateConfig.model_construct(template="infographic", language="en", custom_notes=""), "cv"),
        (JOB, None, "memo"),
    ],
)
def test_invalid_input_is_rejected_before_any_work(job, template, document_type) -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        with pytest.raises(InputError):
            asyncio.run(_generator(db, llm).generate(profile, documents, job, template, document_type=document_type))
        assert Repository(db).list_generated_documents(profile.id) == []

    assert llm.calls == []


def test_missing_provider_configuration_is_rejected_before_any_work() -> None:
    llm = FakeLLM(available=False)

    with SessionLocal() as db:
        profile, documents = seed_profile(db)
        with pytest.raises(ConfigurationError):
            asyncio.run(_generator(db, llm).generate(profile, documents, JOB))
        assert Repository(db).list_generated_documents(profile.id) == []


def test_unknown_profile_raises_not_found() -> None:
    with SessionLocal() as db:
        with pytest.raises(NotFoundError):
            asyncio.run(_generator(db, FakeLLM()).generate_for_profile(999, JOB))


def test_progress_is_published_on_the_event_bus() -> None:
    llm = FakeLLM(extract=EXTRACTION, writer=CV_DOCUMENT)
    bus = EventBus()

    async def scenario(profile_id: int, db) -> list[str]:
        stream = bus.subscribe(profile_id)
        first = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        generator = DocumentGenerator(db, llm, event_bus=bus)
        await generator.generate_for_profile(profile_id, JOB)

        phases = [(await first)["phase"]]
        for _ in range(4):
            phases.append((await asyncio.wait_for(stream.__anext__(), timeout=1))["phase"])
        await stream.aclose()
        return phases

    with SessionLocal() as db:
        profile, _ = seed_profile(db)
        assert asyncio.run(scenario(profile.id, db)) == ["saving", "extracting", "generating", "saving", "done"]
