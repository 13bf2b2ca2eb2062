from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import NoReturn

import typer
import uvicorn
from pydantic import ValidationError

from cvtailor.api.app import create_app
from cvtailor.config import get_settings
from cvtailor.core.fact_cache import FactCache
from cvtailor.core.facts import FactExtractor
from cvtailor.core.generator import DocumentGenerator
from cvtailor.core.refinement import DocumentRefiner
from cvtailor.db.init import init_database
from cvtailor.db.repositories import Repository, to_generated_document, to_profile_snapshot
from cvtailor.db.session import SessionLocal
from cvtailor.errors import CVTailorError, InputError
from cvtailor.llm.router import LLMRouter
from cvtailor.logging_config import configure_logging
from cvtailor.types import ChatMessage, JobSpec, TemplateConfig

app = typer.Typer(help="cvtailor CLI")
profile_app = typer.Typer(help="Manage candidate profiles")
document_app = typer.Typer(help="Manage candidate source documents")
facts_app = typer.Typer(help="Fact inventory cache")
generate_app = typer.Typer(help="Generate tailored documents")

app.add_typer(profile_app, name="profile")
app.add_typer(document_app, name="document")
app.add_typer(facts_app, name="facts")
app.add_typer(generate_app, name="generate")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    configure_logging()
    init_database()
    _INITIALIZED = True


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _fail(exc: CVTailorError) -> NoReturn:
    typer.echo(json.dumps({"ok": False, "error": str(exc), "type": exc.__class__.__name__}), err=True)
    raise typer.Exit(code=1)


@app.command("init")
def init_cmd() -> None:
    """Initialize the database and data directories."""
    configure_logging()
    result = init_database()
    _echo({"ok": True, **result})


@profile_app.command("create")
def profile_create(
    name: str = typer.Option(..., "--name"),
    email: str = typer.Option("", "--email"),
    phone: str = typer.Option("", "--phone"),
    location: str = typer.Option("", "--location"),
    summary: str = typer.Option("", "--summary"),
) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        profile = Repository(db).create_profile(
            name, email=email, phone=phone, location=location, summary=summary
        )
        _echo({"id": profile.id, "name": profile.name})


@profile_app.command("list")
def profile_list() -> None:
    ensure_initialized()
    with SessionLocal() as db:
        _echo([to_profile_snapshot(row).model_dump() for row in Repository(db).list_profiles()])


@document_app.command("add")
def document_add(
    profile_id: int = typer.Option(..., "--profile-id"),
    file: Path = typer.Option(..., "--file", exists=True, readable=True),
    kind: str = typer.Option("cv", "--kind", help="cv, experience or other"),
    name: str | None = typer.Option(None, "--name"),
) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        try:
            row = Repository(db).add_document(
                profile_id,
                name=name or file.name,
                kind=kind,
                text_content=file.read_text(encoding="utf-8"),
            )
        except CVTailorError as exc:
            _fail(exc)
        _echo({"id": row.id, "name": row.name, "kind": row.kind})


@document_app.command("list")
def document_list(profile_id: int = typer.Option(..., "--profile-id")) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        docs = Repository(db).source_documents(profile_id)
        _echo([doc.model_dump(exclude={"text_content"}) for doc in docs])


@document_app.command("delete")
def document_delete(document_id: int = typer.Option(..., "--document-id")) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        _echo({"deleted": Repository(db).delete_document(document_id)})


@facts_app.command("status")
def facts_status(profile_id: int = typer.Option(..., "--profile-id")) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        cache = FactCache(db, FactExtractor(LLMRouter()))
        _echo(cache.get_status(profile_id, repo.source_documents(profile_id)).model_dump())


@facts_app.command("extract")
def facts_extract(profile_id: int = typer.Option(..., "--profile-id")) -> None:
    """Extract and cache the fact inventory unless a current one exists."""
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        cache = FactCache(db, FactExtractor(LLMRouter()))
        try:
            profile = to_profile_snapshot(repo.require_profile(profile_id))
            status = asyncio.run(cache.generate_and_cache(profile, repo.source_documents(profile_id)))
        except CVTailorError as exc:
            _fail(exc)
        _echo(status.model_dump())


@facts_app.command("show")
def facts_show(profile_id: int = typer.Option(..., "--profile-id")) -> None:
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        inventory = FactCache(db, FactExtractor(LLMRouter())).get_cached(
            profile_id, repo.source_documents(profile_id)
        )
        _echo(inventory.to_payload() if inventory else None)


def _run_generation(
    document_type: str,
    profile_id: int,
    job_title: str,
    company_name: str,
    job_file: Path,
    company_url: str | None,
    template: str,
    language: str,
    notes: str,
) -> None:
    ensure_initialized()
    job = JobSpec(
        job_title=job_title,
        company_name=company_name,
        job_description=job_file.read_text(encoding="utf-8"),
        company_url=company_url,
    )
    try:
        config = TemplateConfig(template=template, language=language, custom_notes=notes)
    except ValidationError as exc:
        fields = ", ".join(str(error["loc"][0]) for error in exc.errors())
        _fail(InputError(f"invalid {fields}: {exc.errors()[0]['msg']}"))

    def on_status(phase: str, message: str) -> None:
        typer.echo(f"[{phase}] {message}", err=True)

    with SessionLocal() as db:
        generator = DocumentGenerator(db)
        try:
            document = asyncio.run(
                generator.generate_for_profile(
                    profile_id, job, config, document_type=document_type, on_status=on_status
                )
            )
        except CVTailorError as exc:
            _fail(exc)
        _echo(document.model_dump(mode="json"))


@generate_app.command("cv")
def generate_cv(
    profile_id: int = typer.Option(..., "--profile-id"),
    job_title: str = typer.Option(..., "--job-title"),
    company_name: str = typer.Option("", "--company"),
    job_file: Path = typer.Option(..., "--job-file", exists=True, readable=True),
    company_url: str | None = typer.Option(None, "--company-url"),
    template: str = typer.Option("classic", "--template", help="classic, hybrid or executive"),
    language: str = typer.Option("en", "--language"),
    notes: str = typer.Option("", "--notes"),
) -> None:
    _run_generation("cv", profile_id, job_title, company_name, job_file, company_url, template, language, notes)


@generate_app.command("briefing")
def generate_briefing(
    profile_id: int = typer.Option(..., "--profile-id"),
    job_title: str = typer.Option(..., "--job-title"),
    company_name: str = typer.Option("", "--company"),
    job_file: Path = typer.Option(..., "--job-file", exists=True, readable=True),
    company_url: str | None = typer.Option(None, "--company-url"),
    language: str = typer.Option("en", "--language"),
    notes: str = typer.Option("", "--notes"),
) -> None:
    _run_generation(
        "briefing", profile_id, job_title, company_name, job_file, company_url, "classic", language, notes
    )


@generate_app.command("cover-letter")
def generate_cover_letter(
    profile_id: int = typer.Option(..., "--profile-id"),
    job_title: str = typer.Option(..., "--job-title"),
    company_name: str = typer.Option("", "--company"),
    job_file: Path = typer.Option(..., "--job-file", exists=True, readable=True),
    company_url: str | None = typer.Option(None, "--company-url"),
    language: str = typer.Option("en", "--language"),
    notes: str = typer.Option("", "--notes"),
) -> None:
    _run_generation(
        "cover_letter", profile_id, job_title, company_name, job_file, company_url, "classic", language, notes
    )


@app.command("refine")
def refine_cmd(
    document_id: int = typer.Option(..., "--document-id"),
    request: str = typer.Option(..., "--request"),
    history_file: Path | None = typer.Option(None, "--history-file", exists=True, readable=True),
) -> None:
    """Refine a stored document; the stored version is used as the current document."""
    ensure_initialized()
    history: list[ChatMessage] = []
    if history_file is not None:
        history = [ChatMessage.model_validate(item) for item in json.loads(history_file.read_text(encoding="utf-8"))]

    with SessionLocal() as db:
        repo = Repository(db)
        row = repo.get_generated_document(document_id)
        if row is None:
            typer.echo(json.dumps({"ok": False, "error": f"generated document {document_id} not found"}), err=True)
            raise typer.Exit(code=1)
        current = to_generated_document(row).content
        try:
            document = asyncio.run(DocumentRefiner(db).refine(document_id, current, request, history))
        except CVTailorError as exc:
            _fail(exc)
        _echo(document.model_dump(mode="json"))


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)


if __name__ == "__main__":
    app()
