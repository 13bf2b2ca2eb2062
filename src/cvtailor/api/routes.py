from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from cvtailor.api.deps import get_db, get_llm
from cvtailor.api.schemas import (
    DocumentCreateRequest,
    DocumentResponse,
    FactStatusResponse,
    GenerateRequest,
    ProfileCreateRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RefineRequest,
)
from cvtailor.core.events import EventBus, get_event_bus
from cvtailor.core.fact_cache import FactCache
from cvtailor.core.facts import FactExtractor
from cvtailor.core.fingerprint import text_length
from cvtailor.core.generator import DocumentGenerator
from cvtailor.core.refinement import DocumentRefiner
from cvtailor.db.models import Profile, SourceDocumentRow
from cvtailor.db.repositories import Repository, to_generated_document, to_profile_snapshot
from cvtailor.errors import (
    ConfigurationError,
    CVTailorError,
    GenerationError,
    InputError,
    NotFoundError,
)
from cvtailor.llm.router import LLMRouter
from cvtailor.types import FactInventory, GeneratedDocument, JobSpec, TemplateConfig

router = APIRouter(prefix="/api", tags=["api"])


def _raise_http(exc: CVTailorError) -> NoReturn:
    status_code = 500
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, InputError):
        status_code = 400
    elif isinstance(exc, ConfigurationError):
        status_code = 503
    elif isinstance(exc, GenerationError):
        status_code = 502
    raise HTTPException(status_code=status_code, detail=str(exc)) from exc


def _profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        name=profile.name,
        email=profile.email,
        phone=profile.phone,
        location=profile.location,
        summary=profile.summary,
    )


def _document_response(row: SourceDocumentRow) -> DocumentResponse:
    return DocumentResponse(
        id=row.id,
        profile_id=row.profile_id,
        name=row.name,
        kind=row.kind,
        content_length=text_length(row.text_content),
        created_at=row.created_at.isoformat() if row.created_at else None,
    )


def _fact_cache(db: Session, llm: LLMRouter) -> FactCache:
    return FactCache(db, FactExtractor(llm))


@router.post("/profiles", response_model=ProfileResponse)
def create_profile(payload: ProfileCreateRequest, db: Session = Depends(get_db)) -> ProfileResponse:
    repo = Repository(db)
    profile = repo.create_profile(
        payload.name,
        email=payload.email,
        phone=payload.phone,
        location=payload.location,
        summary=payload.summary,
    )
    return _profile_response(profile)


@router.get("/profiles", response_model=list[ProfileResponse])
def list_profiles(db: Session = Depends(get_db)) -> list[ProfileResponse]:
    return [_profile_response(row) for row in Repository(db).list_profiles()]


@router.get("/profiles/{profile_id}", response_model=ProfileResponse)
def get_profile(profile_id: int, db: Session = Depends(get_db)) -> ProfileResponse:
    profile = Repository(db).get_profile(profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_response(profile)


@router.patch("/profiles/{profile_id}", response_model=ProfileResponse)
def update_profile(
    profile_id: int, payload: ProfileUpdateRequest, db: Session = Depends(get_db)
) -> ProfileResponse:
    try:
        profile = Repository(db).update_profile(profile_id, payload.model_dump(exclude_none=True))
    except CVTailorError as exc:
        _raise_http(exc)
    return _profile_response(profile)


@router.post("/profiles/{profile_id}/documents", response_model=DocumentResponse)
def add_document(
    profile_id: int, payload: DocumentCreateRequest, db: Session = Depends(get_db)
) -> DocumentResponse:
    try:
        row = Repository(db).add_document(
            profile_id, name=payload.name, kind=payload.kind, text_content=payload.text_content
        )
    except CVTailorError as exc:
        _raise_http(exc)
    return _document_response(row)


@router.get("/profiles/{profile_id}/documents", response_model=list[DocumentResponse])
def list_documents(profile_id: int, db: Session = Depends(get_db)) -> list[DocumentResponse]:
    repo = Repository(db)
    if not repo.get_profile(profile_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    return [_document_response(row) for row in repo.list_documents(profile_id)]


@router.delete("/documents/{document_id}")
def delete_document(document_id: int, db: Session = Depends(get_db)) -> dict:
    if not Repository(db).delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"deleted": document_id}


@router.get("/profiles/{profile_id}/facts/status", response_model=FactStatusResponse)
def get_fact_status(
    profile_id: int,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> FactStatusResponse:
    repo = Repository(db)
    if not repo.get_profile(profile_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    cache = _fact_cache(db, llm)
    documents = repo.source_documents(profile_id)
    status = cache.get_status(profile_id, documents)
    return FactStatusResponse(
        profile_id=profile_id,
        status=status.status,
        error=status.error,
        fingerprint=cache.current_fingerprint(documents),
    )


@router.post("/profiles/{profile_id}/facts/extract", response_model=FactStatusResponse)
async def extract_facts(
    profile_id: int,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> FactStatusResponse:
    repo = Repository(db)
    cache = _fact_cache(db, llm)
    try:
        profile = to_profile_snapshot(repo.require_profile(profile_id))
        documents = repo.source_documents(profile_id)
        status = await cache.generate_and_cache(profile, documents)
    except CVTailorError as exc:
        _raise_http(exc)
    return FactStatusResponse(
        profile_id=profile_id,
        status=status.status,
        error=status.error,
        fingerprint=cache.current_fingerprint(documents),
    )


@router.get("/profiles/{profile_id}/facts", response_model=FactInventory)
def get_facts(
    profile_id: int,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> FactInventory:
    repo = Repository(db)
    inventory = _fact_cache(db, llm).get_cached(profile_id, repo.source_documents(profile_id))
    if inventory is None:
        raise HTTPException(status_code=404, detail="No current fact inventory for this profile")
    return inventory


@router.delete("/profiles/{profile_id}/facts")
def invalidate_facts(
    profile_id: int,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> dict:
    _fact_cache(db, llm).invalidate(profile_id)
    return {"profile_id": profile_id, "status": "none"}


async def _generate(
    profile_id: int, payload: GenerateRequest, document_type: str, db: Session, llm: LLMRouter
) -> GeneratedDocument:
    generator = DocumentGenerator(db, llm)
    job = JobSpec(
        job_title=payload.job_title,
        company_name=payload.company_name,
        job_description=payload.job_description,
        company_url=payload.company_url,
    )
    template = TemplateConfig(
        template=payload.template, language=payload.language, custom_notes=payload.custom_notes
    )
    try:
        return await generator.generate_for_profile(profile_id, job, template, document_type=document_type)
    except CVTailorError as exc:
        _raise_http(exc)


@router.post("/profiles/{profile_id}/cvs", response_model=GeneratedDocument)
async def generate_cv(
    profile_id: int,
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> GeneratedDocument:
    return await _generate(profile_id, payload, "cv", db, llm)


@router.post("/profiles/{profile_id}/briefings", response_model=GeneratedDocument)
async def generate_briefing(
    profile_id: int,
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> GeneratedDocument:
    return await _generate(profile_id, payload, "briefing", db, llm)


@router.post("/profiles/{profile_id}/cover-letters", response_model=GeneratedDocument)
async def generate_cover_letter(
    profile_id: int,
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> GeneratedDocument:
    return await _generate(profile_id, payload, "cover_letter", db, llm)


@router.get("/profiles/{profile_id}/generated", response_model=list[GeneratedDocument])
def list_generated(
    profile_id: int, document_type: str | None = None, db: Session = Depends(get_db)
) -> list[GeneratedDocument]:
    rows = Repository(db).list_generated_documents(profile_id, document_type=document_type)
    return [to_generated_document(row) for row in rows]


@router.get("/generated/{document_id}", response_model=GeneratedDocument)
def get_generated(document_id: int, db: Session = Depends(get_db)) -> GeneratedDocument:
    row = Repository(db).get_generated_document(document_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Generated document not found")
    return to_generated_document(row)


@router.post("/generated/{document_id}/refine", response_model=GeneratedDocument)
async def refine_generated(
    document_id: int,
    payload: RefineRequest,
    db: Session = Depends(get_db),
    llm: LLMRouter = Depends(get_llm),
) -> GeneratedDocument:
    refiner = DocumentRefiner(db, llm)
    try:
        return await refiner.refine(
            document_id,
            payload.current_document,
            payload.user_request,
            payload.conversation_history,
        )
    except CVTailorError as exc:
        _raise_http(exc)


async def _send_events(websocket: WebSocket, events: AsyncIterator[dict[str, Any]]) -> None:
    try:
        async for event in events:
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


async def relay_progress(websocket: WebSocket, event_bus: EventBus, profile_id: int) -> None:
    """Forward a profile's progress events until the client goes away.

    The subscription is closed as soon as the disconnect arrives, even when no
    further event is ever published for the profile.
    """
    events = event_bus.subscribe(profile_id)
    sender = asyncio.create_task(_send_events(websocket, events))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        await events.aclose()


@router.websocket("/profiles/{profile_id}/stream")
async def stream_progress(websocket: WebSocket, profile_id: int) -> None:
    await websocket.accept()
    await relay_progress(websocket, get_event_bus(), profile_id)
