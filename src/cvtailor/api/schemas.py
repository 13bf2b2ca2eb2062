from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from cvtailor.types import ChatMessage, Language, TemplateName


class ProfileCreateRequest(BaseModel):
    name: str
    email: str = ""
    phone: str = ""
    location: str = ""
    summary: str = ""


class ProfileUpdateRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    location: str | None = None
    summary: str | None = None


class ProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    location: str
    summary: str


class DocumentCreateRequest(BaseModel):
    name: str
    kind: Literal["cv", "experience", "other"] = "cv"
    text_content: str


class DocumentResponse(BaseModel):
    id: int
    profile_id: int
    name: str
    kind: str
    content_length: int
    created_at: str | None = None


class FactStatusResponse(BaseModel):
    profile_id: int
    status: str
    error: str | None = None
    fingerprint: str


class GenerateRequest(BaseModel):
    job_title: str
    company_name: str = ""
    job_description: str
    company_url: str | None = None
    template: TemplateName = "classic"
    language: Language = "en"
    custom_notes: str = ""


class RefineRequest(BaseModel):
    current_document: dict[str, Any]
    user_request: str
    conversation_history: list[ChatMessage] = Field(default_factory=list)
