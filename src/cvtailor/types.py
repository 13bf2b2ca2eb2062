from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

DocumentKind = Literal["cv", "experience", "other"]
Confidence = Literal["explicit", "demonstrated", "mentioned"]
CredentialType = Literal["degree", "certification", "title"]
GeneratedDocumentType = Literal["cv", "briefing", "cover_letter"]
DocumentStatus = Literal["generating", "ready", "failed"]
CacheState = Literal["none", "generating", "ready", "outdated", "failed"]
TemplateName = Literal["classic", "hybrid", "executive"]
Language = Literal["en", "da"]
ChatRole = Literal["user", "assistant"]
LLMTask = Literal["extract", "writer", "refine"]

FACT_KINDS: frozenset[str] = frozenset({"cv", "experience"})


class ProfileSnapshot(BaseModel):
    id: int | None = None
    name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    summary: str = ""


class SourceDocument(BaseModel):
    id: str
    profile_id: int | None = None
    name: str
    kind: DocumentKind = "other"
    text_content: str = ""
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)

    @property
    def is_fact_source(self) -> bool:
        return self.kind in FACT_KINDS


class Skill(BaseModel):
    skill: str
    source: str = "Unknown"
    context: str = ""
    confidence: Confidence = "mentioned"

    @field_validator("source")
    @classmethod
    def default_source(cls, value: str) -> str:
        return value or "Unknown"


class Achievement(BaseModel):
    description: str
    metrics: str | None = None
    source: str = "Unknown"

    @field_validator("metrics")
    @classmethod
    def drop_blank_metrics(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("source")
    @classmethod
    def default_source(cls, value: str) -> str:
        return value or "Unknown"


class Credential(BaseModel):
    type: CredentialType = "title"
    name: str
    source: str = "Unknown"

    @field_validator("source")
    @classmethod
    def default_source(cls, value: str) -> str:
        return value or "Unknown"


class FactInventory(BaseModel):
    skills: list[Skill] = Field(default_factory=list)
    achievements: list[Achievement] = Field(default_factory=list)
    credentials: list[Credential] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)

    @field_validator("companies")
    @classmethod
    def strip_companies(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]

    def is_empty(self) -> bool:
        return not (self.skills or self.achievements or self.credentials or self.companies)

    def counts(self) -> dict[str, int]:
        return {
            "skills": len(self.skills),
            "achievements": len(self.achievements),
            "credentials": len(self.credentials),
            "companies": len(self.companies),
        }

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class JobSpec(BaseModel):
    job_title: str
    company_name: str = ""
    job_description: str
    company_url: str | None = None


class TemplateConfig(BaseModel):
    template: TemplateName = "classic"
    language: Language = "en"
    custom_notes: str = ""


class ChatMessage(BaseModel):
    role: ChatRole
    content: str


class CacheStatus(BaseModel):
    status: CacheState
    error: str | None = None


class GeneratedDocument(BaseModel):
    id: int
    profile_id: int
    document_type: GeneratedDocumentType
    job_title: str = ""
    company_name: str = ""
    job_description: str = ""
    company_url: str | None = None
    template: str = ""
    language: str = "en"
    custom_notes: str = ""
    content: dict[str, Any] = Field(default_factory=dict)
    status: DocumentStatus = "generating"
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)
