from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, not_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cvtailor.db.base import utcnow
from cvtailor.db.models import CachedExtraction, GeneratedDocumentRow, Profile, SourceDocumentRow
from cvtailor.errors import InputError, NotFoundError
from cvtailor.types import FACT_KINDS, GeneratedDocument, ProfileSnapshot, SourceDocument

DOCUMENT_KINDS = FACT_KINDS | {"other"}


def to_profile_snapshot(profile: Profile) -> ProfileSnapshot:
    return ProfileSnapshot(
        id=profile.id,
        name=profile.name,
        email=profile.email,
        phone=profile.phone,
        location=profile.location,
        summary=profile.summary,
    )


def to_source_document(row: SourceDocumentRow) -> SourceDocument:
    return SourceDocument(
        id=row.id,
        profile_id=row.profile_id,
        name=row.name,
        kind=row.kind,
        text_content=row.text_content,
        created_at=row.created_at,
    )


def to_generated_document(row: GeneratedDocumentRow) -> GeneratedDocument:
    return GeneratedDocument(
        id=row.id,
        profile_id=row.profile_id,
        document_type=row.document_type,
        job_title=row.job_title,
        company_name=row.company_name,
        job_description=row.job_description,
        company_url=row.company_url,
        template=row.template,
        language=row.language,
        custom_notes=row.custom_notes,
        content=dict(row.content_json or {}),
        status=row.status,
        error=row.error,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def create_profile(
        self,
        name: str,
        *,
        email: str = "",
        phone: str = "",
        location: str = "",
        summary: str = "",
    ) -> Profile:
        profile = Profile(name=name, email=email, phone=phone, location=location, summary=summary)
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def list_profiles(self) -> list[Profile]:
        return list(self.session.scalars(select(Profile).order_by(Profile.id.desc())).all())

    def get_profile(self, profile_id: int) -> Profile | None:
        return self.session.get(Profile, profile_id)

    def require_profile(self, profile_id: int) -> Profile:
        profile = self.get_profile(profile_id)
        if profile is None:
            raise NotFoundError(f"profile {profile_id} not found")
        return profile

    def update_profile(self, profile_id: int, values: dict[str, Any]) -> Profile:
        profile = self.require_profile(profile_id)
        for key, value in values.items():
            if key in {"name", "email", "phone", "location", "summary"} and value is not None:
                setattr(profile, key, value)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def add_document(self, profile_id: int, *, name: str, kind: str, text_content: str) -> SourceDocumentRow:
        if kind not in DOCUMENT_KINDS:
            raise InputError(f"document kind must be one of {sorted(DOCUMENT_KINDS)}")
        self.require_profile(profile_id)

        row = SourceDocumentRow(profile_id=profile_id, name=name, kind=kind, text_content=text_content)
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def get_document(self, document_id: int) -> SourceDocumentRow | None:
        return self.session.get(SourceDocumentRow, document_id)

    def list_documents(self, profile_id: int) -> list[SourceDocumentRow]:
        statement = (
            select(SourceDocumentRow)
            .where(SourceDocumentRow.profile_id == profile_id)
            .order_by(SourceDocumentRow.id.asc())
        )
        return list(self.session.scalars(statement).all())

    def source_documents(self, profile_id: int) -> list[SourceDocument]:
        return [to_source_document(row) for row in self.list_documents(profile_id)]

    def delete_document(self, document_id: int) -> bool:
        result = self.session.execute(delete(SourceDocumentRow).where(SourceDocumentRow.id == document_id))
        self.session.commit()
        return result.rowcount > 0

    def get_extraction(self, profile_id: int) -> CachedExtraction | None:
        return self.session.scalar(select(CachedExtraction).where(CachedExtraction.profile_id == profile_id))

    def claim_extraction(self, profile_id: int, fingerprint: str, *, stale_before: datetime) -> str | None:
        """Atomically mark the profile's cache row as generating.

        Returns a new generation id, or ``None`` when another generation is in
        flight or a ready row already matches ``fingerprint``.
        """
        generation_id = uuid.uuid4().hex
        now = utcnow()
        statement = (
            update(CachedExtraction)
            .where(
                CachedExtraction.profile_id == profile_id,
                or_(
                    CachedExtraction.status != "generating",
                    CachedExtraction.claimed_at.is_(None),
                    CachedExtraction.claimed_at < stale_before,
                ),
                not_(
                    and_(
                        CachedExtraction.status == "ready",
                        CachedExtraction.fingerprint == fingerprint,
                    )
                ),
            )
            .values(
                status="generating",
                fingerprint=fingerprint,
                payload_json={},
                error=None,
                generation_id=generation_id,
                claimed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        if result.rowcount == 1:
            self.session.commit()
            return generation_id

        exists = self.session.scalar(
            select(CachedExtraction.id).where(CachedExtraction.profile_id == profile_id)
        )
        if exists is not None:
            self.session.rollback()
            return None

        self.session.add(
            CachedExtraction(
                profile_id=profile_id,
                payload_json={},
                fingerprint=fingerprint,
                status="generating",
                error=None,
                generation_id=generation_id,
                claimed_at=now,
            )
        )
        try:
            self.session.commit()
        except IntegrityError:
            # a concurrent trigger inserted the row first
            self.session.rollback()
            return None
        return generation_id

    def complete_extraction(self, profile_id: int, generation_id: str, payload: dict[str, Any]) -> bool:
        return self._finish_extraction(
            profile_id, generation_id, status="ready", payload_json=payload, error=None
        )

    def fail_extraction(self, profile_id: int, generation_id: str, error: str) -> bool:
        return self._finish_extraction(profile_id, generation_id, status="failed", error=error)

    def _finish_extraction(self, profile_id: int, generation_id: str, **values: Any) -> bool:
        statement = (
            update(CachedExtraction)
            .where(
                CachedExtraction.profile_id == profile_id,
                CachedExtraction.generation_id == generation_id,
                CachedExtraction.status == "generating",
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        self.session.commit()
        return result.rowcount == 1

    def delete_extraction(self, profile_id: int) -> None:
        self.session.execute(delete(CachedExtraction).where(CachedExtraction.profile_id == profile_id))
        self.session.commit()

    def create_generated_document(
        self,
        *,
        profile_id: int,
        document_type: str,
        job_title: str,
        company_name: str,
        job_description: str,
        company_url: str | None = None,
        template: str = "",
        language: str = "en",
        custom_notes: str = "",
    ) -> GeneratedDocumentRow:
        row = GeneratedDocumentRow(
            profile_id=profile_id,
            document_type=document_type,
            job_title=job_title,
            company_name=company_name,
            job_description=job_description,
            company_url=company_url,
            template=template,
            language=language,
            custom_notes=custom_notes,
            content_json={},
            status="generating",
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def get_generated_document(self, document_id: int) -> GeneratedDocumentRow | None:
        return self.session.get(GeneratedDocumentRow, document_id)

    def list_generated_documents(
        self, profile_id: int, document_type: str | None = None, limit: int = 50
    ) -> list[GeneratedDocumentRow]:
        statement = select(GeneratedDocumentRow).where(GeneratedDocumentRow.profile_id == profile_id)
        if document_type is not None:
            statement = statement.where(GeneratedDocumentRow.document_type == document_type)
        statement = statement.order_by(GeneratedDocumentRow.id.desc()).limit(limit)
        return list(self.session.scalars(statement).all())

    def update_generated_document(
        self,
        document_id: int,
        *,
        content: dict[str, Any] | None = None,
        status: str | None = None,
        error: str | None = None,
        clear_error: bool = False,
    ) -> GeneratedDocumentRow:
        row = self.session.get(GeneratedDocumentRow, document_id)
        if row is None:
            raise NotFoundError(f"generated document {document_id} not found")

        if content is not None:
            row.content_json = content
        if status is not None:
            row.status = status
        if error is not None:
            row.error = error
        if clear_error:
            row.error = None

        self.session.commit()
        self.session.refresh(row)
        return row
