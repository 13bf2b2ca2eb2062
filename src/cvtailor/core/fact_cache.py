from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta

from sqlalchemy.orm import Session

from cvtailor.config import Settings, get_settings
from cvtailor.core.facts import FactExtractor, decode_inventory
from cvtailor.core.fingerprint import fingerprint_for
from cvtailor.db.base import utcnow
from cvtailor.db.repositories import Repository
from cvtailor.errors import InputError
from cvtailor.types import CacheStatus, FactInventory, ProfileSnapshot, SourceDocument

logger = logging.getLogger(__name__)


class FactCache:
    """Per-profile fact inventory cache gated by a document fingerprint.

    Stored states are ``generating``, ``ready`` and ``failed``. ``none`` means
    there is no row, and ``outdated`` is reported for a ready row whose
    fingerprint no longer matches the profile's current documents.
    """

    def __init__(self, session: Session, extractor: FactExtractor, settings: Settings | None = None):
        self.repo = Repository(session)
        self.extractor = extractor
        self.settings = settings or get_settings()

    def current_fingerprint(self, documents: Iterable[SourceDocument]) -> str:
        return fingerprint_for(documents, self.settings.fingerprint_strategy)

    def get_status(self, profile_id: int, documents: Iterable[SourceDocument]) -> CacheStatus:
        row = self.repo.get_extraction(profile_id)
        if row is None:
            return CacheStatus(status="none")
        if row.status == "generating":
            return CacheStatus(status="generating")
        if row.status == "failed":
            return CacheStatus(status="failed", error=row.error or "Fact extraction failed")
        if row.fingerprint != self.current_fingerprint(documents):
            return CacheStatus(status="outdated")
        return CacheStatus(status="ready")

    def get_cached(self, profile_id: int, documents: Iterable[SourceDocument]) -> FactInventory | None:
        row = self.repo.get_extraction(profile_id)
        if row is None or row.status != "ready":
            return None
        if row.fingerprint != self.current_fingerprint(documents):
            return None
        return decode_inventory(row.payload_json)

    async def resolve(self, profile: ProfileSnapshot, documents: list[SourceDocument]) -> FactInventory:
        """Cached inventory when ready and current, otherwise a direct (total) extraction."""
        if profile.id is not None:
            cached = self.get_cached(profile.id, documents)
            if cached is not None:
                logger.info("Reusing cached fact inventory profile_id=%s", profile.id)
                return cached
        return await self.extractor.extract_facts(profile.summary, documents)

    async def generate_and_cache(
        self, profile: ProfileSnapshot, documents: Iterable[SourceDocument]
    ) -> CacheStatus:
        if profile.id is None:
            raise InputError("profile must be persisted before its facts can be cached")

        documents = list(documents)
        self.extractor.llm.ensure_available("extract")

        # captured before the call so edits made mid-generation show up as outdated
        current = self.current_fingerprint(documents)
        stale_before = utcnow() - timedelta(seconds=self.settings.extraction_stale_after_sec)
        generation_id = self.repo.claim_extraction(profile.id, current, stale_before=stale_before)
        if generation_id is None:
            logger.info("Fact extraction already running or up to date profile_id=%s", profile.id)
            return self.get_status(profile.id, documents)

        try:
            inventory = await self.extractor.run_extraction(profile.summary, documents)
        except Exception as exc:
            message = str(exc) or "Failed to extract facts"
            logger.warning("Fact extraction failed profile_id=%s error=%s", profile.id, message)
            self.repo.fail_extraction(profile.id, generation_id, message)
            return CacheStatus(status="failed", error=message)

        if not self.repo.complete_extraction(profile.id, generation_id, inventory.to_payload()):
            logger.info("Fact extraction result superseded profile_id=%s", profile.id)
        return self.get_status(profile.id, documents)

    def invalidate(self, profile_id: int) -> None:
        self.repo.delete_extraction(profile_id)
