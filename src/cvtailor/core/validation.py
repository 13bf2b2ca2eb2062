from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from cvtailor.errors import DocumentValidationError, FabricationError
from cvtailor.types import FactInventory

# document type -> (required non-empty string field, required non-empty list field)
DOCUMENT_SCHEMAS: dict[str, tuple[str, str]] = {
    "cv": ("headline", "experience"),
    "briefing": ("title", "sections"),
    "cover_letter": ("greeting", "paragraphs"),
}


def normalize_text(value: str) -> str:
    return " ".join(value.casefold().split())


def validate_document_shape(data: Any, document_type: str) -> dict[str, Any]:
    if document_type not in DOCUMENT_SCHEMAS:
        raise DocumentValidationError(f"unsupported document type '{document_type}'")
    if not isinstance(data, dict):
        raise DocumentValidationError(f"generated {document_type} must be a JSON object")

    title_key, items_key = DOCUMENT_SCHEMAS[document_type]
    title = data.get(title_key)
    if not isinstance(title, str) or not title.strip():
        raise DocumentValidationError(f"generated {document_type} is missing a non-empty '{title_key}'")

    items = data.get(items_key)
    if not isinstance(items, list) or not items:
        raise DocumentValidationError(f"generated {document_type} needs a non-empty '{items_key}' list")
    return data


def experience_companies(data: dict[str, Any]) -> list[str]:
    entries = data.get("experience")
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise DocumentValidationError("'experience' must be a list")

    companies: list[str] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise DocumentValidationError("each 'experience' entry must be an object")
        company = entry.get("company")
        if company is None:
            continue
        if not isinstance(company, str):
            raise DocumentValidationError("'experience[].company' must be a string")
        if company.strip():
            companies.append(company.strip())
    return companies


def mentions(corpus: str, key: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(key)}(?!\w)", corpus) is not None


def untraceable_companies(
    companies: Iterable[str], inventory: FactInventory, source_texts: Iterable[str]
) -> list[str]:
    known = {normalize_text(name) for name in inventory.companies}
    corpus = normalize_text("\n".join(source_texts))

    missing: list[str] = []
    for company in companies:
        key = normalize_text(company)
        if key in known or (key and mentions(corpus, key)):
            continue
        missing.append(company)
    return missing


def check_grounding(data: dict[str, Any], inventory: FactInventory, source_texts: Iterable[str]) -> None:
    missing = untraceable_companies(experience_companies(data), inventory, source_texts)
    if missing:
        raise FabricationError(
            "generated document names companies not found in the candidate's documents: "
            + ", ".join(missing),
            untraceable=missing,
        )


def validate_generated_document(
    data: Any,
    *,
    document_type: str,
    inventory: FactInventory,
    source_texts: Iterable[str],
) -> dict[str, Any]:
    document = validate_document_shape(data, document_type)
    check_grounding(document, inventory, source_texts)
    return document
