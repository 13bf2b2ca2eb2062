"""Staleness fingerprints over a profile's fact-bearing documents.

``fingerprint`` is intentionally cheap: it only looks at ``(id, name, length)``
per document, so an edit that keeps a document's length unchanged is not
detected. ``content_fingerprint`` hashes full text and is selected with
``Settings.fingerprint_strategy = "content"``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from cvtailor.types import SourceDocument

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def fact_documents(documents: Iterable[SourceDocument]) -> list[SourceDocument]:
    """Documents that take part in fact extraction, in stable id order."""
    return sorted((doc for doc in documents if doc.is_fact_source), key=lambda doc: doc.id)


def text_length(value: str) -> int:
    # UTF-16 code units, so fingerprints agree with rows written by the web client
    return len(value.encode("utf-16-le")) // 2


def rolling_hash(value: str) -> int:
    """31-multiplier string hash truncated to a signed 32-bit integer."""
    data = value.encode("utf-16-le")
    acc = 0
    for idx in range(0, len(data), 2):
        acc = (acc * 31 + int.from_bytes(data[idx : idx + 2], "little")) & 0xFFFFFFFF
    if acc >= 0x80000000:
        acc -= 0x100000000
    return acc


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def fingerprint(documents: Iterable[SourceDocument]) -> str:
    joined = "|".join(
        f"{doc.id}:{doc.name}:{text_length(doc.text_content)}" for doc in fact_documents(documents)
    )
    return to_base36(rolling_hash(joined))


def content_fingerprint(documents: Iterable[SourceDocument]) -> str:
    digest = hashlib.sha256()
    for doc in fact_documents(documents):
        for part in (doc.id, doc.name, doc.text_content):
            digest.update(part.encode("utf-8"))
            digest.update(b"\x00")
    return digest.hexdigest()[:16]


def fingerprint_for(documents: Iterable[SourceDocument], strategy: str = "length") -> str:
    if strategy == "content":
        return content_fingerprint(documents)
    if strategy == "length":
        return fingerprint(documents)
    raise ValueError(f"unsupported fingerprint strategy '{strategy}'")
