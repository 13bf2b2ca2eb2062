from __future__ import annotations


class CVTailorError(Exception):
    """Base class for errors raised by the document pipeline."""


class InputError(CVTailorError, ValueError):
    """A caller supplied missing or malformed input. Nothing was persisted."""


class ConfigurationError(CVTailorError):
    """Required configuration (e.g. LLM credentials) is missing. Nothing was persisted."""


class NotFoundError(CVTailorError, LookupError):
    pass


class FactExtractionError(CVTailorError):
    pass


class GenerationError(CVTailorError):
    """The external generation call failed or returned an unusable document."""


class DocumentValidationError(GenerationError):
    pass


class FabricationError(DocumentValidationError):
    """Generated output references facts that cannot be traced to the candidate's documents."""

    def __init__(self, message: str, *, untraceable: list[str] | None = None):
        super().__init__(message)
        self.untraceable = list(untraceable or [])
