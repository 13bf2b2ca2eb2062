from __future__ import annotations

from dataclasses import dataclass

from cvtailor.errors import InputError


@dataclass(slots=True, frozen=True)
class TemplateSpec:
    name: str
    label: str
    guidance: str


TEMPLATES: dict[str, TemplateSpec] = {
    "classic": TemplateSpec(
        name="classic",
        label="Classic Chronological",
        guidance=(
            "Classic Chronological: steady progression in one field. "
            "executiveSummary 2-3 sentences opening with title, years of experience and domain. "
            "careerHighlights 3-5 items. coreCompetencies 6-12, hard skills first. "
            "experience 3-6 bullets for recent roles, fewer for older ones."
        ),
    ),
    "hybrid": TemplateSpec(
        name="hybrid",
        label="Modern Hybrid",
        guidance=(
            "Modern Hybrid: career changers and broad, transferable experience. "
            "executiveSummary 2-4 sentences on breadth and adaptability. "
            "careerHighlights 3-5 achievements spanning several roles. "
            "coreCompetencies 9-15, using the job description's wording. "
            "experience 2-4 bullets per role reinforcing the competencies."
        ),
    ),
    "executive": TemplateSpec(
        name="executive",
        label="Executive Impact",
        guidance=(
            "Executive Impact: senior leadership roles. "
            "executiveSummary 3-5 sentences covering scope, marquee achievements and direction. "
            "careerHighlights 4-6 items with scale indicators taken from the sources. "
            "coreCompetencies 12-18 strategic competencies. "
            "experience opens each role with its mandate, then 3-5 achievement bullets."
        ),
    ),
}

DEFAULT_TEMPLATE = "classic"


def get_template(name: str | None) -> TemplateSpec:
    key = (name or DEFAULT_TEMPLATE).strip().lower()
    template = TEMPLATES.get(key)
    if template is None:
        raise InputError(f"unknown template '{name}'; expected one of {sorted(TEMPLATES)}")
    return template
