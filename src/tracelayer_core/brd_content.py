"""Typed BRD content.

The document agent returns a loosely shaped JSON object. At the storage/API
boundary it is normalised into an ordered list of sections, each tagged with
its kind:

- ``text``: a narrative string (executive summary, analyses)
- ``list``: a list of items (objectives, each a string or an object)
- ``object``: a keyed object (scope definition, confidence report)
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

# Known sections, in display order, with their titles
SECTION_TITLES: dict[str, str] = {
    "executiveSummary": "Executive Summary",
    "projectOverview": "Project Overview",
    "businessObjectives": "Business Objectives",
    "scopeDefinition": "Scope Definition",
    "stakeholderAnalysis": "Stakeholder Analysis",
    "functionalAnalysis": "Functional Requirements Analysis",
    "nonFunctionalAnalysis": "Non-Functional Requirements Analysis",
    "decisionAnalysis": "Decision Analysis",
    "riskAssessment": "Risk Assessment",
    "intelligenceSummary": "Intelligence Summary",
    "confidenceReport": "Confidence Report",
}


class BRDContentError(ValueError):
    """Raised when stored BRD content cannot be normalised."""
    pass


class TextSection(BaseModel):
    kind: Literal["text"] = "text"
    key: str
    title: str
    body: str


class ListSection(BaseModel):
    kind: Literal["list"] = "list"
    key: str
    title: str
    items: list[Union[str, dict[str, Any]]] = Field(default_factory=list)


class ObjectSection(BaseModel):
    kind: Literal["object"] = "object"
    key: str
    title: str
    fields: dict[str, Any] = Field(default_factory=dict)


BRDSection = Annotated[Union[TextSection, ListSection, ObjectSection], Field(discriminator="kind")]

_section_adapter = TypeAdapter(BRDSection)


class BRDContent(BaseModel):
    """Normalised BRD: ordered, kind-tagged sections."""

    sections: list[BRDSection] = Field(default_factory=list)

    def section(self, key: str):
        for item in self.sections:
            if item.key == key:
                return item
        return None


def _title_for(key: str) -> str:
    if key in SECTION_TITLES:
        return SECTION_TITLES[key]
    # camelCase -> "Camel Case"
    words = []
    current = ""
    for ch in key:
        if ch.isupper() and current:
            words.append(current)
            current = ch
        else:
            current += ch
    if current:
        words.append(current)
    return " ".join(w.capitalize() for w in words) or key


def _to_section(key: str, value: Any):
    title = _title_for(key)
    if isinstance(value, str):
        return TextSection(key=key, title=title, body=value)
    if isinstance(value, list):
        items = [item if isinstance(item, (str, dict)) else str(item) for item in value]
        return ListSection(key=key, title=title, items=items)
    if isinstance(value, dict):
        return ObjectSection(key=key, title=title, fields=value)
    if isinstance(value, (int, float, bool)):
        return TextSection(key=key, title=title, body=str(value))
    return None


def normalize_brd(raw: Any) -> BRDContent:
    """
    Normalise raw BRD JSON into typed sections.

    Accepts either an already-normalised payload ({"sections": [...]}) or the
    agent's keyed object. Known sections come first in canonical order, unknown
    keys follow in their original order. Null values are dropped.

    Raises:
        BRDContentError: If raw is neither an object nor a normalised payload
    """
    if raw is None:
        return BRDContent()
    if not isinstance(raw, dict):
        raise BRDContentError(f"BRD content must be a JSON object, got {type(raw).__name__}")

    if isinstance(raw.get("sections"), list):
        try:
            return BRDContent(sections=[_section_adapter.validate_python(s) for s in raw["sections"]])
        except ValueError as e:
            raise BRDContentError(f"Invalid BRD section: {e}") from e

    ordered_keys = [k for k in SECTION_TITLES if k in raw]
    ordered_keys += [k for k in raw if k not in SECTION_TITLES]

    sections = []
    for key in ordered_keys:
        section = _to_section(key, raw[key])
        if section is not None:
            sections.append(section)
    return BRDContent(sections=sections)
