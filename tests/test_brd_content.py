"""Tests for BRD content normalisation into typed sections."""
import pytest
from tracelayer_core.brd_content import (
    BRDContentError,
    ListSection,
    ObjectSection,
    TextSection,
    normalize_brd,
)


class TestNormalizeBrd:
    """Raw agent JSON becomes ordered, kind-tagged sections."""

    def test_known_sections_in_canonical_order(self):
        raw = {
            "riskAssessment": "Card fraud exposure during peak sales.",
            "businessObjectives": ["Cut checkout time", {"title": "Raise conversion", "target": "3%"}],
            "executiveSummary": "Rebuild checkout around saved cards.",
            "scopeDefinition": {"inScope": ["Web checkout"], "outOfScope": ["POS"]},
        }
        content = normalize_brd(raw)

        assert [s.key for s in content.sections] == [
            "executiveSummary", "businessObjectives", "scopeDefinition", "riskAssessment",
        ]
        assert isinstance(content.section("executiveSummary"), TextSection)
        assert isinstance(content.section("businessObjectives"), ListSection)
        assert isinstance(content.section("scopeDefinition"), ObjectSection)
        assert content.section("executiveSummary").title == "Executive Summary"

    def test_unknown_keys_follow_with_derived_titles(self):
        content = normalize_brd({"glossaryTerms": ["BRD"], "executiveSummary": "Summary"})
        assert [s.key for s in content.sections] == ["executiveSummary", "glossaryTerms"]
        assert content.section("glossaryTerms").title == "Glossary Terms"

    def test_null_values_dropped_and_scalars_become_text(self):
        content = normalize_brd({"projectOverview": None, "confidenceScore": 0.82})
        assert content.section("projectOverview") is None
        assert content.section("confidenceScore").body == "0.82"

    def test_already_normalised_payload_round_trips(self):
        first = normalize_brd({"executiveSummary": "Summary", "businessObjectives": ["A"]})
        second = normalize_brd(first.model_dump(mode="json"))
        assert second == first

    def test_invalid_payloads(self):
        assert normalize_brd(None).sections == []
        with pytest.raises(BRDContentError):
            normalize_brd(["not", "an", "object"])
        with pytest.raises(BRDContentError):
            normalize_brd({"sections": [{"kind": "table", "key": "x", "title": "X"}]})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
