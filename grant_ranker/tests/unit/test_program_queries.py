"""
tests/unit/test_program_queries.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for RankingEngine.programs_by_relevance / programs_by_metadata
and the ProgramQuery filter model.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from grant_ranker.config.rules import DEFAULT_RULES
from grant_ranker.domain.models import ImplementationLevel, ProgramOrigin, ProgramQuery
from grant_ranker.services.relevance_classifier import compute_classification
from grant_ranker.tests.conftest import SAMPLE_RECORDS, make_program

_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _names(programs):
    return [p.name for p in programs]


class TestProgramsByRelevance:
    def test_core_tier(self, engine):
        assert _names(engine.programs_by_relevance(1)) == [
            "Spielplatzförderung Hessen",
            "Dorfentwicklung Bayern",
        ]

    def test_region_filter(self, engine):
        assert _names(engine.programs_by_relevance(1, "HE")) == ["Spielplatzförderung Hessen"]

    def test_region_is_normalised(self, engine):
        assert _names(engine.programs_by_relevance(1, " he ")) == ["Spielplatzförderung Hessen"]

    def test_region_keeps_nationwide(self, engine):
        assert _names(engine.programs_by_relevance(2, "BY")) == [
            "Städtebauförderung - Lebendige Zentren",
            "Deutsches Kinderhilfswerk - Themenfonds Spielraum",
        ]

    def test_excluded_tier(self, engine):
        assert _names(engine.programs_by_relevance(4)) == [
            "Sportstättenbau Hessen",
            "Forschung Digitalisierung",
        ]

    def test_unknown_tier_is_empty(self, engine):
        assert engine.programs_by_relevance(7) == []

    def test_follows_update(self, engine):
        engine.update_program(dict(SAMPLE_RECORDS[0], federalStates=["BY"]))
        assert engine.programs_by_relevance(1, "HE") == []

    def test_served_from_cache(self, engine):
        engine.programs_by_relevance(1)
        engine.programs_by_relevance(2)
        assert engine.classifier.cache.stats().total_hits == len(engine.catalog)


class TestProgramsByMetadata:
    def test_no_filters_returns_everything(self, engine):
        assert _names(engine.programs_by_metadata()) == [r["name"] for r in SAMPLE_RECORDS]

    def test_region_specific(self, engine):
        assert _names(engine.programs_by_metadata(is_region_specific=True)) == [
            "Spielplatzförderung Hessen",
            "Dorfentwicklung Bayern",
            "Sportstättenbau Hessen",
        ]

    def test_domain_history(self, engine):
        assert _names(engine.programs_by_metadata(has_domain_funding_history=False)) == [
            "Forschung Digitalisierung",
        ]

    def test_program_origin(self, engine):
        assert _names(engine.programs_by_metadata(program_origin=ProgramOrigin.PRIVATE)) == [
            "Deutsches Kinderhilfswerk - Themenfonds Spielraum",
            "Aktion Mensch - Barrierefreiheit",
        ]

    def test_program_origin_as_string(self, engine):
        assert _names(engine.programs_by_metadata(program_origin="private")) == _names(
            engine.programs_by_metadata(program_origin=ProgramOrigin.PRIVATE)
        )

    def test_implementation_level(self, engine):
        names = _names(
            engine.programs_by_metadata(implementation_level=ImplementationLevel.STATE)
        )
        assert "Städtebauförderung - Lebendige Zentren" in names
        assert "Spielplatzförderung Hessen" in names
        assert "Aktion Mensch - Barrierefreiheit" not in names

    def test_min_success_rate(self, engine):
        results = engine.programs_by_metadata(min_success_rate=80)
        assert _names(results) == ["Spielplatzförderung Hessen", "Dorfentwicklung Bayern"]
        assert all(p.success_rate >= 80 for p in results)

    def test_filters_combine(self, engine):
        results = engine.programs_by_metadata(tier=1, min_success_rate=88)
        assert _names(results) == ["Spielplatzförderung Hessen"]

    def test_keyword_overrides_query(self, engine):
        query = ProgramQuery(tier=1)
        assert _names(engine.programs_by_metadata(query, tier=2)) == _names(
            engine.programs_by_relevance(2)
        )

    def test_query_object(self, engine):
        query = ProgramQuery(tier=4, has_domain_funding_history=True)
        assert _names(engine.programs_by_metadata(query)) == ["Sportstättenbau Hessen"]

    def test_invalid_filter_raises(self, engine):
        with pytest.raises(ValidationError):
            engine.programs_by_metadata(tier=5)


class TestProgramQuery:
    def test_unknown_success_rate_never_meets_minimum(self):
        p = compute_classification(make_program(), DEFAULT_RULES, _AT)
        unknown = p.model_copy(update={"success_rate": None})
        assert ProgramQuery(min_success_rate=0).matches(p)
        assert not ProgramQuery(min_success_rate=0).matches(unknown)

    def test_empty_query_matches(self):
        p = compute_classification(make_program(), DEFAULT_RULES, _AT)
        assert ProgramQuery().matches(p)

    def test_is_frozen(self):
        q = ProgramQuery(tier=1)
        with pytest.raises(ValidationError):
            q.tier = 2
