"""
tests/integration/test_gemini_llm.py
──────────────────────────────────────────────────────────────────────────────
Integration tests for GeminiLLMAdapter and the narrative collaborator.

Requires:
  • Network access to generativelanguage.googleapis.com
  • GEMINI_API_KEY set (GEMINI_MODEL optional)

Run with:
  pytest -m integration grant_ranker/tests/integration/test_gemini_llm.py -v

IMPORTANT: These tests make real API calls and may incur costs.
"""
from __future__ import annotations

import json

import pytest

from grant_ranker.domain.models import ProjectCriteria

pytestmark = pytest.mark.integration

_SYSTEM_PROMPT = (
    "You are a grant funding assistant. "
    'Return a JSON object {"programs": [...]} where each item has the fields '
    "index, fitScore, eligibility."
)

_USER_PROMPT = (
    "Assess this single program for a playground new build in Hesse: "
    "[0] Spielplatzförderung Hessen, funding bis 90%."
)


@pytest.fixture(scope="module")
def llm():
    from grant_ranker.adapters.gemini_llm import GeminiLLMAdapter
    from grant_ranker.config.settings import get_settings
    return GeminiLLMAdapter(get_settings())


@pytest.fixture(scope="module")
def live_narrator():
    from grant_ranker.config.settings import get_settings
    from grant_ranker.services.container import build_narrator
    return build_narrator(get_settings())


class TestGenerateJson:
    def test_returns_string(self, llm):
        raw = llm.generate_json(_SYSTEM_PROMPT, _USER_PROMPT)
        assert raw is None or isinstance(raw, str)

    def test_response_is_valid_json(self, llm):
        raw = llm.generate_json(_SYSTEM_PROMPT, _USER_PROMPT)
        assert raw is not None, "Gemini returned None — check GEMINI_API_KEY and model config"
        parsed = json.loads(raw)  # Must not raise
        assert isinstance(parsed, (list, dict))

    def test_model_name_property(self, llm):
        assert len(llm.model_name) > 0


class TestNarrative:
    def test_explains_ranked_shortlist(self, live_narrator, engine):
        criteria = ProjectCriteria(region="HE", category="playground", measures={"newBuild"})
        shortlist = engine.rank(criteria)
        entries = live_narrator.explain(criteria, shortlist)
        assert all(0 <= e.index < len(shortlist) for e in entries)
        assert all(e.name == shortlist[e.index].name for e in entries)
