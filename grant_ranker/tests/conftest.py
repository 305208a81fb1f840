"""
tests/conftest.py
──────────────────────────────────────────────────────────────────────────────
Shared pytest fixtures and mock adapter implementations.

Mock adapters implement the Port Protocols via structural subtyping — they do
NOT inherit from any base class.  pytest uses them to test service logic
without any network access or files on disk.

Fixture hierarchy:
  fake_clock        → monotonic clock the cache reads (advance() by hand)
  cache             → RelevanceCache(capacity=100, ttl=3600, fake_clock)
  classifier        → RelevanceClassifier wired with cache + stepping timestamps
  catalog           → SAMPLE_RECORDS validated into RawProgram objects
  engine            → RankingEngine over catalog + classifier
  mock_llm          → implements LLMPort (returns pre-baked JSON)
  narrator          → NarrativeService wired with mock_llm, no real sleeping

Sample catalog (tiers under DEFAULT_RULES):
  Spielplatzförderung Hessen      HE   playground            → 1
  Dorfentwicklung Bayern          BY   playground            → 1
  Städtebauförderung - L. Zentren all  playground            → 2 (EU/federal)
  Deutsches Kinderhilfswerk …     all  playground            → 2 (name boost)
  Aktion Mensch - Barrierefreiheit all playground            → 3
  Soziale Stadt                   all  calisthenics          → 3
  Sportstättenbau Hessen          HE   calisthenics          → 4 (facility)
  Forschung Digitalisierung       all  research              → 4 (excluded cat)
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from grant_ranker.config.rules import DEFAULT_RULES
from grant_ranker.config.settings import Settings
from grant_ranker.domain.exceptions import TransientLLMError
from grant_ranker.domain.models import ProjectCriteria, RawProgram
from grant_ranker.services.engine import RankingEngine
from grant_ranker.services.narrative import NarrativeService
from grant_ranker.services.relevance_cache import RelevanceCache
from grant_ranker.services.relevance_classifier import RelevanceClassifier
from grant_ranker.services.retry import RetryPolicy
from grant_ranker.services.scored_filter import ScoreWeights


# ── Settings fixture ───────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def settings() -> Settings:
    """Return a Settings instance with sane test defaults."""
    return Settings(
        llm_provider="gemini",
        gemini_api_key="test-gemini-key",
        gemini_model="gemini-test",
        openai_api_key="sk-test-key",
        openai_llm_model="gpt-4o",
        cache_capacity=100,
        cache_ttl_seconds=3600.0,
        rule_version=DEFAULT_RULES.version,
        max_results=15,
        score_tier_bases=(50.0, 40.0, 30.0, 0.0),
        score_region_match=30.0,
        score_category_match=25.0,
        score_domain_history=20.0,
        score_measure_overlap=15.0,
        score_funding_rate=10.0,
        score_baseline=1.0,
        narrative_min_fit_score=45.0,
        llm_timeout=5,
        llm_retries=3,
        llm_retry_base_delay=2.0,
        llm_retry_multiplier=1.5,
    )


# ── Clocks ─────────────────────────────────────────────────────────────────

class FakeClock:
    """Hand-driven monotonic clock for TTL tests."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SteppingUtcClock:
    """Returns a strictly increasing UTC timestamp on every call."""

    def __init__(self) -> None:
        self._next = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self._next
        self._next += timedelta(seconds=1)
        return current


# ── Sample catalog ─────────────────────────────────────────────────────────

SAMPLE_RECORDS: list[dict[str, Any]] = [
    {
        "name": "Spielplatzförderung Hessen",
        "type": ["playground"],
        "federalStates": ["HE"],
        "measures": ["newBuild", "renovation"],
        "fundingRate": "bis 90%",
        "source": "https://wirtschaft.hessen.de/",
        "description": "Neubau und Sanierung öffentlicher Spielplätze in Hessen",
    },
    {
        "name": "Dorfentwicklung Bayern",
        "type": ["playground", "combination"],
        "federalStates": ["BY"],
        "measures": ["newBuild", "renovation", "greening"],
        "fundingRate": "bis 70%",
        "source": "https://www.stmelf.bayern.de/",
        "description": "Förderung ländlicher Infrastruktur in Bayern",
    },
    {
        "name": "Städtebauförderung - Lebendige Zentren",
        "type": ["playground", "combination"],
        "federalStates": ["all"],
        "measures": ["newBuild", "renovation", "accessibility", "greening"],
        "fundingRate": "60-90%",
        "source": "https://www.staedtebaufoerderung.info/",
        "description": "Förderung zur Stärkung von Innenstädten und Ortsteilzentren",
    },
    {
        "name": "Deutsches Kinderhilfswerk - Themenfonds Spielraum",
        "type": ["playground", "combination"],
        "federalStates": ["all"],
        "measures": ["newBuild", "renovation", "accessibility"],
        "fundingRate": "bis 10.000 EUR",
        "source": "https://www.dkhw.de/foerderung/themenfonds-spielraum/",
        "description": "Förderung von Spiel- und Bewegungsräumen für Kinder",
    },
    {
        "name": "Aktion Mensch - Barrierefreiheit",
        "type": ["playground", "calisthenics", "combination"],
        "federalStates": ["all"],
        "measures": ["accessibility", "renovation"],
        "fundingRate": "bis 300.000 EUR",
        "source": "https://www.aktion-mensch.de/foerderung/foerderprogramme",
        "description": "Förderung inklusiver Projekte",
    },
    {
        "name": "Soziale Stadt",
        "type": ["calisthenics", "combination"],
        "federalStates": ["all"],
        "measures": ["newBuild", "renovation"],
        "fundingRate": "60-80%",
        "source": "",
        "description": "Förderung benachteiligter Stadtquartiere",
    },
    {
        "name": "Sportstättenbau Hessen",
        "type": ["calisthenics", "combination"],
        "federalStates": ["HE"],
        "measures": ["newBuild", "renovation"],
        "fundingRate": "30-50%",
        "source": "https://www.hessen.de/",
        "description": "Hessische Sportstättenförderung",
    },
    {
        "name": "Forschung Digitalisierung",
        "type": ["research"],
        "federalStates": ["all"],
        "measures": [],
        "fundingRate": "50%",
        "source": "",
        "description": "Förderung anwendungsnaher Forschung",
    },
]

EXPECTED_TIERS: dict[str, int] = {
    "Spielplatzförderung Hessen": 1,
    "Dorfentwicklung Bayern": 1,
    "Städtebauförderung - Lebendige Zentren": 2,
    "Deutsches Kinderhilfswerk - Themenfonds Spielraum": 2,
    "Aktion Mensch - Barrierefreiheit": 3,
    "Soziale Stadt": 3,
    "Sportstättenbau Hessen": 4,
    "Forschung Digitalisierung": 4,
}


def make_program(**overrides: Any) -> RawProgram:
    """Build a RawProgram with sensible defaults; override any field."""
    fields: dict[str, Any] = {
        "name": "Testprogramm",
        "jurisdictions": ["all"],
        "categories": ["playground"],
        "funding_rate": "50%",
        "measures": ["newBuild"],
        "description": "",
        "source": "",
    }
    fields.update(overrides)
    return RawProgram(**fields)


# ── Mock adapters ──────────────────────────────────────────────────────────

class InMemoryCatalogAdapter:
    """Implements CatalogPort over a list of dicts."""

    source_name = "memory"

    def __init__(self, records: list[Any]) -> None:
        self._records = records

    def load_records(self) -> list[Any]:
        return list(self._records)


class MockLLMAdapter:
    """Returns a pre-baked narrative JSON response keyed by shortlist index."""

    model_name = "mock-llm"

    _RESPONSE = json.dumps(
        {
            "programs": [
                {
                    "index": 0,
                    "fitScore": 88,
                    "eligibility": "eligible",
                    "whyItFits": ["Region-specific playground funding"],
                    "nextSteps": ["Detailed playground planning"],
                    "missingInfo": ["Exact budget"],
                    "relevanceReason": "State program aimed at playgrounds.",
                },
                {
                    "index": 1,
                    "fitScore": 72,
                    "eligibility": "eligible",
                    "whyItFits": ["Covers new builds"],
                    "nextSteps": [],
                    "missingInfo": [],
                },
            ]
        }
    )

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def generate_json(self, system_prompt: str, user_message: str) -> str | None:
        self.calls.append((system_prompt, user_message))
        return self._RESPONSE


class ScriptedLLMAdapter:
    """Plays back a script: each item is a string to return or an exception to raise."""

    model_name = "mock-llm-scripted"

    def __init__(self, script: list[Any]) -> None:
        self._script = list(script)
        self.call_count = 0

    def generate_json(self, system_prompt: str, user_message: str) -> str | None:
        self.call_count += 1
        step = self._script.pop(0) if self._script else self._script_exhausted()
        if isinstance(step, BaseException):
            raise step
        return step

    def _script_exhausted(self):
        raise AssertionError("ScriptedLLMAdapter called more often than scripted")


def overloaded() -> TransientLLMError:
    return TransientLLMError("The model is overloaded")


# ── pytest fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(fake_clock) -> RelevanceCache:
    return RelevanceCache(capacity=100, default_ttl=3600.0, clock=fake_clock)


@pytest.fixture
def classifier(cache) -> RelevanceClassifier:
    return RelevanceClassifier(cache=cache, rules=DEFAULT_RULES, clock=SteppingUtcClock())


@pytest.fixture
def catalog() -> list[RawProgram]:
    return [RawProgram.model_validate(r) for r in SAMPLE_RECORDS]


@pytest.fixture
def engine(catalog, classifier) -> RankingEngine:
    return RankingEngine(
        catalog=catalog,
        classifier=classifier,
        weights=ScoreWeights(),
        max_results=15,
    )


@pytest.fixture
def hesse_playground() -> ProjectCriteria:
    return ProjectCriteria(region="HE", category="playground", measures={"newBuild"})


@pytest.fixture
def mock_llm() -> MockLLMAdapter:
    return MockLLMAdapter()


@pytest.fixture
def no_sleep():
    """Records requested back-off delays instead of sleeping."""
    delays: list[float] = []
    return delays


@pytest.fixture
def narrator(mock_llm, no_sleep) -> NarrativeService:
    return NarrativeService(
        llm=mock_llm,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=2.0, multiplier=1.5),
        min_fit_score=45.0,
        sleep=no_sleep.append,
    )
