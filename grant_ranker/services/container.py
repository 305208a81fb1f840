"""
services/container.py
──────────────────────────────────────────────────────────────────────────────
Dependency Injection container.

THIS IS THE ONLY FILE THAT NAMES CONCRETE ADAPTER CLASSES.

Provider selection is driven entirely by environment variables — no code
changes are needed to switch between providers:

  LLM_PROVIDER=gemini  (default) → GeminiLLMAdapter
  LLM_PROVIDER=openai            → OpenAILLMAdapter

  CATALOG_PATH                   → JsonCatalogAdapter file

No singleton:
  build_engine() returns a NEW RankingEngine on every call.  Callers build
  one at startup and pass it along explicitly; tests build as many
  isolated engines as they like.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from grant_ranker.adapters.json_catalog import JsonCatalogAdapter
from grant_ranker.config.rules import DEFAULT_RULES
from grant_ranker.config.settings import Settings, get_settings
from grant_ranker.domain.exceptions import ConfigurationError
from grant_ranker.ports.catalog_port import CatalogPort
from grant_ranker.ports.llm_port import LLMPort
from grant_ranker.services.catalog import load_catalog
from grant_ranker.services.engine import RankingEngine
from grant_ranker.services.narrative import NarrativeService
from grant_ranker.services.relevance_cache import RelevanceCache
from grant_ranker.services.relevance_classifier import RelevanceClassifier
from grant_ranker.services.retry import RetryPolicy
from grant_ranker.services.scored_filter import ScoreWeights

logger = logging.getLogger(__name__)


def _build_llm(settings: Settings) -> LLMPort:
    """Instantiate the correct LLMPort adapter based on LLM_PROVIDER."""
    provider = settings.llm_provider.lower()
    if provider == "openai":
        from grant_ranker.adapters.openai_llm import OpenAILLMAdapter
        logger.info("LLM provider: OpenAI (%s)", settings.openai_llm_model)
        return OpenAILLMAdapter(settings)
    if provider == "gemini":
        from grant_ranker.adapters.gemini_llm import GeminiLLMAdapter
        logger.info("LLM provider: Gemini (%s)", settings.gemini_model)
        return GeminiLLMAdapter(settings)
    raise ConfigurationError(
        f"Unknown LLM_PROVIDER '{settings.llm_provider}'. "
        "Valid values: 'gemini', 'openai'."
    )


def build_engine(
    settings: Optional[Settings] = None,
    catalog_source: Optional[CatalogPort] = None,
) -> RankingEngine:
    """Build a fully wired RankingEngine.

    Args:
        settings:       Defaults to get_settings().
        catalog_source: Defaults to a JsonCatalogAdapter on CATALOG_PATH.

    Raises:
        CatalogError:       If the catalog cannot be read.
        ConfigurationError: If cache or weight settings are invalid.
    """
    settings = settings or get_settings()
    source = catalog_source or JsonCatalogAdapter(settings.catalog_path)
    logger.info("Building RankingEngine | catalog=%s", source.source_name)

    loaded = load_catalog(source)

    cache = RelevanceCache(
        capacity=settings.cache_capacity,
        default_ttl=settings.cache_ttl_seconds,
    )
    rules = dataclasses.replace(DEFAULT_RULES, version=settings.rule_version)
    classifier = RelevanceClassifier(cache=cache, rules=rules)

    try:
        weights = ScoreWeights.from_settings(settings)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    engine = RankingEngine(
        catalog=loaded.programs,
        classifier=classifier,
        weights=weights,
        max_results=settings.max_results,
        quarantined=loaded.quarantined,
    )
    logger.info(
        "RankingEngine ready | programs=%d quarantined=%d rule_version=%s",
        len(loaded.programs), len(loaded.quarantined), rules.version,
    )
    return engine


def build_narrator(settings: Optional[Settings] = None) -> NarrativeService:
    """Build the narrative collaborator for the configured LLM provider.

    Raises:
        ConfigurationError:  If an unknown provider name is given.
        AuthenticationError: If the provider's API key is missing.
    """
    settings = settings or get_settings()
    llm = _build_llm(settings)
    return NarrativeService(
        llm=llm,
        retry_policy=RetryPolicy.from_settings(settings),
        min_fit_score=settings.narrative_min_fit_score,
    )
