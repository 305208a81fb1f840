"""
config/settings.py
──────────────────────────────────────────────────────────────────────────────
Single source of truth for all tuneable parameters.

All values can be overridden via environment variables or a .env file placed
at the project root.  The frozen dataclass ensures settings are never mutated
at runtime.

Score weights are policy, not architecture: they live here so they can be
tuned per deployment without touching the scoring code.

To swap providers, change the relevant env var — no code edits required:
  LLM_PROVIDER   → gemini | openai
  CATALOG_PATH   → swap the program catalog file
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
load_dotenv(Path(__file__).parent.parent.parent / ".env")


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


def _env_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _env_float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _env_floats(key: str, default: tuple[float, ...]) -> tuple[float, ...]:
    raw = os.getenv(key)
    if not raw:
        return default
    return tuple(float(part) for part in raw.split(","))


def _env_path(key: str, default: Path) -> Path:
    return Path(os.getenv(key, str(default)))


@dataclass(frozen=True)
class Settings:
    """Immutable application settings loaded from environment variables."""

    # ── Provider selection ──────────────────────────────────────────────────
    # Valid values: "gemini" | "openai"
    llm_provider: str = field(
        default_factory=lambda: _env("LLM_PROVIDER", "gemini")
    )

    # ── Gemini (Generative Language API) ───────────────────────────────────
    gemini_api_key: str = field(
        default_factory=lambda: _env("GEMINI_API_KEY", "")
    )
    gemini_model: str = field(
        default_factory=lambda: _env("GEMINI_MODEL", "gemini-2.5-flash")
    )

    # ── OpenAI ─────────────────────────────────────────────────────────────
    openai_api_key: str = field(
        default_factory=lambda: _env("OPENAI_API_KEY", "")
    )
    openai_llm_model: str = field(
        default_factory=lambda: _env("OPENAI_LLM_MODEL", "gpt-4o")
    )

    # ── Catalog ────────────────────────────────────────────────────────────
    catalog_path: Path = field(
        default_factory=lambda: _env_path(
            "CATALOG_PATH",
            Path(__file__).parent.parent.parent / "data" / "programs.json",
        )
    )

    # ── Relevance cache ────────────────────────────────────────────────────
    cache_capacity: int = field(
        default_factory=lambda: _env_int("CACHE_CAPACITY", 1000)
    )
    cache_ttl_seconds: float = field(
        default_factory=lambda: _env_float("CACHE_TTL_SECONDS", 3600.0)
    )
    # Bump when classification rules change so old entries are never reused.
    rule_version: str = field(
        default_factory=lambda: _env("RULE_VERSION", "3")
    )

    # ── Ranking ────────────────────────────────────────────────────────────
    max_results: int = field(
        default_factory=lambda: _env_int("MAX_RESULTS", 15)
    )
    # Base score per relevance tier 1..4
    score_tier_bases: tuple[float, ...] = field(
        default_factory=lambda: _env_floats("SCORE_TIER_BASES", (50.0, 40.0, 30.0, 0.0))
    )
    score_region_match: float = field(
        default_factory=lambda: _env_float("SCORE_REGION_MATCH", 30.0)
    )
    score_category_match: float = field(
        default_factory=lambda: _env_float("SCORE_CATEGORY_MATCH", 25.0)
    )
    score_domain_history: float = field(
        default_factory=lambda: _env_float("SCORE_DOMAIN_HISTORY", 20.0)
    )
    score_measure_overlap: float = field(
        default_factory=lambda: _env_float("SCORE_MEASURE_OVERLAP", 15.0)
    )
    score_funding_rate: float = field(
        default_factory=lambda: _env_float("SCORE_FUNDING_RATE", 10.0)
    )
    score_baseline: float = field(
        default_factory=lambda: _env_float("SCORE_BASELINE", 1.0)
    )

    # ── Narrative collaborator ─────────────────────────────────────────────
    narrative_min_fit_score: float = field(
        default_factory=lambda: _env_float("NARRATIVE_MIN_FIT_SCORE", 45.0)
    )
    llm_timeout: int = field(default_factory=lambda: _env_int("LLM_TIMEOUT", 90))
    llm_retries: int = field(default_factory=lambda: _env_int("LLM_RETRIES", 3))
    llm_retry_base_delay: float = field(
        default_factory=lambda: _env_float("LLM_RETRY_BASE_DELAY", 2.0)
    )
    llm_retry_multiplier: float = field(
        default_factory=lambda: _env_float("LLM_RETRY_MULTIPLIER", 1.5)
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Returns a cached Settings instance read from the environment.

    Only the container and the CLI call this; services receive their
    Settings through the constructor.
    """
    return Settings()
