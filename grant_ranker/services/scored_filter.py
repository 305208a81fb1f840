"""
services/scored_filter.py
──────────────────────────────────────────────────────────────────────────────
Stage 2 of ranking: attach a fit score to every coarse-filter survivor.

Score composition (all magnitudes come from ScoreWeights / Settings):

  fit = tier_base[tier]
      + region_match        if a region-specific program lists the requested region
      + category_match      if the program carries the requested category
      + domain_history      if the program has funded the domain before AND
                            the requested category is a domain category
      + measure_overlap × (|requested ∩ offered| / |requested|)
      + funding_rate × (parsed rate / 100)

  The result is floored at `baseline`, so every program gets a positive
  score.  Nothing is dropped here; exclusion already happened upstream.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from grant_ranker.config.rules import DEFAULT_RULES, ClassificationRules
from grant_ranker.config.settings import Settings
from grant_ranker.domain.models import ClassifiedProgram, ProjectCriteria, ScoredProgram
from grant_ranker.services.coarse_filter import category_matches
from grant_ranker.services.sorter import parse_funding_rate

logger = logging.getLogger(__name__)


def _default_tier_bases() -> dict[int, float]:
    return {1: 50.0, 2: 40.0, 3: 30.0, 4: 0.0}


@dataclass(frozen=True)
class ScoreWeights:
    """Explicit, tunable scoring policy."""

    tier_bases: dict[int, float] = field(default_factory=_default_tier_bases)
    region_match: float = 30.0
    category_match: float = 25.0
    domain_history: float = 20.0
    measure_overlap: float = 15.0
    funding_rate: float = 10.0
    baseline: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoreWeights:
        bases = settings.score_tier_bases
        if len(bases) != 4:
            raise ValueError(
                f"SCORE_TIER_BASES needs exactly 4 values, got {len(bases)}"
            )
        return cls(
            tier_bases={tier: float(v) for tier, v in enumerate(bases, start=1)},
            region_match=settings.score_region_match,
            category_match=settings.score_category_match,
            domain_history=settings.score_domain_history,
            measure_overlap=settings.score_measure_overlap,
            funding_rate=settings.score_funding_rate,
            baseline=settings.score_baseline,
        )


def measure_overlap_fraction(program: ClassifiedProgram, criteria: ProjectCriteria) -> float:
    if not criteria.measures:
        return 0.0
    offered = {m.lower() for m in program.measures}
    wanted = {m.lower() for m in criteria.measures}
    return len(wanted & offered) / len(wanted)


def score_program(
    program: ClassifiedProgram,
    criteria: ProjectCriteria,
    weights: ScoreWeights,
    rules: ClassificationRules = DEFAULT_RULES,
) -> ScoredProgram:
    rate = parse_funding_rate(program.funding_rate)
    region_match = (
        program.is_region_specific
        and bool(criteria.region)
        and criteria.region in program.jurisdictions
    )
    domain_category = criteria.category.lower() in {c.lower() for c in rules.domain_categories}

    score = weights.tier_bases.get(program.relevance_tier, 0.0)
    if region_match:
        score += weights.region_match
    if criteria.category and category_matches(program, criteria.category):
        score += weights.category_match
    if domain_category and program.has_domain_funding_history:
        score += weights.domain_history
    score += weights.measure_overlap * measure_overlap_fraction(program, criteria)
    score += weights.funding_rate * rate / 100.0
    score = max(score, weights.baseline)

    return ScoredProgram(
        **program.model_dump(),
        fit_score=round(score, 2),
        funding_rate_value=round(rate, 2),
        region_match=region_match,
    )


def score_programs(
    programs: Sequence[ClassifiedProgram],
    criteria: ProjectCriteria,
    weights: ScoreWeights,
    rules: ClassificationRules = DEFAULT_RULES,
) -> list[ScoredProgram]:
    """Score every program, preserving input order.  Never drops one."""
    scored = [score_program(p, criteria, weights, rules) for p in programs]
    logger.debug("score_programs | scored=%d", len(scored))
    return scored
