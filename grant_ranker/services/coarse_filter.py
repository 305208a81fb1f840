"""
services/coarse_filter.py
──────────────────────────────────────────────────────────────────────────────
Stage 1 of ranking: cheap elimination before scoring.

A program survives when ALL hard constraints hold:
  - it is not in the excluded tier
  - its jurisdictions include the wildcard or the requested region
    (an empty region keeps only nationwide programs)
  - its categories include the requested category
    (an empty category skips this check)

Soft attributes (measures, budget) are never checked here; the scored
filter weighs them.  Every program satisfying is_hard_eligible() reaches
the scored filter.
"""
from __future__ import annotations

import logging
from typing import Sequence

from grant_ranker.config.rules import WILDCARD_REGION
from grant_ranker.domain.models import (
    ClassifiedProgram,
    PreFilterResult,
    ProjectCriteria,
    RawProgram,
    RelevanceTier,
)
from grant_ranker.services.relevance_classifier import RelevanceClassifier

logger = logging.getLogger(__name__)


def region_matches(program: RawProgram, region: str) -> bool:
    if WILDCARD_REGION in program.jurisdictions:
        return True
    return bool(region) and region in program.jurisdictions


def category_matches(program: RawProgram, category: str) -> bool:
    if not category:
        return True
    wanted = category.lower()
    return any(c.lower() == wanted for c in program.categories)


def is_hard_eligible(program: ClassifiedProgram, criteria: ProjectCriteria) -> bool:
    """The hard-constraint predicate shared by the coarse filter and tests."""
    return (
        program.relevance_tier != RelevanceTier.EXCLUDED
        and region_matches(program, criteria.region)
        and category_matches(program, criteria.category)
    )


def pre_filter(
    criteria: ProjectCriteria,
    catalog: Sequence[RawProgram],
    classifier: RelevanceClassifier,
) -> PreFilterResult:
    """Classify the catalog and keep only hard-eligible programs, in order."""
    classified = classifier.classify(catalog)
    survivors = [p for p in classified if is_hard_eligible(p, criteria)]

    region_specific = sum(1 for p in survivors if p.is_region_specific)
    result = PreFilterResult(
        programs=survivors,
        excluded_count=len(classified) - len(survivors),
        region_specific_count=region_specific,
        nationwide_count=len(survivors) - region_specific,
    )
    logger.debug(
        "pre_filter | region=%r category=%r kept=%d excluded=%d",
        criteria.region, criteria.category,
        len(result.programs), result.excluded_count,
    )
    return result
