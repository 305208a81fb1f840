"""
services/relevance_classifier.py
──────────────────────────────────────────────────────────────────────────────
Assigns every catalog program a static relevance tier plus derived flags,
memoised through RelevanceCache.

Tier rules (evaluated in order, total — every program gets exactly one tier):
  4  Excluded       exclusion keyword and not domain-relevant (domain
                    category, keyword or measure), a facility keyword
                    without a domain category or keyword, or an excluded
                    category without a domain category
  1  Core           region-specific jurisdictions, or a state-programme
                    indicator in the text
  2  Supplementary  nationwide with an EU / federal state-implementation
                    indicator
  3  National       everything else
  Domain boost: a domain keyword in the NAME lifts tier 3 to tier 2.

Cache keys are "{rule_version}:{program name}".  A cached classification is
only reused when its source_fingerprint matches the program's current
content, so a classification computed from an outdated record (e.g. one
written after a concurrent update invalidated the key) is never served.

Cache failures are never fatal: the program is classified uncached and a
WARNING is logged.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Sequence

from grant_ranker.config.rules import DEFAULT_RULES, ClassificationRules
from grant_ranker.domain.models import (
    ClassificationStats,
    ClassifiedProgram,
    ImplementationLevel,
    InvalidationResult,
    MaintenanceOptions,
    MaintenanceResult,
    ProgramOrigin,
    RawProgram,
    RelevanceTier,
    TierStats,
    is_region_specific,
)
from grant_ranker.services.relevance_cache import RelevanceCache

logger = logging.getLogger(__name__)

# Success-rate heuristics (percent)
_SUCCESS_BASE            = 50.0
_SUCCESS_REGION_SPECIFIC = 75.0
_SUCCESS_SUPPLEMENTARY   = 65.0
_SUCCESS_EXCLUDED        = 20.0
_SUCCESS_DOMAIN_CATEGORY = 10.0
_SUCCESS_DOMAIN_NAME     = 15.0
_SUCCESS_CAP             = 90.0

# Keywords this short only match whole words ("esf", "gak" …)
_WHOLE_WORD_MAX_LEN = 4

# compact() keeps at most this share of capacity during memory optimisation
_COMPACT_TARGET_RATIO = 0.75


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache(maxsize=512)
def _whole_word_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)")


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    """Case-insensitive keyword test against already lower-cased text."""
    for keyword in keywords:
        kw = keyword.lower()
        if len(kw) <= _WHOLE_WORD_MAX_LEN:
            if _whole_word_pattern(kw).search(text):
                return True
        elif kw in text:
            return True
    return False


# ── Pure classification ────────────────────────────────────────────────────

def compute_classification(
    program: RawProgram,
    rules: ClassificationRules,
    classified_at: datetime,
) -> ClassifiedProgram:
    """Classify one program.  Pure: same input → same output but the timestamp."""
    raw = program.to_raw()
    text = raw.searchable_text()
    name = raw.name.lower()
    categories = {c.lower() for c in raw.categories}

    has_domain_category = bool(categories & {c.lower() for c in rules.domain_categories})
    has_domain_keyword = _contains_any(text, rules.domain_keywords)
    measures = {m.lower() for m in raw.measures}
    has_domain_measure = bool(measures & {m.lower() for m in rules.domain_measures})
    domain_relevant = has_domain_category or has_domain_keyword or has_domain_measure
    name_boost = _contains_any(name, rules.domain_name_keywords)
    region_specific = is_region_specific(raw.jurisdictions)
    eu_federal = _contains_any(text, rules.eu_federal_indicators)

    excluded = (
        _contains_any(text, rules.exclusion_keywords) and not domain_relevant
    ) or (
        _contains_any(text, rules.facility_exclusion_keywords)
        and not (has_domain_category or has_domain_keyword)
    ) or (
        bool(categories & {c.lower() for c in rules.excluded_categories})
        and not has_domain_category
    )

    if excluded:
        tier = RelevanceTier.EXCLUDED
    elif region_specific or _contains_any(text, rules.state_indicators):
        tier = RelevanceTier.CORE
    elif eu_federal:
        tier = RelevanceTier.SUPPLEMENTARY
    else:
        tier = RelevanceTier.NATIONAL

    # Success rate base is taken before the name boost is applied.
    if excluded:
        success_rate = _SUCCESS_EXCLUDED
    else:
        if tier == RelevanceTier.CORE and region_specific:
            success_rate = _SUCCESS_REGION_SPECIFIC
        elif tier == RelevanceTier.SUPPLEMENTARY:
            success_rate = _SUCCESS_SUPPLEMENTARY
        else:
            success_rate = _SUCCESS_BASE
        if has_domain_category:
            success_rate += _SUCCESS_DOMAIN_CATEGORY
        if name_boost:
            success_rate += _SUCCESS_DOMAIN_NAME
        success_rate = min(success_rate, _SUCCESS_CAP)

    if tier == RelevanceTier.NATIONAL and name_boost:
        tier = RelevanceTier.SUPPLEMENTARY

    if _contains_any(text, rules.private_indicators):
        origin = ProgramOrigin.PRIVATE
    elif region_specific:
        origin = ProgramOrigin.STATE
    elif eu_federal:
        origin = ProgramOrigin.FEDERAL
    elif _contains_any(text, rules.municipal_indicators):
        origin = ProgramOrigin.MUNICIPAL
    else:
        origin = ProgramOrigin.FEDERAL

    level = ImplementationLevel.STATE if tier == RelevanceTier.SUPPLEMENTARY else origin

    return ClassifiedProgram(
        **raw.model_dump(),
        relevance_tier=int(tier),
        is_region_specific=region_specific,
        has_domain_funding_history=domain_relevant,
        program_origin=origin,
        implementation_level=level,
        success_rate=success_rate,
        rule_version=rules.version,
        source_fingerprint=raw.fingerprint(),
        last_classified_at=classified_at,
    )


def count_tiers(programs: Sequence[ClassifiedProgram]) -> TierStats:
    """Tier distribution of one classification run."""
    counts = {t: 0 for t in RelevanceTier}
    for p in programs:
        counts[RelevanceTier(p.relevance_tier)] += 1
    return TierStats(
        total=len(programs),
        core=counts[RelevanceTier.CORE],
        supplementary=counts[RelevanceTier.SUPPLEMENTARY],
        national=counts[RelevanceTier.NATIONAL],
        excluded=counts[RelevanceTier.EXCLUDED],
        region_specific=sum(1 for p in programs if p.is_region_specific),
        domain_history=sum(1 for p in programs if p.has_domain_funding_history),
    )


# ── Memoising classifier ───────────────────────────────────────────────────

class RelevanceClassifier:
    """Classifies catalogs through a RelevanceCache.

    Args:
        cache: RelevanceCache instance (owned by the engine).
        rules: Versioned keyword tables.
        clock: Returns the timestamp stamped on new classifications.
    """

    def __init__(
        self,
        cache: RelevanceCache,
        rules: ClassificationRules = DEFAULT_RULES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._rules = rules
        self._clock = clock
        logger.debug("RelevanceClassifier init | rule_version=%s", rules.version)

    @property
    def cache(self) -> RelevanceCache:
        return self._cache

    @property
    def rules(self) -> ClassificationRules:
        return self._rules

    def cache_key(self, program_name: str) -> str:
        return f"{self._rules.version}:{program_name}"

    # ── Public API ─────────────────────────────────────────────────────────

    def classify(self, catalog: Sequence[RawProgram]) -> list[ClassifiedProgram]:
        """Classify every program, in catalog order."""
        return [self.classify_program(p) for p in catalog]

    def classify_program(self, program: RawProgram) -> ClassifiedProgram:
        key = self.cache_key(program.name)
        fingerprint = program.fingerprint()

        cached = self._cache_get(key)
        if cached is not None:
            if cached.source_fingerprint == fingerprint:
                return cached
            logger.debug("Stale cache entry for %r — reclassifying", program.name)

        result = compute_classification(program, self._rules, self._clock())
        self._cache_set(key, result)
        return result

    def invalidate(self, program_id: str) -> InvalidationResult:
        """Drop the cached classification of one program.

        The RawProgram itself is never touched; the next classify() call
        recomputes the entry.
        """
        try:
            removed = self._cache.invalidate(self.cache_key(program_id))
        except Exception as exc:
            logger.warning("Cache invalidation failed for %r: %s", program_id, exc)
            return InvalidationResult(success=False, errors=[str(exc)])
        return InvalidationResult(success=True, invalidated_count=int(removed))

    def get_stats(self, catalog: Sequence[RawProgram]) -> ClassificationStats:
        tiers = count_tiers(self.classify(catalog))
        return ClassificationStats(tiers=tiers, cache=self._cache.stats())

    def perform_maintenance(
        self,
        catalog: Sequence[RawProgram],
        options: MaintenanceOptions,
    ) -> MaintenanceResult:
        """Sweep, compact and/or consistency-check the cache.

        Inconsistencies are reported in the result (success=False), never
        raised.
        """
        result = MaintenanceResult()
        try:
            if options.clean_expired:
                n = self._cache.purge_expired()
                result.actions.append(f"Cleaned {n} expired entries")

            if options.optimize_memory:
                n = self._cache.compact(_COMPACT_TARGET_RATIO)
                result.actions.append(f"Compacted cache, removed {n} entries")

            if options.validate_consistency:
                self._validate_consistency(catalog, result)
        except Exception as exc:
            logger.exception("Cache maintenance failed")
            result.success = False
            result.errors.append(f"Maintenance failed: {exc}")

        logger.info(
            "Maintenance done | success=%s actions=%d errors=%d",
            result.success, len(result.actions), len(result.errors),
        )
        return result

    # ── Private helpers ────────────────────────────────────────────────────

    def _validate_consistency(
        self,
        catalog: Sequence[RawProgram],
        result: MaintenanceResult,
    ) -> None:
        expected = {self.cache_key(p.name) for p in catalog}

        orphaned = [k for k in self._cache.keys() if k not in expected]
        for key in orphaned:
            self._cache.invalidate(key)
        if orphaned:
            result.actions.append(f"Removed {len(orphaned)} orphaned cache entries")

        missing = sum(1 for key in expected if key not in self._cache)
        tiers = count_tiers(self.classify(catalog))
        if missing:
            result.actions.append(f"Re-cached {missing} missing entries")

        if tiers.total != len(catalog) or tiers.tier_sum != len(catalog):
            result.success = False
            result.errors.append(
                f"Tier count mismatch: tiers sum to {tiers.tier_sum} "
                f"but the catalog holds {len(catalog)} programs"
            )
        else:
            result.actions.append(
                f"Consistency check passed ({tiers.tier_sum} programs)"
            )

    def _cache_get(self, key: str) -> ClassifiedProgram | None:
        try:
            return self._cache.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %r — classifying uncached: %s", key, exc)
            return None

    def _cache_set(self, key: str, value: ClassifiedProgram) -> None:
        try:
            self._cache.set(key, value)
        except Exception as exc:
            logger.warning("Cache write failed for %r: %s", key, exc)
