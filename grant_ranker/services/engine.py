"""
services/engine.py
──────────────────────────────────────────────────────────────────────────────
Ranking engine: the explicit context object every request goes through.

It owns:
  - the catalog snapshot (an immutable tuple, swapped atomically on update)
  - the RelevanceClassifier (and through it the RelevanceCache)
  - the ScoreWeights and the default result cap

Build it once via services/container.py and pass it to every caller; there
is no module-level instance.

Pipeline for rank():
  catalog → pre_filter (classifier + cache) → score_programs → sort_and_limit

Errors inside rank() are logged and degrade to an empty result; a ranking
request never raises because of bad criteria or a broken cache.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from grant_ranker.domain.models import (
    CacheStats,
    ClassificationStats,
    ClassifiedProgram,
    HealthReport,
    HealthStatus,
    MaintenanceOptions,
    MaintenanceResult,
    ProgramQuery,
    ProjectCriteria,
    QuarantinedRecord,
    RawProgram,
    Recommendation,
    ScoredProgram,
    UpdateResult,
)
from grant_ranker.services.coarse_filter import pre_filter, region_matches
from grant_ranker.services.relevance_classifier import RelevanceClassifier, count_tiers
from grant_ranker.services.scored_filter import ScoreWeights, score_programs
from grant_ranker.services.sorter import sort_and_limit

logger = logging.getLogger(__name__)

# Health thresholds (percent)
_USAGE_CRITICAL   = 90.0
_USAGE_WARNING    = 75.0
_USAGE_RECOMMEND  = 80.0
_MIN_HIT_RATE     = 50.0
_EXPIRED_ISSUE    = 0.10
_EXPIRED_RECOMMEND = 0.20


class RankingEngine:
    """Classify, rank and maintain one program catalog.

    Args:
        catalog:     Validated programs, in catalog order.
        classifier:  RelevanceClassifier wired to a RelevanceCache.
        weights:     Scoring policy.
        max_results: Default cap for rank().
        quarantined: Records rejected at load time (reporting only).
    """

    def __init__(
        self,
        catalog: Sequence[RawProgram],
        classifier: RelevanceClassifier,
        weights: ScoreWeights,
        max_results: int = 15,
        quarantined: Sequence[QuarantinedRecord] = (),
    ) -> None:
        self._catalog: tuple[RawProgram, ...] = tuple(catalog)
        self._classifier = classifier
        self._weights = weights
        self._max_results = max_results
        self._quarantined = tuple(quarantined)
        self._lock = threading.Lock()
        logger.debug(
            "RankingEngine init | programs=%d max_results=%d",
            len(self._catalog), max_results,
        )

    @property
    def catalog(self) -> tuple[RawProgram, ...]:
        return self._catalog

    @property
    def classifier(self) -> RelevanceClassifier:
        return self._classifier

    @property
    def quarantined(self) -> tuple[QuarantinedRecord, ...]:
        return self._quarantined

    # ── Public API ─────────────────────────────────────────────────────────

    def classify(self) -> list[ClassifiedProgram]:
        """Full tier-annotated catalog, in catalog order."""
        return self._classifier.classify(self._catalog)

    def programs_by_relevance(
        self,
        tier: int,
        region: Optional[str] = None,
    ) -> list[ClassifiedProgram]:
        """Classified programs at one tier, in catalog order.

        With a region, only programs available there (listed or nationwide)
        are returned.
        """
        programs = [p for p in self.classify() if p.relevance_tier == tier]
        if region:
            region = ProjectCriteria(region=region).region
            programs = [p for p in programs if region_matches(p, region)]
        return programs

    def programs_by_metadata(
        self,
        query: Optional[ProgramQuery] = None,
        **filters: Any,
    ) -> list[ClassifiedProgram]:
        """Classified programs matching every set field of a ProgramQuery.

        Filters may be given as a ProgramQuery or as its keyword fields.
        """
        if query is None:
            query = ProgramQuery(**filters)
        elif filters:
            query = ProgramQuery(**{**query.model_dump(), **filters})
        return [p for p in self.classify() if query.matches(p)]

    def rank(
        self,
        criteria: ProjectCriteria,
        max_results: Optional[int] = None,
    ) -> list[ScoredProgram]:
        """Ordered shortlist of at most max_results programs.

        Never raises: internal failures are logged and yield [].
        """
        limit = self._max_results if max_results is None else max_results
        catalog = self._catalog
        started = time.perf_counter()

        try:
            pre = pre_filter(criteria, catalog, self._classifier)
            scored = score_programs(
                pre.programs, criteria, self._weights, self._classifier.rules
            )
            results = sort_and_limit(scored, criteria.region, limit)
        except Exception:
            logger.exception(
                "Ranking failed | region=%r category=%r", criteria.region, criteria.category
            )
            return []

        logger.info(
            "rank | region=%r category=%r candidates=%d returned=%d elapsed_ms=%.1f",
            criteria.region, criteria.category, len(pre.programs), len(results),
            (time.perf_counter() - started) * 1000,
        )
        return results

    def update_program(self, raw: RawProgram | dict[str, Any]) -> UpdateResult:
        """Replace one catalog program and invalidate its cached classification.

        Only existing programs can be replaced; unknown names are rejected.
        Serialised under the engine lock.
        """
        if isinstance(raw, dict):
            try:
                raw = RawProgram.model_validate(raw)
            except ValidationError as exc:
                name = raw.get("name")
                return UpdateResult(
                    success=False,
                    program_name=name if isinstance(name, str) else "",
                    message=f"Invalid program record: {exc.error_count()} validation error(s)",
                )
        program = raw.to_raw()

        with self._lock:
            index = next(
                (i for i, p in enumerate(self._catalog) if p.name == program.name),
                None,
            )
            if index is None:
                logger.warning("update_program: unknown program %r", program.name)
                return UpdateResult(
                    success=False,
                    program_name=program.name,
                    message=f"Unknown program {program.name!r}; only existing programs can be updated",
                )

            self._catalog = self._catalog[:index] + (program,) + self._catalog[index + 1:]
            invalidation = self._classifier.invalidate(program.name)

        logger.info(
            "Program updated | name=%r cache_invalidated=%s",
            program.name, invalidation.success,
        )
        message = (
            "Program updated and cache entry invalidated"
            if invalidation.success
            else "Program updated; cache invalidation failed, stale entry will be recomputed"
        )
        return UpdateResult(
            success=True,
            program_name=program.name,
            message=message,
            cache_invalidation=invalidation,
        )

    def cache_health(self) -> HealthReport:
        """Cache and tier health with recommendations."""
        cache_stats = self._classifier.cache.stats()
        tier_stats = count_tiers(self.classify())

        status = HealthStatus.HEALTHY
        issues: list[str] = []
        usage = cache_stats.size / cache_stats.capacity * 100

        if usage > _USAGE_CRITICAL:
            status = HealthStatus.CRITICAL
            issues.append(f"Cache usage critical: {usage:.1f}% of capacity")
        elif usage > _USAGE_WARNING:
            status = HealthStatus.WARNING
            issues.append(f"Cache usage high: {usage:.1f}% of capacity")

        if cache_stats.total_lookups and cache_stats.hit_rate < _MIN_HIT_RATE:
            if status == HealthStatus.HEALTHY:
                status = HealthStatus.WARNING
            issues.append(f"Low cache hit rate: {cache_stats.hit_rate:.2f}%")

        if cache_stats.size and cache_stats.expired_entries > cache_stats.size * _EXPIRED_ISSUE:
            if status == HealthStatus.HEALTHY:
                status = HealthStatus.WARNING
            issues.append(
                f"{cache_stats.expired_entries} of {cache_stats.size} cache entries are expired"
            )

        return HealthReport(
            status=status,
            cache_stats=cache_stats,
            tier_stats=tier_stats,
            issues=issues,
            recommendations=_recommendations(cache_stats, usage),
        )

    def maintenance(self, options: Optional[MaintenanceOptions] = None) -> MaintenanceResult:
        return self._classifier.perform_maintenance(
            self._catalog, options or MaintenanceOptions()
        )

    def stats(self) -> ClassificationStats:
        return self._classifier.get_stats(self._catalog)


# ── Helper ─────────────────────────────────────────────────────────────────

def _recommendations(stats: CacheStats, usage: float) -> list[Recommendation]:
    recs: list[Recommendation] = []
    if stats.total_lookups and stats.hit_rate < _MIN_HIT_RATE:
        recs.append(Recommendation(
            type="performance",
            priority="high",
            message="Low cache hit rate. Consider pre-warming the cache or raising CACHE_TTL_SECONDS.",
        ))
    if usage > _USAGE_RECOMMEND:
        recs.append(Recommendation(
            type="memory",
            priority="high",
            message="Cache nearly full. Consider raising CACHE_CAPACITY or running maintenance with memory optimisation.",
        ))
    if stats.expired_entries > stats.size * _EXPIRED_RECOMMEND:
        recs.append(Recommendation(
            type="maintenance",
            priority="medium",
            message="Many expired entries. Run maintenance more frequently.",
        ))
    if stats.total_evictions > stats.total_hits:
        recs.append(Recommendation(
            type="configuration",
            priority="medium",
            message="Evictions outnumber hits. Consider raising CACHE_CAPACITY or adjusting the TTL.",
        ))
    return recs
