"""
domain/models.py
──────────────────────────────────────────────────────────────────────────────
Pure domain objects — Pydantic models with no imports from adapters or ports.

These models are the lingua franca of the entire system:
  • the catalog adapter produces RawProgram objects
  • the classifier turns them into ClassifiedProgram objects
  • the scored filter turns those into ScoredProgram objects
  • interfaces (CLI, future API) serialise the result models

RawProgram shape is validated here, at the catalog-load boundary.  Field
aliases accept the camelCase keys of the upstream catalog export
(federalStates, type, fundingRate) as well as the Python names.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from grant_ranker.config.rules import WILDCARD_REGION


# ── Enums ──────────────────────────────────────────────────────────────────────

class RelevanceTier(IntEnum):
    """Static relevance tier; 1 is the most relevant."""
    CORE          = 1   # region-specific programs
    SUPPLEMENTARY = 2   # federal / EU programs implemented at state level
    NATIONAL      = 3   # genuinely nationwide programs
    EXCLUDED      = 4   # irrelevant to the domain, never ranked

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ProgramOrigin(str, Enum):
    FEDERAL   = "federal"
    STATE     = "state"
    MUNICIPAL = "municipal"
    PRIVATE   = "private"


# Implementation level uses the same vocabulary as origin.
ImplementationLevel = ProgramOrigin


class HealthStatus(str, Enum):
    HEALTHY  = "healthy"
    WARNING  = "warning"
    CRITICAL = "critical"


def _as_tuple(value: Any) -> Any:
    """Accept a bare string or any iterable of strings for tuple fields."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return value


def is_region_specific(jurisdictions: tuple[str, ...]) -> bool:
    """True when the jurisdiction set is non-empty and excludes the wildcard."""
    return bool(jurisdictions) and WILDCARD_REGION not in jurisdictions


# ── Catalog records ────────────────────────────────────────────────────────────

class RawProgram(BaseModel):
    """A single catalog entry as loaded.  Immutable."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name:          str             = Field(..., min_length=1)
    jurisdictions: tuple[str, ...] = Field(..., alias="federalStates")
    categories:    tuple[str, ...] = Field(..., alias="type")
    funding_rate:  str             = Field(..., alias="fundingRate")
    measures:      tuple[str, ...] = ()
    description:   str             = ""
    source:        str             = ""

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("jurisdictions", mode="before")
    @classmethod
    def normalise_jurisdictions(cls, v: Any) -> Any:
        v = _as_tuple(v)
        if isinstance(v, tuple):
            v = tuple(
                WILDCARD_REGION if code.lower() == WILDCARD_REGION else code.upper()
                for code in v
            )
            if not v:
                raise ValueError("jurisdictions must not be empty")
        return v

    @field_validator("categories", mode="before")
    @classmethod
    def normalise_categories(cls, v: Any) -> Any:
        v = _as_tuple(v)
        if isinstance(v, tuple) and not v:
            raise ValueError("categories must not be empty")
        return v

    @field_validator("measures", mode="before")
    @classmethod
    def normalise_measures(cls, v: Any) -> Any:
        return _as_tuple(v)

    @field_validator("description", "source", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_nationwide(self) -> bool:
        return WILDCARD_REGION in self.jurisdictions

    def searchable_text(self) -> str:
        """Lower-cased concatenation of every field keyword rules look at."""
        parts = [
            self.name,
            self.description,
            self.source,
            " ".join(self.categories),
            " ".join(self.measures),
            " ".join(self.jurisdictions),
        ]
        return " ".join(parts).lower()

    def fingerprint(self) -> str:
        """Stable hash of the raw catalog content (derived fields excluded)."""
        payload = self.model_dump_json(include=set(RawProgram.model_fields))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def to_raw(self) -> RawProgram:
        """Strip any derived fields a subclass carries."""
        if type(self) is RawProgram:
            return self
        return RawProgram.model_validate(
            self.model_dump(include=set(RawProgram.model_fields))
        )


class ClassifiedProgram(RawProgram):
    """RawProgram plus the static relevance classification.

    relevance_tier has no default: a classification without a tier is a
    construction error, never a silent fallback.
    """

    relevance_tier:             int                 = Field(..., ge=1, le=4)
    is_region_specific:         bool
    has_domain_funding_history: bool
    program_origin:             ProgramOrigin
    implementation_level:       ImplementationLevel
    success_rate:               Optional[float]     = Field(None, ge=0, le=100)
    rule_version:               str
    source_fingerprint:         str
    last_classified_at:         datetime            = Field(
                                    default_factory=lambda: datetime.now(timezone.utc)
                                )

    @property
    def tier(self) -> RelevanceTier:
        return RelevanceTier(self.relevance_tier)

    def same_classification(self, other: ClassifiedProgram) -> bool:
        """Equality ignoring the classification timestamp."""
        exclude = {"last_classified_at"}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)


class ScoredProgram(ClassifiedProgram):
    """A ClassifiedProgram with a per-request fit score.  Never cached."""

    fit_score:          float = Field(..., gt=0)
    funding_rate_value: float = Field(0.0, ge=0, le=100)
    region_match:       bool  = False

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


# ── Request ────────────────────────────────────────────────────────────────────

class ProjectCriteria(BaseModel):
    """The project profile a ranking request is made for.

    Unknown or missing region/category values are accepted as-is; the
    filters treat them as "matches nothing specific".
    """

    model_config = ConfigDict(frozen=True)

    region:   str                 = ""
    category: str                 = ""
    measures: frozenset[str]      = frozenset()
    budget:   Optional[float]     = Field(None, ge=0)
    urgency:  Optional[str]       = None

    @field_validator("region", mode="before")
    @classmethod
    def normalise_region(cls, v: Any) -> str:
        if v is None:
            return ""
        v = str(v).strip()
        return WILDCARD_REGION if v.lower() == WILDCARD_REGION else v.upper()

    @field_validator("category", mode="before")
    @classmethod
    def normalise_category(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("measures", mode="before")
    @classmethod
    def normalise_measures(cls, v: Any) -> Any:
        return frozenset(_as_tuple(v))


# ── Pipeline results ───────────────────────────────────────────────────────────

class PreFilterResult(BaseModel):
    """Output of the coarse filter."""

    programs:              list[ClassifiedProgram]
    excluded_count:        int
    region_specific_count: int = 0
    nationwide_count:      int = 0


class CacheStats(BaseModel):
    size:                int
    capacity:            int
    total_hits:          int
    total_misses:        int
    hit_rate:            float   # percent, 0–100
    total_evictions:     int = 0
    total_invalidations: int = 0
    expired_entries:     int = 0
    total_access_count:  int = 0

    @property
    def total_lookups(self) -> int:
        return self.total_hits + self.total_misses


class TierStats(BaseModel):
    """Tier distribution across one full classification run."""

    total:           int
    core:            int = 0
    supplementary:   int = 0
    national:        int = 0
    excluded:        int = 0
    region_specific: int = 0
    domain_history:  int = 0

    @property
    def tier_sum(self) -> int:
        return self.core + self.supplementary + self.national + self.excluded


class ClassificationStats(BaseModel):
    tiers: TierStats
    cache: CacheStats


class InvalidationResult(BaseModel):
    success:           bool
    invalidated_count: int       = 0
    errors:            list[str] = Field(default_factory=list)


class UpdateResult(BaseModel):
    success:            bool
    program_name:       str
    message:            str                          = ""
    cache_invalidation: Optional[InvalidationResult] = None
    timestamp:          datetime                     = Field(
                            default_factory=lambda: datetime.now(timezone.utc)
                        )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class Recommendation(BaseModel):
    type:     str
    priority: str
    message:  str


class HealthReport(BaseModel):
    status:          HealthStatus
    cache_stats:     CacheStats
    tier_stats:      TierStats
    issues:          list[str]            = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    checked_at:      datetime             = Field(
                         default_factory=lambda: datetime.now(timezone.utc)
                     )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class MaintenanceOptions(BaseModel):
    clean_expired:        bool = True
    optimize_memory:      bool = False
    validate_consistency: bool = False


class MaintenanceResult(BaseModel):
    success:      bool      = True
    actions:      list[str] = Field(default_factory=list)
    errors:       list[str] = Field(default_factory=list)
    performed_at: datetime  = Field(
                      default_factory=lambda: datetime.now(timezone.utc)
                  )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class ProgramQuery(BaseModel):
    """Metadata filter over classified programs.  Unset fields match anything.

    A program with an unknown success rate never satisfies min_success_rate.
    """

    model_config = ConfigDict(frozen=True)

    tier:                       Optional[int]                 = Field(None, ge=1, le=4)
    is_region_specific:         Optional[bool]                = None
    has_domain_funding_history: Optional[bool]                = None
    program_origin:             Optional[ProgramOrigin]       = None
    implementation_level:       Optional[ImplementationLevel] = None
    min_success_rate:           Optional[float]               = Field(None, ge=0, le=100)

    def matches(self, program: ClassifiedProgram) -> bool:
        if self.tier is not None and program.relevance_tier != self.tier:
            return False
        if (
            self.is_region_specific is not None
            and program.is_region_specific != self.is_region_specific
        ):
            return False
        if (
            self.has_domain_funding_history is not None
            and program.has_domain_funding_history != self.has_domain_funding_history
        ):
            return False
        if self.program_origin is not None and program.program_origin != self.program_origin:
            return False
        if (
            self.implementation_level is not None
            and program.implementation_level != self.implementation_level
        ):
            return False
        if self.min_success_rate is not None and (
            program.success_rate is None or program.success_rate < self.min_success_rate
        ):
            return False
        return True


class QuarantinedRecord(BaseModel):
    """A catalog record rejected at load time, kept for reporting."""

    index:  int
    name:   Optional[str] = None
    reason: str


class CatalogLoadResult(BaseModel):
    programs:    list[RawProgram]
    quarantined: list[QuarantinedRecord] = Field(default_factory=list)


# ── Narrative collaborator output ──────────────────────────────────────────────

class NarrativeEntry(BaseModel):
    """One shortlist entry as explained by the narrative collaborator.

    Keys arrive camelCase from the model (fitScore, whyItFits …); the
    Python names are accepted too.
    """

    model_config = ConfigDict(populate_by_name=True)

    index:            int
    name:             str       = ""
    fit_score:        float     = Field(..., alias="fitScore")
    eligibility:      str       = ""
    why_it_fits:      list[str] = Field(default_factory=list, alias="whyItFits")
    next_steps:       list[str] = Field(default_factory=list, alias="nextSteps")
    risks:            list[str] = Field(default_factory=list, alias="missingInfo")
    relevance_reason: Optional[str] = Field(None, alias="relevanceReason")
