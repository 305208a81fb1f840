"""
services/catalog.py
──────────────────────────────────────────────────────────────────────────────
Catalog-load boundary: raw records in, validated RawProgram tuple out.

Every record is validated against RawProgram (required: name,
jurisdictions, categories, funding rate).  Records that fail validation, and
any record whose name repeats an earlier one, are quarantined: they are
logged, reported in CatalogLoadResult.quarantined, and never reach the
pipeline.  Loading itself only fails when the source cannot be read at all.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from grant_ranker.domain.models import CatalogLoadResult, QuarantinedRecord, RawProgram
from grant_ranker.ports.catalog_port import CatalogPort

logger = logging.getLogger(__name__)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def validate_catalog(records: Iterable[Any]) -> CatalogLoadResult:
    """Validate raw records, keeping catalog order and quarantining the rest."""
    programs: list[RawProgram] = []
    quarantined: list[QuarantinedRecord] = []
    seen: set[str] = set()

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            quarantined.append(QuarantinedRecord(
                index=index, reason=f"record is a {type(record).__name__}, not an object",
            ))
            continue

        name = record.get("name")
        try:
            program = RawProgram.model_validate(record)
        except ValidationError as exc:
            quarantined.append(QuarantinedRecord(
                index=index,
                name=name if isinstance(name, str) else None,
                reason=_describe(exc),
            ))
            continue

        if program.name in seen:
            quarantined.append(QuarantinedRecord(
                index=index, name=program.name, reason="duplicate program name",
            ))
            continue

        seen.add(program.name)
        programs.append(program)

    for q in quarantined:
        logger.warning("Quarantined catalog record #%d (%s): %s", q.index, q.name, q.reason)
    logger.info(
        "Catalog validated | valid=%d quarantined=%d",
        len(programs), len(quarantined),
    )
    return CatalogLoadResult(programs=programs, quarantined=quarantined)


def load_catalog(source: CatalogPort) -> CatalogLoadResult:
    """Read every record from a CatalogPort and validate it.

    Raises:
        CatalogError: If the source cannot be read.
    """
    return validate_catalog(source.load_records())
