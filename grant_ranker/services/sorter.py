"""
services/sorter.py
──────────────────────────────────────────────────────────────────────────────
Stage 3 of ranking: deterministic ordering and truncation.

Comparator key, in order:
  1. region-specific programs before nationwide ones
  2. among region-specific programs, those covering the requested region first
  3. relevance tier ascending
  4. parsed funding rate descending
Full ties keep input (catalog) order: sorted() is stable.

Truncation to max_results happens only after the full ordering.

Funding-rate parsing maps heterogeneous strings onto a 0–100 scale:
  "60-90%"                  → 90   (upper bound of a range)
  "bis 80%" / "up to 80%"   → 80
  "75%"                     → 75
  "variabel" / "variable"   → 50   (neutral midpoint)
  "10.000 EUR"              → min(100, log10(amount + 1) × 20) ≈ 80
  anything else             → 0
When a string carries both a percentage and an amount
("bis 80%, max 20.000 EUR") the percentage wins.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Sequence, TypeVar

from grant_ranker.domain.models import ClassifiedProgram, ScoredProgram

logger = logging.getLogger(__name__)

VARIABLE_RATE = 50.0

_NUM = r"\d+(?:[.,]\d+)?"

_RANGE_RE = re.compile(rf"({_NUM})\s*%?\s*(?:-|–|—|bis|to)\s*({_NUM})\s*%")
_UP_TO_RE = re.compile(rf"(?:bis(?:\s+zu)?|up\s+to|max(?:imal)?\.?)\s*({_NUM})\s*%")
_PERCENT_RE = re.compile(rf"({_NUM})\s*%")
_VARIABLE_RE = re.compile(r"\bvariab(?:el|le)\b")
_AMOUNT_RE = re.compile(
    r"(?P<num>\d[\d.,]*)\s*(?P<unit>mio\.?|millionen|million|tsd\.?)?\s*(?:€|euro\b|eur\b)"
    r"|(?:€|eur\b)\s*(?P<num2>\d[\d.,]*)"
)
_UNIT_FACTORS = {"mio": 1_000_000, "million": 1_000_000, "millionen": 1_000_000, "tsd": 1_000}

P = TypeVar("P", bound=ClassifiedProgram)


def _to_float(token: str) -> float:
    """Parse a decimal written with either comma or dot."""
    return float(token.replace(",", "."))


def _parse_amount(token: str) -> float | None:
    """Parse a currency amount with German or English separators."""
    token = token.rstrip(".,")
    if not token:
        return None
    if "." in token and "," in token:
        # Whichever separator comes last is the decimal mark.
        decimal = "," if token.rfind(",") > token.rfind(".") else "."
        thousands = "." if decimal == "," else ","
        token = token.replace(thousands, "").replace(decimal, ".")
    else:
        sep = "." if "." in token else "," if "," in token else ""
        if sep:
            groups = token.split(sep)
            if all(len(g) == 3 for g in groups[1:]):
                token = "".join(groups)
            else:
                token = token.replace(sep, ".")
    try:
        return float(token)
    except ValueError:
        return None


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def parse_funding_rate(text: str | None) -> float:
    """Map a funding-rate string onto 0–100.  Total: never raises."""
    if not text or not isinstance(text, str):
        return 0.0
    s = text.strip().lower()

    m = _RANGE_RE.search(s)
    if m:
        return _clamp_percent(_to_float(m.group(2)))
    m = _UP_TO_RE.search(s)
    if m:
        return _clamp_percent(_to_float(m.group(1)))
    m = _PERCENT_RE.search(s)
    if m:
        return _clamp_percent(_to_float(m.group(1)))
    if _VARIABLE_RE.search(s):
        return VARIABLE_RATE

    m = _AMOUNT_RE.search(s)
    if m:
        amount = _parse_amount(m.group("num") or m.group("num2") or "")
        if amount is not None:
            unit = (m.group("unit") or "").rstrip(".")
            amount *= _UNIT_FACTORS.get(unit, 1)
            return min(100.0, math.log10(amount + 1) * 20)

    return 0.0


def _funding_value(program: ClassifiedProgram) -> float:
    if isinstance(program, ScoredProgram):
        return program.funding_rate_value
    return parse_funding_rate(program.funding_rate)


def sort_key(program: ClassifiedProgram, region: str) -> tuple:
    region_specific = program.is_region_specific
    matches_region = region_specific and bool(region) and region in program.jurisdictions
    return (
        0 if region_specific else 1,
        0 if matches_region else 1,
        program.relevance_tier,
        -_funding_value(program),
    )


def sort_and_limit(
    programs: Sequence[P],
    region: str,
    max_results: int,
) -> list[P]:
    """Return a new, ordered list of at most max_results programs.

    The input sequence is never modified.
    """
    if max_results <= 0:
        return []
    region = (region or "").strip().upper()
    ordered = sorted(programs, key=lambda p: sort_key(p, region))
    logger.debug(
        "sort_and_limit | region=%r in=%d out=%d",
        region, len(programs), min(len(ordered), max_results),
    )
    return ordered[:max_results]
