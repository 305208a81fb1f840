"""
interfaces/cli.py
──────────────────────────────────────────────────────────────────────────────
Command-line interface for the grant program ranker.

Usage:
  # Rank programs for a playground new build in Hesse
  python -m grant_ranker.interfaces.cli rank --region HE --category playground \
      --measure newBuild --measure accessibility

  # Same, 5 results, JSON output, with LLM explanations
  grant-rank rank -r HE -c playground -n 5 --json --explain

  # Tier distribution and cache statistics
  grant-rank stats

  # Cache health report
  grant-rank health

  # Cache maintenance
  grant-rank maintain --optimize-memory --validate-consistency

Exit codes:
  0 — success
  1 — fatal error (catalog, auth, LLM, etc.)
  2 — argument error
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from grant_ranker.domain.exceptions import GrantRankerError
from grant_ranker.domain.models import MaintenanceOptions, ProjectCriteria
from grant_ranker.services.container import build_engine, build_narrator

logger = logging.getLogger(__name__)


# ── Argument parser ────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="grant-rank",
        description="Rank grant / subsidy programs against a project profile.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = p.add_subparsers(dest="command", metavar="COMMAND")

    rank = sub.add_parser("rank", help="Rank programs for a project.")
    rank.add_argument(
        "--region", "-r",
        default="",
        help="Region code, e.g. HE or BY. Empty keeps nationwide programs only.",
    )
    rank.add_argument(
        "--category", "-c",
        default="",
        help="Project category, e.g. playground. Empty skips the category filter.",
    )
    rank.add_argument(
        "--measure", "-m",
        action="append",
        default=[],
        dest="measures",
        metavar="MEASURE",
        help="Requested measure (repeatable), e.g. newBuild.",
    )
    rank.add_argument(
        "--budget",
        type=float,
        default=None,
        help="Project budget in EUR.",
    )
    rank.add_argument(
        "--max-results", "-n",
        type=int,
        default=None,
        dest="max_results",
        help="Maximum number of programs to return. (default: MAX_RESULTS)",
    )
    rank.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output results as JSON.",
    )
    rank.add_argument(
        "--explain",
        action="store_true",
        help="Ask the configured LLM to explain the shortlist.",
    )

    sub.add_parser("stats", help="Show tier distribution and cache statistics.")
    sub.add_parser("health", help="Show the cache health report.")

    maintain = sub.add_parser("maintain", help="Run cache maintenance.")
    maintain.add_argument(
        "--no-clean-expired",
        action="store_false",
        dest="clean_expired",
        help="Skip the expired-entry sweep.",
    )
    maintain.add_argument(
        "--optimize-memory",
        action="store_true",
        help="Compact the cache.",
    )
    maintain.add_argument(
        "--validate-consistency",
        action="store_true",
        help="Recount tiers and purge orphaned cache entries.",
    )
    return p


# ── Formatting helpers ─────────────────────────────────────────────────────

def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _print_ranking_text(criteria: ProjectCriteria, results, narrative) -> None:
    """Pretty-print a ranked shortlist to stdout."""
    explained = {entry.index: entry for entry in narrative}
    print(f"\n{'─' * 60}")
    print(f"Region  : {criteria.region or '(nationwide only)'}")
    print(f"Category: {criteria.category or '(any)'}  |  Results: {len(results)}")
    print(f"{'─' * 60}")
    for i, r in enumerate(results):
        scope = "/".join(r.jurisdictions)
        print(f"  #{i + 1}  {r.name}")
        print(f"       Tier {r.relevance_tier} ({r.tier.label})  |  {scope}  |  fit {r.fit_score:.1f}")
        print(f"       Funding: {r.funding_rate}")
        entry = explained.get(i)
        if entry is not None:
            print(f"       LLM fit: {entry.fit_score:.0f}  |  {entry.eligibility}")
            for reason in entry.why_it_fits:
                print(f"         + {reason}")
            for risk in entry.risks:
                print(f"         ? {risk}")
    print()


# ── Main logic ─────────────────────────────────────────────────────────────

def _run_rank(engine, args: argparse.Namespace) -> int:
    if args.max_results is not None and args.max_results < 0:
        print("ERROR: --max-results must be >= 0", file=sys.stderr)
        return 2

    try:
        criteria = ProjectCriteria(
            region=args.region,
            category=args.category,
            measures=args.measures,
            budget=args.budget,
        )
    except ValidationError as exc:
        fields = ", ".join(str(e["loc"][0]) for e in exc.errors() if e["loc"])
        print(f"ERROR: invalid project criteria ({fields or 'input'})", file=sys.stderr)
        return 2

    results = engine.rank(criteria, args.max_results)

    narrative = []
    if args.explain and results:
        narrator = build_narrator()
        narrative = narrator.explain(criteria, results)

    if args.json_output:
        _print_json({
            "criteria": criteria.model_dump(mode="json"),
            "results": [r.to_dict() for r in results],
            "narrative": [n.model_dump(mode="json") for n in narrative],
        })
    else:
        _print_ranking_text(criteria, results, narrative)
    return 0


def run(args: argparse.Namespace) -> int:
    """Execute the selected subcommand.

    Returns:
        Exit code (0 = success, 1 = error, 2 = argument error).
    """
    try:
        engine = build_engine()
    except Exception as exc:
        logger.exception("Failed to initialise engine")
        print(f"ERROR: Engine initialisation failed: {exc}", file=sys.stderr)
        return 1

    try:
        if args.command == "rank":
            return _run_rank(engine, args)
        if args.command == "stats":
            stats = engine.stats()
            payload = stats.model_dump(mode="json")
            payload["quarantined"] = [q.model_dump(mode="json") for q in engine.quarantined]
            _print_json(payload)
            return 0
        if args.command == "health":
            _print_json(engine.cache_health().to_dict())
            return 0
        if args.command == "maintain":
            result = engine.maintenance(MaintenanceOptions(
                clean_expired=args.clean_expired,
                optimize_memory=args.optimize_memory,
                validate_consistency=args.validate_consistency,
            ))
            _print_json(result.to_dict())
            return 0 if result.success else 1
    except GrantRankerError as exc:
        logger.exception("Command %r failed", args.command)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"ERROR: unknown command {args.command!r}", file=sys.stderr)
    return 2


def main(argv: list[str] | None = None) -> None:
    """Entry point for the grant-rank console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(2)

    sys.exit(run(args))


if __name__ == "__main__":
    main()
