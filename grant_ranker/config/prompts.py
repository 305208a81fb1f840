"""
config/prompts.py
──────────────────────────────────────────────────────────────────────────────
All LLM prompt strings in one place.

Only the narrative collaborator (services/narrative.py) uses these.  The
ranking pipeline never talks to an LLM.

The shortlist is rendered with zero-based numeric indices; the model must
key its answer by the same indices so every entry maps back to a ranked
program.  To change the output schema, edit NARRATIVE_OUTPUT_SCHEMA and
NarrativeEntry in domain/models.py together.
"""
from __future__ import annotations

from typing import Sequence

from grant_ranker.domain.models import ProjectCriteria, ScoredProgram

# ── Narrative system prompt ────────────────────────────────────────────────────
NARRATIVE_SYSTEM_BASE = """\
You are an expert on public and private grant funding for municipal \
playground and outdoor-fitness projects in Germany.

The programs you receive have ALREADY been filtered and ranked by a rule \
engine.  Every program is formally eligible for the stated project.  Your \
job is ONLY to assess and explain — do NOT filter, re-order or invent \
programs.

For EVERY program in the list, assess:
1. How well the program matches the project's category and measures.
2. How realistic a successful application is.
3. Whether a region-specific program fits better than a nationwide one.

Scoring guide for fitScore (integer, 45–95):
- 85–95: perfect fit, very high chance of success
- 75–84: very good fit
- 65–74: good fit, moderate chance
- 55–64: moderate fit, still possible
- 45–54: weak fit, formally eligible

Respond ONLY with a JSON object in this exact schema (no markdown fences):
"""

NARRATIVE_OUTPUT_SCHEMA = """\
{
  "programs": [
    {
      "index": 0,
      "fitScore": 85,
      "eligibility": "eligible",
      "whyItFits": ["..."],
      "nextSteps": ["..."],
      "missingInfo": ["..."],
      "relevanceReason": "..."
    }
  ]
}
"""

# ── User message template ──────────────────────────────────────────────────────
NARRATIVE_USER_TEMPLATE = """\
Project:
- Region: {region}
- Category: {category}
- Measures: {measures}
- Budget: {budget}

Programs ({n_programs} total):
{program_block}

Return one entry per program, keyed by its index, as JSON.\
"""

# ── Program block line template ────────────────────────────────────────────────
PROGRAM_BLOCK_TEMPLATE = """\
[{idx}] {name}
    Jurisdictions: {jurisdictions}
    Funding rate: {funding_rate}
    Measures: {measures}
    Description: {description}
"""


def build_system_prompt() -> str:
    """Assembles the narrative system prompt including the output schema."""
    return NARRATIVE_SYSTEM_BASE + NARRATIVE_OUTPUT_SCHEMA


def build_program_block(shortlist: Sequence[ScoredProgram]) -> str:
    """Renders the zero-indexed shortlist for the LLM user message."""
    lines = []
    for i, p in enumerate(shortlist):
        lines.append(
            PROGRAM_BLOCK_TEMPLATE.format(
                idx=i,
                name=p.name,
                jurisdictions=", ".join(p.jurisdictions),
                funding_rate=p.funding_rate or "n/a",
                measures=", ".join(p.measures) or "n/a",
                description=p.description or "n/a",
            )
        )
    return "\n".join(lines)


def build_user_message(
    criteria: ProjectCriteria,
    shortlist: Sequence[ScoredProgram],
) -> str:
    """Assembles the user-turn message for the LLM.

    Args:
        criteria:  The project profile the shortlist was ranked for.
        shortlist: Ranked programs; their list positions are the indices.

    Returns:
        Formatted user message string.
    """
    return NARRATIVE_USER_TEMPLATE.format(
        region=criteria.region or "not specified",
        category=criteria.category or "not specified",
        measures=", ".join(sorted(criteria.measures)) or "none",
        budget=f"{criteria.budget:,.0f} EUR" if criteria.budget is not None else "not specified",
        n_programs=len(shortlist),
        program_block=build_program_block(shortlist),
    )
