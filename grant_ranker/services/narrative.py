"""
services/narrative.py
──────────────────────────────────────────────────────────────────────────────
Boundary to the narrative collaborator: turns a ranked shortlist into
per-program explanations via an LLMPort.

Contract:
  - The prompt lists the shortlist with zero-based indices
    (config/prompts.py); the answer must be keyed by the same indices.
  - Answers may be a bare JSON array or {"programs": [...]}; markdown
    fences are stripped.
  - Entries whose index does not map back to the shortlist are dropped.
  - Entries below min_fit_score are dropped.
  - Malformed entries are skipped with a warning.

Error policy (the only place in the system where errors reach the caller):
  - Transient overload / rate-limit → retried by RetryPolicy, then
    NarrativeError once attempts are exhausted
  - Unparseable response            → NarrativeError immediately, no retry
  - Any other LLM / auth failure    → NarrativeError immediately
"""
from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Sequence

from pydantic import ValidationError

from grant_ranker.config.prompts import build_system_prompt, build_user_message
from grant_ranker.domain.exceptions import (
    AuthenticationError,
    LLMError,
    NarrativeError,
    TransientLLMError,
)
from grant_ranker.domain.models import NarrativeEntry, ProjectCriteria, ScoredProgram
from grant_ranker.ports.llm_port import LLMPort
from grant_ranker.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def strip_markdown_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw).strip()


class NarrativeService:
    """Explain a shortlist using an LLM.

    Args:
        llm:           Any object satisfying LLMPort.
        retry_policy:  Back-off policy for transient LLM failures.
        min_fit_score: Entries scored below this are dropped.
        sleep:         Injected into RetryPolicy.call (tests pass a no-op).
    """

    def __init__(
        self,
        llm: LLMPort,
        retry_policy: RetryPolicy,
        min_fit_score: float = 45.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._llm = llm
        self._retry = retry_policy
        self._min_fit_score = min_fit_score
        self._sleep = sleep
        logger.debug(
            "NarrativeService init | model=%s min_fit_score=%.0f",
            llm.model_name, min_fit_score,
        )

    @property
    def model_name(self) -> str:
        return self._llm.model_name

    # ── Public API ─────────────────────────────────────────────────────────

    def explain(
        self,
        criteria: ProjectCriteria,
        shortlist: Sequence[ScoredProgram],
    ) -> list[NarrativeEntry]:
        """Return one NarrativeEntry per explained shortlist program.

        Raises:
            NarrativeError: On exhausted retries, unparseable output, or an
                            unrecoverable LLM failure.
        """
        if not shortlist:
            logger.warning("NarrativeService.explain called with an empty shortlist")
            return []

        system = build_system_prompt()
        user = build_user_message(criteria, shortlist)

        try:
            raw = self._retry.call(
                lambda: self._llm.generate_json(system, user),
                sleep=self._sleep,
            )
        except TransientLLMError as exc:
            raise NarrativeError(
                f"The narrative service is overloaded; gave up after "
                f"{self._retry.max_attempts} attempts. Please try again later."
            ) from exc
        except AuthenticationError as exc:
            raise NarrativeError(f"Narrative service authentication failed: {exc}") from exc
        except LLMError as exc:
            raise NarrativeError(f"Narrative service failed: {exc}") from exc

        if not raw:
            raise NarrativeError("Narrative service returned an empty response")

        items = self._parse_items(raw)
        entries = self._map_entries(items, shortlist)
        logger.info(
            "Narrative done | shortlist=%d returned=%d kept=%d",
            len(shortlist), len(items), len(entries),
        )
        return entries

    # ── Private helpers ────────────────────────────────────────────────────

    def _parse_items(self, raw: str) -> list[Any]:
        text = strip_markdown_fences(raw)
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.error("Narrative response is not JSON: %.200s", raw)
            raise NarrativeError(f"Narrative response could not be parsed as JSON: {exc}") from exc

        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, dict):
            programs = parsed.get("programs")
            if isinstance(programs, list):
                return programs
            # Some models pick their own wrapper key
            for value in parsed.values():
                if isinstance(value, list):
                    return value
        raise NarrativeError(
            f"Narrative response has unexpected shape ({type(parsed).__name__})"
        )

    def _map_entries(
        self,
        items: list[Any],
        shortlist: Sequence[ScoredProgram],
    ) -> list[NarrativeEntry]:
        by_index: dict[int, NarrativeEntry] = {}
        for item in items:
            if not isinstance(item, dict):
                logger.warning("Skipping non-object narrative item %r", item)
                continue
            try:
                entry = NarrativeEntry.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping malformed narrative item %s: %s", item, exc)
                continue

            if not 0 <= entry.index < len(shortlist):
                logger.warning("Dropping narrative entry with unknown index %d", entry.index)
                continue
            if entry.fit_score < self._min_fit_score:
                logger.debug(
                    "Dropping narrative entry %d (fitScore %.0f < %.0f)",
                    entry.index, entry.fit_score, self._min_fit_score,
                )
                continue
            if entry.index in by_index:
                continue

            by_index[entry.index] = entry.model_copy(
                update={"name": shortlist[entry.index].name}
            )

        return [by_index[i] for i in sorted(by_index)]
