"""
adapters/openai_llm.py
──────────────────────────────────────────────────────────────────────────────
Implements LLMPort using the OpenAI Chat Completions API.

Key behaviour:
  - Uses /v1/chat/completions via raw requests (no openai SDK dependency)
  - Requests JSON output via response_format={"type": "json_object"}
  - system_prompt → system role message; user_message → user role message
  - Performs exactly ONE request; retrying belongs to the caller's RetryPolicy
  - 429 / 500 / 503 / timeout → TransientLLMError, 401 / 403 →
    AuthenticationError, other non-2xx → LLMError
  - Returns the raw JSON string (caller parses)

Required env vars:
  OPENAI_API_KEY     — your OpenAI secret key  (sk-...)
  OPENAI_LLM_MODEL   — default: gpt-4o

To enable:
  Set LLM_PROVIDER=openai in your .env file.
"""
from __future__ import annotations

import logging

import requests

from grant_ranker.config.settings import Settings
from grant_ranker.domain.exceptions import (
    AuthenticationError,
    LLMError,
    TransientLLMError,
)

logger = logging.getLogger(__name__)

_OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

_TRANSIENT_STATUS = (429, 500, 503)


class OpenAILLMAdapter:
    """OpenAI GPT chat completions adapter.

    Injected into NarrativeService via services/container.py when
    ``LLM_PROVIDER=openai`` is set in the environment.

    .. note::
        OpenAI's JSON mode requires the word "JSON" to appear somewhere in
        the prompt.  The narrative system prompt in ``config/prompts.py``
        already includes it.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise AuthenticationError(
                "OPENAI_API_KEY is not set. "
                "Add it to your .env file or environment."
            )
        self._settings = settings
        self._headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        logger.debug("OpenAILLMAdapter ready | model=%s", settings.openai_llm_model)

    # ── LLMPort implementation ─────────────────────────────────────────────

    @property
    def model_name(self) -> str:
        """Name of the underlying OpenAI chat model."""
        return self._settings.openai_llm_model

    def generate_json(
        self,
        system_prompt: str,
        user_message: str,
    ) -> str | None:
        """Send a prompt and return the raw JSON response string.

        Returns:
            Raw JSON string from the model, or ``None`` if the model
            returned no content.

        Raises:
            TransientLLMError:   Overload / rate-limit / timeout.
            AuthenticationError: API key rejected.
            LLMError:            Any other API failure.
        """
        payload = self._build_payload(system_prompt, user_message)
        return self._post(payload)

    # ── Private helpers ────────────────────────────────────────────────────

    def _build_payload(self, system_prompt: str, user_message: str) -> dict:
        """Build the OpenAI chat completions request body."""
        return {
            "model": self._settings.openai_llm_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }

    def _post(self, payload: dict) -> str | None:
        """POST once to the OpenAI API and classify any failure."""
        try:
            resp = requests.post(
                _OPENAI_CHAT_URL,
                headers=self._headers,
                json=payload,
                timeout=self._settings.llm_timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("OpenAI LLM unreachable: %s", exc)
            raise TransientLLMError(f"OpenAI request failed: {exc}") from exc
        except requests.RequestException as exc:
            raise LLMError(f"OpenAI request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"OpenAI returned {resp.status_code}. "
                "Check that OPENAI_API_KEY is valid."
            )

        if resp.status_code in _TRANSIENT_STATUS or (
            not resp.ok and "overloaded" in resp.text.lower()
        ):
            logger.warning("OpenAI LLM %d: %s", resp.status_code, resp.text[:200])
            raise TransientLLMError(
                f"OpenAI is overloaded or rate-limited (HTTP {resp.status_code})"
            )

        if not resp.ok:
            logger.error(
                "OpenAI LLM HTTP %d: %s",
                resp.status_code, resp.text[:300],
            )
            raise LLMError(f"OpenAI HTTP {resp.status_code}: {resp.text[:200]}")

        return self._extract_text(resp.json())

    def _extract_text(self, response_json: dict) -> str | None:
        """Pull the content string out of the chat completions response."""
        try:
            choices = response_json.get("choices", [])
            if not choices:
                logger.warning("OpenAI response contained no choices")
                return None
            content = (choices[0].get("message", {}).get("content") or "").strip()
            return content if content else None
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.error("Failed to parse OpenAI response structure: %s", exc)
            return None
