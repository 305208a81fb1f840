"""
adapters/gemini_llm.py
──────────────────────────────────────────────────────────────────────────────
Implements LLMPort using Google Gemini (Generative Language generateContent
REST API).

Key behaviour:
  - Sends systemInstruction + contents in the generateContent REST format
  - Requests JSON output via responseMimeType: application/json
  - Authenticates with an API key in the x-goog-api-key header
  - Performs exactly ONE request; retrying belongs to the caller's RetryPolicy
  - Classifies failures so the caller knows what is worth retrying:
      429 / 500 / 503 / "overloaded" body / timeout → TransientLLMError
      401 / 403                                    → AuthenticationError
      anything else non-2xx                        → LLMError
  - Returns raw JSON string (caller parses)

Required env vars:
  GEMINI_API_KEY  — Generative Language API key
  GEMINI_MODEL    — default: gemini-2.5-flash
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

_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

_TRANSIENT_STATUS = (429, 500, 503)


def _build_gemini_url(model: str) -> str:
    return f"{_GEMINI_BASE_URL}/{model}:generateContent"


class GeminiLLMAdapter:
    """Gemini adapter.

    Injected into NarrativeService via services/container.py.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.gemini_api_key:
            raise AuthenticationError(
                "GEMINI_API_KEY is not set. "
                "Add it to your .env file or environment."
            )
        self._settings = settings
        self._url = _build_gemini_url(settings.gemini_model)
        self._headers = {
            "x-goog-api-key": settings.gemini_api_key,
            "Content-Type": "application/json",
        }
        logger.debug("GeminiLLMAdapter ready | model=%s", settings.gemini_model)

    # ── LLMPort implementation ─────────────────────────────────────────────

    @property
    def model_name(self) -> str:
        return self._settings.gemini_model

    def generate_json(
        self,
        system_prompt: str,
        user_message: str,
    ) -> str | None:
        """Send a prompt and return the raw JSON response string.

        Args:
            system_prompt: System-level instruction for Gemini.
            user_message:  User-turn message content.

        Returns:
            Raw JSON string from the model, or None if the model returned
            no content.

        Raises:
            TransientLLMError:   Overload / rate-limit / timeout.
            AuthenticationError: API key rejected.
            LLMError:            Any other API failure.
        """
        payload = self._build_payload(system_prompt, user_message)
        return self._post(payload)

    # ── Private helpers ────────────────────────────────────────────────────

    def _build_payload(self, system_prompt: str, user_message: str) -> dict:
        return {
            "systemInstruction": {
                "parts": [{"text": system_prompt}],
            },
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": user_message}],
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "responseMimeType": "application/json",
            },
        }

    def _post(self, payload: dict) -> str | None:
        """POST once to Gemini and classify any failure."""
        try:
            resp = requests.post(
                self._url,
                headers=self._headers,
                json=payload,
                timeout=self._settings.llm_timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("Gemini unreachable: %s", exc)
            raise TransientLLMError(f"Gemini request failed: {exc}") from exc
        except requests.RequestException as exc:
            raise LLMError(f"Gemini request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"Gemini returned {resp.status_code}. "
                "Check that GEMINI_API_KEY is valid."
            )

        if resp.status_code in _TRANSIENT_STATUS or (
            not resp.ok and "overloaded" in resp.text.lower()
        ):
            logger.warning("Gemini %d: %s", resp.status_code, resp.text[:200])
            raise TransientLLMError(
                f"Gemini is overloaded or rate-limited (HTTP {resp.status_code})"
            )

        if not resp.ok:
            logger.error("Gemini HTTP %d: %s", resp.status_code, resp.text[:300])
            raise LLMError(f"Gemini HTTP {resp.status_code}: {resp.text[:200]}")

        return self._extract_text(resp.json())

    def _extract_text(self, response_json: dict) -> str | None:
        """Pull the text content out of the Gemini generateContent response."""
        try:
            candidates = response_json.get("candidates", [])
            if not candidates:
                logger.warning("Gemini response contained no candidates")
                return None
            parts = candidates[0].get("content", {}).get("parts", [])
            if not parts:
                logger.warning("Gemini candidate contained no parts")
                return None
            text = parts[0].get("text", "").strip()
            return text if text else None
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.error("Failed to parse Gemini response structure: %s", exc)
            return None
