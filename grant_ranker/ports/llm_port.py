"""
ports/llm_port.py
──────────────────────────────────────────────────────────────────────────────
Abstract interface for LLM (large language model) providers.

Used only by the narrative collaborator boundary (services/narrative.py).
The ranking pipeline itself never talks to an LLM.

Current implementations: GeminiLLMAdapter, OpenAILLMAdapter
To swap: write a new adapter implementing this Protocol, then change ONE
line in services/container.py.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMPort(Protocol):
    """Contract for a JSON-generating LLM provider."""

    @property
    def model_name(self) -> str:
        """Identifier of the underlying LLM."""
        ...

    def generate_json(
        self,
        system_prompt: str,
        user_message: str,
    ) -> str | None:
        """Send a prompt to the LLM and return its JSON response as a string.

        Adapters perform exactly ONE request.  Retrying is the caller's
        concern (see services/retry.py), which is why adapters must
        classify failures precisely.

        Args:
            system_prompt: System-level instruction.
            user_message:  User-turn content.

        Returns:
            Raw JSON string, or None if the model returned no content.

        Raises:
            TransientLLMError:   Overload / rate-limit; worth retrying.
            AuthenticationError: Credentials rejected.
            LLMError:            Any other unrecoverable API failure.
        """
        ...
