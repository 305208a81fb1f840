"""
domain/exceptions.py
──────────────────────────────────────────────────────────────────────────────
Custom exception hierarchy.

All exceptions are rooted at GrantRankerError so callers can catch broadly
(except GrantRankerError) or narrowly (except NarrativeError).

Only the narrative collaborator boundary lets errors escape to callers.
Errors inside the ranking pipeline are logged and absorbed:
  CacheError        → classification falls back to uncached computation
  CatalogError      → raised at load time only (bad file, bad JSON)
  TransientLLMError → retried by RetryPolicy, then wrapped in NarrativeError
"""
from __future__ import annotations


class GrantRankerError(Exception):
    """Base exception for all application errors."""


class ConfigurationError(GrantRankerError):
    """Raised when required configuration is missing or invalid."""


class CatalogError(GrantRankerError):
    """Raised when the program catalog cannot be read at all."""


class CacheError(GrantRankerError):
    """Raised by a cache backend that cannot serve a request."""


class AuthenticationError(GrantRankerError):
    """Raised when an LLM provider rejects the configured credentials."""


class LLMError(GrantRankerError):
    """Raised when the LLM API call fails or returns unusable output."""


class TransientLLMError(LLMError):
    """Raised for overload / rate-limit responses that are worth retrying."""


class NarrativeError(GrantRankerError):
    """Raised when the narrative collaborator cannot produce a usable answer."""
