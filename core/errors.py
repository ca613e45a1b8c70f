"""Exception types raised by plugins and the planning layer.

Fetchers in engine/fetchers.py are the catch boundary for provider errors:
everything raised below them is turned into a failed SourceResult.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised inside the analysis engine."""


class ProviderError(EngineError):
    """A provider answered, but with an application-level error code."""

    def __init__(self, provider: str, code: int, message: str = "") -> None:
        self.provider = provider
        self.code = code
        self.message = message
        super().__init__(f"{provider} error {code}: {message or 'unknown error'}")


class PlanValidationError(EngineError):
    """Planning oracle output did not match either accepted plan shape."""


class OracleError(EngineError):
    """An LLM-backed oracle returned nothing usable."""
