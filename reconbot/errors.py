"""
Error taxonomy for the reconciliation bot.

Per-subject errors (fetch and oracle failures) are collected into batch
results by the callers; only ConfigurationError is meant to abort a run.
"""

from typing import Optional


class ReconError(Exception):
    """Base class for all reconbot errors."""


class ConfigurationError(ReconError):
    """A required credential or endpoint is missing or invalid at startup."""


class UpstreamFetchError(ReconError):
    """
    A venue catalog fetch failed.

    Recovered locally by substituting an empty catalog for that source.
    """

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class OracleParseError(ReconError):
    """
    The oracle reply for one subject could not be turned into a forecast.

    Raised when the reply holds no balanced JSON object, the JSON is invalid,
    or the object violates the declared output schema.
    """

    def __init__(self, subject_id: str, message: str, raw_text: Optional[str] = None):
        super().__init__(f"{subject_id}: {message}")
        self.subject_id = subject_id
        self.message = message
        self.raw_text = raw_text


class OracleCallError(OracleParseError):
    """The single outbound oracle call for a subject failed in transport."""
