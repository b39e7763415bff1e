"""
Error taxonomy for the narrative map pipeline.

Each error carries the HTTP status the API should answer with; the message is
surfaced to the caller verbatim as {"error": message}.
"""
from __future__ import annotations


class NarrativeMapError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(NarrativeMapError):
    """Missing or malformed request field."""
    status_code = 400


class NotFoundError(NarrativeMapError):
    """No active engagement for the client (or the requested engagement id)."""
    status_code = 404


class UpstreamError(NarrativeMapError):
    """The text-generation service failed or is not configured."""
    status_code = 500


class GenerationFailedError(UpstreamError):
    """The generation call failed or its payload could not be parsed."""


class PersistenceError(NarrativeMapError):
    """A store read, update or insert failed."""
    status_code = 500


class VersionConflictError(PersistenceError):
    """Another generation bumped ai_insights_version after we read it."""
    status_code = 409
