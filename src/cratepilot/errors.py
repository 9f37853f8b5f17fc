"""
Error taxonomy for CratePilot.

Every error carries the context needed to act on it (field name, offending
value, phase). None of them are used for normal control flow.
"""

from typing import Any, List, Optional


class CratePilotError(Exception):
    """Base class for all planning errors."""
    pass


class ConstraintError(CratePilotError):
    """Raised when structured data entering the core violates a constraint."""

    def __init__(self, field: str, value: Any, message: Optional[str] = None):
        self.field = field
        self.value = value
        detail = message or "invalid value"
        super().__init__(f"{field}={value!r}: {detail}")


class NotFoundError(CratePilotError):
    """Raised when a track id required to build a plan is not in the catalog."""

    def __init__(self, track_id: str):
        self.track_id = track_id
        super().__init__(f"Seed track {track_id} not found in catalog")


class ParseError(CratePilotError):
    """Raised when an LLM response cannot be reduced to the expected shape."""

    def __init__(self, context: str, message: str):
        self.context = context
        self.detail = message
        super().__init__(f"Failed to parse {context}: {message}")


class PhaseFailedError(CratePilotError):
    """Raised when an LLM-backed phase fails and its policy forbids fallback."""

    def __init__(self, phase: str, message: str):
        self.phase = phase
        super().__init__(f"Phase '{phase}' failed: {message}")


class RevisionFailedError(PhaseFailedError):
    """Raised when a plan revision fails; revisions have no deterministic fallback."""

    def __init__(self, message: str):
        super().__init__("revise", message)


class FinalizeError(CratePilotError):
    """Raised when a plan fails validation at finalize time."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Cannot finalize invalid plan: {', '.join(self.errors)}")
