"""
Plan Validation: invariant checks over tracks, intents and finished plans.

Validation never mutates what it checks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List

from .catalog import Catalog, Track
from .plan import CratePlan, DerivedIntent

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300
DEFAULT_TARGET_DURATION_SECONDS = 3600


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ConstraintViolation:
    field: str
    value: Any
    message: str


class PlanValidator:
    """
    Checks a plan against its target duration and the catalog.

    Track existence is answered by the catalog the validator is given.
    """

    def __init__(self, catalog: Catalog, default_target_duration: int = DEFAULT_TARGET_DURATION_SECONDS):
        self.catalog = catalog
        self.default_target_duration = default_target_duration

    def validate(self, plan: CratePlan, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS) -> ValidationResult:
        """
        Validate a plan.

        Args:
            plan: Plan to check
            tolerance_seconds: Allowed distance from the target duration
                (a plan exactly at the tolerance is valid)

        Returns:
            ValidationResult with every error found
        """
        errors = []

        if not plan.track_ids:
            errors.append("Plan has no tracks")

        target = plan.prompt.target_duration or self.default_target_duration
        total = plan.total_duration
        if abs(total - target) > tolerance_seconds:
            errors.append(
                f"Total duration {total}s is outside target {target}s "
                f"(±{tolerance_seconds}s)"
            )

        for track_id in plan.track_ids:
            if not self.catalog.has(track_id):
                errors.append(f"Track {track_id} not found in catalog")

        if errors:
            logger.debug(f"Plan validation failed: {errors}")

        return ValidationResult(is_valid=not errors, errors=errors)


def validate_track(track: Track) -> List[ConstraintViolation]:
    """
    Soft checks on a track's metadata beyond what construction enforces.

    Returns:
        Violations found (empty if the track looks sane)
    """
    violations = []
    if not track.artist.strip():
        violations.append(ConstraintViolation("artist", track.artist, "artist is empty"))
    if not track.title.strip():
        violations.append(ConstraintViolation("title", track.title, "title is empty"))
    if not 40 <= track.bpm <= 220:
        violations.append(ConstraintViolation("bpm", track.bpm, "outside the mixable 40-220 BPM range"))
    if track.duration_seconds > 3600:
        violations.append(
            ConstraintViolation("duration_seconds", track.duration_seconds, "longer than one hour")
        )
    return violations


def validate_intent(intent: DerivedIntent, catalog: Catalog) -> List[ConstraintViolation]:
    """
    Check an intent against the catalog it will be planned from.

    Returns:
        Violations found (empty if the intent can be planned as-is)
    """
    violations = []
    for track_id in intent.must_include_tracks:
        if not catalog.has(track_id):
            violations.append(
                ConstraintViolation("must_include_tracks", track_id, "track not in catalog")
            )
    overlap = set(a.lower() for a in intent.must_include_artists) & set(a.lower() for a in intent.avoid_artists)
    for artist in sorted(overlap):
        violations.append(
            ConstraintViolation("avoid_artists", artist, "artist is both required and avoided")
        )
    return violations
