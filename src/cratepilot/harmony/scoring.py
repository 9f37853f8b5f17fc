"""
Compatibility Scoring: tempo, key and energy scores between tracks.

Scores are in [0.0, 1.0]. Transition quality combines them as
0.4 * bpm + 0.4 * key + 0.2 * energy. All functions are pure.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .camelot import compatible_keys

logger = logging.getLogger(__name__)

BPM_WEIGHT = 0.4
KEY_WEIGHT = 0.4
ENERGY_WEIGHT = 0.2

# Score used when either track has no energy level
NEUTRAL_ENERGY_SCORE = 0.7
# Fixed penalty for a key outside the compatible set
INCOMPATIBLE_KEY_SCORE = 0.3

PROBLEM_THRESHOLD = 0.5
WIDE_BPM_RANGE = 20


@dataclass
class TransitionQuality:
    """How well two tracks mix back-to-back."""

    overall: float
    bpm_score: float
    key_score: float
    energy_score: float
    rating: str  # excellent | good | fair | challenging


@dataclass
class BPMTransition:
    """Suggested way to move from one tempo to another."""

    method: str  # direct | half-time | double-time | gradual
    adjustment: float
    description: str


@dataclass
class EnergyProgression:
    is_valid: bool
    score: float
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


@dataclass
class ProblematicTransition:
    index: int
    score: float
    reason: str


@dataclass
class SetAnalysis:
    """Mixability of a whole ordered set."""

    overall_score: float
    transition_scores: List[float] = field(default_factory=list)
    average_transition_quality: float = 1.0
    problematic_transitions: List[ProblematicTransition] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def bpm_compatibility(bpm1: float, bpm2: float) -> float:
    """
    Score how mixable two tempos are.

    Args:
        bpm1: First track BPM
        bpm2: Second track BPM

    Returns:
        1.0 for equal tempos, decreasing in steps with the difference
        (0.95 within 2, 0.85 within 5, 0.65 within 10, 0.4 within 15),
        then linearly by 0.02 per BPM down to 0.0.
    """
    diff = abs(bpm1 - bpm2)

    if diff == 0:
        return 1.0
    if diff <= 2:
        return 0.95
    if diff <= 5:
        return 0.85
    if diff <= 10:
        return 0.65
    if diff <= 15:
        return 0.4
    return max(0.0, 0.4 - (diff - 15) * 0.02)


def are_bpms_mixable(bpm1: float, bpm2: float, tolerance: float = 10) -> bool:
    """True if the tempos are within tolerance BPM of each other."""
    return abs(bpm1 - bpm2) <= tolerance


def energy_compatibility(energy1: int, energy2: int) -> float:
    """Score energy levels (1-5): 1.0 equal, 0.85 one apart, 0.6 two apart."""
    diff = abs(energy1 - energy2)

    if diff == 0:
        return 1.0
    if diff == 1:
        return 0.85
    if diff == 2:
        return 0.6
    return max(0.0, 0.4 - (diff - 2) * 0.15)


def key_compatibility(from_key: str, to_key: str) -> float:
    """1.0 if to_key is Camelot-compatible with from_key, else a flat 0.3."""
    return 1.0 if to_key in compatible_keys(from_key) else INCOMPATIBLE_KEY_SCORE


def _rating(overall: float) -> str:
    if overall >= 0.85:
        return "excellent"
    if overall >= 0.7:
        return "good"
    if overall >= 0.5:
        return "fair"
    return "challenging"


def transition_quality(track1, track2) -> TransitionQuality:
    """
    Overall transition quality between two tracks.

    Args:
        track1: Outgoing track (needs .bpm, .key and optional .energy)
        track2: Incoming track

    Returns:
        TransitionQuality with the weighted overall score and its parts
    """
    bpm_score = bpm_compatibility(track1.bpm, track2.bpm)
    key_score = key_compatibility(track1.key, track2.key)

    if track1.energy is not None and track2.energy is not None:
        energy_score = energy_compatibility(track1.energy, track2.energy)
    else:
        energy_score = NEUTRAL_ENERGY_SCORE

    overall = bpm_score * BPM_WEIGHT + key_score * KEY_WEIGHT + energy_score * ENERGY_WEIGHT

    return TransitionQuality(
        overall=overall,
        bpm_score=bpm_score,
        key_score=key_score,
        energy_score=energy_score,
        rating=_rating(overall),
    )


def bpm_transition(from_bpm: float, to_bpm: float) -> BPMTransition:
    """
    Suggest how to move between two tempos.

    Half-time or double-time on the outgoing track is suggested only when it
    lands strictly closer to the target than the direct difference and
    within 5 BPM of it. Otherwise differences up to 10 BPM are direct and
    anything larger is gradual.
    """
    diff = to_bpm - from_bpm
    abs_diff = abs(diff)

    half_time_diff = abs(to_bpm - from_bpm / 2)
    double_time_diff = abs(to_bpm - from_bpm * 2)

    if half_time_diff < 5 and half_time_diff < abs_diff:
        return BPMTransition(
            method="half-time",
            adjustment=from_bpm / 2 - to_bpm,
            description=f"Use half-time on first track ({round(from_bpm / 2)} BPM)",
        )

    if double_time_diff < 5 and double_time_diff < abs_diff:
        return BPMTransition(
            method="double-time",
            adjustment=from_bpm * 2 - to_bpm,
            description=f"Use double-time on first track ({round(from_bpm * 2)} BPM)",
        )

    if abs_diff <= 10:
        verb = "Speed up" if diff > 0 else "Slow down"
        return BPMTransition(
            method="direct",
            adjustment=diff,
            description=f"{verb} by {abs_diff:g} BPM",
        )

    return BPMTransition(
        method="gradual",
        adjustment=diff,
        description=f"Large BPM change ({diff:+g} BPM) - consider gradual transition",
    )


def validate_energy_progression(
    energy_levels: Sequence[int],
    curve: Optional[str] = "linear",
) -> EnergyProgression:
    """
    Check that an energy sequence flows and follows the desired curve.

    Every drop of more than 2 levels between neighbours is an issue (-0.15).
    A linear curve whose second half averages lower than its first half, or
    a peak curve whose maximum sits more than 30% of the length away from
    the midpoint, costs 0.1 and adds a suggestion.

    Args:
        energy_levels: Energy levels (1-5) in play order
        curve: "linear", "wave" or "peak"

    Returns:
        EnergyProgression; fewer than two levels is always valid with score 1.0
    """
    if len(energy_levels) < 2:
        return EnergyProgression(is_valid=True, score=1.0)

    issues = []
    suggestions = []
    score = 1.0

    for i in range(1, len(energy_levels)):
        drop = energy_levels[i - 1] - energy_levels[i]
        if drop > 2:
            issues.append(
                f"Sudden energy drop at position {i + 1} "
                f"({energy_levels[i - 1]} → {energy_levels[i]})"
            )
            score -= 0.15

    mid_point = len(energy_levels) // 2

    if curve == "peak":
        peak_index = energy_levels.index(max(energy_levels))
        if abs(peak_index - mid_point) > len(energy_levels) * 0.3:
            suggestions.append("Consider moving highest energy tracks closer to the middle")
            score -= 0.1
    elif curve == "linear":
        first_half = energy_levels[:mid_point]
        second_half = energy_levels[mid_point:]
        first_avg = sum(first_half) / len(first_half)
        second_avg = sum(second_half) / len(second_half)
        if second_avg < first_avg:
            suggestions.append("Energy should build throughout the set for linear progression")
            score -= 0.1

    return EnergyProgression(
        is_valid=not issues,
        score=max(0.0, score),
        issues=issues,
        suggestions=suggestions,
    )


def analyze_set_mixability(tracks: Sequence) -> SetAnalysis:
    """
    Score every adjacent transition in an ordered set.

    Args:
        tracks: Tracks in play order (each needs .bpm, .key, .energy)

    Returns:
        SetAnalysis; sets with fewer than two tracks score 1.0
    """
    if len(tracks) < 2:
        return SetAnalysis(overall_score=1.0)

    transition_scores = []
    problematic = []

    for i in range(len(tracks) - 1):
        quality = transition_quality(tracks[i], tracks[i + 1])
        transition_scores.append(quality.overall)

        if quality.overall < PROBLEM_THRESHOLD:
            reasons = []
            if quality.bpm_score < PROBLEM_THRESHOLD:
                reasons.append("Large BPM difference.")
            if quality.key_score < PROBLEM_THRESHOLD:
                reasons.append("Incompatible keys.")
            if quality.energy_score < PROBLEM_THRESHOLD:
                reasons.append("Energy mismatch.")
            problematic.append(
                ProblematicTransition(index=i, score=quality.overall, reason=" ".join(reasons))
            )

    average = sum(transition_scores) / len(transition_scores)

    recommendations = []
    if problematic:
        recommendations.append(f"{len(problematic)} challenging transition(s) detected")
    if average < 0.7:
        recommendations.append("Consider reordering tracks for smoother flow")

    bpms = [t.bpm for t in tracks]
    if max(bpms) - min(bpms) > WIDE_BPM_RANGE:
        recommendations.append("Wide BPM range - consider grouping similar tempos together")

    logger.debug(
        f"Set mixability: {average:.2f} over {len(transition_scores)} transitions, "
        f"{len(problematic)} problematic"
    )

    return SetAnalysis(
        overall_score=average,
        transition_scores=transition_scores,
        average_transition_quality=average,
        problematic_transitions=problematic,
        recommendations=recommendations,
    )
