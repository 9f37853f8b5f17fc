"""
Planning data model: prompts, derived intents, candidate pools and plans.

A CratePlan starts in DRAFT state. Only CratePlanner.finalize() moves it to
FINALIZED; revisions always produce a new DRAFT plan.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from .catalog import ValueRange, is_number
from .errors import ConstraintError
from .harmony.camelot import is_valid_key

if TYPE_CHECKING:
    from .catalog import Catalog

MIX_STYLES = ("smooth", "energetic", "eclectic")
ENERGY_CURVES = ("linear", "wave", "peak")


def _check_duration(name: str, value: Any) -> None:
    if not is_number(value) or value <= 0:
        raise ConstraintError(name, value, "must be a positive number of seconds")


@dataclass
class CratePrompt:
    """What the caller asked for."""

    tempo_range: Optional[ValueRange] = None
    target_key: Optional[str] = None
    target_genre: Optional[str] = None
    sample_tracks: List[str] = field(default_factory=list)
    target_duration: Optional[int] = None  # seconds
    notes: Optional[str] = None

    def __post_init__(self):
        if self.tempo_range is not None and not isinstance(self.tempo_range, ValueRange):
            raise ConstraintError("tempo_range", self.tempo_range, "must be a ValueRange")
        if self.target_duration is not None:
            _check_duration("target_duration", self.target_duration)
        if self.target_key is not None and not is_valid_key(self.target_key):
            raise ConstraintError("target_key", self.target_key, "not a Camelot key (expected 1A-12B)")

    def copy(self) -> "CratePrompt":
        return replace(self, sample_tracks=list(self.sample_tracks))

    @classmethod
    def from_intent(cls, intent: "DerivedIntent") -> "CratePrompt":
        """Snapshot of an intent, as recorded on the plans built from it."""
        return cls(
            tempo_range=intent.tempo_range,
            target_genre=intent.target_genres[0] if intent.target_genres else None,
            sample_tracks=list(intent.must_include_tracks),
            target_duration=intent.duration,
        )


@dataclass
class DerivedIntent:
    """Normalized planning parameters."""

    tempo_range: ValueRange
    duration: int  # seconds
    allowed_keys: List[str] = field(default_factory=list)  # empty means all keys
    target_genres: List[str] = field(default_factory=list)
    mix_style: str = "smooth"
    must_include_artists: List[str] = field(default_factory=list)
    avoid_artists: List[str] = field(default_factory=list)
    must_include_tracks: List[str] = field(default_factory=list)
    avoid_tracks: List[str] = field(default_factory=list)
    energy_curve: Optional[str] = "linear"
    target_energy: Optional[float] = None  # 0-1
    min_popularity: Optional[int] = None  # 0-100

    def __post_init__(self):
        if not isinstance(self.tempo_range, ValueRange):
            raise ConstraintError("tempo_range", self.tempo_range, "must be a ValueRange")
        _check_duration("duration", self.duration)
        if self.mix_style not in MIX_STYLES:
            raise ConstraintError("mix_style", self.mix_style, f"must be one of {MIX_STYLES}")
        if self.energy_curve is not None and self.energy_curve not in ENERGY_CURVES:
            raise ConstraintError("energy_curve", self.energy_curve, f"must be one of {ENERGY_CURVES}")
        for key in self.allowed_keys:
            if not is_valid_key(key):
                raise ConstraintError("allowed_keys", key, "not a Camelot key (expected 1A-12B)")
        if self.target_energy is not None and not (
            is_number(self.target_energy) and 0 <= self.target_energy <= 1
        ):
            raise ConstraintError("target_energy", self.target_energy, "must be between 0 and 1")
        if self.min_popularity is not None and not (
            is_number(self.min_popularity) and 0 <= self.min_popularity <= 100
        ):
            raise ConstraintError("min_popularity", self.min_popularity, "must be between 0 and 100")


@dataclass(frozen=True)
class CandidatePool:
    """Tracks eligible for a plan, before ordering."""

    source_intent: DerivedIntent
    track_ids: Tuple[str, ...]
    description: str

    def __len__(self) -> int:
        return len(self.track_ids)

    def __contains__(self, track_id: str) -> bool:
        return track_id in self.track_ids


class PlanState(Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"


@dataclass
class CratePlan:
    """
    An ordered crate of tracks.

    total_duration is recomputed from the catalog on every access.
    """

    prompt: CratePrompt
    track_ids: List[str]
    annotations: str
    catalog: "Catalog" = field(repr=False, compare=False)
    used_ai: bool = False
    llm_model: Optional[str] = None
    state: PlanState = PlanState.DRAFT

    @property
    def total_duration(self) -> int:
        return self.catalog.total_duration(self.track_ids)

    def snapshot(self, **changes) -> "CratePlan":
        """Copy with its own prompt and track list; changes are applied on top."""
        changes.setdefault("prompt", self.prompt.copy())
        changes.setdefault("track_ids", list(self.track_ids))
        return replace(self, **changes)

    @property
    def is_finalized(self) -> bool:
        return self.state is PlanState.FINALIZED
