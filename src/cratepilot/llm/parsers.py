"""
LLM Response Parsers.

Responses are free text that should contain one JSON object, possibly
wrapped in markdown fences or prose. Each decoder extracts that object,
validates it against a pydantic schema and returns a Decoded result:
either a value or a ParseError, never an unvalidated dict.
"""

import logging
import re
from dataclasses import dataclass
from typing import Generic, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..catalog import ValueRange
from ..errors import ConstraintError, ParseError
from ..harmony.camelot import is_valid_key
from ..plan import DerivedIntent

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Outcome of decoding a response: a value or the reason there is none."""

    value: Optional[T] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


class _Payload(BaseModel):
    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    @field_validator("*", mode="before")
    @classmethod
    def _nulls_take_defaults(cls, value, info):
        field_info = cls.model_fields[info.field_name]
        if value is None and not field_info.is_required():
            return field_info.get_default(call_default_factory=True)
        return value


class TempoRangePayload(_Payload):
    low: float = Field(alias="min", ge=0)
    high: float = Field(alias="max", ge=0)

    @model_validator(mode="after")
    def _ordered(self):
        if self.low > self.high:
            raise ValueError(f"tempo range min {self.low} exceeds max {self.high}")
        return self


class IntentPayload(_Payload):
    tempo_range: TempoRangePayload = Field(alias="tempoRange")
    duration: float = Field(ge=0)
    allowed_keys: List[str] = Field(default_factory=list, alias="allowedKeys")
    target_genres: List[str] = Field(default_factory=list, alias="targetGenres")
    mix_style: Literal["smooth", "energetic", "eclectic"] = Field(default="smooth", alias="mixStyle")
    must_include_artists: List[str] = Field(default_factory=list, alias="mustIncludeArtists")
    avoid_artists: List[str] = Field(default_factory=list, alias="avoidArtists")
    must_include_tracks: List[str] = Field(default_factory=list, alias="mustIncludeTracks")
    avoid_tracks: List[str] = Field(default_factory=list, alias="avoidTracks")
    energy_curve: Literal["linear", "wave", "peak"] = Field(default="linear", alias="energyCurve")
    target_energy: Optional[float] = Field(default=None, ge=0, le=1, alias="targetEnergy")
    min_popularity: Optional[int] = Field(default=None, ge=0, le=100, alias="minPopularity")


class SelectionPayload(_Payload):
    selected_track_ids: List[str] = Field(alias="selectedTrackIds")
    reasoning: str = "No reasoning provided"


class SequencePayload(_Payload):
    ordered_track_ids: List[str] = Field(alias="orderedTrackIds")
    reasoning: str = "No reasoning provided"


class RevisionPayload(_Payload):
    revised_track_ids: List[str] = Field(alias="revisedTrackIds")
    changes_explanation: str = Field(default="No explanation provided", alias="changesExplanation")


def extract_json(response: str) -> str:
    """
    Pull the outermost JSON object out of an LLM response.

    Raises:
        ParseError: If no object-shaped substring exists.
    """
    cleaned = _FENCE_PATTERN.sub("", response or "")
    match = _OBJECT_PATTERN.search(cleaned)
    if match is None:
        raise ParseError("response", "no JSON object found")
    return match.group(0)


def decode(response: str, schema: Type[M], context: str) -> Decoded[M]:
    """
    Decode a response against a pydantic schema.

    Args:
        response: Raw LLM response text
        schema: Payload model to validate against
        context: Name used in the error message ("intent", "sequence", ...)

    Returns:
        Decoded payload, or Decoded with a ParseError
    """
    try:
        payload = schema.model_validate_json(extract_json(response))
    except ParseError as e:
        return Decoded(error=ParseError(context, e.detail))
    except ValidationError as e:
        return Decoded(error=ParseError(context, _summarize(e)))
    return Decoded(value=payload)


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "payload"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def sanitize_track_ids(track_ids: List[str]) -> List[str]:
    """Strip whitespace, drop empty and duplicate ids, keep first-seen order."""
    seen = set()
    sanitized = []
    for track_id in track_ids:
        track_id = track_id.strip()
        if track_id and track_id not in seen:
            sanitized.append(track_id)
            seen.add(track_id)
    return sanitized


def decode_intent(response: str, default_duration: int) -> Decoded[DerivedIntent]:
    """
    Decode a DerivedIntent from an LLM response.

    A duration of 0 means the model left it open; default_duration is used.
    Unknown keys in allowedKeys are dropped.
    """
    decoded = decode(response, IntentPayload, "intent")
    if not decoded.ok:
        return Decoded(error=decoded.error)

    payload = decoded.value
    allowed_keys = [k for k in payload.allowed_keys if is_valid_key(k)]
    if len(allowed_keys) != len(payload.allowed_keys):
        logger.debug(f"Dropped invalid keys from intent: {payload.allowed_keys}")

    duration = int(round(payload.duration)) or default_duration

    try:
        intent = DerivedIntent(
            tempo_range=ValueRange(payload.tempo_range.low, payload.tempo_range.high),
            duration=duration,
            allowed_keys=allowed_keys,
            target_genres=payload.target_genres,
            mix_style=payload.mix_style,
            must_include_artists=payload.must_include_artists,
            avoid_artists=payload.avoid_artists,
            must_include_tracks=sanitize_track_ids(payload.must_include_tracks),
            avoid_tracks=sanitize_track_ids(payload.avoid_tracks),
            energy_curve=payload.energy_curve,
            target_energy=payload.target_energy,
            min_popularity=payload.min_popularity,
        )
    except ConstraintError as e:
        return Decoded(error=ParseError("intent", str(e)))

    return Decoded(value=intent)


def decode_selection(response: str) -> Decoded[SelectionPayload]:
    return decode(response, SelectionPayload, "candidate pool")


def decode_sequence(response: str) -> Decoded[SequencePayload]:
    return decode(response, SequencePayload, "sequence")


def decode_revision(response: str) -> Decoded[RevisionPayload]:
    return decode(response, RevisionPayload, "revision")


def decode_explanation(response: str) -> Decoded[str]:
    """An explanation is plain text; only an empty response is rejected."""
    text = (response or "").strip()
    if not text:
        return Decoded(error=ParseError("explanation", "empty response"))
    return Decoded(value=text)
