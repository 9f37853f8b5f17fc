"""
In-memory Track Catalog for CratePilot.

Holds track metadata keyed by track id, in insertion order.

- Upsert by id; registration timestamp kept, update timestamp refreshed
- Conjunctive (AND) filter queries, case-insensitive genre/artist matching
- Statistics are derived on demand, nothing is cached
- Owned by a single planning session (no concurrent access)
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .errors import ConstraintError
from .harmony.camelot import compatible_keys, is_valid_key

logger = logging.getLogger(__name__)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class ValueRange:
    """Inclusive numeric range."""

    low: float
    high: float

    def __post_init__(self):
        if not is_number(self.low):
            raise ConstraintError("range.low", self.low, "must be a number")
        if not is_number(self.high):
            raise ConstraintError("range.high", self.high, "must be a number")
        if self.low > self.high:
            raise ConstraintError("range", (self.low, self.high), "low must be <= high")

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high

    def __str__(self) -> str:
        return f"{self.low:g}-{self.high:g}"


@dataclass(frozen=True)
class Track:
    """Track metadata as stored in the catalog."""

    track_id: str
    artist: str
    title: str
    duration_seconds: int
    bpm: float
    key: str  # Camelot notation (1A-12B)
    genre: Optional[str] = None
    energy: Optional[int] = None  # 1-5
    album: Optional[str] = None
    year: Optional[int] = None
    registered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.track_id, str) or not self.track_id:
            raise ConstraintError("track_id", self.track_id, "must be a non-empty string")
        if not isinstance(self.duration_seconds, int) or isinstance(self.duration_seconds, bool) \
                or self.duration_seconds <= 0:
            raise ConstraintError("duration_seconds", self.duration_seconds, "must be a positive integer")
        if not is_number(self.bpm) or self.bpm <= 0:
            raise ConstraintError("bpm", self.bpm, "must be a positive number")
        if not is_valid_key(self.key):
            raise ConstraintError("key", self.key, "not a Camelot key (expected 1A-12B)")
        if self.energy is not None and (
            not isinstance(self.energy, int) or isinstance(self.energy, bool)
            or not 1 <= self.energy <= 5
        ):
            raise ConstraintError("energy", self.energy, "must be an integer from 1 to 5")

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}"


@dataclass
class TrackFilter:
    """Search criteria. Unset fields do not constrain the search."""

    ids: Optional[Sequence[str]] = None
    genre: Optional[str] = None
    bpm_range: Optional[ValueRange] = None
    key: Optional[str] = None
    keys: Optional[Sequence[str]] = None
    energy_range: Optional[ValueRange] = None
    duration_range: Optional[ValueRange] = None
    artist: Optional[str] = None
    artists: Optional[Sequence[str]] = None
    exclude_artists: Optional[Sequence[str]] = None


@dataclass
class CatalogStatistics:
    total_tracks: int
    genres: Dict[str, int] = field(default_factory=dict)
    bpm_min: float = 0.0
    bpm_max: float = 0.0
    average_bpm: float = 0.0
    average_duration: int = 0
    key_distribution: Dict[str, int] = field(default_factory=dict)


class Catalog:
    """In-memory track store keyed by track id."""

    def __init__(self, tracks: Optional[Iterable[Track]] = None):
        self._tracks: Dict[str, Track] = {}
        if tracks:
            self.add_many(tracks)

    def add(self, track: Track) -> Track:
        """
        Add or replace a track.

        Args:
            track: Track to register. registered_at is kept if already set.

        Returns:
            The stored track, with timestamps filled in.
        """
        now = datetime.now(timezone.utc)
        stored = replace(
            track,
            registered_at=track.registered_at or now,
            updated_at=now,
        )
        self._tracks[stored.track_id] = stored
        logger.debug(f"Added/updated track: {stored.track_id}")
        return stored

    def add_many(self, tracks: Iterable[Track]) -> int:
        """Bulk import. Returns the number of tracks added."""
        count = 0
        for track in tracks:
            self.add(track)
            count += 1
        logger.info(f"Imported {count} tracks into catalog")
        return count

    def remove(self, track_id: str) -> bool:
        """Remove a track. Returns True if it existed."""
        return self._tracks.pop(track_id, None) is not None

    def get(self, track_id: str) -> Optional[Track]:
        return self._tracks.get(track_id)

    def get_many(self, track_ids: Iterable[str]) -> List[Track]:
        """Tracks for the given ids, in the given order, skipping unknown ids."""
        return [self._tracks[tid] for tid in track_ids if tid in self._tracks]

    def get_all(self) -> List[Track]:
        """All tracks in insertion order."""
        return list(self._tracks.values())

    def has(self, track_id: str) -> bool:
        return track_id in self._tracks

    def __contains__(self, track_id: str) -> bool:
        return self.has(track_id)

    def __len__(self) -> int:
        return len(self._tracks)

    def count(self) -> int:
        return len(self._tracks)

    def clear(self) -> None:
        self._tracks.clear()

    def search(self, track_filter: Optional[TrackFilter] = None) -> List[Track]:
        """
        Find tracks matching every criterion of the filter.

        Args:
            track_filter: Criteria; None or an empty filter returns all tracks.

        Returns:
            Matching tracks in insertion order.
        """
        results = self.get_all()
        if track_filter is None:
            return results

        f = track_filter

        if f.ids:
            id_set = set(f.ids)
            results = [t for t in results if t.track_id in id_set]

        if f.genre:
            genre = f.genre.lower()
            results = [t for t in results if t.genre is not None and t.genre.lower() == genre]

        if f.bpm_range:
            results = [t for t in results if f.bpm_range.contains(t.bpm)]

        if f.key:
            results = [t for t in results if t.key == f.key]

        if f.keys:
            key_set = set(f.keys)
            results = [t for t in results if t.key in key_set]

        if f.energy_range:
            results = [
                t for t in results
                if t.energy is not None and f.energy_range.contains(t.energy)
            ]

        if f.duration_range:
            results = [t for t in results if f.duration_range.contains(t.duration_seconds)]

        if f.artist:
            artist = f.artist.lower()
            results = [t for t in results if t.artist.lower() == artist]

        if f.artists:
            artist_set = {a.lower() for a in f.artists}
            results = [t for t in results if t.artist.lower() in artist_set]

        if f.exclude_artists:
            exclude_set = {a.lower() for a in f.exclude_artists}
            results = [t for t in results if t.artist.lower() not in exclude_set]

        return results

    def update(self, track_id: str, changes: Dict[str, Any]) -> Optional[Track]:
        """
        Merge changes into an existing track.

        The track id and registration timestamp are never changed; the
        update timestamp is refreshed.

        Args:
            track_id: Track to update
            changes: Field name -> new value

        Returns:
            Updated track, or None if the id is unknown.

        Raises:
            ConstraintError: If a field is unknown or a new value is invalid.
        """
        track = self._tracks.get(track_id)
        if track is None:
            return None

        known = {f.name for f in fields(Track)}
        unknown = set(changes) - known
        if unknown:
            raise ConstraintError("changes", sorted(unknown), "unknown track fields")

        merged = dict(changes)
        merged.pop("track_id", None)
        merged.pop("registered_at", None)
        merged["updated_at"] = datetime.now(timezone.utc)

        updated = replace(track, **merged)
        self._tracks[track_id] = updated
        logger.debug(f"Updated track {track_id}: {sorted(changes)}")
        return updated

    def tracks_by_genre(self, genre: str) -> List[Track]:
        return self.search(TrackFilter(genre=genre))

    def tracks_by_artist(self, artist: str) -> List[Track]:
        return self.search(TrackFilter(artist=artist))

    def tracks_by_bpm_range(self, low: float, high: float) -> List[Track]:
        return self.search(TrackFilter(bpm_range=ValueRange(low, high)))

    def tracks_by_key(self, key: str) -> List[Track]:
        return self.search(TrackFilter(key=key))

    def tracks_with_compatible_keys(self, key: str) -> List[Track]:
        """Tracks whose key is Camelot-compatible with the given key."""
        return self.search(TrackFilter(keys=compatible_keys(key)))

    def total_duration(self, track_ids: Iterable[str]) -> int:
        """Sum of durations; unknown ids count as zero."""
        return sum(t.duration_seconds for t in self.get_many(track_ids))

    def statistics(self) -> CatalogStatistics:
        """
        Aggregate view of the catalog, recomputed on every call.

        Returns:
            CatalogStatistics; all zeros for an empty catalog.
        """
        tracks = self.get_all()
        if not tracks:
            return CatalogStatistics(total_tracks=0)

        genres: Dict[str, int] = {}
        keys: Dict[str, int] = {}
        for track in tracks:
            if track.genre:
                genres[track.genre] = genres.get(track.genre, 0) + 1
            keys[track.key] = keys.get(track.key, 0) + 1

        bpms = np.array([t.bpm for t in tracks], dtype=float)
        durations = np.array([t.duration_seconds for t in tracks], dtype=float)

        return CatalogStatistics(
            total_tracks=len(tracks),
            genres=genres,
            bpm_min=float(bpms.min()),
            bpm_max=float(bpms.max()),
            average_bpm=round(float(bpms.mean()), 1),
            average_duration=int(round(float(durations.mean()))),
            key_distribution=keys,
        )

    def to_json(self) -> str:
        """Serialize all tracks to a JSON array."""
        records = []
        for track in self.get_all():
            record = asdict(track)
            for stamp in ("registered_at", "updated_at"):
                if record[stamp] is not None:
                    record[stamp] = record[stamp].isoformat()
            records.append(record)
        return json.dumps(records, indent=2)

    def load_json(self, text: str) -> int:
        """
        Import tracks from a JSON array produced by to_json().

        Returns:
            Number of tracks imported.

        Raises:
            ConstraintError: If the JSON is malformed or a record is invalid.
        """
        try:
            records = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConstraintError("json", text[:40], f"malformed JSON: {e}") from e

        if not isinstance(records, list):
            raise ConstraintError("json", type(records).__name__, "expected an array of tracks")

        tracks = []
        for record in records:
            if not isinstance(record, dict):
                raise ConstraintError("json", record, "track record must be an object")
            try:
                for stamp in ("registered_at", "updated_at"):
                    if record.get(stamp):
                        record[stamp] = datetime.fromisoformat(record[stamp])
                tracks.append(Track(**record))
            except (TypeError, ValueError) as e:
                raise ConstraintError("json", record.get("track_id"), f"invalid track record: {e}") from e

        return self.add_many(tracks)
