"""
Candidate Pool Builder: narrow the catalog down to tracks eligible for a plan.

The deterministic pool filters on tempo range and the first target genre
only. Key filtering is left to the LLM-assisted selection, so the
deterministic pool is a superset the sequencer can always fall back on.
"""

import logging
from typing import List

from ..catalog import Catalog, Track, TrackFilter, ValueRange
from ..plan import CandidatePool, CratePlan, DerivedIntent

logger = logging.getLogger(__name__)

# Half-width of the BPM window used to find replacement tracks
REPLACEMENT_BPM_WINDOW = 10


def _intent_filter(intent: DerivedIntent) -> TrackFilter:
    return TrackFilter(
        bpm_range=intent.tempo_range,
        genre=intent.target_genres[0] if intent.target_genres else None,
    )


def build_candidate_pool(catalog: Catalog, intent: DerivedIntent) -> CandidatePool:
    """
    Filter the catalog against an intent.

    Args:
        catalog: Track catalog
        intent: Derived intent (tempo range and first target genre are used)

    Returns:
        CandidatePool of matching track ids, in catalog order
    """
    matches = catalog.search(_intent_filter(intent))
    track_ids = tuple(t.track_id for t in matches)

    genre = intent.target_genres[0] if intent.target_genres else "any"
    description = (
        f"Deterministic filtering: {len(track_ids)} tracks at "
        f"{intent.tempo_range} BPM, genre {genre}"
    )
    if track_ids:
        description += f" [{', '.join(track_ids)}]"

    logger.info(f"Candidate pool built: {len(track_ids)} of {len(catalog)} tracks")
    return CandidatePool(source_intent=intent, track_ids=track_ids, description=description)


def _newest_first(tracks: List[Track]) -> List[Track]:
    return sorted(tracks, key=lambda t: t.registered_at.timestamp() if t.registered_at else 0.0, reverse=True)


def prefilter_for_llm(catalog: Catalog, intent: DerivedIntent, limit: int) -> List[Track]:
    """
    Keep the track list sent to the LLM within limit entries.

    Small catalogs are returned whole. Larger ones are narrowed by tempo and
    genre, then to the most recently registered tracks. If narrowing leaves
    nothing, the first limit tracks of the catalog are used.
    """
    tracks = catalog.get_all()
    if len(tracks) <= limit:
        return tracks

    logger.info(f"Large catalog detected ({len(tracks)} tracks). Pre-filtering to {limit}...")

    filtered = catalog.search(_intent_filter(intent))
    if len(filtered) > limit:
        filtered = _newest_first(filtered)[:limit]

    result = filtered if filtered else tracks[:limit]
    logger.info(f"Reduced to {len(result)} tracks for LLM selection")
    return result


def replacement_tracks(catalog: Catalog, plan: CratePlan, limit: int) -> List[Track]:
    """
    Tracks similar to a plan, offered to the LLM as revision material.

    Similar means within REPLACEMENT_BPM_WINDOW of the plan's mean BPM, and in
    one of the plan's genres when that still leaves more than limit / 2.
    Capped at limit, newest first.
    """
    current = catalog.get_many(plan.track_ids)
    if not current:
        return catalog.get_all()[:limit]

    avg_bpm = sum(t.bpm for t in current) / len(current)
    used_genres = {t.genre for t in current if t.genre}

    similar = catalog.search(TrackFilter(
        bpm_range=ValueRange(max(0.0, avg_bpm - REPLACEMENT_BPM_WINDOW), avg_bpm + REPLACEMENT_BPM_WINDOW),
    ))

    if used_genres:
        genre_filtered = [t for t in similar if t.genre in used_genres]
        if len(genre_filtered) > limit / 2:
            similar = genre_filtered

    if len(similar) > limit:
        similar = _newest_first(similar)[:limit]

    return similar
