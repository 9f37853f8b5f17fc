"""
Track Sequencer: order candidate tracks into a crate.

- Greedy nearest-neighbour ordering on transition quality
  (no backtracking or lookahead, O(n^2) score evaluations)
- Deterministic constrained fill: seeds first, then ascending BPM until
  the target duration is reached
- Ordering strategies share one interface so they can be swapped
"""

import logging
from typing import List, Optional, Protocol, Sequence

from ..catalog import Catalog, Track
from ..harmony.scoring import transition_quality

logger = logging.getLogger(__name__)

DEFAULT_TARGET_DURATION_SECONDS = 3600


class OrderingStrategy(Protocol):
    """Produces a play order for a list of tracks."""

    def order(self, tracks: Sequence[Track]) -> List[int]:
        """Return a permutation of range(len(tracks))."""
        ...


class GreedyNearestNeighbor:
    """
    Greedy ordering (nearest neighbour).

    Keeps the first track fixed, then repeatedly appends the unvisited
    track with the best transition quality from the current last track.
    Ties go to the lowest index.
    """

    def order(self, tracks: Sequence[Track]) -> List[int]:
        if len(tracks) <= 1:
            return list(range(len(tracks)))

        order = [0]
        remaining = list(range(1, len(tracks)))

        while remaining:
            current = tracks[order[-1]]
            best_idx = remaining[0]
            best_score = -1.0

            for idx in remaining:
                score = transition_quality(current, tracks[idx]).overall
                if score > best_score:
                    best_score = score
                    best_idx = idx

            order.append(best_idx)
            remaining.remove(best_idx)

            logger.debug(
                f"Greedy step {len(order) - 1}: {tracks[best_idx].track_id} "
                f"(score: {best_score:.2f})"
            )

        return order


def suggest_track_order(
    tracks: Sequence[Track],
    strategy: Optional[OrderingStrategy] = None,
) -> List[int]:
    """
    Suggest a play order for tracks.

    Args:
        tracks: Tracks to order
        strategy: Ordering strategy (default: GreedyNearestNeighbor)

    Returns:
        Indices into tracks, in play order
    """
    strategy = strategy or GreedyNearestNeighbor()
    return strategy.order(tracks)


def deterministic_fill(
    catalog: Catalog,
    candidates: Sequence[Track],
    seed_track_ids: Sequence[str],
    target_duration: Optional[int] = None,
    default_duration: int = DEFAULT_TARGET_DURATION_SECONDS,
) -> List[str]:
    """
    Build a track list without any AI assistance.

    Seeds come first (given order, duplicates dropped). Remaining candidates
    follow in ascending BPM order, one at a time, until the cumulative
    duration reaches the target or candidates run out.

    Args:
        catalog: Catalog used to look up seed durations
        candidates: Candidate tracks
        seed_track_ids: Track ids that must open the list
        target_duration: Target duration in seconds (None for default)
        default_duration: Target used when target_duration is None

    Returns:
        Ordered list of track ids
    """
    result: List[str] = []
    used = set()

    for seed_id in seed_track_ids:
        if seed_id not in used:
            result.append(seed_id)
            used.add(seed_id)

    remaining = sorted(
        (t for t in candidates if t.track_id not in used),
        key=lambda t: t.bpm,
    )

    target = target_duration or default_duration
    current_duration = catalog.total_duration(result)

    for track in remaining:
        if current_duration >= target:
            break
        if track.track_id in used:
            continue
        result.append(track.track_id)
        used.add(track.track_id)
        current_duration += track.duration_seconds

    logger.info(
        f"Deterministic fill: {len(result)} tracks ({len(used & set(seed_track_ids))} seeds), "
        f"{current_duration}s of {target}s target"
    )
    return result
