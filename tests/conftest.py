"""Shared fixtures: a small tech-house catalog at 120-124 BPM."""

import pytest
from unittest.mock import Mock

from cratepilot.catalog import Catalog, Track


def make_track(track_id, bpm=120.0, key="8A", duration=360, energy=None, genre="Tech House", artist=None, title=None):
    return Track(
        track_id=track_id,
        artist=artist or f"Artist {track_id}",
        title=title or f"Title {track_id}",
        duration_seconds=duration,
        bpm=bpm,
        key=key,
        genre=genre,
        energy=energy,
    )


# (id, bpm, key, duration, energy)
SAMPLE_TRACKS = [
    ("track1", 122.0, "8A", 410, 3),
    ("track2", 121.0, "9A", 400, 3),
    ("track3", 124.0, "10A", 420, 4),
    ("track4", 120.0, "11A", 420, 2),
    ("track5", 123.0, "8A", 400, 3),
    ("track6", 120.5, "9A", 400, 4),
    ("track7", 122.5, "10A", 400, 4),
    ("track8", 121.5, "11A", 410, 3),
    ("track9", 123.5, "8A", 410, 5),
    ("track10", 124.0, "9A", 330, 4),
]


@pytest.fixture
def sample_tracks():
    return [
        make_track(track_id, bpm=bpm, key=key, duration=duration, energy=energy)
        for track_id, bpm, key, duration, energy in SAMPLE_TRACKS
    ]


@pytest.fixture
def catalog(sample_tracks):
    return Catalog(sample_tracks)


@pytest.fixture
def llm():
    """LLM client whose response each test sets."""
    client = Mock()
    client.generate = Mock(return_value="")
    return client
