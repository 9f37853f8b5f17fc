"""
Camelot Wheel: harmonic key compatibility graph.

24 positions (1A-12A minor, 1B-12B major) on a 12-step circular wheel.
A key is compatible with itself, its two neighbours on the same letter
(wrapping 12 -> 1) and its relative key (same number, other letter).

The compatibility graph is built once at import and only read afterwards.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from ..errors import ConstraintError

logger = logging.getLogger(__name__)

WHEEL_SIZE = 12
LETTERS = ("A", "B")

ALL_KEYS: Tuple[str, ...] = tuple(
    f"{number}{letter}" for letter in LETTERS for number in range(1, WHEEL_SIZE + 1)
)

_KEY_PATTERN = re.compile(r"^(1[0-2]|[1-9])([AB])$")

# Mapping from standard key notation to Camelot notation
STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "Db": "3B",
    "D": "10B",
    "D#": "5B",
    "Eb": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "Gb": "2B",
    "G": "9B",
    "G#": "4B",
    "Ab": "4B",
    "A": "11B",
    "A#": "6B",
    "Bb": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "Db": "12A",
    "D": "7A",
    "D#": "2A",
    "Eb": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "Gb": "11A",
    "G": "6A",
    "G#": "1A",
    "Ab": "1A",
    "A": "8A",
    "A#": "3A",
    "Bb": "3A",
    "B": "10A",
}


def is_valid_key(key: Optional[str]) -> bool:
    """True if key is one of the 24 Camelot positions (e.g. "8A", "12B")."""
    return isinstance(key, str) and _KEY_PATTERN.match(key) is not None


def _parse(key: str) -> Tuple[int, str]:
    match = _KEY_PATTERN.match(key) if isinstance(key, str) else None
    if match is None:
        raise ConstraintError("key", key, "not a Camelot key (expected 1A-12B)")
    return int(match.group(1)), match.group(2)


def _step(number: int, offset: int) -> int:
    """Move around the wheel, wrapping within 1..12."""
    return (number - 1 + offset) % WHEEL_SIZE + 1


def _build_graph() -> Dict[str, Tuple[str, ...]]:
    graph = {}
    for key in ALL_KEYS:
        number, letter = _parse(key)
        other = LETTERS[1] if letter == LETTERS[0] else LETTERS[0]
        graph[key] = (
            key,
            f"{_step(number, -1)}{letter}",
            f"{_step(number, 1)}{letter}",
            f"{number}{other}",
        )
    return graph


_COMPATIBILITY_GRAPH = _build_graph()


def compatible_keys(key: str) -> List[str]:
    """
    Get the keys that mix harmonically with the given key.

    Args:
        key: Camelot key (e.g., "8A")

    Returns:
        Exactly four keys: the key itself, its -1 and +1 neighbours on the
        same letter, and its relative key. compatible_keys("8A") returns
        ["8A", "7A", "9A", "8B"].

    Raises:
        ConstraintError: If key is not a valid Camelot key.
    """
    if key not in _COMPATIBILITY_GRAPH:
        _parse(key)
    return list(_COMPATIBILITY_GRAPH[key])


def are_keys_compatible(key1: str, key2: str) -> bool:
    """True if key2 is one of the compatible keys of key1."""
    return key2 in compatible_keys(key1)


def relative_key(key: str) -> str:
    """Same wheel number on the other letter (relative major/minor)."""
    return compatible_keys(key)[3]


def adjacent_keys(key: str) -> List[str]:
    """The -1 and +1 neighbours on the same letter."""
    return compatible_keys(key)[1:3]


def key_distance(key1: str, key2: str) -> Optional[int]:
    """
    Circular distance between two keys.

    Returns:
        0-6 steps when the letters match; 0 for the relative pair
        (same number, other letter); None when the letters differ on
        different numbers, which is incompatible and not comparable.
    """
    number1, letter1 = _parse(key1)
    number2, letter2 = _parse(key2)

    if letter1 != letter2:
        return 0 if number1 == number2 else None

    diff = abs(number1 - number2)
    return min(diff, WHEEL_SIZE - diff)


def key_compatibility_level(key1: str, key2: str) -> str:
    """Classify a key pair as "perfect", "compatible" or "incompatible"."""
    if key1 == key2:
        _parse(key1)
        return "perfect"
    if are_keys_compatible(key1, key2):
        return "compatible"
    return "incompatible"


def to_camelot(note: str, mode: str) -> Optional[str]:
    """
    Convert standard key notation to Camelot.

    Args:
        note: Pitch class, e.g. "A", "F#", "Bb"
        mode: "major" or "minor" (case-insensitive)

    Returns:
        Camelot key, or None if the note/mode pair is unknown
    """
    mode = mode.lower()
    if mode not in ("major", "minor"):
        logger.debug(f"Unknown mode {mode!r} for note {note!r}")
        return None
    mapping = STANDARD_TO_CAMELOT_MAJOR if mode == "major" else STANDARD_TO_CAMELOT_MINOR
    return mapping.get(note.strip())
