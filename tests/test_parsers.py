"""
Unit tests for LLM response decoding.

Responses are decoded into validated values or a ParseError; nothing
unvalidated reaches the planner.
"""

import pytest
from cratepilot.errors import ParseError
from cratepilot.llm.parsers import (
    decode_explanation,
    decode_intent,
    decode_revision,
    decode_selection,
    decode_sequence,
    extract_json,
    sanitize_track_ids,
)

INTENT_RESPONSE = """Here is the intent:
```json
{
  "tempoRange": {"min": 120, "max": 124},
  "allowedKeys": ["8A", "9A", "H7"],
  "targetGenres": ["Tech House"],
  "duration": 3600,
  "mixStyle": "energetic",
  "mustIncludeArtists": null,
  "avoidArtists": ["Someone"],
  "mustIncludeTracks": [" track1 ", "track1", ""],
  "avoidTracks": [],
  "energyCurve": "peak"
}
```
"""


class TestExtractJson:
    """Test locating the JSON object in free text."""

    def test_fenced(self):
        assert extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_prose(self):
        assert extract_json('Sure! {"a": {"b": 2}} Hope that helps.') == '{"a": {"b": 2}}'

    def test_no_object(self):
        with pytest.raises(ParseError):
            extract_json("I cannot help with that")
        with pytest.raises(ParseError):
            extract_json(None)


class TestDecodeIntent:
    """Test intent decoding."""

    def test_full_intent(self):
        decoded = decode_intent(INTENT_RESPONSE, default_duration=1800)
        assert decoded.ok
        intent = decoded.value
        assert (intent.tempo_range.low, intent.tempo_range.high) == (120, 124)
        assert intent.allowed_keys == ["8A", "9A"]
        assert intent.target_genres == ["Tech House"]
        assert intent.duration == 3600
        assert intent.mix_style == "energetic"
        assert intent.must_include_artists == []
        assert intent.avoid_artists == ["Someone"]
        assert intent.must_include_tracks == ["track1"]
        assert intent.energy_curve == "peak"

    def test_zero_duration_uses_default(self):
        decoded = decode_intent('{"tempoRange": {"min": 100, "max": 110}, "duration": 0}', 1800)
        assert decoded.value.duration == 1800
        assert decoded.value.mix_style == "smooth"
        assert decoded.value.energy_curve == "linear"

    @pytest.mark.parametrize("response", [
        "no json here",
        '{"duration": 3600}',
        '{"tempoRange": {"min": 130, "max": 120}, "duration": 3600}',
        '{"tempoRange": {"min": "fast", "max": 120}, "duration": 3600}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": -5}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": 3600, "mixStyle": "chaotic"}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": 3600, "targetEnergy": 4}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": 3600,}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": 1e400}',
        '{"tempoRange": {"min": 120, "max": 1e400}, "duration": 3600}',
        '{"tempoRange": {"min": 120, "max": 124}, "duration": 3600, "minPopularity": 50.7}',
    ])
    def test_rejected(self, response):
        decoded = decode_intent(response, 3600)
        assert not decoded.ok
        assert decoded.error.context == "intent"
        with pytest.raises(ParseError):
            decoded.unwrap()

    def test_popularity(self):
        decoded = decode_intent('{"tempoRange": {"min": 120, "max": 124}, "duration": 3600, "minPopularity": 70}', 3600)
        assert decoded.value.min_popularity == 70

    def test_no_json_message(self):
        decoded = decode_intent("no json here", 3600)
        assert str(decoded.error) == "Failed to parse intent: no JSON object found"


class TestDecodeTrackLists:
    """Test selection, sequence and revision decoding."""

    def test_selection(self):
        decoded = decode_selection('{"selectedTrackIds": ["a", "b"], "reasoning": "fits"}')
        assert decoded.value.selected_track_ids == ["a", "b"]
        assert decoded.value.reasoning == "fits"

    def test_selection_default_reasoning(self):
        decoded = decode_selection('{"selectedTrackIds": ["a"], "reasoning": null}')
        assert decoded.value.reasoning == "No reasoning provided"

    def test_sequence_missing_ids(self):
        decoded = decode_sequence('{"reasoning": "x"}')
        assert not decoded.ok
        assert decoded.error.context == "sequence"

    def test_sequence_wrong_type(self):
        assert not decode_sequence('{"orderedTrackIds": "a,b"}').ok
        assert not decode_sequence('{"orderedTrackIds": [1, 2]}').ok

    def test_revision(self):
        decoded = decode_revision('{"revisedTrackIds": ["a"], "changesExplanation": "swapped"}')
        assert decoded.value.revised_track_ids == ["a"]
        assert decoded.value.changes_explanation == "swapped"

    def test_sanitize(self):
        assert sanitize_track_ids([" a ", "b", "a", "", "  "]) == ["a", "b"]


class TestDecodeExplanation:
    """Test plain-text explanation decoding."""

    def test_text(self):
        assert decode_explanation("  Great flow.  ").value == "Great flow."

    def test_empty(self):
        assert not decode_explanation("   ").ok
        assert not decode_explanation(None).ok
