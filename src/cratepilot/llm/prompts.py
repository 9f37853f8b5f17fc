"""
Prompt templates for the LLM-assisted planning phases.

Every template that expects structured output asks for a single JSON
object whose field names match the schemas in llm.parsers.
"""

from typing import Sequence

from ..catalog import Track
from ..plan import CratePrompt, DerivedIntent


def format_mmss(seconds: int) -> str:
    """Format seconds as M:SS."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def format_track_line(track: Track, with_duration: bool = False) -> str:
    line = (
        f"- [{track.track_id}] {track.artist} - {track.title} | "
        f"{track.bpm:g} BPM | {track.key} | Energy: {track.energy or 'N/A'} | "
        f"Genre: {track.genre or 'N/A'}"
    )
    if with_duration:
        line += f" | {format_mmss(track.duration_seconds)}"
    return line


def format_track_list(tracks: Sequence[Track], with_duration: bool = False) -> str:
    return "\n".join(format_track_line(t, with_duration) for t in tracks)


def format_crate(tracks: Sequence[Track], with_ids: bool = False) -> str:
    """Numbered crate listing, optionally with track ids."""
    lines = []
    for position, track in enumerate(tracks, start=1):
        prefix = f"{position}. [{track.track_id}] " if with_ids else f"{position}. "
        lines.append(
            f"{prefix}{track.artist} - {track.title} "
            f"({track.bpm:g} BPM, {track.key}, {format_mmss(track.duration_seconds)}, "
            f"Energy: {track.energy or 'N/A'})"
        )
    return "\n".join(lines)


def derive_intent_prompt(prompt: CratePrompt, seed_tracks: Sequence[Track]) -> str:
    tempo = f"{prompt.tempo_range} BPM" if prompt.tempo_range else "Any"
    duration = f"{int(prompt.target_duration) // 60} minutes" if prompt.target_duration else "Not specified"
    seeds = format_track_list(seed_tracks) if seed_tracks else "None provided"

    return f"""
You are an expert DJ assistant analyzing an event prompt to create a structured crate plan.

EVENT PROMPT:
{prompt.notes or 'No description provided'}

CONSTRAINTS:
- Tempo Range: {tempo}
- Target Genre: {prompt.target_genre or 'Any'}
- Target Duration: {duration}
- Target Key: {prompt.target_key or 'Any'}

SEED TRACKS:
{seeds}

Derive a detailed intent for track selection. Return ONLY a JSON object with this structure:
{{
  "tempoRange": {{ "min": number, "max": number }},
  "allowedKeys": ["8A", "9A", ...],
  "targetGenres": ["Tech House", ...],
  "duration": seconds,
  "mixStyle": "smooth" | "energetic" | "eclectic",
  "mustIncludeArtists": [],
  "avoidArtists": [],
  "mustIncludeTracks": [],
  "avoidTracks": [],
  "energyCurve": "linear" | "wave" | "peak"
}}

Guidelines:
- For allowedKeys, include harmonically compatible keys (same, adjacent, relative)
- For mixStyle, infer from the event description (sunset = smooth, club = energetic)
- For energyCurve, infer from event type (sunset = linear/wave, peak hour = peak)
- Keep arrays empty unless explicitly mentioned in the prompt
"""


def _intent_summary(intent: DerivedIntent) -> str:
    return (
        f"- Tempo Range: {intent.tempo_range} BPM\n"
        f"- Allowed Keys: {', '.join(intent.allowed_keys) or 'Any'}\n"
        f"- Genres: {', '.join(intent.target_genres) or 'Any'}\n"
        f"- Mix Style: {intent.mix_style}\n"
        f"- Energy Curve: {intent.energy_curve or 'linear'}\n"
        f"- Must Include Artists: {', '.join(intent.must_include_artists) or 'None'}\n"
        f"- Avoid Artists: {', '.join(intent.avoid_artists) or 'None'}"
    )


def candidate_pool_prompt(intent: DerivedIntent, tracks: Sequence[Track]) -> str:
    return f"""
You are filtering tracks for a DJ crate based on derived intent.

INTENT:
{_intent_summary(intent)}

AVAILABLE TRACKS:
{format_track_list(tracks)}

Select tracks that best match the intent. Return ONLY a JSON object:
{{
  "selectedTrackIds": ["track-id-1", "track-id-2", ...],
  "reasoning": "Brief explanation of selection criteria"
}}

Select 15-25 tracks that fit the vibe and constraints.
"""


def sequence_prompt(intent: DerivedIntent, tracks: Sequence[Track], seed_tracks: Sequence[Track]) -> str:
    minutes = int(intent.duration) // 60
    curve = intent.energy_curve or "linear"
    seeds = "\n".join(f"- {t.track_id}" for t in seed_tracks) or "None"

    return f"""
You are sequencing tracks for a DJ set to create optimal flow and energy progression.

INTENT:
- Duration Target: {minutes} minutes ({intent.duration} seconds)
- Mix Style: {intent.mix_style}
- Energy Curve: {curve}
- Avoid Artists: {', '.join(intent.avoid_artists) or 'None'}

SEED TRACKS (must include):
{seeds}

AVAILABLE TRACKS:
{format_track_list(tracks, with_duration=True)}

Create an ordered tracklist that:
1. Includes all seed tracks in good positions
2. Considers harmonic compatibility (same key, adjacent keys, relative keys)
3. Prefers gradual BPM changes over sudden jumps
4. Follows the energy curve ({curve})
5. Reaches approximately {minutes} minutes total

Return ONLY a JSON object:
{{
  "orderedTrackIds": ["track-id-1", "track-id-2", ...],
  "reasoning": "Brief explanation of sequencing strategy"
}}
"""


def explain_prompt(tracks: Sequence[Track], total_duration: int) -> str:
    return f"""
You are explaining why a DJ crate works well for the given event.

CRATE:
{format_crate(tracks)}

Total Duration: {int(total_duration) // 60} minutes

Provide a concise explanation of:
1. Overall flow and energy progression
2. Track selection and sequencing strategy
3. How the BPM and key progression supports the vibe
4. How it fits the event atmosphere

Keep it under 200 words and focus on DJ-relevant details.
"""


def revision_prompt(
    tracks: Sequence[Track],
    instructions: str,
    available: Sequence[Track],
    total_duration: int,
) -> str:
    return f"""
You are revising a DJ crate based on user feedback.

CURRENT CRATE:
{format_crate(tracks, with_ids=True)}

USER INSTRUCTIONS:
{instructions}

AVAILABLE TRACKS FOR REPLACEMENT:
{format_track_list(available)}

Revise the crate to address the user's feedback while maintaining:
- Good energy flow and progression
- Compatible keys and smooth BPM changes where possible
- A total duration close to {int(total_duration) // 60} minutes ({total_duration} seconds)

Return ONLY a JSON object:
{{
  "revisedTrackIds": ["track-id-1", "track-id-2", ...],
  "changesExplanation": "What changed and why"
}}
"""
