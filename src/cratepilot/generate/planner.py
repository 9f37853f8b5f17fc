"""
Crate Planner: plan lifecycle and orchestration of the planning phases.

Phases:
- derive intent     : LLM reads the prompt   | fallback: intent from the prompt
- candidate pool    : LLM selects candidates | fallback: deterministic filtering
- sequence          : LLM orders candidates  | fallback: deterministic fill
- explain           : LLM annotates the plan | fallback: mixability summary
- revise            : LLM edits the plan     | no fallback, always fails

Each LLM-backed phase has a PhasePolicy (configured under [fallback]).
A failed LLM call and an unparseable response are handled the same way.

Lifecycle: every plan starts in DRAFT. finalize() re-validates and moves a
plan to FINALIZED, appending it to the finalized history. Revisions and
explanations return new DRAFT plans and leave the input plan untouched.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..catalog import Catalog, Track, ValueRange
from ..config import Config
from ..errors import (
    ConstraintError,
    FinalizeError,
    NotFoundError,
    ParseError,
    PhaseFailedError,
    RevisionFailedError,
)
from ..harmony.scoring import SetAnalysis, analyze_set_mixability, validate_energy_progression
from ..llm import prompts
from ..llm.client import LLMClient, LLMSettings
from ..llm.parsers import (
    Decoded,
    decode_explanation,
    decode_intent,
    decode_revision,
    decode_selection,
    decode_sequence,
    sanitize_track_ids,
)
from ..plan import CandidatePool, CratePlan, CratePrompt, DerivedIntent, PlanState
from ..validation import PlanValidator, ValidationResult
from .pool import build_candidate_pool, prefilter_for_llm, replacement_tracks
from .sequencer import OrderingStrategy, deterministic_fill, suggest_track_order

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class PhasePolicy(Enum):
    """What to do when an LLM-backed phase fails."""

    FALLBACK = "fallback"  # run the deterministic equivalent
    FAIL = "fail"  # raise PhaseFailedError


class CratePlanner:
    """
    Crate planning engine.

    Owns one catalog for the length of a session, the current draft plan
    and the history of finalized plans. Not safe for concurrent use.
    """

    def __init__(self, catalog: Catalog, config: Optional[Config] = None):
        """
        Args:
            catalog: Track catalog to plan from
            config: Configuration (defaults if None)
        """
        self.catalog = catalog
        self.config = config or Config.default()

        planning = self.config["planning"]
        self.default_target_duration = planning["default_target_duration_seconds"]
        self.tolerance_seconds = planning["validation_tolerance_seconds"]
        self.default_tempo_range = ValueRange(planning["default_tempo_min"], planning["default_tempo_max"])

        llm = self.config["llm"]
        self.llm_settings = LLMSettings(model=llm["model"], temperature=llm["temperature"])
        self.max_tracks_for_llm = llm["max_tracks_for_llm"]
        self.max_replacement_tracks = llm["max_replacement_tracks"]

        self.revision_limits = self.config["revision"]
        self.policies: Dict[str, PhasePolicy] = {
            phase: PhasePolicy(policy) for phase, policy in self.config["fallback"].items()
        }

        self.validator = PlanValidator(catalog, self.default_target_duration)
        self._current_plan: Optional[CratePlan] = None
        self._finalized_plans: List[CratePlan] = []
        logger.info("CratePlanner initialized")

    # ---- deterministic planning -------------------------------------------

    def fallback_intent(self, prompt: CratePrompt) -> DerivedIntent:
        """Intent built directly from the prompt, without any LLM."""
        return DerivedIntent(
            tempo_range=prompt.tempo_range or self.default_tempo_range,
            duration=prompt.target_duration or self.default_target_duration,
            target_genres=[prompt.target_genre] if prompt.target_genre else [],
            mix_style="smooth",
            must_include_tracks=list(prompt.sample_tracks),
            energy_curve="linear",
        )

    def create_plan(self, prompt: CratePrompt, seed_track_ids: Sequence[str]) -> CratePlan:
        """
        Create a plan using deterministic heuristics only.

        Args:
            prompt: Caller's request
            seed_track_ids: Tracks that must open the plan, in order

        Returns:
            New DRAFT plan (also the current plan)

        Raises:
            NotFoundError: If a seed track is not in the catalog
        """
        self._require_tracks(seed_track_ids)

        pool = build_candidate_pool(self.catalog, self.fallback_intent(prompt))
        candidates = self.catalog.get_many(pool.track_ids)
        track_ids = deterministic_fill(
            self.catalog,
            candidates,
            seed_track_ids,
            target_duration=prompt.target_duration,
            default_duration=self.default_target_duration,
        )

        return self._new_plan(prompt, track_ids, "Plan created using deterministic heuristics", used_ai=False)

    def reorder_plan(self, plan: CratePlan, strategy: Optional[OrderingStrategy] = None) -> CratePlan:
        """
        Reorder a plan's tracks for smoother transitions.

        The first track stays in place. Ids missing from the catalog are dropped.

        Returns:
            New DRAFT plan (also the current plan)
        """
        tracks = self.catalog.get_many(plan.track_ids)
        order = suggest_track_order(tracks, strategy)
        track_ids = [tracks[i].track_id for i in order]
        analysis = analyze_set_mixability([tracks[i] for i in order])

        return self._new_plan(
            plan.prompt,
            track_ids,
            f"Reordered for transition quality (mixability {analysis.overall_score:.2f})",
            used_ai=False,
        )

    # ---- LLM-assisted phases ----------------------------------------------

    def derive_intent(self, prompt: CratePrompt, seed_track_ids: Sequence[str], llm: LLMClient) -> DerivedIntent:
        """Derive a structured intent from the prompt with the LLM."""
        seeds = self.catalog.get_many(seed_track_ids)
        default_duration = prompt.target_duration or self.default_target_duration

        return self._run_phase(
            "derive_intent",
            llm,
            prompts.derive_intent_prompt(prompt, seeds),
            lambda response: decode_intent(response, default_duration),
            on_success=lambda intent: intent,
            on_fallback=lambda: self.fallback_intent(prompt),
        )

    def generate_candidate_pool(self, intent: DerivedIntent, llm: LLMClient) -> CandidatePool:
        """Let the LLM pick candidates from the (pre-filtered) catalog."""
        tracks = prefilter_for_llm(self.catalog, intent, self.max_tracks_for_llm)
        if not tracks:
            return CandidatePool(
                source_intent=intent,
                track_ids=(),
                description="No tracks available to select from",
            )

        return self._run_phase(
            "candidate_pool",
            llm,
            prompts.candidate_pool_prompt(intent, tracks),
            lambda response: self._known_ids(decode_selection(response), "selected_track_ids", "candidate pool"),
            on_success=lambda payload: CandidatePool(
                source_intent=intent,
                track_ids=tuple(payload.selected_track_ids),
                description=payload.reasoning,
            ),
            on_fallback=lambda: build_candidate_pool(self.catalog, intent),
        )

    def sequence_plan(
        self,
        intent: DerivedIntent,
        pool: CandidatePool,
        seed_track_ids: Sequence[str],
        llm: LLMClient,
    ) -> CratePlan:
        """
        Let the LLM order the candidate pool into a plan.

        Raises:
            ConstraintError: If the pool is empty
            NotFoundError: If a seed track is not in the catalog
        """
        if not pool.track_ids:
            raise ConstraintError("candidate_pool", pool.description, "candidate pool is empty")
        self._require_tracks(seed_track_ids)

        candidates = self.catalog.get_many(pool.track_ids)
        seeds = self.catalog.get_many(seed_track_ids)
        prompt = CratePrompt.from_intent(intent)

        def fallback() -> CratePlan:
            track_ids = deterministic_fill(
                self.catalog,
                candidates,
                seed_track_ids,
                target_duration=intent.duration,
                default_duration=self.default_target_duration,
            )
            return self._new_plan(prompt, track_ids, "Deterministic sequencing (LLM sequencing failed)", used_ai=False)

        return self._run_phase(
            "sequence",
            llm,
            prompts.sequence_prompt(intent, candidates, seeds),
            lambda response: self._known_ids(decode_sequence(response), "ordered_track_ids", "sequence"),
            on_success=lambda payload: self._new_plan(
                prompt, payload.ordered_track_ids, payload.reasoning, used_ai=True
            ),
            on_fallback=fallback,
        )

    def explain_plan(self, plan: CratePlan, llm: LLMClient) -> CratePlan:
        """
        Annotate a plan with an explanation.

        Returns:
            New DRAFT plan with the explanation as annotations
        """
        tracks = self.catalog.get_many(plan.track_ids)

        annotations = self._run_phase(
            "explain",
            llm,
            prompts.explain_prompt(tracks, plan.total_duration),
            decode_explanation,
            on_success=lambda text: text,
            on_fallback=lambda: self.describe_tracks(tracks),
        )

        explained = plan.snapshot(annotations=annotations, state=PlanState.DRAFT)
        self._current_plan = explained
        return explained

    def revise_plan(self, plan: CratePlan, instructions: str, llm: LLMClient) -> CratePlan:
        """
        Revise a plan following free-text instructions.

        Returns:
            New DRAFT plan (also the current plan)

        Raises:
            ConstraintError: If instructions are too short or too long
            RevisionFailedError: If the LLM call fails or its response is unusable
        """
        text = (instructions or "").strip()
        min_len = self.revision_limits["min_instruction_length"]
        max_len = self.revision_limits["max_instruction_length"]
        if len(text) < min_len:
            raise ConstraintError("instructions", instructions, f"must be at least {min_len} characters")
        if len(text) > max_len:
            raise ConstraintError("instructions", f"{text[:40]}...", f"must be at most {max_len} characters")

        current = self.catalog.get_many(plan.track_ids)
        available = replacement_tracks(self.catalog, plan, self.max_replacement_tracks)
        previous_duration = plan.total_duration

        def apply(payload) -> CratePlan:
            revised = plan.snapshot(
                track_ids=list(payload.revised_track_ids),
                annotations=payload.changes_explanation,
                used_ai=True,
                llm_model=self.llm_settings.model,
                state=PlanState.DRAFT,
            )
            drift = abs(revised.total_duration - previous_duration)
            if drift > self.revision_limits["duration_warning_seconds"]:
                logger.warning(f"Revision changed duration by {drift // 60} minutes")
            self._current_plan = revised
            return revised

        return self._run_phase(
            "revise",
            llm,
            prompts.revision_prompt(current, text, available, previous_duration),
            lambda response: self._known_ids(decode_revision(response), "revised_track_ids", "revision"),
            on_success=apply,
            on_fallback=None,
        )

    # ---- validation and lifecycle -----------------------------------------

    def validate(self, plan: CratePlan, tolerance_seconds: Optional[int] = None) -> ValidationResult:
        if tolerance_seconds is None:
            tolerance_seconds = self.tolerance_seconds
        return self.validator.validate(plan, tolerance_seconds)

    def finalize(self, plan: CratePlan) -> None:
        """
        Move a plan to FINALIZED and record it in the history.

        Finalizing the same plan twice records it twice. The history keeps
        its own copy of each plan.

        Raises:
            FinalizeError: If the plan is invalid; it stays in DRAFT
        """
        if plan.is_finalized:
            logger.warning("Plan is already finalized; it will be recorded again")

        result = self.validate(plan)
        if not result.is_valid:
            logger.error(f"Finalize rejected: {result.errors}")
            raise FinalizeError(result.errors)

        plan.state = PlanState.FINALIZED
        self._finalized_plans.append(plan.snapshot())
        logger.info(f"✅ Plan finalized: {len(plan.track_ids)} tracks, {plan.total_duration}s")

    @property
    def current_plan(self) -> Optional[CratePlan]:
        return self._current_plan

    @property
    def finalized_plans(self) -> List[CratePlan]:
        return list(self._finalized_plans)

    def set_llm_settings(self, **changes) -> LLMSettings:
        self.llm_settings = replace(self.llm_settings, **changes)
        return self.llm_settings

    # ---- reporting --------------------------------------------------------

    def analyze_plan(self, plan: CratePlan) -> SetAnalysis:
        return analyze_set_mixability(self.catalog.get_many(plan.track_ids))

    def describe_tracks(self, tracks: Sequence[Track], curve: Optional[str] = "linear") -> str:
        """Plain-text assessment of a track sequence, built without an LLM."""
        if not tracks:
            return "Empty crate"

        analysis = analyze_set_mixability(tracks)
        bpms = [t.bpm for t in tracks]
        total = sum(t.duration_seconds for t in tracks)

        lines = [
            f"{len(tracks)} tracks, {total // 60} minutes, {min(bpms):g}-{max(bpms):g} BPM.",
            f"Mixability {analysis.overall_score:.2f} across {len(analysis.transition_scores)} transitions.",
        ]
        lines.extend(analysis.recommendations)

        energies = [t.energy for t in tracks if t.energy is not None]
        progression = validate_energy_progression(energies, curve)
        lines.extend(progression.issues)
        lines.extend(progression.suggestions)
        return "\n".join(lines)

    def summarize(self, plan: Optional[CratePlan] = None) -> str:
        """Human-readable listing of a plan (the current plan by default)."""
        plan = plan or self._current_plan
        if plan is None:
            return "No current plan"

        lines = [
            "Crate Plan",
            f"Total Duration: {prompts.format_mmss(plan.total_duration)}",
            f"Tracks: {len(plan.track_ids)}",
            f"AI-Generated: {'Yes' if plan.used_ai else 'No'}",
            f"Finalized: {'Yes' if plan.is_finalized else 'No'}",
            "",
            prompts.format_crate(self.catalog.get_many(plan.track_ids)),
        ]
        if plan.annotations:
            lines.extend(["", "Notes:", plan.annotations])
        return "\n".join(lines)

    # ---- helpers ----------------------------------------------------------

    def _require_tracks(self, track_ids: Sequence[str]) -> None:
        for track_id in track_ids:
            if not self.catalog.has(track_id):
                raise NotFoundError(track_id)

    def _known_ids(self, decoded: Decoded, attribute: str, context: str) -> Decoded:
        """Keep only sanitized ids present in the catalog; none left is a parse failure."""
        if not decoded.ok:
            return decoded

        payload = decoded.value
        ids = [i for i in sanitize_track_ids(getattr(payload, attribute)) if self.catalog.has(i)]
        if not ids:
            return Decoded(error=ParseError(context, "no known track ids in response"))
        return Decoded(value=payload.model_copy(update={attribute: ids}))

    def _new_plan(self, prompt: CratePrompt, track_ids: List[str], annotations: str, used_ai: bool) -> CratePlan:
        plan = CratePlan(
            prompt=prompt.copy(),
            track_ids=list(track_ids),
            annotations=annotations,
            catalog=self.catalog,
            used_ai=used_ai,
            llm_model=self.llm_settings.model if used_ai else None,
        )
        self._current_plan = plan
        logger.info(
            f"✅ Draft plan: {len(plan.track_ids)} tracks, {plan.total_duration}s "
            f"({'AI' if used_ai else 'deterministic'})"
        )
        return plan

    def _run_phase(
        self,
        phase: str,
        llm: LLMClient,
        prompt_text: str,
        decoder: Callable[[str], Decoded],
        on_success: Callable[[T], R],
        on_fallback: Optional[Callable[[], R]],
    ) -> R:
        """
        Call the LLM, decode its response and apply the phase policy on failure.

        Raises:
            PhaseFailedError: If the phase fails and may not fall back
            RevisionFailedError: Same, for the revise phase
        """
        try:
            response = llm.generate(prompt_text)
        except Exception as e:  # any client error is a failed phase
            failure: Exception = e
        else:
            decoded = decoder(response)
            if decoded.ok:
                logger.info(f"LLM {phase} phase succeeded")
                return on_success(decoded.value)
            failure = decoded.error

        policy = self.policies.get(phase, PhasePolicy.FAIL)
        if policy is PhasePolicy.FALLBACK and on_fallback is not None:
            logger.warning(f"LLM {phase} phase failed ({failure}); using deterministic fallback")
            return on_fallback()

        logger.error(f"LLM {phase} phase failed: {failure}")
        if phase == "revise":
            raise RevisionFailedError(str(failure)) from failure
        raise PhaseFailedError(phase, str(failure)) from failure
