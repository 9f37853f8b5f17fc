"""
Tests for the crate planner: deterministic planning, LLM-assisted phases
with their fallbacks, revision and the plan lifecycle.
"""

import copy
import json
import logging

import pytest
from cratepilot.catalog import Catalog, ValueRange
from cratepilot.config import Config
from cratepilot.errors import (
    ConstraintError,
    FinalizeError,
    NotFoundError,
    PhaseFailedError,
    RevisionFailedError,
)
from cratepilot.generate.planner import CratePlanner, PhasePolicy
from cratepilot.plan import CandidatePool, CratePrompt, DerivedIntent, PlanState

WORKED_EXAMPLE = ["track1", "track2", "track4", "track6", "track8", "track7", "track5", "track9", "track3"]


@pytest.fixture
def planner(catalog):
    return CratePlanner(catalog)


@pytest.fixture
def prompt():
    return CratePrompt(tempo_range=ValueRange(120, 124), target_duration=3600, notes="Sunset rooftop")


@pytest.fixture
def intent():
    return DerivedIntent(tempo_range=ValueRange(120, 124), duration=3600, target_genres=["Tech House"])


def config_with(**policies):
    data = copy.deepcopy(Config.DEFAULT_CONFIG)
    data["fallback"].update(policies)
    return Config(data)


class TestCreatePlan:
    """Test deterministic plan creation."""

    def test_worked_example(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        assert plan.track_ids == WORKED_EXAMPLE
        assert plan.total_duration == 3670
        assert plan.annotations == "Plan created using deterministic heuristics"
        assert plan.used_ai is False
        assert plan.llm_model is None
        assert plan.state is PlanState.DRAFT
        assert planner.current_plan is plan
        assert planner.validate(plan).is_valid

    def test_unknown_seed(self, planner, prompt):
        with pytest.raises(NotFoundError) as exc_info:
            planner.create_plan(prompt, ["track1", "ghost"])
        assert str(exc_info.value) == "Seed track ghost not found in catalog"
        assert planner.current_plan is None

    def test_defaults_without_tempo_or_duration(self, planner):
        plan = planner.create_plan(CratePrompt(), [])
        assert plan.total_duration >= 3600
        assert plan.track_ids[0] == "track4"

    def test_genre_narrows_candidates(self, planner, prompt):
        prompt.target_genre = "Techno"
        plan = planner.create_plan(prompt, ["track3"])
        assert plan.track_ids == ["track3"]

    def test_reorder_keeps_first_track(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        reordered = planner.reorder_plan(plan)
        assert reordered.track_ids[0] == "track1"
        assert sorted(reordered.track_ids) == sorted(plan.track_ids)
        assert reordered.annotations.startswith("Reordered for transition quality")
        assert planner.current_plan is reordered


class TestDeriveIntent:
    """Test the intent phase."""

    def test_success(self, planner, prompt, llm):
        llm.generate.return_value = json.dumps({
            "tempoRange": {"min": 118, "max": 124},
            "allowedKeys": ["8A", "9A"],
            "targetGenres": ["Tech House"],
            "duration": 0,
            "mixStyle": "smooth",
            "energyCurve": "wave",
        })
        intent = planner.derive_intent(prompt, ["track1"], llm)
        assert (intent.tempo_range.low, intent.tempo_range.high) == (118, 124)
        assert intent.duration == 3600
        assert intent.energy_curve == "wave"
        sent = llm.generate.call_args[0][0]
        assert "Sunset rooftop" in sent
        assert "[track1]" in sent

    def test_client_error_falls_back(self, planner, prompt, llm):
        llm.generate.side_effect = RuntimeError("quota exceeded")
        intent = planner.derive_intent(prompt, [], llm)
        assert intent == planner.fallback_intent(prompt)

    def test_unparseable_falls_back(self, planner, prompt, llm):
        llm.generate.return_value = "I think you want house music."
        intent = planner.derive_intent(prompt, [], llm)
        assert intent.tempo_range == ValueRange(120, 124)
        assert intent.mix_style == "smooth"

    def test_non_finite_duration_falls_back(self, planner, prompt, llm):
        llm.generate.return_value = '{"tempoRange": {"min": 120, "max": 124}, "duration": 1e400}'
        intent = planner.derive_intent(prompt, [], llm)
        assert intent == planner.fallback_intent(prompt)

    def test_fail_policy(self, catalog, prompt, llm):
        planner = CratePlanner(catalog, config_with(derive_intent="fail"))
        assert planner.policies["derive_intent"] is PhasePolicy.FAIL
        llm.generate.return_value = "nope"
        with pytest.raises(PhaseFailedError) as exc_info:
            planner.derive_intent(prompt, [], llm)
        assert exc_info.value.phase == "derive_intent"


class TestCandidatePool:
    """Test the candidate selection phase."""

    def test_success_keeps_known_ids(self, planner, intent, llm):
        llm.generate.return_value = json.dumps({
            "selectedTrackIds": ["track3", " track1 ", "ghost", "track3"],
            "reasoning": "Peak-time picks",
        })
        pool = planner.generate_candidate_pool(intent, llm)
        assert pool.track_ids == ("track3", "track1")
        assert pool.description == "Peak-time picks"
        assert pool.source_intent is intent

    def test_only_unknown_ids_falls_back(self, planner, intent, llm):
        llm.generate.return_value = '{"selectedTrackIds": ["ghost"]}'
        pool = planner.generate_candidate_pool(intent, llm)
        assert len(pool) == 10
        assert pool.description.startswith("Deterministic filtering")

    def test_empty_catalog(self, intent, llm):
        planner = CratePlanner(Catalog())
        pool = planner.generate_candidate_pool(intent, llm)
        assert pool.track_ids == ()
        assert pool.description == "No tracks available to select from"
        llm.generate.assert_not_called()


class TestSequencePlan:
    """Test the sequencing phase."""

    def test_success(self, planner, intent, llm):
        pool = CandidatePool(intent, ("track1", "track2", "track3"), "test pool")
        llm.generate.return_value = '{"orderedTrackIds": ["track2", "track1", "track3"], "reasoning": "Build up"}'
        plan = planner.sequence_plan(intent, pool, ["track1"], llm)
        assert plan.track_ids == ["track2", "track1", "track3"]
        assert plan.annotations == "Build up"
        assert plan.used_ai is True
        assert plan.llm_model == "gemini-2.5-flash-lite"
        assert plan.prompt.target_duration == 3600

    def test_failure_uses_deterministic_fill(self, planner, intent, llm):
        pool = CandidatePool(intent, tuple(f"track{i}" for i in range(1, 11)), "all")
        llm.generate.return_value = "```json\n{broken\n```"
        plan = planner.sequence_plan(intent, pool, ["track1", "track2"], llm)
        assert plan.track_ids == WORKED_EXAMPLE
        assert plan.annotations == "Deterministic sequencing (LLM sequencing failed)"
        assert plan.used_ai is False

    def test_empty_pool(self, planner, intent, llm):
        with pytest.raises(ConstraintError):
            planner.sequence_plan(intent, CandidatePool(intent, (), "empty"), [], llm)
        llm.generate.assert_not_called()

    def test_unknown_seed(self, planner, intent, llm):
        pool = CandidatePool(intent, ("track1",), "one")
        with pytest.raises(NotFoundError):
            planner.sequence_plan(intent, pool, ["ghost"], llm)

    def test_model_setting_recorded(self, planner, intent, llm):
        planner.set_llm_settings(model="local-model", temperature=0.2)
        pool = CandidatePool(intent, ("track1",), "one")
        llm.generate.return_value = '{"orderedTrackIds": ["track1"]}'
        plan = planner.sequence_plan(intent, pool, [], llm)
        assert plan.llm_model == "local-model"
        assert planner.llm_settings.temperature == 0.2


class TestExplainPlan:
    """Test the explanation phase."""

    def test_success(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1"])
        llm.generate.return_value = "Smooth build through adjacent keys."
        explained = planner.explain_plan(plan, llm)
        assert explained.annotations == "Smooth build through adjacent keys."
        assert explained is not plan
        assert plan.annotations == "Plan created using deterministic heuristics"
        assert explained.state is PlanState.DRAFT
        assert planner.current_plan is explained

    def test_fallback_summary(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1"])
        llm.generate.side_effect = TimeoutError()
        explained = planner.explain_plan(plan, llm)
        assert "Mixability" in explained.annotations
        assert f"{len(plan.track_ids)} tracks" in explained.annotations


class TestRevisePlan:
    """Test plan revision."""

    def test_success(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        revised_ids = ["track1", "track2", "track3", "track4", "track5", "track6", "track7", "track8", "track10"]
        llm.generate.return_value = json.dumps({
            "revisedTrackIds": revised_ids,
            "changesExplanation": "Swapped track9 for track10",
        })
        revised = planner.revise_plan(plan, "Swap the last track for something shorter", llm)
        assert revised.track_ids == revised_ids
        assert revised.annotations == "Swapped track9 for track10"
        assert revised.used_ai is True
        assert revised.state is PlanState.DRAFT
        assert plan.track_ids == WORKED_EXAMPLE
        assert planner.current_plan is revised

    def test_large_duration_change_warns(self, planner, prompt, llm, caplog):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        llm.generate.return_value = '{"revisedTrackIds": ["track10"]}'
        with caplog.at_level(logging.WARNING):
            revised = planner.revise_plan(plan, "Only keep one track", llm)
        assert revised.track_ids == ["track10"]
        assert "Revision changed duration by 55 minutes" in caplog.text

    @pytest.mark.parametrize("instructions", ["", "abc", "x" * 501])
    def test_instruction_length(self, planner, prompt, llm, instructions):
        plan = planner.create_plan(prompt, ["track1"])
        with pytest.raises(ConstraintError):
            planner.revise_plan(plan, instructions, llm)
        llm.generate.assert_not_called()

    def test_client_error(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1"])
        llm.generate.side_effect = ConnectionError("offline")
        with pytest.raises(RevisionFailedError) as exc_info:
            planner.revise_plan(plan, "Make it darker", llm)
        assert exc_info.value.phase == "revise"
        assert isinstance(exc_info.value, PhaseFailedError)
        assert planner.current_plan is plan

    def test_unparseable_response(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1"])
        llm.generate.return_value = '{"revisedTrackIds": ["ghost"]}'
        with pytest.raises(RevisionFailedError):
            planner.revise_plan(plan, "Make it darker", llm)


class TestLifecycle:
    """Test validation and finalization."""

    def test_finalize(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        assert plan.is_finalized
        assert planner.finalized_plans == [plan]

    def test_finalize_twice_records_twice(self, planner, prompt, caplog):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        with caplog.at_level(logging.WARNING):
            planner.finalize(plan)
        assert len(planner.finalized_plans) == 2
        assert "already finalized" in caplog.text

    def test_finalize_invalid(self, planner, prompt):
        prompt.target_duration = 1200
        plan = planner.create_plan(prompt, ["track1", "track2"])
        plan.track_ids.extend(["track3", "track5"])
        with pytest.raises(FinalizeError) as exc_info:
            planner.finalize(plan)
        assert exc_info.value.errors == ["Total duration 2050s is outside target 1200s (±300s)"]
        assert plan.state is PlanState.DRAFT
        assert planner.finalized_plans == []

    def test_finalized_history_is_a_copy(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        planner.finalized_plans.clear()
        assert len(planner.finalized_plans) == 1

    def test_validate_tolerance_override(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        assert planner.validate(plan).is_valid
        assert not planner.validate(plan, tolerance_seconds=60).is_valid


class TestReporting:
    """Test summaries and analysis."""

    def test_summarize(self, planner, prompt):
        assert planner.summarize() == "No current plan"
        plan = planner.create_plan(prompt, ["track1", "track2"])
        summary = planner.summarize()
        assert "Total Duration: 61:10" in summary
        assert "Tracks: 9" in summary
        assert "AI-Generated: No" in summary
        assert "1. Artist track1 - Title track1" in summary
        assert plan.annotations in summary

    def test_analyze_plan(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        analysis = planner.analyze_plan(plan)
        assert len(analysis.transition_scores) == 8
        assert 0.0 <= analysis.overall_score <= 1.0

    def test_describe_empty(self, planner):
        assert planner.describe_tracks([]) == "Empty crate"


class TestPlanIsolation:
    """Plans keep their own prompt and track list."""

    def test_prompt_changes_do_not_reach_plan(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        prompt.target_duration = 1200
        prompt.sample_tracks.append("track3")
        assert plan.prompt.target_duration == 3600
        assert planner.validate(planner.finalized_plans[0]).is_valid

    def test_history_keeps_its_own_copy(self, planner, prompt):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        plan.track_ids.append("track10")
        assert planner.finalized_plans[0].track_ids == WORKED_EXAMPLE
        assert planner.finalized_plans[0].is_finalized

    def test_explained_draft_is_independent(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        planner.finalize(plan)
        llm.generate.return_value = "Steady build."
        draft = planner.explain_plan(planner.finalized_plans[0], llm)
        draft.track_ids.append("track10")
        draft.prompt.target_duration = 1200
        assert planner.finalized_plans[0].track_ids == WORKED_EXAMPLE
        assert planner.finalized_plans[0].prompt.target_duration == 3600
        assert plan.track_ids == WORKED_EXAMPLE

    def test_revised_draft_is_independent(self, planner, prompt, llm):
        plan = planner.create_plan(prompt, ["track1", "track2"])
        llm.generate.return_value = json.dumps({"revisedTrackIds": WORKED_EXAMPLE})
        revised = planner.revise_plan(plan, "Keep it as it is", llm)
        revised.track_ids.pop()
        revised.prompt.sample_tracks.append("track3")
        assert plan.track_ids == WORKED_EXAMPLE
        assert plan.prompt.sample_tracks == []
