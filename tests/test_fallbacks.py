"""
Tests for the fallback policy.
"""

import pytest

from tradecycle.core.fallbacks import CIRCUIT_BREAKER_OPEN, UNKNOWN_FALLBACK, FallbackPolicy
from tradecycle.core.stages import StageName, build_trading_stages
from tradecycle.core.state import RiskAssessment, create_initial_state, merge_state, validate_update


class TestFallbackPolicy:
    """Test fallback lookup and registration."""

    @pytest.mark.parametrize("name", list(StageName))
    def test_every_trading_stage_has_a_fallback(self, name):
        """Test known stages get a well-formed update with their FALLBACK marker."""
        policy = FallbackPolicy()

        update = policy.fallback_for(name)

        assert update["current_step"] == f"{name.upper()}_FALLBACK"
        assert update["thoughts"]
        validate_update(update)

    def test_unknown_stage(self):
        """Test an unknown stage only sets the UNKNOWN_FALLBACK marker."""
        policy = FallbackPolicy()

        assert policy.fallback_for("sentiment") == {"current_step": UNKNOWN_FALLBACK}

    def test_fresh_lists_per_call(self):
        """Test fallback lists are never shared between calls."""
        policy = FallbackPolicy()

        first = policy.fallback_for(StageName.PATTERN_RECALL)
        first["similar_patterns"].append({"id": "leak"})
        second = policy.fallback_for(StageName.PATTERN_RECALL)

        assert second["similar_patterns"] == []

    def test_register_override(self):
        """Test registering replaces the default for a stage."""
        policy = FallbackPolicy()
        policy.register(StageName.REGIME_CLASSIFICATION, lambda: {"regime": "RANGING"})

        update = policy.fallback_for(StageName.REGIME_CLASSIFICATION)

        assert update == {"regime": "RANGING", "current_step": "REGIME_CLASSIFICATION_FALLBACK"}

    def test_constructor_overrides_and_new_stages(self):
        """Test overrides may add fallbacks for custom stages."""
        policy = FallbackPolicy({"sentiment": lambda: {"bias": "NEUTRAL"}})

        assert policy.fallback_for("sentiment") == {
            "bias": "NEUTRAL",
            "current_step": "SENTIMENT_FALLBACK",
        }

    def test_conservative_decisions(self):
        """Test decision stages fall back to no trade."""
        policy = FallbackPolicy()

        selection = policy.fallback_for(StageName.STRATEGY_SELECTION)
        risk = policy.fallback_for(StageName.RISK_ASSESSMENT)
        execution = policy.fallback_for(StageName.EXECUTION)

        assert selection["selected_strategy"] is None
        assert selection["should_execute"] is False
        assert risk["risk_assessment"].approved is False
        assert risk["signal"] is None
        assert execution["execution_result"] is None
        assert execution["should_learn"] is False

    def test_hard_fail(self):
        """Test the hard-fail update forces the no-trade outcome."""
        update = FallbackPolicy().hard_fail()

        assert update["current_step"] == CIRCUIT_BREAKER_OPEN
        assert update["should_execute"] is False
        assert update["signal"] is None
        assert update["selected_strategy"] is None
        assert update["should_learn"] is False
        assert update["risk_assessment"] == RiskAssessment.rejected("Circuit breaker open")


class TestFallbackContracts:
    """Test each fallback leaves the state usable by the stages after it."""

    @pytest.mark.parametrize("index", range(len(StageName)))
    def test_fallback_satisfies_downstream_inputs(self, index, make_trading_stages, happy_updates):
        """Test no stage that would run after a fallback lacks its inputs."""
        pipeline = build_trading_stages(make_trading_stages())
        policy = FallbackPolicy()
        state = create_initial_state("BTC", "1h")

        for stage in pipeline[:index]:
            state = merge_state(state, happy_updates[stage.name])

        faulted = pipeline[index]
        state = merge_state(state, policy.fallback_for(faulted.name))
        if faulted.should_halt(state):
            return

        for stage in pipeline[index + 1 :]:
            if not stage.should_execute(state):
                continue
            assert stage.missing_inputs(state) == [], f"{stage.name} after {faulted.name} fallback"
            state = merge_state(state, happy_updates[stage.name])
