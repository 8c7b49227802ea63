"""
Tests for the cycle state record and its merge policy.
"""

import pytest

from tradecycle.core.errors import StageFaultError, StateMergeError
from tradecycle.core.state import (
    CycleState,
    RiskAssessment,
    StageError,
    StageFault,
    StageSuccess,
    create_initial_state,
    merge_state,
    validate_update,
)


class TestCreateInitialState:
    """Test initial state construction."""

    def test_defaults(self):
        """Test a fresh state has empty logs and no stage outputs."""
        state = create_initial_state("btc", "1h")

        assert state.symbol == "BTC"
        assert state.timeframe == "1h"
        assert state.current_step == "INITIALIZED"
        assert state.thoughts == []
        assert state.errors == []
        assert state.candles == []
        assert state.indicators is None
        assert state.selected_strategy is None
        assert state.should_execute is False
        assert state.risk_approved is False

    def test_unique_cycle_ids(self):
        """Test each cycle gets its own id."""
        first = create_initial_state("BTC", "1h")
        second = create_initial_state("BTC", "1h")

        assert first.cycle_id != second.cycle_id
        assert len(first.cycle_id) == 16

    def test_extra_fields(self):
        """Test callers can seed optional fields such as the portfolio."""
        state = create_initial_state("ETH", "4h", portfolio={"cash": 500.0})

        assert state.portfolio == {"cash": 500.0}

    @pytest.mark.parametrize("symbol,timeframe", [("", "1h"), ("BTC", "")])
    def test_missing_identity(self, symbol, timeframe):
        """Test symbol and timeframe are required."""
        with pytest.raises(ValueError):
            create_initial_state(symbol, timeframe)


class TestMergeState:
    """Test the merge policy used between stages."""

    def test_log_fields_are_concatenated(self):
        """Test thoughts and errors are appended, not replaced."""
        state = create_initial_state("BTC", "1h", thoughts=["first"])
        error = StageError(stage="backtest", message="timeout")

        merged = merge_state(state, {"thoughts": ["second", "third"], "errors": [error]})

        assert merged.thoughts == ["first", "second", "third"]
        assert merged.errors == [error]

    def test_other_fields_overwrite(self):
        """Test named fields take the update's value, others keep theirs."""
        state = create_initial_state("BTC", "1h", regime="RANGING", bias="BEARISH")

        merged = merge_state(state, {"regime": "TRENDING_UP"})

        assert merged.regime == "TRENDING_UP"
        assert merged.bias == "BEARISH"

    def test_explicit_none_overwrites(self):
        """Test an update can clear a field by naming it with None."""
        state = create_initial_state("BTC", "1h", selected_strategy={"name": "sma_cross"})

        merged = merge_state(state, {"selected_strategy": None})

        assert merged.selected_strategy is None

    def test_original_state_untouched(self):
        """Test merging returns a new state and leaves the input alone."""
        state = create_initial_state("BTC", "1h")

        merged = merge_state(state, {"thoughts": ["hello"], "current_step": "MARKET_DATA"})

        assert merged is not state
        assert state.thoughts == []
        assert state.current_step == "INITIALIZED"
        assert merged.cycle_id == state.cycle_id

    def test_empty_update(self):
        """Test an empty update changes nothing."""
        state = create_initial_state("BTC", "1h")

        assert merge_state(state, {}) == state

    def test_risk_mapping_coerced(self):
        """Test a risk assessment given as a mapping becomes a RiskAssessment."""
        state = create_initial_state("BTC", "1h")

        merged = merge_state(
            state,
            {"risk_assessment": {"approved": True, "reason": "ok", "max_position": 0.2}},
        )

        assert isinstance(merged.risk_assessment, RiskAssessment)
        assert merged.risk_approved is True
        assert merged.risk_assessment.reason == "ok"
        assert merged.risk_assessment.details == {"max_position": 0.2}

    def test_tuple_logs_accepted(self):
        """Test log updates may be tuples."""
        state = create_initial_state("BTC", "1h")

        merged = merge_state(state, {"thoughts": ("a", "b")})

        assert merged.thoughts == ["a", "b"]


class TestValidateUpdate:
    """Test rejection of malformed updates."""

    @pytest.mark.parametrize(
        "update,match",
        [
            (["not", "a", "mapping"], "must be a mapping"),
            ({"no_such_field": 1}, "Unknown state field"),
            ({"cycle_id": "abc"}, "read-only"),
            ({"symbol": "ETH"}, "read-only"),
            ({"thoughts": "just a string"}, "must be a list"),
            ({"errors": ["plain string"]}, "StageError"),
            ({"risk_assessment": {"reason": "no verdict"}}, "approved"),
        ],
    )
    def test_rejects(self, update, match):
        """Test each kind of malformed update raises StateMergeError."""
        with pytest.raises(StateMergeError, match=match):
            validate_update(update)

    def test_merge_validates(self):
        """Test merge_state refuses what validate_update refuses."""
        state = create_initial_state("BTC", "1h")

        with pytest.raises(StateMergeError):
            merge_state(state, {"timeframe": "5m"})

    def test_accepts_known_fields(self):
        """Test a well-formed update passes."""
        validate_update({"regime": "UNKNOWN", "thoughts": [], "current_step": "X"})


class TestStageErrorAndOutcomes:
    """Test error log entries and explicit stage outcomes."""

    def test_stage_error_str(self):
        """Test error entries render stage, type and message."""
        error = StageError(stage="execution", message="broker down", error_type="ConnectionError")

        assert str(error) == "[execution] ConnectionError: broker down"
        data = error.to_dict()
        assert data["stage"] == "execution"
        assert data["error_type"] == "ConnectionError"
        assert "timestamp" in data

    def test_fault_from_message(self):
        """Test StageFault.from_message wraps a StageFaultError."""
        fault = StageFault.from_message("quota exceeded")

        assert isinstance(fault.error, StageFaultError)
        assert fault.message == "quota exceeded"

    def test_fault_message_falls_back_to_type(self):
        """Test an exception without text still yields a message."""
        assert StageFault(TimeoutError()).message == "TimeoutError"

    def test_success_default_update(self):
        """Test StageSuccess defaults to an empty update."""
        assert StageSuccess().update == {}

    def test_summary_is_plain_data(self):
        """Test the summary view only carries JSON-friendly values."""
        state = CycleState(symbol="BTC", timeframe="1h", similar_patterns=[])

        summary = state.summary()

        assert summary["patterns"] == 0
        assert summary["strategy_ideas"] is None
        assert summary["selected_strategy"] is None
        assert summary["errors"] == []
