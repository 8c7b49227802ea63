"""
Conservative substitute updates used when a stage faults.

Every fallback leaves the state well formed for the next stage: list outputs
become empty lists, decisions become "no trade". Factories build a fresh
update on every call so fallback lists are never shared between cycles.
"""

from collections.abc import Callable
from typing import Any

from ..observability.logging import get_logger
from .stages import StageName
from .state import RiskAssessment

logger = get_logger(__name__)

FallbackFactory = Callable[[], dict[str, Any]]

UNKNOWN_FALLBACK = "UNKNOWN_FALLBACK"
CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"


def _market_data() -> dict[str, Any]:
    return {
        "candles": [],
        "indicators": None,
        "thoughts": ["Market data unavailable, cycle cannot continue"],
    }


def _pattern_recall() -> dict[str, Any]:
    return {
        "similar_patterns": [],
        "bias": "NEUTRAL",
        "thoughts": ["Pattern recall failed, continuing without pattern data"],
    }


def _regime_classification() -> dict[str, Any]:
    return {
        "regime": "UNKNOWN",
        "thoughts": ["Regime classification failed, treating regime as unknown"],
    }


def _strategy_synthesis() -> dict[str, Any]:
    return {
        "strategy_ideas": [],
        "thoughts": ["Strategy synthesis failed, no strategy ideas this cycle"],
    }


def _backtest() -> dict[str, Any]:
    return {
        "backtest_results": [],
        "thoughts": ["Backtesting failed, selecting without backtest data"],
    }


def _strategy_selection() -> dict[str, Any]:
    return {
        "selected_strategy": None,
        "should_execute": False,
        "thoughts": ["Strategy selection failed, no strategy selected"],
    }


def _risk_assessment() -> dict[str, Any]:
    return {
        "risk_assessment": RiskAssessment.rejected("Risk assessment unavailable"),
        "should_execute": False,
        "signal": None,
        "thoughts": ["Risk assessment failed, rejecting trade"],
    }


def _execution() -> dict[str, Any]:
    return {
        "execution_result": None,
        "should_learn": False,
        "thoughts": ["Execution failed, no position opened"],
    }


def _learning() -> dict[str, Any]:
    return {"thoughts": ["Learning failed, but cycle completed"]}


_DEFAULT_FALLBACKS: dict[str, FallbackFactory] = {
    StageName.MARKET_DATA: _market_data,
    StageName.PATTERN_RECALL: _pattern_recall,
    StageName.REGIME_CLASSIFICATION: _regime_classification,
    StageName.STRATEGY_SYNTHESIS: _strategy_synthesis,
    StageName.BACKTEST: _backtest,
    StageName.STRATEGY_SELECTION: _strategy_selection,
    StageName.RISK_ASSESSMENT: _risk_assessment,
    StageName.EXECUTION: _execution,
    StageName.LEARNING: _learning,
}


class FallbackPolicy:
    """Maps stage names to conservative substitute updates."""

    def __init__(self, overrides: dict[str, FallbackFactory] | None = None):
        self._factories: dict[str, FallbackFactory] = dict(_DEFAULT_FALLBACKS)
        if overrides:
            self._factories.update(overrides)

    def register(self, stage_name: str, factory: FallbackFactory) -> None:
        """Add or replace the fallback for a stage."""
        self._factories[stage_name] = factory

    def fallback_for(self, stage_name: str) -> dict[str, Any]:
        """Return the fallback update for ``stage_name`` with its FALLBACK step marker."""
        factory = self._factories.get(stage_name)
        if factory is None:
            logger.warning(f"No fallback registered for stage '{stage_name}'", stage=stage_name)
            return {"current_step": UNKNOWN_FALLBACK}

        update = factory()
        update["current_step"] = f"{stage_name.upper()}_FALLBACK"
        return update

    def hard_fail(self) -> dict[str, Any]:
        """Forced no-trade update applied while the circuit breaker is open."""
        return {
            "current_step": CIRCUIT_BREAKER_OPEN,
            "selected_strategy": None,
            "should_execute": False,
            "signal": None,
            "risk_assessment": RiskAssessment.rejected("Circuit breaker open"),
            "should_learn": False,
        }
