"""
Global pytest configuration and fixtures for test isolation.

Resets process-wide singletons (metrics collector, config hash, cached
settings/container, per-trace probe timings) between tests and provides a
happy-path stage set for the trading pipeline.
"""

import copy
import sys

import pytest

from tradecycle.core.stages import TradingStages
from tradecycle.core.state import RiskAssessment

# Stage outputs for a cycle where everything goes right
HAPPY_UPDATES = {
    "market_data": {
        "candles": [{"close": 100.0 + i, "volume": 10.0} for i in range(60)],
        "indicators": {"rsi": 55.0, "sma_20": 120.5},
        "portfolio": {"cash": 10_000.0},
    },
    "pattern_recall": {
        "similar_patterns": [{"id": "p-1", "similarity": 0.91, "outcome": "up"}],
        "bias": "BULLISH",
        "thoughts": ["Recalled 1 similar pattern"],
    },
    "regime_classification": {"regime": "TRENDING_UP"},
    "strategy_synthesis": {
        "strategy_ideas": [{"name": "sma_cross", "parameters": {"fast": 10, "slow": 30}}],
    },
    "backtest": {"backtest_results": [{"strategy": "sma_cross", "sharpe": 1.4}]},
    "strategy_selection": {"selected_strategy": {"name": "sma_cross"}, "should_execute": True},
    "risk_assessment": {
        "risk_assessment": RiskAssessment(approved=True, reason="within limits"),
        "signal": {"side": "BUY", "size": 0.1},
        "should_execute": True,
    },
    "execution": {"execution_result": {"order_id": "o-1", "status": "FILLED"}, "should_learn": True},
    "learning": {"thoughts": ["Recorded trade outcome"]},
}


def _returning(update):
    async def stage(state):
        return copy.deepcopy(update)

    return stage


def reset_all_global_state():
    """Reset all global state held by tradecycle modules."""
    from tradecycle.config.container import get_container
    from tradecycle.config.settings import get_settings
    from tradecycle.core.audit import _reset_config_hash_for_tests

    get_settings.cache_clear()
    get_container.cache_clear()
    _reset_config_hash_for_tests()

    if "tradecycle.observability.metrics" in sys.modules:
        sys.modules["tradecycle.observability.metrics"]._metrics_collector = None

    if "tradecycle.observability.probe" in sys.modules:
        sys.modules["tradecycle.observability.probe"]._METRICS_STORE.clear()


@pytest.fixture(autouse=True)
def test_isolation():
    """Per-test isolation to ensure clean state for each test."""
    reset_all_global_state()
    yield


@pytest.fixture
def happy_updates():
    """A private copy of the happy-path stage outputs."""
    return copy.deepcopy(HAPPY_UPDATES)


@pytest.fixture
def make_trading_stages():
    """Build ``TradingStages`` from happy-path functions, overriding some by name."""

    def _make(include_learning: bool = True, **overrides) -> TradingStages:
        functions = {name: _returning(update) for name, update in HAPPY_UPDATES.items()}
        if not include_learning:
            functions.pop("learning")
        functions.update(overrides)
        return TradingStages(**functions)

    return _make


@pytest.fixture
def failing():
    """Build a stage function that raises ``exc_type(message)``."""

    def _make(message: str = "upstream unavailable", exc_type: type[Exception] = RuntimeError):
        async def stage(state):
            raise exc_type(message)

        return stage

    return _make
