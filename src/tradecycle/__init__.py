"""
tradecycle - Trading Cycle Orchestrator

Runs recurring trading cycles (market data, pattern recall, regime
classification, strategy synthesis, backtest, selection, risk assessment,
execution, learning) as a sequential stage pipeline with circuit-breaker
protection, per-stage fallbacks and operator-facing health status.

Quick Start:
    >>> from tradecycle import TradingOrchestrator, TradingStages, create_initial_state
    >>> from tradecycle.config import get_settings
    >>>
    >>> stages = TradingStages(
    ...     market_data=fetch_candles,
    ...     pattern_recall=recall_patterns,
    ...     regime_classification=classify_regime,
    ...     strategy_synthesis=synthesize_strategies,
    ...     backtest=run_backtests,
    ...     strategy_selection=select_strategy,
    ...     risk_assessment=assess_risk,
    ...     execution=execute_signal,
    ... )
    >>> orchestrator = TradingOrchestrator.from_settings(stages, get_settings())
    >>> state = await orchestrator.invoke(create_initial_state("BTC", "1h"))
    >>> state.current_step, [str(e) for e in state.errors]
    >>> orchestrator.get_health_status().status
    <HealthStatus.HEALTHY: 'HEALTHY'>

Each stage is ``async (CycleState) -> dict`` of the fields it sets. Degraded
outcomes are returned as data; only genuine failures raise.

Configuration:
    - TRC_ORCHESTRATOR__CIRCUIT_BREAKER_FAILURE_THRESHOLD=5
    - TRC_ORCHESTRATOR__MIN_CANDLES=50
    - TRC_RUNNER__SYMBOLS='["BTC","ETH"]'
    - TRC_OBSERVABILITY__LOG_LEVEL=INFO
"""

__version__ = "1.0.0"

from .config.settings import Settings
from .core.circuit_breaker import HealthReport, HealthStatus
from .core.orchestrator import TradingOrchestrator
from .core.stages import Stage, StageName, TradingStages
from .core.state import CycleState, StageFault, StageSuccess, create_initial_state

__all__ = [
    "TradingOrchestrator",
    "TradingStages",
    "Stage",
    "StageName",
    "CycleState",
    "StageFault",
    "StageSuccess",
    "create_initial_state",
    "HealthReport",
    "HealthStatus",
    "Settings",
]
