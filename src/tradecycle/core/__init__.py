"""
Core orchestration: cycle state, stages, circuit breaker, fallbacks and the driver.
"""

from .circuit_breaker import CircuitBreaker, HealthReport, HealthStatus
from .fallbacks import FallbackPolicy
from .orchestrator import CycleResult, StageRecord, StageStatus, TradingOrchestrator
from .runner import CycleRunner, run_trading_cycle
from .stages import Stage, StageName, TradingStages, build_trading_stages
from .state import (
    CycleState,
    RiskAssessment,
    StageError,
    StageFault,
    StageSuccess,
    create_initial_state,
    merge_state,
)

__all__ = [
    "CircuitBreaker",
    "HealthReport",
    "HealthStatus",
    "FallbackPolicy",
    "CycleResult",
    "StageRecord",
    "StageStatus",
    "TradingOrchestrator",
    "CycleRunner",
    "run_trading_cycle",
    "Stage",
    "StageName",
    "TradingStages",
    "build_trading_stages",
    "CycleState",
    "RiskAssessment",
    "StageError",
    "StageFault",
    "StageSuccess",
    "create_initial_state",
    "merge_state",
]
