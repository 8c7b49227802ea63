"""
Trading cycle orchestrator.

Runs the fixed stage list for one cycle, protecting every stage call with a
consecutive-fault circuit breaker and masking faults with conservative
fallbacks. ``invoke`` never raises: failures end up as error log entries, step
markers and health status.

One orchestrator instance owns one breaker. Cycles started concurrently through
the same instance share it, so a burst of faults on one symbol degrades every
cycle that starts afterwards until an operator calls ``reset_error_counters``.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..config.settings import Settings
from ..observability.logging import get_logger, trace_id_ctx
from ..observability.metrics import get_metrics_collector
from ..observability.probe import probe
from ..observability.tracing import add_span_attributes, trace_span
from .circuit_breaker import CircuitBreaker, HealthReport
from .errors import StageInputError
from .fallbacks import FallbackPolicy
from .stages import Stage, TradingStages, build_trading_stages
from .state import (
    CycleState,
    StageError,
    StageFault,
    StageOutcome,
    StageSuccess,
    create_initial_state,
    merge_state,
    validate_update,
)

logger = get_logger(__name__)

SKIPPED_CIRCUIT_BREAKER = "SKIPPED_CIRCUIT_BREAKER"
ORCHESTRATOR_ERROR = "ERROR"


class StageStatus(Enum):
    """How the driver handled a stage in one cycle."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    SHORT_CIRCUITED = "short_circuited"


@dataclass
class StageRecord:
    """Driver-side record of one stage in one cycle."""

    stage_name: str
    status: StageStatus
    duration: float = 0.0
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CycleResult:
    """Final state of a cycle plus what the driver did to get there."""

    state: CycleState
    stages: list[StageRecord]
    duration: float
    health: HealthReport

    @property
    def failed_stages(self) -> list[StageRecord]:
        return [s for s in self.stages if s.status == StageStatus.FAILED]

    @property
    def execution_path(self) -> list[str]:
        return [s.stage_name for s in self.stages if s.status != StageStatus.SKIPPED]


class TradingOrchestrator:
    """
    Drives trading cycles through a fixed list of stages.

    Features:
    - Branch predicates evaluated over the merged state before each stage
    - Shared consecutive-fault circuit breaker with manual reset only
    - Per-stage conservative fallbacks, hard-fail no-trade once the breaker opens
    - Early halt after terminal stages or when a stage's halt rule fires
    """

    def __init__(
        self,
        stages: list[Stage],
        failure_threshold: int = 5,
        fallback_policy: FallbackPolicy | None = None,
        name: str = "trading",
    ):
        if not stages:
            raise ValueError("orchestrator needs at least one stage")
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate stage names in pipeline '{name}': {names}")

        self.name = name
        self.stages = list(stages)
        self.breaker = CircuitBreaker(threshold=failure_threshold)
        self.fallbacks = fallback_policy or FallbackPolicy()

    @classmethod
    def from_settings(cls, trading_stages: TradingStages, settings: Settings) -> "TradingOrchestrator":
        """Build the standard trading pipeline from collaborator functions and settings."""
        config = settings.orchestrator
        return cls(
            build_trading_stages(trading_stages, min_candles=config.min_candles),
            failure_threshold=config.circuit_breaker_failure_threshold,
        )

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def invoke(self, initial_state: CycleState) -> CycleState:
        """Run one cycle and return its final state. Never raises."""
        result = await self.run_cycle(initial_state)
        return result.state

    @trace_span("orchestrator.cycle")
    async def run_cycle(self, initial_state: CycleState) -> CycleResult:
        """Run one cycle and return the final state with per-stage records."""
        token = trace_id_ctx.set(initial_state.cycle_id)
        start_time = time.perf_counter()
        records: list[StageRecord] = []
        state = initial_state

        add_span_attributes(
            cycle_id=state.cycle_id, symbol=state.symbol, timeframe=state.timeframe
        )
        logger.info(
            f"Starting trading cycle for {state.symbol} {state.timeframe}",
            pipeline=self.name,
        )

        try:
            with probe("orchestrator.cycle", state.cycle_id, symbol=state.symbol):
                if self.breaker.is_open:
                    state = self._skip_cycle(state)
                else:
                    state = await self._run_stages(state, records)
        except Exception as e:
            logger.exception(f"Cycle failed: {e}")
            state = merge_state(
                state,
                {
                    "current_step": ORCHESTRATOR_ERROR,
                    "errors": [
                        StageError(
                            stage="orchestrator",
                            message=str(e),
                            error_type=type(e).__name__,
                            consecutive_errors=self.breaker.failures,
                        )
                    ],
                    "thoughts": [f"Cycle failed with error: {e}"],
                },
            )
        finally:
            trace_id_ctx.reset(token)

        duration = time.perf_counter() - start_time
        health = self.get_health_status()

        metrics = get_metrics_collector()
        metrics.record_cycle(duration, state.current_step, len(state.errors))
        metrics.record_breaker_state(health.consecutive_errors, health.execution_breaker_open)

        logger.info(
            f"Cycle {state.cycle_id} completed in {duration:.2f}s "
            f"(step: {state.current_step}, thoughts: {len(state.thoughts)}, "
            f"errors: {len(state.errors)}, health: {health.status.value})"
        )

        return CycleResult(state=state, stages=records, duration=duration, health=health)

    async def run_trading_cycle(self, symbol: str, timeframe: str) -> CycleState:
        """Build an initial state for ``symbol``/``timeframe`` and run one cycle."""
        return await self.invoke(create_initial_state(symbol, timeframe))

    def _skip_cycle(self, state: CycleState) -> CycleState:
        """Cycle started while the breaker is open: force the no-trade outcome."""
        logger.warning("Execution circuit breaker is OPEN, skipping cycle")
        get_metrics_collector().record_fallback("orchestrator", "hard_fail")

        update = self.fallbacks.hard_fail()
        update["current_step"] = SKIPPED_CIRCUIT_BREAKER
        update["thoughts"] = ["Cycle skipped: execution circuit breaker is open"]
        update["errors"] = [
            StageError(
                stage="orchestrator",
                message="Execution circuit breaker is open",
                error_type="CircuitBreakerOpen",
                consecutive_errors=self.breaker.failures,
            )
        ]
        return merge_state(state, update)

    async def _run_stages(self, state: CycleState, records: list[StageRecord]) -> CycleState:
        for stage in self.stages:
            if self.breaker.is_open:
                # An open breaker outranks branch predicates
                update = self._short_circuit(stage, records)
            elif not stage.should_execute(state):
                logger.info(f"Skipping {stage.name}: {stage.skip_reason}", stage=stage.name)
                records.append(
                    StageRecord(stage.name, StageStatus.SKIPPED, metadata={"reason": stage.skip_reason})
                )
                state = merge_state(
                    state,
                    {
                        "current_step": f"{stage.marker}_SKIPPED",
                        "thoughts": [f"Skipped {stage.name}: {stage.skip_reason}"],
                    },
                )
                continue
            else:
                update = await self._protected_call(stage, state, records)
            state = merge_state(state, update)

            if stage.should_halt(state):
                if not stage.terminal:
                    logger.warning(f"Ending cycle after {stage.name}: {stage.halt_reason}")
                    state = merge_state(
                        state, {"thoughts": [f"Cycle ended after {stage.name}: {stage.halt_reason}"]}
                    )
                break

        return state

    def _short_circuit(self, stage: Stage, records: list[StageRecord]) -> dict[str, Any]:
        logger.warning(f"Circuit breaker open, not running {stage.name}", stage=stage.name)
        records.append(StageRecord(stage.name, StageStatus.SHORT_CIRCUITED))
        get_metrics_collector().record_fallback(stage.name, "hard_fail")
        update = self.fallbacks.hard_fail()
        update["thoughts"] = [f"Circuit breaker open, {stage.name} not run"]
        return update

    async def _protected_call(
        self, stage: Stage, state: CycleState, records: list[StageRecord]
    ) -> dict[str, Any]:
        """
        Call one stage with fault containment.

        Always returns a partial update: the stage's own update on success, its
        fallback on a fault below the threshold, and the hard-fail update on the
        fault that opens the breaker.
        """
        if self.breaker.is_open:
            return self._short_circuit(stage, records)

        metrics = get_metrics_collector()
        start_time = time.perf_counter()
        with probe(f"orchestrator.stage.{stage.name}", state.cycle_id):
            outcome = await self._call_stage(stage, state)
        duration = time.perf_counter() - start_time

        if isinstance(outcome, StageSuccess):
            metrics.record_stage_call(stage.name, duration, True)
            records.append(StageRecord(stage.name, StageStatus.COMPLETED, duration=duration))
            self.breaker.success()
            update = dict(outcome.update)
            update.setdefault("current_step", stage.marker)
            logger.debug(f"Stage '{stage.name}' completed", stage=stage.name, ms=duration * 1000)
            return update

        metrics.record_stage_call(stage.name, duration, False)
        records.append(
            StageRecord(stage.name, StageStatus.FAILED, duration=duration, error=outcome.message)
        )
        return self._fault_update(stage, outcome)

    async def _call_stage(self, stage: Stage, state: CycleState) -> StageOutcome:
        """Turn whatever the stage does into a ``StageSuccess`` or ``StageFault``."""
        missing = stage.missing_inputs(state)
        if missing:
            return StageFault(StageInputError(stage.name, missing))

        try:
            result = await stage.func(state)
        except Exception as e:
            return StageFault(e)

        if isinstance(result, StageFault):
            return result
        update = result.update if isinstance(result, StageSuccess) else result
        if update is None:
            update = {}

        try:
            validate_update(update)
        except Exception as e:
            return StageFault(e)
        return StageSuccess(update)

    def _fault_update(self, stage: Stage, fault: StageFault) -> dict[str, Any]:
        count = self.breaker.failure()
        error = StageError(
            stage=stage.name,
            message=fault.message,
            error_type=type(fault.error).__name__,
            consecutive_errors=count,
        )
        logger.error(
            f"Stage '{stage.name}' failed: {fault.message}",
            stage=stage.name,
            consecutive_errors=count,
            threshold=self.breaker.threshold,
        )

        metrics = get_metrics_collector()
        if count >= self.breaker.threshold:
            metrics.record_fallback(stage.name, "hard_fail")
            update = self.fallbacks.hard_fail()
            update["thoughts"] = [
                f"Circuit breaker OPEN after {count} consecutive faults, forcing no-trade"
            ]
        else:
            metrics.record_fallback(stage.name, "stage")
            logger.warning(f"Using fallback for {stage.name}", stage=stage.name)
            update = self.fallbacks.fallback_for(stage.name)
            update["thoughts"] = [
                *update.get("thoughts", []),
                f"Consecutive errors: {count}/{self.breaker.threshold}",
            ]

        update["errors"] = [error]
        return update

    def get_health_status(self) -> HealthReport:
        """Current breaker health. Pure: repeated calls return the same report."""
        return self.breaker.health()

    def reset_error_counters(self) -> None:
        """Operator action: clear the fault counter and close the breaker."""
        self.breaker.reset()
        get_metrics_collector().record_breaker_state(0, False)
        logger.info("Error counters reset", pipeline=self.name)
