"""
Stage definitions for the trading pipeline.

Stage functions are supplied by collaborators (market data adapters, pattern
memory, LLM strategy synthesis, risk manager, broker). Each one takes the
current ``CycleState`` and returns a partial update. Expected-but-degraded
outcomes ("no patterns found", "no viable strategy") are ordinary return
values; a stage raises only for genuine errors such as network failures,
malformed responses or its own timeouts.

A stage may also return ``StageSuccess``/``StageFault`` explicitly.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .state import CycleState, StageOutcome

StageFunction = Callable[[CycleState], Awaitable[Mapping[str, Any] | StageOutcome]]
StatePredicate = Callable[[CycleState], bool]


class StageName(StrEnum):
    """Names of the stages in the trading pipeline, in execution order."""

    MARKET_DATA = "market_data"
    PATTERN_RECALL = "pattern_recall"
    REGIME_CLASSIFICATION = "regime_classification"
    STRATEGY_SYNTHESIS = "strategy_synthesis"
    BACKTEST = "backtest"
    STRATEGY_SELECTION = "strategy_selection"
    RISK_ASSESSMENT = "risk_assessment"
    EXECUTION = "execution"
    LEARNING = "learning"


@dataclass
class Stage:
    """One named unit of work plus the rules the driver applies around it."""

    name: str
    func: StageFunction
    condition: StatePredicate | None = None
    skip_reason: str = "condition not met"
    requires: tuple[str, ...] = ()
    halt_when: StatePredicate | None = None
    halt_reason: str = ""
    terminal: bool = False

    @property
    def marker(self) -> str:
        return self.name.upper()

    def should_execute(self, state: CycleState) -> bool:
        """Branch predicate over the already-merged state."""
        if self.condition:
            return self.condition(state)
        return True

    def missing_inputs(self, state: CycleState) -> list[str]:
        return [name for name in self.requires if getattr(state, name, None) is None]

    def should_halt(self, state: CycleState) -> bool:
        """Whether the cycle ends after this stage."""
        if self.terminal:
            return True
        if self.halt_when:
            return self.halt_when(state)
        return False


@dataclass
class TradingStages:
    """The collaborator functions for each trading stage."""

    market_data: StageFunction
    pattern_recall: StageFunction
    regime_classification: StageFunction
    strategy_synthesis: StageFunction
    backtest: StageFunction
    strategy_selection: StageFunction
    risk_assessment: StageFunction
    execution: StageFunction
    learning: StageFunction | None = None


def has_insufficient_market_data(min_candles: int) -> StatePredicate:
    def predicate(state: CycleState) -> bool:
        return len(state.candles) < min_candles or state.indicators is None

    return predicate


def has_selected_strategy(state: CycleState) -> bool:
    return state.selected_strategy is not None


def is_execution_approved(state: CycleState) -> bool:
    return state.should_execute and state.signal is not None and state.risk_approved


def has_execution_to_learn_from(state: CycleState) -> bool:
    return state.should_learn and state.execution_result is not None


def build_trading_stages(stages: TradingStages, min_candles: int = 50) -> list[Stage]:
    """Compose the fixed trading stage list with its branch predicates."""
    pipeline = [
        Stage(
            StageName.MARKET_DATA,
            stages.market_data,
            halt_when=has_insufficient_market_data(min_candles),
            halt_reason=f"insufficient market data (need {min_candles} candles and indicators)",
        ),
        Stage(StageName.PATTERN_RECALL, stages.pattern_recall, requires=("indicators",)),
        Stage(StageName.REGIME_CLASSIFICATION, stages.regime_classification, requires=("indicators",)),
        Stage(
            StageName.STRATEGY_SYNTHESIS,
            stages.strategy_synthesis,
            requires=("similar_patterns", "regime"),
        ),
        Stage(StageName.BACKTEST, stages.backtest, requires=("strategy_ideas",)),
        Stage(StageName.STRATEGY_SELECTION, stages.strategy_selection, requires=("strategy_ideas",)),
        Stage(
            StageName.RISK_ASSESSMENT,
            stages.risk_assessment,
            condition=has_selected_strategy,
            skip_reason="no strategy selected",
            requires=("selected_strategy",),
        ),
        Stage(
            StageName.EXECUTION,
            stages.execution,
            condition=is_execution_approved,
            skip_reason="no approved signal",
            requires=("risk_assessment", "signal"),
            terminal=stages.learning is None,
        ),
    ]

    if stages.learning is not None:
        pipeline.append(
            Stage(
                StageName.LEARNING,
                stages.learning,
                condition=has_execution_to_learn_from,
                skip_reason="no execution to learn from",
                requires=("execution_result",),
                terminal=True,
            )
        )

    return pipeline
