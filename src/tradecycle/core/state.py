"""
Cycle state record and the merge policy used by the pipeline driver.

A ``CycleState`` is created per trading cycle and progressively filled in by the
stages. Stages never mutate it; they return partial updates which the driver
folds in with ``merge_state``:

- ``thoughts`` and ``errors`` are append-only logs, updates are concatenated
- every other field named by an update overwrites the current value
- fields an update does not name keep their value
"""

import dataclasses
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .errors import StageFaultError, StateMergeError

LOG_FIELDS = ("thoughts", "errors")

# Set once at construction; stage updates may not touch them
IDENTITY_FIELDS = ("symbol", "timeframe", "cycle_id", "started_at")


@dataclass(frozen=True)
class StageError:
    """One entry of the cycle error log."""

    stage: str
    message: str
    error_type: str = "Exception"
    consecutive_errors: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return f"[{self.stage}] {self.error_type}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "message": self.message,
            "error_type": self.error_type,
            "consecutive_errors": self.consecutive_errors,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Outcome of the risk gate."""

    approved: bool
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RiskAssessment":
        if "approved" not in data:
            raise StateMergeError("risk_assessment mapping must contain 'approved'")
        details = {k: v for k, v in data.items() if k not in ("approved", "reason")}
        return cls(approved=bool(data["approved"]), reason=str(data.get("reason", "")), details=details)

    @classmethod
    def rejected(cls, reason: str) -> "RiskAssessment":
        return cls(approved=False, reason=reason)


def _new_cycle_id() -> str:
    return uuid.uuid4().hex[:16]


@dataclass
class CycleState:
    """State threaded through one trading cycle."""

    symbol: str
    timeframe: str
    cycle_id: str = field(default_factory=_new_cycle_id)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Market data
    candles: list[dict[str, Any]] = field(default_factory=list)
    indicators: dict[str, Any] | None = None
    portfolio: dict[str, Any] | None = None

    # Append-only logs
    thoughts: list[str] = field(default_factory=list)
    errors: list[StageError] = field(default_factory=list)
    current_step: str = "INITIALIZED"

    # Stage outputs, populated progressively
    similar_patterns: list[dict[str, Any]] | None = None
    bias: str | None = None
    regime: str | None = None
    strategy_ideas: list[dict[str, Any]] | None = None
    backtest_results: list[dict[str, Any]] | None = None
    selected_strategy: dict[str, Any] | None = None
    should_execute: bool = False
    signal: dict[str, Any] | None = None
    risk_assessment: RiskAssessment | None = None
    execution_result: dict[str, Any] | None = None
    should_learn: bool = False

    @property
    def risk_approved(self) -> bool:
        return self.risk_assessment is not None and self.risk_assessment.approved

    def summary(self) -> dict[str, Any]:
        """JSON-friendly view used by the API and audit snapshots."""
        return {
            "cycle_id": self.cycle_id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "started_at": self.started_at.isoformat(),
            "current_step": self.current_step,
            "candles": len(self.candles),
            "patterns": len(self.similar_patterns) if self.similar_patterns is not None else None,
            "bias": self.bias,
            "regime": self.regime,
            "strategy_ideas": len(self.strategy_ideas) if self.strategy_ideas is not None else None,
            "selected_strategy": (self.selected_strategy or {}).get("name"),
            "should_execute": self.should_execute,
            "risk_approved": self.risk_approved,
            "risk_reason": self.risk_assessment.reason if self.risk_assessment else None,
            "executed": self.execution_result is not None,
            "thoughts": list(self.thoughts),
            "errors": [str(e) for e in self.errors],
        }


STATE_FIELDS = frozenset(f.name for f in dataclasses.fields(CycleState))


def create_initial_state(symbol: str, timeframe: str, **fields: Any) -> CycleState:
    """Build the state a caller hands to the orchestrator for one cycle."""
    if not symbol or not timeframe:
        raise ValueError("symbol and timeframe are required")
    return CycleState(symbol=symbol.upper(), timeframe=timeframe, **fields)


def validate_update(update: Any) -> None:
    """
    Check that ``update`` can be merged into a ``CycleState``.

    Raises:
        StateMergeError: the update is not a mapping, names an unknown or
            identity field, or carries a malformed log or risk field.
    """
    if not isinstance(update, Mapping):
        raise StateMergeError(f"Stage update must be a mapping, got {type(update).__name__}")

    for key, value in update.items():
        if key not in STATE_FIELDS:
            raise StateMergeError(f"Unknown state field '{key}'")
        if key in IDENTITY_FIELDS:
            raise StateMergeError(f"State field '{key}' is read-only")
        if key in LOG_FIELDS:
            if not isinstance(value, (list, tuple)):
                raise StateMergeError(f"Log field '{key}' must be a list")
            if key == "errors" and not all(isinstance(e, StageError) for e in value):
                raise StateMergeError("errors entries must be StageError instances")
        if key == "risk_assessment" and isinstance(value, Mapping) and "approved" not in value:
            raise StateMergeError("risk_assessment mapping must contain 'approved'")


def merge_state(state: CycleState, update: Mapping[str, Any]) -> CycleState:
    """Return a new state with ``update`` folded in. See ``validate_update`` for errors."""
    validate_update(update)

    changes: dict[str, Any] = {}
    for key, value in update.items():
        if key in LOG_FIELDS:
            changes[key] = [*getattr(state, key), *value]
        elif key == "risk_assessment" and isinstance(value, Mapping):
            changes[key] = RiskAssessment.from_mapping(value)
        else:
            changes[key] = value

    return dataclasses.replace(state, **changes)


@dataclass(frozen=True)
class StageSuccess:
    """A stage returned a well-formed update, possibly describing a degraded outcome."""

    update: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StageFault:
    """A stage failed; ``error`` is the cause."""

    error: BaseException

    @classmethod
    def from_message(cls, message: str) -> "StageFault":
        return cls(StageFaultError(message))

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


StageOutcome = StageSuccess | StageFault
