"""Exceptions raised inside the cycle pipeline."""


class TradeCycleError(Exception):
    """Base class for orchestrator errors."""


class StateMergeError(TradeCycleError):
    """A stage update could not be merged into the cycle state."""


class StageInputError(TradeCycleError):
    """A stage was reached without the state fields it requires."""

    def __init__(self, stage: str, missing: list[str]):
        self.stage = stage
        self.missing = missing
        super().__init__(f"Stage '{stage}' is missing required inputs: {', '.join(missing)}")


class StageFaultError(TradeCycleError):
    """A stage reported a fault without raising."""
