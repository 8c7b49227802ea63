"""
Recurring trading cycles.

``CycleRunner`` starts one cycle per symbol concurrently through a single
orchestrator, so all of them share its circuit breaker, and repeats on an
interval until stopped.
"""

import asyncio

from ..config.settings import Settings
from ..observability.logging import get_logger
from ..observability.metrics import timer
from .audit import finish_cycle_trace
from .orchestrator import CycleResult, TradingOrchestrator
from .state import CycleState, create_initial_state

logger = get_logger(__name__)


class CycleRunner:
    """Runs trading cycles for a set of symbols on a fixed interval."""

    def __init__(
        self,
        orchestrator: TradingOrchestrator,
        symbols: list[str],
        timeframe: str,
        interval: float = 300.0,
        persist_snapshots: bool = False,
        artifacts_dir: str = "artifacts",
    ):
        if not symbols:
            raise ValueError("CycleRunner needs at least one symbol")
        self.orchestrator = orchestrator
        self.symbols = symbols
        self.timeframe = timeframe
        self.interval = interval
        self.persist_snapshots = persist_snapshots
        self.artifacts_dir = artifacts_dir
        self.rounds_completed = 0

    @classmethod
    def from_settings(cls, orchestrator: TradingOrchestrator, settings: Settings) -> "CycleRunner":
        return cls(
            orchestrator,
            symbols=settings.runner.symbols,
            timeframe=settings.runner.timeframe,
            interval=settings.runner.cycle_interval_seconds,
            persist_snapshots=settings.orchestrator.persist_snapshots,
            artifacts_dir=str(settings.orchestrator.artifacts_dir),
        )

    async def run_once(self) -> list[CycleResult]:
        """Run one cycle per symbol concurrently, each with its own state."""
        with timer("runner.round", {"symbols": str(len(self.symbols))}):
            results = await asyncio.gather(
                *(
                    self.orchestrator.run_cycle(create_initial_state(symbol, self.timeframe))
                    for symbol in self.symbols
                )
            )

        for result in results:
            finish_cycle_trace(result, self.persist_snapshots, self.artifacts_dir)

        self.rounds_completed += 1
        health = self.orchestrator.get_health_status()
        logger.info(
            f"Round {self.rounds_completed} finished for {len(results)} symbols",
            health=health.status.value,
            failed_stages=sum(len(r.failed_stages) for r in results),
        )
        return list(results)

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Repeat ``run_once`` every ``interval`` seconds until ``stop_event`` is set."""
        logger.info(
            f"Starting recurring cycles for {', '.join(self.symbols)} every {self.interval:.0f}s"
        )
        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                continue
        logger.info("Recurring cycles stopped", rounds=self.rounds_completed)


async def run_trading_cycle(
    orchestrator: TradingOrchestrator, symbol: str, timeframe: str
) -> CycleState:
    """Run a single cycle and log its last thoughts and errors."""
    result = await orchestrator.run_trading_cycle(symbol, timeframe)

    for thought in result.thoughts[-5:]:
        logger.debug(f"  -> {thought}")

    if result.errors:
        logger.warning(f"Cycle had {len(result.errors)} errors")
        for error in result.errors[-3:]:
            logger.warning(f"  x {error}")

    return result
