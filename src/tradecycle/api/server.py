"""
Operator API for the trading cycle orchestrator.

Endpoints:
- GET /health: circuit breaker health, uptime and config hash
- POST /circuit-breaker/reset: manual breaker reset (the only way out of OPEN)
- POST /cycles: run one trading cycle for a symbol/timeframe
- GET /metrics: per-stage call and fault aggregates

Usage:
    >>> container = setup_container()
    >>> container.register_singleton("trading_stages", my_stages)
    >>> app = create_app(container)
    $ uvicorn myservice:app --host 0.0.0.0 --port 8000

    $ curl http://localhost:8000/health
    {"status": "HEALTHY", "consecutive_errors": 0, ...}
"""

import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config.container import Container, get_container
from ..core.audit import finish_cycle_trace, get_config_hash
from ..core.orchestrator import TradingOrchestrator
from ..core.state import create_initial_state
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector

logger = get_logger(__name__)


class CycleRequest(BaseModel):
    """Request model for the cycle endpoint."""

    symbol: str = Field(..., min_length=1, max_length=32)
    timeframe: str = Field("1h", pattern=r"^\d+[smhdwM]$")


class CycleResponse(BaseModel):
    """Response model for the cycle endpoint."""

    cycle_id: str
    symbol: str
    timeframe: str
    current_step: str
    should_execute: bool
    risk_approved: bool
    executed: bool
    execution_path: list[str] = []
    thoughts: list[str] = []
    errors: list[str] = []
    duration: float = 0.0
    health: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    consecutive_errors: int
    max_consecutive_errors: int
    execution_breaker_open: bool
    version: str
    config_hash: str
    uptime_seconds: float
    stages: list[str]


def _get_orchestrator(request: Request) -> TradingOrchestrator:
    container: Container = request.app.state.container
    try:
        return container.get("orchestrator")
    except LookupError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


def create_app(container: Container | None = None) -> FastAPI:
    """Create the operator API bound to ``container``'s orchestrator."""
    container = container or get_container()
    settings = container.settings

    app = FastAPI(title="Trade Cycle Orchestrator", version=__version__)
    app.state.container = container
    app.state.started_at = time.time()

    if settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        orchestrator = _get_orchestrator(request)
        report = orchestrator.get_health_status()
        return HealthResponse(
            **report.to_dict(),
            version=__version__,
            config_hash=get_config_hash() or "unset",
            uptime_seconds=time.time() - request.app.state.started_at,
            stages=orchestrator.stage_names,
        )

    @app.post("/circuit-breaker/reset")
    async def reset_circuit_breaker(request: Request) -> dict[str, Any]:
        orchestrator = _get_orchestrator(request)
        before = orchestrator.get_health_status()
        orchestrator.reset_error_counters()
        logger.info(
            "Circuit breaker reset via API",
            previous_status=before.status.value,
            previous_errors=before.consecutive_errors,
        )
        return orchestrator.get_health_status().to_dict()

    @app.post("/cycles", response_model=CycleResponse)
    async def run_cycle(request: Request, body: CycleRequest) -> CycleResponse:
        orchestrator = _get_orchestrator(request)
        result = await orchestrator.run_cycle(create_initial_state(body.symbol, body.timeframe))

        finish_cycle_trace(
            result,
            settings.orchestrator.persist_snapshots,
            settings.orchestrator.artifacts_dir,
        )

        state = result.state
        return CycleResponse(
            cycle_id=state.cycle_id,
            symbol=state.symbol,
            timeframe=state.timeframe,
            current_step=state.current_step,
            should_execute=state.should_execute,
            risk_approved=state.risk_approved,
            executed=state.execution_result is not None,
            execution_path=result.execution_path,
            thoughts=state.thoughts,
            errors=[str(e) for e in state.errors],
            duration=result.duration,
            health=result.health.to_dict(),
        )

    @app.get("/metrics")
    async def metrics() -> dict[str, Any]:
        return get_metrics_collector().get_business_metrics()

    return app
