"""
Command line entry point.

    $ tradecycle --version
    $ tradecycle serve --stages mydesk.stages:trading_stages --port 8000
    $ tradecycle run --stages mydesk.stages:trading_stages --once

``--stages`` names a ``TradingStages`` instance, or a zero-argument callable
returning one, as ``module:attribute``.
"""

import argparse
import asyncio
import importlib
import signal

import uvicorn
from opentelemetry import metrics as otel_metrics

from . import __version__
from .config.container import Container, setup_container
from .config.settings import get_settings
from .core.audit import freeze_config_and_hash
from .core.stages import TradingStages
from .observability.logging import get_logger, setup_logging
from .observability.metrics import setup_metrics
from .observability.tracing import get_tracing_manager, setup_tracing

logger = get_logger(__name__)


def load_stages(target: str) -> TradingStages:
    """Import ``module:attribute`` and return the ``TradingStages`` it names."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"--stages must look like 'module:attribute', got '{target}'")

    obj = getattr(importlib.import_module(module_name), attr)
    if callable(obj) and not isinstance(obj, TradingStages):
        obj = obj()
    if not isinstance(obj, TradingStages):
        raise TypeError(f"{target} is not a TradingStages instance")
    return obj


def build_container(stages_target: str) -> Container:
    """Configure observability, freeze the config hash and build the container."""
    settings = get_settings()
    setup_logging(settings.observability.log_level)

    if settings.observability.enable_metrics:
        setup_metrics(
            otel_metrics.get_meter(
                settings.observability.service_name, settings.observability.service_version
            )
        )

    if settings.observability.enable_tracing:
        setup_tracing(
            settings.observability.service_name,
            settings.observability.service_version,
            otlp_endpoint=settings.observability.otlp_endpoint,
        )

    freeze_config_and_hash(settings)

    container = setup_container(settings)
    container.register_singleton("trading_stages", load_stages(stages_target))
    return container


async def _run_cycles(container: Container, once: bool) -> None:
    runner = container.get("runner")
    if once:
        await runner.run_once()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    await runner.run_forever(stop_event)


def main(argv=None):
    """Main application entry point."""
    parser = argparse.ArgumentParser(description="Trading cycle orchestrator")
    parser.add_argument("--version", action="store_true", help="Show version")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Start the operator API")
    serve.add_argument("--stages", required=True, help="module:attribute of the stage set")
    serve.add_argument("--host", default=None, help="Host to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to bind to")

    run = subparsers.add_parser("run", help="Run recurring trading cycles")
    run.add_argument("--stages", required=True, help="module:attribute of the stage set")
    run.add_argument("--once", action="store_true", help="Run a single round and exit")

    args = parser.parse_args(argv)

    if args.version:
        print(f"tradecycle v{__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 1

    container = build_container(args.stages)

    if args.command == "serve":
        from .api.server import create_app

        api = container.settings.api
        uvicorn.run(
            create_app(container),
            host=args.host or api.host,
            port=args.port or api.port,
            log_config=None,
        )
    else:
        asyncio.run(_run_cycles(container, args.once))

    if container.settings.observability.enable_tracing:
        get_tracing_manager().shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
