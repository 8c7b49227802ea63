"""
Dependency injection container for process-wide singletons.

The orchestrator owns the circuit breaker, so it must be built once per process
and injected wherever cycles are launched. The container does that: register
the stage collaborators, then ask for ``"orchestrator"``.
"""

from functools import lru_cache
from typing import Any

from .settings import Settings, get_settings


class Container:
    """Dependency injection container with lazily built services."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        """Register a factory function for a service."""
        self._factories[name] = factory

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a singleton instance."""
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        """Get a service by name, building it from its factory on first use."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default


def setup_container(settings: Settings | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _orchestrator_factory(c: Container):
        from ..core.orchestrator import TradingOrchestrator

        stages = c.get("trading_stages")
        if stages is None:
            raise LookupError("register 'trading_stages' before requesting the orchestrator")
        return TradingOrchestrator.from_settings(stages, c.settings)

    def _runner_factory(c: Container):
        from ..core.runner import CycleRunner

        return CycleRunner.from_settings(c.get("orchestrator"), c.settings)

    container.register_factory("orchestrator", _orchestrator_factory)
    container.register_factory("runner", _runner_factory)

    return container


@lru_cache
def get_container() -> Container:
    """Get cached container instance."""
    return setup_container()
