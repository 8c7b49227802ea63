"""Configuration management with dependency injection and validation."""

from .container import Container, get_container, setup_container
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "Container", "get_container", "setup_container"]
