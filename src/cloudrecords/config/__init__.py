"""Configuration management for the record client."""

from .api import CircuitBreakerState, CloudKitAPIConfig
from .settings import Settings

__all__ = ["Settings", "CloudKitAPIConfig", "CircuitBreakerState"]
