"""Capability providers and the provider router."""

from .provider import (
    CapabilityProvider,
    ConsoleEchoProvider,
    GenerateOptions,
    ModelCapabilities,
    OllamaProvider,
    StaticResponseProvider,
)
from .router import BreakerState, CircuitBreaker, CircuitBreakerConfig, ProviderRouter

__all__ = [
    "CapabilityProvider",
    "GenerateOptions",
    "ModelCapabilities",
    "ConsoleEchoProvider",
    "StaticResponseProvider",
    "OllamaProvider",
    "ProviderRouter",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "BreakerState",
]
