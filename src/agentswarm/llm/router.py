"""Routes generation requests across providers with fallback and circuit breaking."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..errors import AllProvidersFailedError, ProviderNotFoundError
from .provider import CapabilityProvider, GenerateOptions

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    cooldown: float = 30.0


class CircuitBreaker:
    """Consecutive-failure breaker for one provider.

    The breaker opens once ``failure_threshold`` consecutive failures are
    recorded and rejects calls until ``cooldown`` seconds have passed. After
    the cooldown exactly one trial call is let through while the breaker is
    half-open; every other caller is rejected until that call reports back.
    Success closes the breaker, failure opens it again for another cooldown.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.consecutive_failures = 0
        self.open_until: Optional[float] = None
        self.state = BreakerState.CLOSED
        self.rejected = 0
        self._trial_in_flight = False

    def allow_request(self) -> bool:
        if self.state is BreakerState.OPEN:
            if self.open_until is None or self._clock() < self.open_until:
                self.rejected += 1
                return False
            self.state = BreakerState.HALF_OPEN
            logger.info("Circuit breaker '%s' half-open (trial call)", self.name)
        if self.state is BreakerState.HALF_OPEN:
            if self._trial_in_flight:
                self.rejected += 1
                return False
            self._trial_in_flight = True
        return True

    def release(self) -> None:
        """Free the half-open trial slot for a call that ended without an outcome."""

        self._trial_in_flight = False

    def record_success(self) -> None:
        if self.state is not BreakerState.CLOSED:
            logger.info("Circuit breaker '%s' closed", self.name)
        self.consecutive_failures = 0
        self.open_until = None
        self.state = BreakerState.CLOSED
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._trial_in_flight = False
        self.consecutive_failures += 1
        if (
            self.state is BreakerState.HALF_OPEN
            or self.consecutive_failures >= self.config.failure_threshold
        ):
            self._open()

    def _open(self) -> None:
        self.state = BreakerState.OPEN
        self.open_until = self._clock() + self.config.cooldown
        logger.warning(
            "Circuit breaker '%s' opened after %d consecutive failure(s)",
            self.name,
            self.consecutive_failures,
        )

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    def status(self) -> Dict[str, Any]:
        remaining = 0.0
        if self.state is BreakerState.OPEN and self.open_until is not None:
            remaining = max(0.0, self.open_until - self._clock())
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "cooldown_remaining": remaining,
            "rejected": self.rejected,
        }


@dataclass
class ProviderStats:
    request_count: int = 0
    error_count: int = 0
    last_used: Optional[datetime] = None

    @property
    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count


@dataclass
class _Entry:
    provider: CapabilityProvider
    breaker: CircuitBreaker
    stats: ProviderStats = field(default_factory=ProviderStats)


class ProviderRouter:
    """Holds named providers and picks one per request.

    Providers are tried in order: the requested provider, the default, then
    the rest in registration order. A provider whose breaker is open is not
    called at all.
    """

    def __init__(
        self,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.breaker_config = breaker_config or CircuitBreakerConfig()
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._default: Optional[str] = None

    def register_provider(
        self, name: str, provider: CapabilityProvider, *, default: bool = False
    ) -> None:
        breaker = CircuitBreaker(name, self.breaker_config, clock=self._clock)
        self._entries[name] = _Entry(provider=provider, breaker=breaker)
        if default or self._default is None:
            self._default = name

    def set_default_provider(self, name: str) -> None:
        if name not in self._entries:
            raise ProviderNotFoundError(name)
        self._default = name

    @property
    def default_provider(self) -> Optional[str]:
        return self._default

    @property
    def providers(self) -> Dict[str, CapabilityProvider]:
        return {name: entry.provider for name, entry in self._entries.items()}

    def breaker(self, name: str) -> CircuitBreaker:
        try:
            return self._entries[name].breaker
        except KeyError as exc:
            raise ProviderNotFoundError(name) from exc

    def _candidates(self, preferred: Optional[str]) -> List[str]:
        order: List[str] = []
        if preferred and preferred in self._entries:
            order.append(preferred)
        if self._default and self._default not in order:
            order.append(self._default)
        order.extend(name for name in self._entries if name not in order)
        return order

    def _begin(self, name: str) -> Optional[_Entry]:
        entry = self._entries[name]
        if not entry.breaker.allow_request():
            logger.debug("Skipping provider %s: circuit open", name)
            return None
        entry.stats.request_count += 1
        entry.stats.last_used = datetime.now()
        return entry

    def _fail(self, name: str, entry: _Entry, exc: BaseException, errors: Dict[str, str]) -> None:
        entry.stats.error_count += 1
        entry.breaker.record_failure()
        errors[name] = str(exc) or exc.__class__.__name__
        logger.warning("Provider %s failed, trying fallback: %s", name, errors[name])

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        preferred = options.preferred_provider if options else None
        errors: Dict[str, str] = {}
        for name in self._candidates(preferred):
            entry = self._begin(name)
            if entry is None:
                errors[name] = "circuit open"
                continue
            try:
                result = await entry.provider.generate(prompt, options)
            except Exception as exc:
                self._fail(name, entry, exc, errors)
                continue
            except BaseException:
                entry.breaker.release()
                raise
            entry.breaker.record_success()
            return result
        raise AllProvidersFailedError(errors)

    async def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        """Stream from the first healthy provider.

        Fallback only happens before the first chunk is produced; an error
        after that point is recorded against the provider and re-raised.
        """

        preferred = options.preferred_provider if options else None
        errors: Dict[str, str] = {}
        for name in self._candidates(preferred):
            if not self._entries[name].provider.capabilities.supports_streaming:
                errors[name] = "streaming not supported"
                continue
            entry = self._begin(name)
            if entry is None:
                errors[name] = "circuit open"
                continue
            started = False
            try:
                async for chunk in entry.provider.generate_stream(prompt, options):
                    started = True
                    yield chunk
            except Exception as exc:
                if started:
                    entry.stats.error_count += 1
                    entry.breaker.record_failure()
                    raise
                self._fail(name, entry, exc, errors)
                continue
            except BaseException:
                # consumer closed the stream or the task was cancelled
                entry.breaker.release()
                raise
            entry.breaker.record_success()
            return
        raise AllProvidersFailedError(errors)

    async def embed(self, text: str, provider_name: Optional[str] = None) -> List[float]:
        if provider_name is not None and provider_name not in self._entries:
            raise ProviderNotFoundError(provider_name)
        errors: Dict[str, str] = {}
        for name in self._candidates(provider_name):
            if not self._entries[name].provider.capabilities.supports_embedding:
                continue
            entry = self._begin(name)
            if entry is None:
                errors[name] = "circuit open"
                continue
            try:
                vector = await entry.provider.embed(text)
            except Exception as exc:
                self._fail(name, entry, exc, errors)
                continue
            except BaseException:
                entry.breaker.release()
                raise
            entry.breaker.record_success()
            return vector
        raise AllProvidersFailedError(errors)

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                "request_count": entry.stats.request_count,
                "error_count": entry.stats.error_count,
                "last_used": entry.stats.last_used.isoformat() if entry.stats.last_used else None,
                "capabilities": entry.provider.capabilities.to_dict(),
            }
            for name, entry in self._entries.items()
        }

    def health_check(self) -> Dict[str, bool]:
        return {
            name: not entry.breaker.is_open and entry.stats.error_rate < 0.5
            for name, entry in self._entries.items()
        }

    def breaker_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: entry.breaker.status() for name, entry in self._entries.items()}
