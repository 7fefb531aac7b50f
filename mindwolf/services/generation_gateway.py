"""Resilient generation gateway.

Providers are tried in rank order. Each gets bounded retries with
exponential backoff, guarded by its own circuit breaker. When every remote
provider is exhausted or open, the local template provider answers, so a
speech turn always gets some text.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.generation import (
    CircuitState,
    GenerationAttempt,
    GenerationPrompt,
    GenerationResult,
    ProviderKind,
    SessionMode,
)
from .providers import GenerationProvider, LocalTemplateProvider, ProviderError, build_provider

logger = logging.getLogger(__name__)

AttemptListener = Callable[[GenerationAttempt], None]


class RetryPolicy(BaseModel):
    """Per-provider retry budget."""
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=8.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given (1-based) failed attempt."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


class CircuitBreaker:
    """Closed/Open/HalfOpen state machine for one provider.

    Closed -> Open after ``failure_threshold`` consecutive failures.
    Open -> HalfOpen once ``cooldown`` seconds have passed; exactly one trial
    call is let through. HalfOpen -> Closed on success, -> Open on failure.
    All transitions happen under the breaker's lock.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        cooldown: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    async def acquire(self) -> bool:
        """Return True when a call may go to the provider right now."""
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.OPEN:
                if self.clock() - self.opened_at < self.cooldown:
                    return False
                self.state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info(f"Circuit for {self.name} half-open, allowing a trial call")
                return True
            # Half-open: only the single trial call is allowed
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    async def record_success(self) -> None:
        async with self._lock:
            if self.state != CircuitState.CLOSED:
                logger.info(f"Circuit for {self.name} closed")
            self.state = CircuitState.CLOSED
            self.consecutive_failures = 0
            self.opened_at = None
            self._trial_in_flight = False

    def release_trial(self) -> None:
        """Give back an unfinished half-open trial, e.g. when the call was cancelled."""
        if self.state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False

    async def record_failure(self) -> None:
        async with self._lock:
            self.consecutive_failures += 1
            if self.state == CircuitState.HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
                if self.state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit for {self.name} opened after {self.consecutive_failures} "
                        f"consecutive failures, cooling down for {self.cooldown}s"
                    )
                self.state = CircuitState.OPEN
                self.opened_at = self.clock()
                self._trial_in_flight = False


class GenerationGateway:
    """Turns a prompt into text through a ranked provider chain."""

    def __init__(
        self,
        providers: List[GenerationProvider],
        retry: Optional[RetryPolicy] = None,
        failure_threshold: int = 3,
        cooldown: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retry = retry or RetryPolicy()
        self.sleep = sleep
        self.clock = clock

        local = [p for p in providers if p.config.kind == ProviderKind.LOCAL]
        self.providers = [p for p in providers if p.config.kind != ProviderKind.LOCAL]
        self.fallback: GenerationProvider = local[0] if local else LocalTemplateProvider()

        self.breakers: Dict[str, CircuitBreaker] = {
            p.name: CircuitBreaker(p.name, failure_threshold, cooldown, clock) for p in self.providers
        }
        self._listeners: List[AttemptListener] = []

    def add_listener(self, listener: AttemptListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: AttemptListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def breaker_for(self, provider_name: str) -> CircuitBreaker:
        return self.breakers[provider_name]

    def _ordered(self, session_mode: SessionMode) -> List[GenerationProvider]:
        """Session mode tries session-capable providers first; request mode uses request providers only."""
        request = [p for p in self.providers if not p.supports_session]
        if session_mode == SessionMode.SESSION:
            return [p for p in self.providers if p.supports_session] + request
        return request

    def _report(self, attempt: GenerationAttempt, listener: Optional[AttemptListener] = None) -> None:
        listeners = list(self._listeners)
        if listener is not None:
            listeners.append(listener)
        for callback in listeners:
            try:
                callback(attempt)
            except Exception:
                logger.exception("Generation telemetry listener failed")

    async def generate(
        self,
        prompt: GenerationPrompt,
        session_mode: SessionMode = SessionMode.REQUEST,
        listener: Optional[AttemptListener] = None,
    ) -> GenerationResult:
        """Generate text for a prompt.

        ``listener`` receives the attempts of this call only, after the
        gateway-wide listeners.

        Raises:
            ProviderError: only if the local fallback fails too.
        """
        started = self.clock()
        attempts = 0

        for provider in self._ordered(session_mode):
            breaker = self.breakers[provider.name]
            mode = SessionMode.SESSION if provider.supports_session else SessionMode.REQUEST

            for attempt in range(1, self.retry.max_attempts + 1):
                if not await breaker.acquire():
                    logger.info(f"Skipping {provider.name}: circuit {breaker.state.value}")
                    break

                attempts += 1
                attempt_started = self.clock()
                try:
                    text = await asyncio.wait_for(provider.generate(prompt), timeout=provider.config.timeout)
                except asyncio.CancelledError:
                    breaker.release_trial()
                    self._report(GenerationAttempt(
                        provider=provider.name,
                        attempt=attempt,
                        success=False,
                        latency_ms=(self.clock() - attempt_started) * 1000,
                        session_mode=mode,
                        error="cancelled",
                        circuit_state=breaker.state,
                    ), listener)
                    raise
                except Exception as e:
                    # Anything an adapter raises counts as a failed attempt
                    if isinstance(e, asyncio.TimeoutError):
                        error = f"timed out after {provider.config.timeout}s"
                    elif isinstance(e, ProviderError):
                        error = str(e)
                    else:
                        error = f"unexpected {type(e).__name__}: {e}"
                    await breaker.record_failure()
                    self._report(GenerationAttempt(
                        provider=provider.name,
                        attempt=attempt,
                        success=False,
                        latency_ms=(self.clock() - attempt_started) * 1000,
                        session_mode=mode,
                        error=error,
                        circuit_state=breaker.state,
                    ), listener)
                    logger.warning(f"{provider.name} attempt {attempt}/{self.retry.max_attempts} failed: {error}")

                    if attempt < self.retry.max_attempts and breaker.state != CircuitState.OPEN:
                        await self.sleep(self.retry.delay_for(attempt))
                    continue

                await breaker.record_success()
                latency_ms = (self.clock() - attempt_started) * 1000
                self._report(GenerationAttempt(
                    provider=provider.name,
                    attempt=attempt,
                    success=True,
                    latency_ms=latency_ms,
                    session_mode=mode,
                    circuit_state=breaker.state,
                ), listener)
                logger.debug(f"{provider.name} answered in {latency_ms:.0f}ms")
                return GenerationResult(
                    text=text,
                    provider=provider.name,
                    attempts=attempts,
                    latency_ms=(self.clock() - started) * 1000,
                )

            logger.info(f"Provider {provider.name} exhausted, failing over")

        attempts += 1
        attempt_started = self.clock()
        try:
            text = await self.fallback.generate(prompt)
        except Exception as e:
            self._report(GenerationAttempt(
                provider=self.fallback.name,
                attempt=1,
                success=False,
                latency_ms=(self.clock() - attempt_started) * 1000,
                error=str(e),
            ), listener)
            raise ProviderError(f"Local fallback failed: {e}") from e

        self._report(GenerationAttempt(
            provider=self.fallback.name,
            attempt=1,
            success=True,
            latency_ms=(self.clock() - attempt_started) * 1000,
        ), listener)
        logger.info(f"Using local fallback text for {prompt.speaker_name or 'speaker'}")
        return GenerationResult(
            text=text,
            provider=self.fallback.name,
            attempts=attempts,
            latency_ms=(self.clock() - started) * 1000,
            used_fallback=True,
        )

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()


def gateway_from_settings(settings) -> GenerationGateway:
    """Build a gateway from application settings."""
    providers = [build_provider(config) for config in settings.provider_configs()]
    logger.info(f"Generation providers: {', '.join(p.name for p in providers)}")
    return GenerationGateway(
        providers,
        retry=RetryPolicy(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
        ),
        failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
        cooldown=settings.BREAKER_COOLDOWN,
    )
