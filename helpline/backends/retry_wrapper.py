"""
Retry wrapper for generation backends with linear backoff.

Wraps a backend and turns its BackendResponse into either reply text or
one classified GenerationError. Each call walks a small state machine:

    ATTEMPTING(n) ──ok──────────────────────────▶ SUCCEEDED
         │
         ├─ retryable and n < max_attempts ─▶ RETRYING(n × base_delay) ─▶ ATTEMPTING(n+1)
         │
         └─ permanent, or attempts exhausted ─▶ FAILED(kind)

Retried (transient):
- 429: rate limited
- 503: service unavailable
- timeouts and network errors
- any other failure, including an answer with no extractable text

Never retried (permanent):
- 401: invalid credential
- no credential configured
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from helpline.backends.base import CREDENTIALS, EMPTY, EMPTY_REPLY, TIMEOUT, BackendResponse, BaseBackend
from helpline.errors import (
    GenerationError,
    MissingCredentialError,
    UpstreamAuthError,
    UpstreamFormatError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class _Verdict:
    """How one failed attempt should be handled."""
    retryable: bool
    reason: str
    error: GenerationError


def classify(response: BackendResponse) -> _Verdict:
    """Map a failed (or empty) BackendResponse to a retry decision and final error."""
    if response.error_kind == CREDENTIALS:
        return _Verdict(False, "missing credential", MissingCredentialError(response.error))
    if response.status_code == 401:
        return _Verdict(
            False, "invalid credential",
            UpstreamAuthError("Invalid API key. Please check your API key."),
        )
    if response.status_code == 429:
        return _Verdict(
            True, "rate limit hit",
            UpstreamRateLimitError("Rate limit exceeded. Please wait a moment and try again."),
        )
    if response.status_code == 503:
        return _Verdict(
            True, "service unavailable",
            UpstreamUnavailableError("Service temporarily unavailable. Please try again later."),
        )
    if response.error_kind == TIMEOUT:
        return _Verdict(True, "request timeout", UpstreamTimeoutError("Request timeout. Please try again."))
    if response.error_kind == EMPTY:
        return _Verdict(
            True, "empty response",
            UpstreamFormatError(f"Failed to generate reply: {response.error}"),
        )
    cause = response.error or f"HTTP {response.status_code}"
    return _Verdict(True, "error occurred", GenerationError(f"Failed to generate reply: {cause}"))


class RetryableBackendWrapper:
    """
    Wraps any backend with bounded, linearly backed-off retries.

    The delay before attempt n+1 is n × base_delay seconds. `sleep` is
    injectable so callers (and tests) can observe or skip the waits.
    """

    def __init__(
        self,
        backend: BaseBackend,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Sleep | None = None,
    ):
        self.backend = backend
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep

        self.name = backend.name

    def _backoff_seconds(self, attempt: int) -> float:
        """Delay after failed attempt N (1-based): linear in N."""
        return attempt * self.base_delay

    async def generate(self, prompt: str) -> str:
        """Return reply text, or raise a classified GenerationError."""
        attempt = 1
        state = RetryState.ATTEMPTING

        while state is RetryState.ATTEMPTING:
            response = await self.backend.generate(prompt)

            if response.ok:
                text = response.text
                if text:
                    state = RetryState.SUCCEEDED
                    logger.debug(
                        "Backend '%s' %s on attempt %d (%.0fms)",
                        self.name, state.value, attempt, response.latency_ms,
                    )
                    return text
                logger.error("Backend '%s' returned no extractable text: %s", self.name, response.data)
                response.error = EMPTY_REPLY
                response.error_kind = EMPTY

            verdict = classify(response)

            if not verdict.retryable or attempt >= self.max_attempts:
                state = RetryState.FAILED
                logger.error(
                    "Backend '%s' %s after %d/%d attempts: %s (%s)",
                    self.name, state.value, attempt, self.max_attempts,
                    verdict.reason, response.error,
                )
                raise verdict.error

            state = RetryState.RETRYING
            delay = self._backoff_seconds(attempt)
            logger.warning(
                "Backend '%s' %s, %s in %.1fs (attempt %d/%d)",
                self.name, verdict.reason, state.value, delay, attempt, self.max_attempts,
            )
            await self._sleep(delay)
            attempt += 1
            state = RetryState.ATTEMPTING

