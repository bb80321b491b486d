"""Retrying fetcher: one logical upstream call with bounded retries.

Transient failures (timeouts, connection errors, statuses the policy marks as
retryable) are retried with linear backoff: ``backoff_base_s * attempt``.
Anything else is terminal and returned on the spot. The fetcher never touches
the cache; composing services decide what to store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from app.core.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(StrEnum):
    TRANSIENT_UPSTREAM = "transient_upstream"
    TERMINAL_UPSTREAM = "terminal_upstream"
    EMPTY_RESULT = "empty_result"
    CACHE_UNAVAILABLE = "cache_unavailable"
    INVALID_PROMPT = "invalid_prompt"


class UpstreamError(Exception):
    """Raised by payload decoders when a 2xx response is unusable."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.TERMINAL_UPSTREAM,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ── Policy / request ────────────────────────────────────────────────


class RetryPolicy(BaseModel):
    """Retry policy for one upstream call.

    Args:
        max_attempts: Total attempts, including the first one
        timeout_s: Per-attempt timeout in seconds
        backoff_base_s: Wait before attempt n+1 is ``backoff_base_s * n``
        retry_on_status: HTTP statuses treated as transient
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=2, ge=1)
    timeout_s: float = Field(default=10.0, gt=0.0)
    backoff_base_s: float = Field(default=0.5, ge=0.0)
    retry_on_status: tuple[int, ...] = ()

    def compute_delay(self, attempt: int) -> float:
        """Delay after the given (1-indexed) failed attempt."""
        return self.backoff_base_s * attempt

    def is_transient_status(self, status_code: int) -> bool:
        return status_code in self.retry_on_status


@dataclass(frozen=True)
class RequestSpec:
    method: str
    url: str
    params: dict[str, Any] | None = None
    json: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    label: str = "upstream"


@dataclass
class RetryContext:
    attempt: int
    max_attempts: int
    last_error: ErrorKind | None = None


@dataclass
class FetchOutcome:
    """Result of :meth:`RetryingFetcher.fetch`: a response or a final failure."""

    ok: bool
    response: httpx.Response | None = None
    error_kind: ErrorKind | None = None
    message: str = ""
    status_code: int | None = None
    attempts: int = 0
    errors: list[str] = field(default_factory=list)


def _upstream_message(response: httpx.Response) -> str:
    """Provider error text, preferring a JSON ``error`` field when present."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return response.text or f"HTTP {response.status_code}"


# ── Fetcher ─────────────────────────────────────────────────────────


class RetryingFetcher:
    """Runs a :class:`RequestSpec` under a :class:`RetryPolicy`.

    Attempts are strictly sequential. Waits go through ``sleep`` (an
    ``asyncio.sleep`` by default) so a backing-off call never blocks
    unrelated requests on the same loop.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sleep = sleep

    async def fetch(self, request: RequestSpec, policy: RetryPolicy) -> FetchOutcome:
        ctx = RetryContext(attempt=0, max_attempts=policy.max_attempts)
        outcome = FetchOutcome(ok=False)

        while ctx.attempt < ctx.max_attempts:
            ctx.attempt += 1
            outcome.attempts = ctx.attempt
            try:
                response = await self._client.request(
                    request.method,
                    request.url,
                    params=request.params,
                    json=request.json,
                    headers=request.headers,
                    timeout=policy.timeout_s,
                )
            except httpx.TimeoutException as e:
                ctx.last_error = ErrorKind.TRANSIENT_UPSTREAM
                outcome.message = str(e) or "Request timed out"
                outcome.status_code = None
            except httpx.TransportError as e:
                ctx.last_error = ErrorKind.TRANSIENT_UPSTREAM
                outcome.message = str(e) or e.__class__.__name__
                outcome.status_code = None
            except httpx.RequestError as e:
                outcome.error_kind = ErrorKind.TERMINAL_UPSTREAM
                outcome.message = str(e) or e.__class__.__name__
                outcome.errors.append(outcome.message)
                logger.warning(
                    "upstream_request_invalid",
                    upstream=request.label,
                    error=outcome.message,
                )
                return outcome
            else:
                if response.is_success:
                    return FetchOutcome(
                        ok=True,
                        response=response,
                        status_code=response.status_code,
                        attempts=ctx.attempt,
                        errors=outcome.errors,
                    )
                outcome.status_code = response.status_code
                outcome.message = _upstream_message(response)
                if not policy.is_transient_status(response.status_code):
                    outcome.error_kind = ErrorKind.TERMINAL_UPSTREAM
                    outcome.errors.append(outcome.message)
                    logger.warning(
                        "upstream_terminal_error",
                        upstream=request.label,
                        status_code=response.status_code,
                        attempt=ctx.attempt,
                        error=outcome.message[:300],
                    )
                    return outcome
                ctx.last_error = ErrorKind.TRANSIENT_UPSTREAM

            outcome.errors.append(outcome.message)

            if ctx.attempt < ctx.max_attempts:
                delay = policy.compute_delay(ctx.attempt)
                logger.info(
                    "upstream_retry",
                    upstream=request.label,
                    attempt=ctx.attempt,
                    max_attempts=ctx.max_attempts,
                    status_code=outcome.status_code,
                    delay_s=delay,
                    error=outcome.message[:300],
                )
                await self._sleep(delay)

        outcome.error_kind = ctx.last_error or ErrorKind.TRANSIENT_UPSTREAM
        logger.warning(
            "upstream_retries_exhausted",
            upstream=request.label,
            attempts=ctx.attempt,
            status_code=outcome.status_code,
            error=outcome.message[:300],
        )
        return outcome
