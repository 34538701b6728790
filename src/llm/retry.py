# src/llm/retry.py — v2
"""Retry policy with exponential backoff and a per-attempt timeout.

Only transient error types are retried; anything classified ``unknown``
fails on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class LLMRetryExhausted(Exception):
    """All retries exhausted for an LLM call."""

    def __init__(self, label: str, error_type: str, attempts: int, last_error: Exception):
        self.label = label
        self.error_type = error_type
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Call '{label}' failed after {attempts} attempts ({error_type}): {last_error}"
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for a specific error type."""

    max_retries: int
    base_delay_s: float
    backoff_factor: float = 2.0
    jitter: bool = True


DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "rate_limit": RetryConfig(max_retries=3, base_delay_s=2.0),
    "timeout": RetryConfig(max_retries=2, base_delay_s=1.0, backoff_factor=1.0),
    "server_error": RetryConfig(max_retries=3, base_delay_s=5.0),
    "connection": RetryConfig(max_retries=2, base_delay_s=1.0),
}


def classify_error(error: Exception) -> str:
    """Classify an exception into a retry error type."""
    msg = str(error).lower()
    name = type(error).__name__.lower()
    status = getattr(error, "status_code", None)

    if status == 429 or "429" in msg or "rate" in msg:
        return "rate_limit"
    if isinstance(error, asyncio.TimeoutError) or "timeout" in name or "timeout" in msg:
        return "timeout"
    if (isinstance(status, int) and status >= 500) or any(
        c in msg for c in ("500", "502", "503", "504", "overloaded")
    ):
        return "server_error"
    if "connection" in name or isinstance(error, ConnectionError):
        return "connection"
    return "unknown"


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


def cap_retries(configs: dict[str, RetryConfig], max_retries: int) -> dict[str, RetryConfig]:
    """Copy of ``configs`` with every retry count capped to ``max_retries``."""
    return {
        name: replace(cfg, max_retries=min(cfg.max_retries, max_retries))
        for name, cfg in configs.items()
    }


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    label: str = "unknown",
    retry_configs: dict[str, RetryConfig] | None = None,
    timeout_s: float | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function with retry logic.

    Args:
        fn: Coroutine function to call.
        label: Name used in logs and in the exhaustion error.
        retry_configs: Per error type policy. Defaults to DEFAULT_RETRY_CONFIGS.
        timeout_s: Per-attempt timeout; an expired attempt counts as ``timeout``.

    Raises:
        LLMRetryExhausted: If all retries are exhausted.
    """
    configs = retry_configs if retry_configs is not None else DEFAULT_RETRY_CONFIGS
    attempts = 0

    while True:
        try:
            if timeout_s is None:
                return await fn(*args, **kwargs)
            return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout_s)
        except Exception as e:
            error_type = classify_error(e)
            attempts += 1
            config = configs.get(error_type)

            if config is None or attempts > config.max_retries:
                raise LLMRetryExhausted(label, error_type, attempts, e) from e

            delay = _compute_delay(config, attempts - 1)
            logger.warning(
                "Call '%s' — %s (attempt %d/%d), retrying in %.1fs",
                label, error_type, attempts, config.max_retries, delay,
            )
            await asyncio.sleep(delay)
