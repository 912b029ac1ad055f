"""
Rate-limit-aware retry controller.

Wraps a single backend invocation. Rate-limit signals are retried after the
provider-suggested wait, within a fixed attempt budget; every other error
propagates on first occurrence. Backoff sleeps go through the run's
CancellationToken so an abort interrupts them immediately.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from ..llm.base import RateLimitError, parse_retry_after
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_LIMIT_PATTERN = re.compile(r"rate[\s_-]?limit", re.IGNORECASE)

# (wait_seconds, attempt, max_attempts)
RateLimitCallback = Callable[[float, int, int], None]


@dataclass
class RetryConfig:
    """Configuration for rate-limit retries."""
    max_attempts: int = 3
    default_wait_seconds: float = 60.0
    max_wait_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_attempts": self.max_attempts,
            "default_wait_seconds": self.default_wait_seconds,
            "max_wait_seconds": self.max_wait_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetryConfig":
        """Create from dictionary."""
        return cls(
            max_attempts=data.get("max_attempts", 3),
            default_wait_seconds=data.get("default_wait_seconds", 60.0),
            max_wait_seconds=data.get("max_wait_seconds"),
        )


def is_rate_limit(error: BaseException) -> bool:
    """Check whether an exception signals provider throttling."""
    if isinstance(error, RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error)
    return bool(_RATE_LIMIT_PATTERN.search(message)) or parse_retry_after(message) is not None


class RateLimitRetrier:
    """
    Retries a backend call on rate limits.

    Wait selection, in order: a "try again in N seconds" style hint in the
    error message, the error's ``retry_after`` attribute, then the configured
    default. The budget counts invocations, so with the default of 3 a
    persistently throttled call is attempted three times with two sleeps in
    between, then the last error is re-raised unchanged.

    Example:
        retrier = RateLimitRetrier(token, on_wait=lambda w, a, m: print(w, a, m))
        response = await retrier.call(lambda: provider.complete(messages))
    """

    def __init__(
        self,
        token: CancellationToken,
        config: RetryConfig | None = None,
        on_wait: RateLimitCallback | None = None,
    ):
        self.token = token
        self.config = config or RetryConfig()
        self.on_wait = on_wait

    def wait_seconds(self, error: BaseException) -> float:
        """Pick the backoff duration for a rate-limit error."""
        wait = parse_retry_after(str(error))
        if wait is None:
            wait = getattr(error, "retry_after", None)
        if wait is None or wait < 0:
            wait = self.config.default_wait_seconds
        if self.config.max_wait_seconds is not None:
            wait = min(wait, self.config.max_wait_seconds)
        return float(wait)

    async def call(self, func: Callable[[], Awaitable[T]], label: str = "backend") -> T:
        """
        Invoke ``func`` with rate-limit retries.

        Args:
            func: Zero-argument coroutine factory performing one backend call
            label: Name used in log messages

        Returns:
            Whatever ``func`` returns on its first successful attempt

        Raises:
            ExecutionAborted: If the run is cancelled before a call or during a backoff sleep
            Exception: The last rate-limit error once the budget is exhausted,
                or any other error on first occurrence
        """
        max_attempts = max(1, self.config.max_attempts)

        for attempt in range(1, max_attempts + 1):
            self.token.raise_if_cancelled()
            try:
                result = await func()
            except Exception as e:
                if not is_rate_limit(e):
                    raise
                if attempt >= max_attempts:
                    logger.warning(
                        f"{label}: rate limit persisted after {max_attempts} attempts"
                    )
                    raise

                wait = self.wait_seconds(e)
                logger.info(
                    f"{label}: rate limited, waiting {wait:.1f}s "
                    f"(attempt {attempt}/{max_attempts})"
                )
                if self.on_wait:
                    try:
                        self.on_wait(wait, attempt, max_attempts)
                    except Exception as callback_error:
                        logger.warning(f"Rate limit callback failed: {callback_error}")

                await self.token.sleep(wait)
                continue

            self.token.raise_if_cancelled()
            return result

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")
