"""
Bounded retry for ledger and relay calls.

Two policies are used in this package:

    # relay: 1 + 2 calls, 0.5s then 1.0s, only for network-transient errors
    RetryConfig.exponential(max_retries=2, base_delay=0.5, retry_condition=is_transient_error)

    # builder: 5 attempts, fixed 2s, only while the account is not indexed
    RetryConfig.fixed(attempts=5, delay=2.0, retry_on=(AccountNotIndexedError,))

Anything the policy does not retry propagates from retry_async unchanged.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    List,
    Optional,
    ParamSpec,
    Type,
    TypeVar,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

ExceptionTypes = tuple[Type[BaseException], ...]


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy.

    Attributes:
        max_retries: Retries after the first call (0 means a single call)
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor per retry; 1.0 gives a fixed delay
        retryable_exceptions: Only these types are ever retried
        non_retryable_exceptions: Never retried, even if also retryable
        on_retry: Called as (retry_number, exception, delay) before sleeping
        retry_condition: Final say for exceptions of a retryable type
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    exponential_base: float = 2.0
    retryable_exceptions: ExceptionTypes = (Exception,)
    non_retryable_exceptions: ExceptionTypes = ()
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None
    retry_condition: Optional[Callable[[BaseException], bool]] = None

    @classmethod
    def fixed(
        cls,
        attempts: int,
        delay: float,
        retry_on: ExceptionTypes = (Exception,),
    ) -> "RetryConfig":
        """``attempts`` calls in total, ``delay`` seconds apart."""
        return cls(
            max_retries=max(attempts - 1, 0),
            base_delay=delay,
            max_delay=delay,
            exponential_base=1.0,
            retryable_exceptions=retry_on,
        )

    @classmethod
    def exponential(
        cls,
        max_retries: int,
        base_delay: float,
        retry_condition: Optional[Callable[[BaseException], bool]] = None,
    ) -> "RetryConfig":
        return cls(
            max_retries=max_retries,
            base_delay=base_delay,
            exponential_base=2.0,
            retry_condition=retry_condition,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-based)."""
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)

    def should_retry(self, exception: BaseException) -> bool:
        if isinstance(exception, self.non_retryable_exceptions):
            return False
        if not isinstance(exception, self.retryable_exceptions):
            return False
        if self.retry_condition is not None:
            return self.retry_condition(exception)
        return True


@dataclass
class RetryStats:
    """What happened across the attempts of one retry_async call."""

    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    success: bool = False
    last_exception: Optional[BaseException] = None

    @property
    def total_delay(self) -> float:
        return sum(self.delays)


class RetryExhausted(Exception):
    """Every attempt failed with a retryable error.

    ``original_exception`` is the error from the last attempt; callers
    usually re-raise it so the retry wrapper stays invisible.
    """

    def __init__(
        self,
        message: str,
        stats: RetryStats,
        original_exception: BaseException,
    ) -> None:
        super().__init__(message)
        self.stats = stats
        self.original_exception = original_exception


async def retry_async(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    config: Optional[RetryConfig] = None,
    **kwargs: P.kwargs,
) -> T:
    """Await ``func(*args, **kwargs)`` under ``config``.

    Raises:
        RetryExhausted: all ``config.max_attempts`` attempts failed with
            retryable errors
    """
    config = config or RetryConfig()
    stats = RetryStats()
    name = getattr(func, "__name__", repr(func))

    while True:
        stats.attempts += 1
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            stats.last_exception = e
            if not config.should_retry(e):
                raise
            if stats.attempts >= config.max_attempts:
                break

            delay = config.calculate_delay(stats.attempts - 1)
            stats.delays.append(delay)
            logger.warning(
                f"{name} failed (attempt {stats.attempts}/{config.max_attempts}), "
                f"retrying in {delay:.2f}s: {e}"
            )
            if config.on_retry:
                config.on_retry(stats.attempts, e, delay)
            await asyncio.sleep(delay)
        else:
            stats.success = True
            return result

    raise RetryExhausted(
        f"{name} failed after {stats.attempts} attempts: {stats.last_exception}",
        stats=stats,
        original_exception=stats.last_exception,
    )
