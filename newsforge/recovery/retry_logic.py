"""
NewsForge Retry Logic
=====================

Retry with configurable backoff for fallible collaborator calls (content
store writes, structuring requests). Non-recoverable NewsForge errors are
never retried; cancellation always propagates.
"""

import asyncio
import inspect
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, TypeVar

from ..utils.exceptions import is_retryable_error
from ..utils.logging import get_logger_for_component
from .error_handler import ErrorContext, ErrorHandler


T = TypeVar("T")


class RetryStrategy(Enum):
    """Retry delay strategies."""
    FIXED_DELAY = "fixed_delay"  # Same delay every time
    LINEAR_BACKOFF = "linear"  # attempt x base_delay
    EXPONENTIAL_BACKOFF = "exponential"  # base_delay x base^(attempt-1)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    strategy: RetryStrategy = RetryStrategy.LINEAR_BACKOFF
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = False
    exponential_base: float = 2.0


@dataclass
class RetryAttempt:
    """Information about one attempt."""
    attempt_number: int
    delay: float
    exception: Optional[Exception]
    timestamp: datetime
    success: bool


@dataclass
class RetryStatistics:
    """Attempt records for one manager."""
    attempts: List[RetryAttempt] = field(default_factory=list)

    def record(self, attempt: RetryAttempt) -> None:
        self.attempts.append(attempt)

    @property
    def total_attempts(self) -> int:
        return len(self.attempts)

    @property
    def total_failures(self) -> int:
        return len([a for a in self.attempts if not a.success])


class RetryManager:
    """Retry manager with fixed, linear and exponential strategies."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.error_handler = error_handler
        self.logger = get_logger_for_component("retry_manager")
        self.statistics = RetryStatistics()
        self._sleep = sleep

        self._delay_calculators = {
            RetryStrategy.FIXED_DELAY: self._calculate_fixed_delay,
            RetryStrategy.LINEAR_BACKOFF: self._calculate_linear_delay,
            RetryStrategy.EXPONENTIAL_BACKOFF: self._calculate_exponential_delay,
        }

    async def retry_async(
        self,
        func: Callable[..., Any],
        *args,
        context: Optional[ErrorContext] = None,
        config: Optional[RetryConfig] = None,
        **kwargs,
    ) -> Any:
        """
        Retry an async (or plain) callable with the configured strategy.

        Args:
            func: Callable to retry
            *args: Function arguments
            context: Error context used to attribute failed attempts
            config: Override default retry configuration
            **kwargs: Function keyword arguments

        Returns:
            Function result if successful

        Raises:
            The last exception if all attempts fail, or the first
            non-retryable one immediately
        """
        retry_config = config or self.config
        name = getattr(func, "__name__", repr(func))
        last_exception: Optional[Exception] = None

        for attempt in range(1, retry_config.max_attempts + 1):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                self.statistics.record(
                    RetryAttempt(attempt, 0.0, None, datetime.now(timezone.utc), True)
                )
                if attempt > 1:
                    self.logger.info(f"Retry successful for {name} on attempt {attempt}")
                return result

            except Exception as e:
                last_exception = e

                if not is_retryable_error(e):
                    self.logger.info(f"Not retrying {name} due to non-retryable exception: {e}")
                    self.statistics.record(
                        RetryAttempt(attempt, 0.0, e, datetime.now(timezone.utc), False)
                    )
                    raise

                if self.error_handler and context:
                    self.error_handler.handle_error(
                        e,
                        ErrorContext(
                            component=context.component,
                            operation=f"{context.operation}_attempt_{attempt}",
                            entry_title=context.entry_title,
                            entry_url=context.entry_url,
                            category=context.category,
                            run_id=context.run_id,
                            details={"attempt": attempt, "max_attempts": retry_config.max_attempts},
                        ),
                    )

                if attempt < retry_config.max_attempts:
                    delay = self.calculate_delay(attempt, retry_config)
                    self.logger.warning(
                        f"Attempt {attempt} failed for {name}: {e}. "
                        f"Retrying in {delay:.2f}s (attempt {attempt + 1}/{retry_config.max_attempts})"
                    )
                    self.statistics.record(
                        RetryAttempt(attempt, delay, e, datetime.now(timezone.utc), False)
                    )
                    await self._sleep(delay)
                else:
                    self.statistics.record(
                        RetryAttempt(attempt, 0.0, e, datetime.now(timezone.utc), False)
                    )
                    self.logger.error(f"All {retry_config.max_attempts} attempts failed for {name}")

        raise last_exception

    def calculate_delay(self, attempt: int, config: Optional[RetryConfig] = None) -> float:
        """Delay to wait after the given failed attempt."""
        config = config or self.config
        calculator = self._delay_calculators.get(config.strategy, self._calculate_linear_delay)
        delay = min(calculator(attempt, config), config.max_delay)

        # Linear and fixed delays stay deterministic
        if config.jitter and config.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            jitter_amount = delay * 0.25
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.0, delay)

    def _calculate_fixed_delay(self, attempt: int, config: RetryConfig) -> float:
        return config.base_delay

    def _calculate_linear_delay(self, attempt: int, config: RetryConfig) -> float:
        return config.base_delay * attempt

    def _calculate_exponential_delay(self, attempt: int, config: RetryConfig) -> float:
        return config.base_delay * (config.exponential_base ** (attempt - 1))
