"""Retry scheduling for batch delivery.

Provides the delay sequence between delivery attempts and the deadline that
bounds a whole flush, plus an opt-in retry decorator for auxiliary calls such
as OAuth2 token refresh.

Delays are computed with tenacity wait strategies so the linear and
exponential policies behave exactly like tenacity's ``wait_fixed`` and
``wait_exponential``. The delivery loop itself stays explicit (see
``httpsink.lib.engine``) because it has to consult the status-code policy
between attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, Union

import tenacity
from tenacity.wait import wait_base

from httpsink.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "RetryPolicy",
    "RetryScheduler",
    "with_retry",
    "DEFAULT_EXPONENTIAL_BASE_DELAY",
]

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_EXPONENTIAL_BASE_DELAY = 0.5


class RetryPolicy(Enum):
    """Policy used to calculate the delay between retries."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    @classmethod
    def parse(cls, value: Union[str, "RetryPolicy"]) -> "RetryPolicy":
        if isinstance(value, RetryPolicy):
            return value
        normalized = str(value).strip().lower()
        if normalized == "fixed":
            normalized = "linear"
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Unsupported value for 'retry_policy': '{value}'. Allowed values are: {allowed}",
                field="retry_policy",
                value=value,
            ) from None


def _call_state(attempt_number: int) -> tenacity.RetryCallState:
    state = tenacity.RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = attempt_number
    return state


@dataclass(frozen=True)
class RetryScheduler:
    """Delay sequence and deadline for one flush.

    Attributes:
        policy: LINEAR (constant delay) or EXPONENTIAL (doubling delay)
        interval: Constant delay for LINEAR, starting delay for EXPONENTIAL (seconds)
        max_retry_duration: Budget for the whole flush, attempts plus waits (seconds)
        max_delay: Optional cap on a single exponential delay (seconds)

    Example:
        scheduler = RetryScheduler.exponential(base_delay=0.5, max_retry_duration=60)
        [scheduler.next_delay(i) for i in range(4)]  # [0.5, 1.0, 2.0, 4.0]
    """

    policy: RetryPolicy
    interval: float
    max_retry_duration: float
    max_delay: Optional[float] = None

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ConfigurationError(
                "Retry interval cannot be negative", field="retry_interval", value=self.interval
            )
        if self.max_retry_duration < 0:
            raise ConfigurationError(
                "Max retry duration cannot be negative",
                field="max_retry_duration",
                value=self.max_retry_duration,
            )

    @classmethod
    def linear(cls, interval: float, max_retry_duration: float) -> "RetryScheduler":
        return cls(RetryPolicy.LINEAR, interval, max_retry_duration)

    @classmethod
    def exponential(
        cls,
        base_delay: float = DEFAULT_EXPONENTIAL_BASE_DELAY,
        max_retry_duration: float = 600.0,
        max_delay: Optional[float] = None,
    ) -> "RetryScheduler":
        return cls(RetryPolicy.EXPONENTIAL, base_delay, max_retry_duration, max_delay)

    @property
    def wait_strategy(self) -> wait_base:
        """The equivalent tenacity wait strategy."""
        if self.policy is RetryPolicy.LINEAR:
            return tenacity.wait_fixed(self.interval)
        if self.max_delay is not None:
            return tenacity.wait_exponential(multiplier=self.interval, exp_base=2, max=self.max_delay)
        return tenacity.wait_exponential(multiplier=self.interval, exp_base=2)

    def next_delay(self, attempt_index: int) -> float:
        """Delay before retry number ``attempt_index`` (0 = first retry)."""
        if attempt_index < 0:
            raise ValueError("attempt_index must be >= 0")
        return float(self.wait_strategy(_call_state(attempt_index + 1)))

    def has_exceeded_deadline(self, elapsed: float) -> bool:
        return elapsed >= self.max_retry_duration

    def describe(self) -> str:
        if self.policy is RetryPolicy.LINEAR:
            return f"linear every {self.interval:g}s for up to {self.max_retry_duration:g}s"
        return (
            f"exponential from {self.interval:g}s for up to {self.max_retry_duration:g}s"
        )


def with_retry(
    max_attempts: int = 3,
    backoff_seconds: float = 0.5,
    retry_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Retry decorator for short auxiliary calls (exponential backoff).

    Args:
        max_attempts: Maximum number of attempts (default 3)
        backoff_seconds: Base delay between attempts (default 0.5)
        retry_exceptions: Only retry on these exceptions

    Example:
        @with_retry(max_attempts=3, retry_exceptions=(requests.ConnectionError,))
        def fetch_token():
            ...
    """

    def decorator(fn: F) -> F:
        fn_logger = logging.getLogger(fn.__module__)

        def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            fn_logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                fn.__name__,
                retry_state.attempt_number,
                max_attempts,
                exception,
                retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        retrying = tenacity.retry(
            stop=tenacity.stop_after_attempt(max_attempts),
            wait=tenacity.wait_exponential(multiplier=backoff_seconds, min=backoff_seconds),
            retry=tenacity.retry_if_exception_type(retry_exceptions),
            before_sleep=before_sleep_handler,
            reraise=True,
        )(fn)

        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return retrying(*args, **kwargs)

        wrapper.retry = retrying.retry  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
