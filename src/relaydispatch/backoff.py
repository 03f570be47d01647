"""Exponential backoff policy for dispatch retries."""

from __future__ import annotations

from dataclasses import dataclass

from relaydispatch.errors import BackoffExhaustedError, ConfigurationError

DEFAULT_MAX_ATTEMPTS = 6
DEFAULT_INITIAL_DELAY = 0.1
DEFAULT_EXPONENT = 2.0


@dataclass(frozen=True)
class BackoffPolicy:
    """Maps an attempt number to retry eligibility and delay.

    Attempts are 1-based. ``delay(attempt)`` is ``initial_delay * exponent ** attempt``
    and only defined while ``can_retry(attempt)`` holds.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    exponent: float = DEFAULT_EXPONENT

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ConfigurationError(
                f"Invalid max_attempts: {self.max_attempts}",
                hint="Use 0 or a positive attempt count.",
            )
        if self.initial_delay < 0:
            raise ConfigurationError(
                f"Invalid initial_delay: {self.initial_delay}",
                hint="Backoff delays cannot be negative.",
            )
        if self.exponent < 1:
            raise ConfigurationError(
                f"Invalid backoff exponent: {self.exponent}",
                hint="Use an exponent of 1 or greater so delays never shrink.",
            )

    def can_retry(self, attempt: int) -> bool:
        return attempt <= self.max_attempts

    def delay(self, attempt: int) -> float:
        if not self.can_retry(attempt):
            raise BackoffExhaustedError(
                f"No backoff delay for attempt {attempt}; retry budget is {self.max_attempts}.",
                hint="Check can_retry() before asking for a delay.",
            )
        return self.initial_delay * (self.exponent**attempt)
