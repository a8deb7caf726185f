r"""Backoff strategies for computing retry delays.

A backoff strategy maps the retry count of a request (0 for the first
retry) to the number of seconds to wait before re-sending it. All
strategies accept an optional ``max_delay`` cap.
"""

from __future__ import annotations

__all__ = [
    "BackoffStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "LinearBackoff",
]

from abc import ABC, abstractmethod


class BackoffStrategy(ABC):
    """Abstract base class for backoff strategies.

    Args:
        max_delay: Optional maximum delay cap in seconds. Must be > 0 if set.
    """

    def __init__(self, max_delay: float | None = None) -> None:
        if max_delay is not None and max_delay <= 0:
            msg = f"max_delay must be positive if specified, got {max_delay}"
            raise ValueError(msg)
        self.max_delay = max_delay

    def calculate(self, retry_count: int) -> float:
        """Calculate the delay before the given retry.

        Args:
            retry_count: Number of retries already performed (0-indexed).

        Returns:
            The delay in seconds, capped at ``max_delay`` if set.
        """
        delay = self._delay(retry_count)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    @abstractmethod
    def _delay(self, retry_count: int) -> float:
        """Return the uncapped delay for ``retry_count``."""


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ValueError(msg)


class ExponentialBackoff(BackoffStrategy):
    """Exponential backoff: ``base_delay * multiplier ** retry_count``.

    Args:
        base_delay: Delay before the first retry (default: 0.5).
        multiplier: Growth factor between retries (default: 2.0).
        max_delay: Optional maximum delay cap in seconds.

    Example:
        ```pycon
        >>> from arestream.backoff import ExponentialBackoff
        >>> backoff = ExponentialBackoff(base_delay=0.5)
        >>> [backoff.calculate(i) for i in range(3)]
        [0.5, 1.0, 2.0]
        >>> ExponentialBackoff(base_delay=1.0, max_delay=5.0).calculate(10)
        5.0

        ```
    """

    def __init__(
        self, base_delay: float = 0.5, multiplier: float = 2.0, max_delay: float | None = None
    ) -> None:
        super().__init__(max_delay)
        _check_non_negative("base_delay", base_delay)
        if multiplier < 1:
            msg = f"multiplier must be >= 1, got {multiplier}"
            raise ValueError(msg)
        self.base_delay = base_delay
        self.multiplier = multiplier

    def _delay(self, retry_count: int) -> float:
        return self.base_delay * (self.multiplier**retry_count)


class LinearBackoff(BackoffStrategy):
    """Linear backoff: ``base_delay * (retry_count + 1)``.

    Example:
        ```pycon
        >>> from arestream.backoff import LinearBackoff
        >>> [LinearBackoff(base_delay=1.0).calculate(i) for i in range(3)]
        [1.0, 2.0, 3.0]

        ```
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float | None = None) -> None:
        super().__init__(max_delay)
        _check_non_negative("base_delay", base_delay)
        self.base_delay = base_delay

    def _delay(self, retry_count: int) -> float:
        return self.base_delay * (retry_count + 1)


class ConstantBackoff(BackoffStrategy):
    """Constant backoff: the same delay before every retry.

    Example:
        ```pycon
        >>> from arestream.backoff import ConstantBackoff
        >>> ConstantBackoff(delay=2.5).calculate(7)
        2.5

        ```
    """

    def __init__(self, delay: float = 1.0) -> None:
        super().__init__()
        _check_non_negative("delay", delay)
        self.delay = delay

    def _delay(self, retry_count: int) -> float:  # noqa: ARG002
        return self.delay
