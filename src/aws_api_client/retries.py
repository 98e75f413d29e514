#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .exceptions import RetryError
from .interfaces import retries as retries_interface

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BACKOFF_SCALE_VALUE = 0.1
DEFAULT_MAX_BACKOFF = 5.0
ADDITIVE_JITTER_RATIO = 0.3


class ExponentialBackoffJitterType(Enum):
    """Jitter mode for exponential backoff.

    For use with :py:class:`ExponentialRetryBackoffStrategy`.
    """

    DEFAULT = 1
    """Truncated binary exponential backoff delay with additive jitter:

    .. code-block:: python

        delay = backoff_scale_value * 2 ** (retry_attempt - 1)
        min(max_backoff, delay + random_between(0, 0.3 * delay))

    The delay never drops below the un-jittered value.
    """

    NONE = 2
    """Truncated binary exponential backoff delay without jitter:

    .. code-block:: python

        min(max_backoff, backoff_scale_value * 2 ** (retry_attempt - 1))
    """

    FULL = 3
    """Truncated binary exponential backoff delay with full jitter:

    .. code-block:: python

        random_between(
            0,
            min(max_backoff, backoff_scale_value * 2 ** (retry_attempt - 1))
        )
    """

    EQUAL = 4
    """Truncated binary exponential backoff delay with equal jitter:

    .. code-block:: python

        capped = min(max_backoff, backoff_scale_value * 2 ** (retry_attempt - 1))
        (capped / 2) + random_between(0, capped / 2)
    """


class ExponentialRetryBackoffStrategy(retries_interface.RetryBackoffStrategy):
    def __init__(
        self,
        *,
        backoff_scale_value: float = DEFAULT_BACKOFF_SCALE_VALUE,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        jitter_type: ExponentialBackoffJitterType = ExponentialBackoffJitterType.DEFAULT,
        random: Callable[[], float] = random.random,
    ):
        """Exponential backoff with optional jitter.

        .. seealso:: https://aws.amazon.com/blogs/architecture/exponential-backoff-and-jitter/

        :param backoff_scale_value: Delay in seconds before the first retry, before
        jitter. Each following retry doubles it.

        :param max_backoff: Upper limit for backoff delay values returned, in seconds.

        :param jitter_type: Determines the formula used to apply jitter to the backoff
        delay.

        :param random: A callable that returns random numbers between ``0`` and ``1``.
        Use the default ``random.random`` unless you require an alternate source of
        randomness or a non-uniform distribution.
        """
        self._backoff_scale_value = backoff_scale_value
        self._max_backoff = max_backoff
        self._jitter_type = jitter_type
        self._random = random

    def compute_next_backoff_delay(self, retry_attempt: int) -> float:
        """Calculate timespan in seconds to delay before next retry.

        :param retry_attempt: The index of the retry attempt that is about to be made
        after the delay. The initial attempt, before any retries, is index ``0``, and
        will return a delay of ``0``. The first retry attempt after a failed initial
        attempt is index ``1``, and so on.
        """
        if retry_attempt == 0:
            return 0

        delay = self._backoff_scale_value * (2.0 ** (retry_attempt - 1))
        match self._jitter_type:
            case ExponentialBackoffJitterType.NONE:
                return min(delay, self._max_backoff)
            case ExponentialBackoffJitterType.DEFAULT:
                jitter = self._random() * ADDITIVE_JITTER_RATIO * delay
                return min(delay + jitter, self._max_backoff)
            case ExponentialBackoffJitterType.FULL:
                return self._random() * min(delay, self._max_backoff)
            case ExponentialBackoffJitterType.EQUAL:
                return (self._random() * 0.5 + 0.5) * min(delay, self._max_backoff)


@dataclass(kw_only=True)
class SimpleRetryToken:
    """Basic retry token that stores only the attempt count and backoff strategy.

    Retry tokens should always be obtained from an implementation of
    :py:class:`retries_interface.RetryStrategy`.
    """

    retry_count: int
    """Retry count is the total number of attempts minus the initial attempt."""

    retry_delay: float
    """Delay in seconds to wait before the retry attempt."""

    @property
    def attempt_count(self) -> int:
        """The total number of attempts including the initial attempt and retries."""
        return self.retry_count + 1


class SimpleRetryStrategy(retries_interface.RetryStrategy):
    def __init__(
        self,
        *,
        backoff_strategy: retries_interface.RetryBackoffStrategy | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Basic retry strategy that simply invokes the given backoff strategy.

        :param backoff_strategy: The backoff strategy used by returned tokens to compute
        the retry delay. Defaults to :py:class:`ExponentialRetryBackoffStrategy`.

        :param max_attempts: Upper limit on total number of attempts made, including
        initial attempt and retries.
        """
        if max_attempts < 1:
            raise ValueError(
                f"max_attempts must be a positive integer, got {max_attempts}"
            )
        self.backoff_strategy = backoff_strategy or ExponentialRetryBackoffStrategy()
        self.max_attempts = max_attempts

    def acquire_initial_retry_token(self) -> SimpleRetryToken:
        """Called before any retries (for the first attempt at the operation)."""
        retry_delay = self.backoff_strategy.compute_next_backoff_delay(0)
        return SimpleRetryToken(retry_count=0, retry_delay=retry_delay)

    def refresh_retry_token_for_retry(
        self,
        *,
        token_to_renew: retries_interface.RetryToken,
        error: Exception,
    ) -> SimpleRetryToken:
        """Replace an existing retry token from a failed attempt with a new token.

        This retry strategy always returns a token for retry-safe errors until the
        attempt count stored in the new token exceeds the ``max_attempts`` value.

        :param token_to_renew: The token used for the previous failed attempt.

        :param error: The error that triggered the need for a retry.

        :raises RetryError: If no further retry attempts are allowed.
        """
        if not isinstance(error, retries_interface.ErrorRetryInfo) or not (
            error.is_retry_safe
        ):
            raise RetryError(f"Error is not retryable: {error!r}") from error

        retry_count = token_to_renew.retry_count + 1
        if retry_count >= self.max_attempts:
            raise RetryError(
                f"Reached maximum number of allowed attempts: {self.max_attempts}"
            ) from error
        retry_delay = self.backoff_strategy.compute_next_backoff_delay(retry_count)
        return SimpleRetryToken(retry_count=retry_count, retry_delay=retry_delay)

    def record_success(self, *, token: retries_interface.RetryToken) -> None:
        """Not used by this retry strategy."""
        pass
