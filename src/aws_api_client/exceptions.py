#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from dataclasses import dataclass, field
from typing import Literal


class AWSClientError(Exception):
    """Base exception type for all exceptions raised by aws-api-client."""


type Fault = Literal["client", "server"] | None
"""Whether the client or server is at fault.

If None, then there was not enough information to determine fault.
"""


class CredentialsError(AWSClientError):
    """Required credential material is missing.

    Raised before any network I/O takes place and never retried.
    """


class ProtocolError(AWSClientError):
    """A response body did not parse under the rules of the expected protocol.

    This indicates a codec/service mismatch rather than a transient condition, so it
    is never retried.
    """


class RetryError(AWSClientError):
    """Raised by retry strategies when no further attempts are allowed."""


@dataclass(kw_only=True)
class CallError(AWSClientError):
    """Base exception for failures that occur while a call is being made.

    Implements :py:class:`.interfaces.retries.ErrorRetryInfo`.
    """

    fault: Fault = None
    """Whether the client or server is at fault.

    If None, then there was not enough information to determine fault.
    """

    message: str = field(default="", kw_only=False)
    """The message of the error."""

    is_retry_safe: bool | None = None
    """Whether the exception is safe to retry.

    A value of True does not mean a retry will occur, but rather that a retry is allowed
    to occur.
    """

    is_throttling_error: bool = False
    """Whether the error is a throttling error."""

    def __post_init__(self):
        super().__init__(self.message)


@dataclass(kw_only=True)
class NetworkError(CallError):
    """A connection-level failure: refused or reset connections, DNS failures."""

    is_retry_safe: bool | None = True


@dataclass(kw_only=True)
class RequestTimeoutError(NetworkError):
    """The overall call deadline elapsed while an attempt was in flight."""

    is_retry_safe: bool | None = False


@dataclass(kw_only=True)
class AWSApiError(CallError):
    """A failure reported by the service, normalized across all protocols."""

    code: str
    """The error code exactly as the service reported it, e.g. ``InvalidParameter``."""

    status_code: int
    """The HTTP status of the response that carried the error."""

    request_id: str | None = None
    """The request id assigned by the service, if one was returned."""

    @property
    def retryable(self) -> bool:
        return bool(self.is_retry_safe)

    def __str__(self) -> str:
        return f"{self.code} ({self.status_code}): {self.message}"


@dataclass(kw_only=True)
class ThrottlingError(AWSApiError):
    """The service rejected the call because of rate limiting."""

    fault: Fault = "client"
    is_retry_safe: bool | None = True
    is_throttling_error: bool = True


@dataclass(kw_only=True)
class ServerError(AWSApiError):
    """A 5xx-class failure."""

    fault: Fault = "server"
    is_retry_safe: bool | None = True


@dataclass(kw_only=True)
class ClientError(AWSApiError):
    """Any other 4xx-class failure. Surfaced immediately."""

    fault: Fault = "client"
    is_retry_safe: bool | None = False
