#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .._http import AWSRequest, Fields


class HTTPResponse(Protocol):
    """HTTP primitives returned from an Exchange, used to construct a client
    response."""

    @property
    def status(self) -> int:
        """The 3 digit response status code (1xx, 2xx, 3xx, 4xx, 5xx)."""
        ...

    @property
    def fields(self) -> Fields:
        """``Fields`` object containing HTTP headers."""
        ...

    @property
    def body(self) -> bytes:
        """The fully read response payload."""
        ...

    @property
    def reason(self) -> str | None:
        """Optional string provided by the server explaining the status."""
        ...


class HTTPClient(Protocol):
    """An asynchronous HTTP client interface."""

    async def send(self, request: AWSRequest) -> HTTPResponse:
        """Send HTTP request over the wire and return the response.

        Implementations raise :py:class:`aws_api_client.exceptions.NetworkError` for
        connection-level failures.

        :param request: The request including destination URI, fields, payload.
        """
        ...
