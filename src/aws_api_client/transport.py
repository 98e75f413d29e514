#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ._http import AWSRequest
from .exceptions import AWSClientError, RequestTimeoutError, RetryError
from .interfaces.http import HTTPClient, HTTPResponse
from .interfaces.retries import RetryStrategy
from .retries import SimpleRetryStrategy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

type RequestSigner = Callable[[AWSRequest], AWSRequest]
"""Returns a freshly signed copy of an unsigned request."""

type ErrorParser = Callable[[HTTPResponse], Exception]
"""Turns a non-2xx response into the exception to raise for it."""


class Transport:
    """Sends a request with bounded retries under one overall deadline.

    Every attempt is signed again from the unsigned request, so each one carries a
    fresh timestamp. Attempts are strictly sequential.
    """

    def __init__(
        self,
        *,
        http_client: HTTPClient,
        retry_strategy: RetryStrategy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        :param http_client: The client that performs each attempt.
        :param retry_strategy: Decides whether and when to retry. Defaults to
        :py:class:`SimpleRetryStrategy`.
        :param timeout: Default deadline in seconds spanning all attempts and delays.
        :param clock: Monotonic clock used to track the deadline.
        :param sleep: Coroutine used to wait between attempts.
        """
        self.http_client = http_client
        self.retry_strategy = retry_strategy or SimpleRetryStrategy()
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

    async def send(
        self,
        request: AWSRequest,
        *,
        signer: RequestSigner,
        error_parser: ErrorParser,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Send ``request`` and return the first successful response.

        :param request: The unsigned request. It is never modified.
        :param signer: Called before every attempt to produce the signed copy.
        :param error_parser: Converts non-2xx responses into typed errors.
        :param timeout: Overrides the default deadline for this call.
        :raises RequestTimeoutError: If the deadline elapses during an attempt.
        :raises AWSClientError: The last error, once no further retry is allowed.
        """
        timeout = self.timeout if timeout is None else timeout
        deadline = self._clock() + timeout
        retry_token = self.retry_strategy.acquire_initial_retry_token()
        last_error: Exception | None = None

        while True:
            if retry_token.retry_delay:
                await self._sleep(retry_token.retry_delay)

            remaining = deadline - self._clock()
            try:
                if remaining <= 0:
                    raise TimeoutError()
                response = await self._attempt(
                    request,
                    signer=signer,
                    error_parser=error_parser,
                    remaining=remaining,
                )
            except TimeoutError as e:
                raise RequestTimeoutError(
                    f"Call did not complete within its {timeout}s deadline after "
                    f"{retry_token.retry_count + 1} attempt(s)"
                ) from (last_error or e)
            except AWSClientError as e:
                last_error = e
                try:
                    retry_token = self.retry_strategy.refresh_retry_token_for_retry(
                        token_to_renew=retry_token,
                        error=e,
                    )
                except RetryError:
                    raise e

                if self._clock() + retry_token.retry_delay >= deadline:
                    logger.debug(
                        "Not retrying: a %.4f second delay would pass the deadline.",
                        retry_token.retry_delay,
                    )
                    raise e

                logger.debug(
                    "Retry needed. Attempting request #%s in %.4f seconds.",
                    retry_token.retry_count + 1,
                    retry_token.retry_delay,
                )
            else:
                self.retry_strategy.record_success(token=retry_token)
                return response

    async def _attempt(
        self,
        request: AWSRequest,
        *,
        signer: RequestSigner,
        error_parser: ErrorParser,
        remaining: float,
    ) -> HTTPResponse:
        signed = signer(request)
        async with asyncio.timeout(remaining):
            response = await self.http_client.send(signed)
        if not 200 <= response.status < 300:
            raise error_parser(response)
        return response
