#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from itertools import chain
from typing import Any

import aiohttp
from yarl import URL

from .._http import AWSRequest, Field, Fields, HTTPResponse
from ..exceptions import NetworkError
from ..interfaces.http import HTTPClient

logger = logging.getLogger(__name__)


class AIOHTTPClient(HTTPClient):
    """Implementation of :py:class:`.interfaces.http.HTTPClient` using aiohttp."""

    def __init__(
        self,
        *,
        _session: "aiohttp.ClientSession | None" = None,
    ) -> None:
        # The session binds to the running event loop, so it is created on first use.
        self._session = _session

    async def send(self, request: AWSRequest) -> HTTPResponse:
        """Send HTTP request using aiohttp client.

        The destination is sent exactly as built. Its path and query were encoded
        before signing and must not be re-encoded.

        :param request: The request including destination URI, fields, payload.
        :raises NetworkError: If the connection fails before a response arrives.
        """
        headers_list = list(
            chain.from_iterable(fld.as_tuples() for fld in request.fields)
        )
        url = URL(request.destination.build(), encoded=True)

        try:
            async with self._get_session().request(
                method=request.method,
                url=url,
                headers=headers_list,
                data=request.body,
            ) as resp:
                return await self._marshal_response(resp)
        except (
            aiohttp.ClientConnectionError,
            aiohttp.ClientPayloadError,
            OSError,
        ) as e:
            logger.debug("Request to %s failed: %r", request.destination.host, e)
            raise NetworkError(
                f"Failed to send request to {request.destination.netloc}: {e}"
            ) from e

    async def close(self) -> None:
        """Close the underlying session, if one was opened."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> "aiohttp.ClientSession":
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _marshal_response(
        self, aiohttp_resp: "aiohttp.ClientResponse"
    ) -> HTTPResponse:
        """Convert a ``aiohttp.ClientResponse`` to a ``HTTPResponse``"""
        headers = Fields()
        for header_name, header_val in aiohttp_resp.headers.items():
            try:
                headers[header_name].add(header_val)
            except KeyError:
                headers[header_name] = Field(name=header_name, values=[header_val])

        return HTTPResponse(
            status=aiohttp_resp.status,
            fields=headers,
            body=await aiohttp_resp.read(),
            reason=aiohttp_resp.reason,
        )

    def __deepcopy__(self, memo: Any) -> "AIOHTTPClient":
        return self
