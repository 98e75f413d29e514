#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from types import TracebackType
from typing import Self
from urllib.parse import urlsplit

from ._http import URI, AWSRequest
from ._identity import AWSCredentialIdentity
from .aio.aiohttp import AIOHTTPClient
from .config import ClientConfig
from .credentials import EnvironmentCredentialSource
from .interfaces.http import HTTPClient
from .interfaces.identity import CredentialSource
from .interfaces.retries import RetryStrategy
from .models import AWSResponse, RequestSpec, ResponseBody
from .protocols import get_codec
from .retries import ExponentialRetryBackoffStrategy, SimpleRetryStrategy
from .services import ServiceProtocol, get_service_protocol
from .signers import SIGV4_TIMESTAMP_FORMAT, SigV4Signer, SigV4SigningProperties
from .transport import Transport

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Client:
    """Signs, sends and decodes calls to any AWS service.

    The client keeps no per-call state. Credentials are resolved and signing keys
    derived again for every call, so one instance can serve many concurrent tasks.

    .. code-block:: python

        async with Client() as client:
            topic = await client.request(
                RequestSpec(
                    service="sns",
                    region="us-east-1",
                    operation="CreateTopic",
                    body={"Name": "orders"},
                )
            )
    """

    def __init__(
        self,
        *,
        config: ClientConfig | None = None,
        credential_source: CredentialSource | None = None,
        http_client: HTTPClient | None = None,
        retry_strategy: RetryStrategy | None = None,
        signer: SigV4Signer | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        :param config: Shared settings. Defaults to :py:meth:`ClientConfig.from_env`.
        :param credential_source: Where credentials come from. Defaults to the
        process environment.
        :param http_client: The HTTP client to send with. Defaults to an
        :py:class:`AIOHTTPClient` owned and closed by this client.
        :param retry_strategy: Overrides the strategy built from ``config``.
        :param signer: The SigV4 signer.
        :param clock: Source of signing timestamps, read once per attempt.
        """
        self.config = config or ClientConfig.from_env()
        self._credential_source = credential_source or EnvironmentCredentialSource()
        self._owns_http_client = http_client is None
        self._http_client = http_client or AIOHTTPClient()
        self._signer = signer or SigV4Signer()
        self._clock = clock
        self._transport = Transport(
            http_client=self._http_client,
            retry_strategy=retry_strategy
            or SimpleRetryStrategy(
                backoff_strategy=ExponentialRetryBackoffStrategy(
                    backoff_scale_value=self.config.backoff_scale_value,
                    max_backoff=self.config.max_backoff,
                ),
                max_attempts=self.config.max_attempts,
            ),
            timeout=self.config.timeout,
        )

    async def request(self, spec: RequestSpec) -> ResponseBody:
        """Make a call and return its decoded body.

        :raises CredentialsError: If credentials are missing. No request is sent.
        :raises AWSApiError: If the service reported an error.
        :raises NetworkError: If the last attempt failed to connect.
        :raises RequestTimeoutError: If the deadline elapsed during an attempt.
        :raises ProtocolError: If a response did not parse.
        """
        return (await self.send(spec)).body

    async def send(self, spec: RequestSpec) -> AWSResponse:
        """Make a call and return the full decoded response.

        Raises the same errors as :py:meth:`request`.
        """
        identity = self._credential_source.resolve()
        service = get_service_protocol(spec.service, protocol=spec.protocol)
        codec = get_codec(service.protocol)
        region = self._resolve_region(spec, service)
        endpoint = self._resolve_endpoint(spec, service, region)
        request = codec.encode(spec, service, endpoint)
        properties = self._signing_properties(spec, service, region)

        def sign(unsigned: AWSRequest) -> AWSRequest:
            return self._signer.sign_request(
                request=unsigned,
                identity=identity,
                signing_properties=self._with_timestamp(properties),
            )

        logger.debug(
            "Calling %s %s (%s) in %s",
            spec.service,
            spec.operation or f"{request.method} {request.destination.path}",
            service.protocol,
            region,
        )
        response = await self._transport.send(
            request, signer=sign, error_parser=codec.parse_error
        )
        return codec.decode(response, spec)

    def presign(self, spec: RequestSpec, *, expires_in: int = 3600) -> str:
        """Create a URL that grants time-limited access to a call.

        Only the ``host`` header is signed. S3 URLs sign ``UNSIGNED-PAYLOAD``.

        :param expires_in: Lifetime in seconds, at most seven days.
        :raises CredentialsError: If credentials are missing.
        """
        identity: AWSCredentialIdentity = self._credential_source.resolve()
        service = get_service_protocol(spec.service, protocol=spec.protocol)
        region = self._resolve_region(spec, service)
        request = get_codec(service.protocol).encode(
            spec, service, self._resolve_endpoint(spec, service, region)
        )
        properties = self._signing_properties(spec, service, region)
        properties["payload_signing_enabled"] = not service.content_sha256_header
        return self._signer.presign_url(
            request=request,
            identity=identity,
            signing_properties=self._with_timestamp(properties),
            expires_in=expires_in,
        )

    async def close(self) -> None:
        """Release the HTTP client if this client created it."""
        if self._owns_http_client and isinstance(self._http_client, AIOHTTPClient):
            await self._http_client.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    def _resolve_region(self, spec: RequestSpec, service: ServiceProtocol) -> str:
        if service.global_region is not None:
            return service.global_region
        region = spec.region or self.config.region
        if not region:
            raise ValueError(
                f"No region was given for a call to {spec.service}. Set "
                "RequestSpec.region, ClientConfig.region or AWS_REGION."
            )
        return region

    def _resolve_endpoint(
        self, spec: RequestSpec, service: ServiceProtocol, region: str
    ) -> URI:
        if self.config.endpoint_url:
            parsed = urlsplit(self.config.endpoint_url)
            if not parsed.hostname:
                raise ValueError(f"Invalid endpoint URL: {self.config.endpoint_url}")
            return URI(
                scheme=parsed.scheme or "https",
                host=parsed.hostname,
                port=parsed.port,
            )

        if service.global_host is not None:
            return URI(host=service.global_host)

        suffix = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
        prefix = service.endpoint_prefix or spec.service
        return URI(host=f"{prefix}.{region}.{suffix}")

    def _signing_properties(
        self, spec: RequestSpec, service: ServiceProtocol, region: str
    ) -> SigV4SigningProperties:
        return SigV4SigningProperties(
            region=region,
            service=service.signing_name or spec.service,
            uri_encode_path=service.uri_encode_path,
            content_checksum_enabled=service.content_sha256_header,
        )

    def _with_timestamp(
        self, properties: SigV4SigningProperties
    ) -> SigV4SigningProperties:
        return SigV4SigningProperties(
            **properties, date=self._clock().strftime(SIGV4_TIMESTAMP_FORMAT)
        )
