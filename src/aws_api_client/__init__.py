#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
"""A SigV4 request signer and multi-protocol client for AWS service APIs."""

from ._http import URI, AWSRequest, Field, Fields, HTTPResponse
from ._identity import AWSCredentialIdentity
from .client import Client
from .config import ClientConfig
from .credentials import (
    EnvironmentCredentialSource,
    StaticCredentialSource,
    resolve_region,
)
from .exceptions import (
    AWSApiError,
    AWSClientError,
    CallError,
    ClientError,
    CredentialsError,
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
    ServerError,
    ThrottlingError,
)
from .models import AWSResponse, RequestSpec
from .services import Protocol, ServiceProtocol, detect_service_region

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "AWSApiError",
    "AWSClientError",
    "AWSCredentialIdentity",
    "AWSRequest",
    "AWSResponse",
    "CallError",
    "Client",
    "ClientConfig",
    "ClientError",
    "CredentialsError",
    "EnvironmentCredentialSource",
    "Field",
    "Fields",
    "HTTPResponse",
    "NetworkError",
    "Protocol",
    "ProtocolError",
    "RequestSpec",
    "RequestTimeoutError",
    "ServerError",
    "ServiceProtocol",
    "StaticCredentialSource",
    "ThrottlingError",
    "URI",
    "detect_service_region",
    "resolve_region",
)
