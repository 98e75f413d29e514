#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ._http import Fields
from .services import Protocol

type QueryValue = str | Sequence[str]

type ResponseBody = Mapping[str, "ResponseBody"] | Sequence["ResponseBody"] | (
    str | bytes | int | float | bool | None
)
"""A generic tree decoded from a response payload."""


@dataclass(kw_only=True, frozen=True)
class RequestSpec:
    """One outbound API call as described by the caller."""

    service: str
    """Service name used to look up the wire protocol, e.g. ``sns``."""

    operation: str | None = None
    """Operation name. Required for query and json services."""

    region: str | None = None
    """Target region. Falls back to the client's configured region."""

    method: str | None = None
    """HTTP method. Defaults to ``POST`` for query and json, ``GET`` otherwise."""

    path: str = "/"
    query: Mapping[str, QueryValue] | None = None
    headers: Mapping[str, str] | None = None

    body: Any = None
    """Operation parameters for query and json services, the payload otherwise.

    Mappings and sequences are serialized in the service's format. ``bytes`` and
    ``str`` payloads are sent as they are.
    """

    protocol: Protocol | str | None = None
    """Overrides the protocol family from the service table."""

    path_is_encoded: bool = False
    """Whether ``path`` is already percent-encoded and must be sent verbatim."""


@dataclass(kw_only=True)
class AWSResponse:
    """A decoded successful response."""

    status: int
    headers: Fields = field(repr=False)
    body: ResponseBody
    request_id: str | None = None
