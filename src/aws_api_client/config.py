#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .credentials import resolve_region
from .retries import (
    DEFAULT_BACKOFF_SCALE_VALUE,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_BACKOFF,
)
from .transport import DEFAULT_TIMEOUT


@dataclass(kw_only=True, frozen=True)
class ClientConfig:
    """Settings shared by every call made through a :py:class:`Client`."""

    region: str | None = None
    """Default region for requests that do not name one."""

    endpoint_url: str | None = None
    """Replaces the computed endpoint, e.g. ``http://localhost:4566``."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    """Upper limit on attempts per call, including the first one."""

    timeout: float = DEFAULT_TIMEOUT
    """Deadline in seconds spanning all attempts of one call."""

    backoff_scale_value: float = DEFAULT_BACKOFF_SCALE_VALUE
    max_backoff: float = DEFAULT_MAX_BACKOFF

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be a positive integer, got {self.max_attempts}"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.backoff_scale_value < 0 or self.max_backoff < 0:
            raise ValueError("Backoff values must not be negative.")

    @classmethod
    def from_env(
        cls,
        *,
        environ: Mapping[str, str] | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
    ) -> "ClientConfig":
        """Resolve settings from explicit values, then the environment, then defaults.

        Reads ``AWS_REGION``/``AWS_DEFAULT_REGION``, ``AWS_ENDPOINT_URL``,
        ``AWS_MAX_ATTEMPTS`` and ``AWS_REQUEST_TIMEOUT``.

        :raises ValueError: If a numeric environment value does not parse.
        """
        if environ is None:
            environ = os.environ

        if max_attempts is None:
            max_attempts = _parse_env(environ, "AWS_MAX_ATTEMPTS", int)
        if timeout is None:
            timeout = _parse_env(environ, "AWS_REQUEST_TIMEOUT", float)

        return cls(
            region=region or resolve_region(environ),
            endpoint_url=endpoint_url or environ.get("AWS_ENDPOINT_URL") or None,
            max_attempts=DEFAULT_MAX_ATTEMPTS if max_attempts is None else max_attempts,
            timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        )


def _parse_env[T: (int, float)](
    environ: Mapping[str, str], name: str, convert: type[T]
) -> T | None:
    value = environ.get(name)
    if not value:
        return None
    try:
        return convert(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid value for {name}: expected {convert.__name__}, got {value!r}"
        ) from e
