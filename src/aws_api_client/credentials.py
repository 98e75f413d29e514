#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
import os
from collections.abc import Mapping

from ._identity import AWSCredentialIdentity
from .exceptions import CredentialsError
from .interfaces.identity import CredentialSource

logger = logging.getLogger(__name__)


class EnvironmentCredentialSource(CredentialSource):
    """Resolves AWS Credentials from system environment variables.

    The environment is read on every call, so credentials rotated in the
    environment take effect on the next request.
    """

    def __init__(self, *, environ: Mapping[str, str] | None = None):
        self._environ = environ

    def resolve(self) -> AWSCredentialIdentity:
        environ = self._environ if self._environ is not None else os.environ

        access_key_id = environ.get("AWS_ACCESS_KEY_ID")
        secret_access_key = environ.get("AWS_SECRET_ACCESS_KEY")
        session_token = environ.get("AWS_SESSION_TOKEN") or None

        if not access_key_id or not secret_access_key:
            raise CredentialsError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are required"
            )

        logger.debug("Resolved credentials from environment variables")
        return AWSCredentialIdentity(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=session_token,
        )


class StaticCredentialSource(CredentialSource):
    """Returns the same credentials for every call."""

    def __init__(self, credentials: AWSCredentialIdentity):
        self._credentials = credentials

    def resolve(self) -> AWSCredentialIdentity:
        return self._credentials


def resolve_region(environ: Mapping[str, str] | None = None) -> str | None:
    """Return the default region from ``AWS_REGION`` or ``AWS_DEFAULT_REGION``."""
    if environ is None:
        environ = os.environ
    return environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None
