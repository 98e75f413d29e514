#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from .http import HTTPClient, HTTPResponse
from .identity import AWSCredentialsIdentity, CredentialSource, Identity

__all__ = (
    "AWSCredentialsIdentity",
    "CredentialSource",
    "HTTPClient",
    "HTTPResponse",
    "Identity",
)
