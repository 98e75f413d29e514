#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import re
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Final
from urllib.parse import urlparse


class Protocol(StrEnum):
    """The wire protocol families spoken by AWS services."""

    QUERY = "query"
    """``Action``/``Version`` form-encoded body with XML responses."""

    JSON = "json"
    """JSON-RPC: JSON body dispatched by the ``X-Amz-Target`` header."""

    REST_JSON = "rest-json"
    """HTTP bindings with JSON bodies."""

    REST_XML = "rest-xml"
    """HTTP bindings with XML bodies."""


@dataclass(kw_only=True, frozen=True)
class ServiceProtocol:
    """Static description of how to address and encode calls to one service."""

    protocol: Protocol
    api_version: str | None = None
    """Value of the ``Version`` parameter for query services."""

    target_prefix: str | None = None
    """Prefix of the ``X-Amz-Target`` header for json services."""

    json_version: str = "1.1"
    """The ``application/x-amz-json-*`` content type version."""

    signing_name: str | None = None
    """Service name in the credential scope, if it differs from the lookup key."""

    endpoint_prefix: str | None = None
    """Leftmost host label, if it differs from the lookup key."""

    global_region: str | None = None
    """Signing region for services served from a single global endpoint."""

    global_host: str | None = None
    """Fixed host name of a global endpoint."""

    uri_encode_path: bool = True
    """Whether the canonical path is percent-encoded again when signing."""

    content_sha256_header: bool = False
    """Whether ``X-Amz-Content-SHA256`` is sent with every request."""

    flat_query_lists: bool = False
    """Whether query lists are numbered as ``Key.N`` instead of ``Key.member.N``."""


def _query(api_version: str, **kwargs: object) -> ServiceProtocol:
    return ServiceProtocol(
        protocol=Protocol.QUERY,
        api_version=api_version,
        **kwargs,  # type: ignore
    )


def _json(
    target_prefix: str, json_version: str = "1.1", **kwargs: object
) -> ServiceProtocol:
    return ServiceProtocol(
        protocol=Protocol.JSON,
        target_prefix=target_prefix,
        json_version=json_version,
        **kwargs,  # type: ignore
    )


SERVICES: dict[str, ServiceProtocol] = {
    # query
    "autoscaling": _query("2011-01-01"),
    "cloudformation": _query("2010-05-15"),
    "ec2": _query("2016-11-15", flat_query_lists=True),
    "elasticache": _query("2015-02-02"),
    "elasticloadbalancing": _query("2015-12-01"),
    "email": _query("2010-12-01"),
    "iam": _query(
        "2010-05-08", global_region="us-east-1", global_host="iam.amazonaws.com"
    ),
    "monitoring": _query("2010-08-01"),
    "rds": _query("2014-10-31"),
    "ses": _query("2010-12-01", endpoint_prefix="email"),
    "sns": _query("2010-03-31"),
    "sqs": _query("2012-11-05"),
    "sts": _query("2011-06-15"),
    # json
    "acm": _json("CertificateManager"),
    "application-autoscaling": _json("AnyScaleFrontendService"),
    "dynamodb": _json("DynamoDB_20120810", "1.0"),
    "ecr": _json("AmazonEC2ContainerRegistry_V20150921"),
    "ecs": _json("AmazonEC2ContainerServiceV20141113"),
    "events": _json("AWSEvents"),
    "kinesis": _json("Kinesis_20131202"),
    "kms": _json("TrentService"),
    "logs": _json("Logs_20140328"),
    "route53domains": _json("Route53Domains_v20140515"),
    "secretsmanager": _json("secretsmanager"),
    "ssm": _json("AmazonSSM"),
    "support": _json("AWSSupport_20130415"),
    # rest-json
    "apigateway": ServiceProtocol(protocol=Protocol.REST_JSON),
    "bedrock-runtime": ServiceProtocol(
        protocol=Protocol.REST_JSON, signing_name="bedrock"
    ),
    "elasticfilesystem": ServiceProtocol(protocol=Protocol.REST_JSON),
    "es": ServiceProtocol(protocol=Protocol.REST_JSON),
    "lambda": ServiceProtocol(protocol=Protocol.REST_JSON),
    "pinpoint": ServiceProtocol(
        protocol=Protocol.REST_JSON, signing_name="mobiletargeting"
    ),
    "polly": ServiceProtocol(protocol=Protocol.REST_JSON),
    "scheduler": ServiceProtocol(protocol=Protocol.REST_JSON),
    # rest-xml
    "cloudfront": ServiceProtocol(
        protocol=Protocol.REST_XML,
        global_region="us-east-1",
        global_host="cloudfront.amazonaws.com",
    ),
    "route53": ServiceProtocol(
        protocol=Protocol.REST_XML,
        global_region="us-east-1",
        global_host="route53.amazonaws.com",
    ),
    "s3": ServiceProtocol(
        protocol=Protocol.REST_XML,
        uri_encode_path=False,
        content_sha256_header=True,
    ),
}

DEFAULT_SERVICE_PROTOCOL = ServiceProtocol(protocol=Protocol.QUERY)


def get_service_protocol(
    service: str, *, protocol: Protocol | str | None = None
) -> ServiceProtocol:
    """Look up how to talk to ``service``.

    Unknown services fall back to the query protocol. A ``protocol`` hint replaces
    the protocol family from the table while keeping the rest of the descriptor.
    """
    descriptor = SERVICES.get(service, DEFAULT_SERVICE_PROTOCOL)
    if protocol is not None and Protocol(protocol) is not descriptor.protocol:
        return replace(descriptor, protocol=Protocol(protocol))
    return descriptor


_AMAZONAWS_HOST: Final = re.compile(
    r"([^.]+)\.(?:([^.]+)\.)?amazonaws\.com(?:\.cn)?$"
)
_LAMBDA_URL_HOST: Final = re.compile(r"^[^.]+\.lambda-url\.([^.]+)\.on\.aws$")
_B2_HOST: Final = re.compile(r"^(?:[^.]+\.)?s3\.([^.]+)\.backblazeb2\.com$")
_NUMBERED_LABEL: Final = re.compile(r"-\d$")

# Host labels whose credential scope uses a different service name.
_HOST_SIGNING_NAMES: Final = {
    "appstream2": "appstream",
    "cloudhsmv2": "cloudhsm",
    "email": "ses",
    "git-codecommit": "codecommit",
    "marketplace": "aws-marketplace",
    "mturk-requester-sandbox": "mturk-requester",
    "personalize-runtime": "personalize",
    "pinpoint": "mobiletargeting",
    "queue": "sqs",
}


def detect_service_region(url: str) -> tuple[str, str]:
    """Infer the signing service name and region from an endpoint URL.

    ``https://sqs.eu-west-1.amazonaws.com/`` gives ``("sqs", "eu-west-1")`` and
    ``https://email.us-east-1.amazonaws.com/`` gives ``("ses", "us-east-1")``.
    Hosts without a region label, such as ``iam.amazonaws.com``, sign for
    ``us-east-1``. Lambda function URLs and the S3-compatible Cloudflare R2 and
    Backblaze B2 hosts are recognized as well.

    :param url: An absolute URL.
    :returns: The ``(service, region)`` pair for the credential scope.
    :raises ValueError: If the host is not a recognizable endpoint.
    """
    parts = urlparse(url)
    host = (parts.hostname or "").lower()

    if match := _LAMBDA_URL_HOST.match(host):
        return "lambda", match.group(1)
    if host.endswith(".r2.cloudflarestorage.com"):
        return "s3", "auto"
    if match := _B2_HOST.match(host):
        return "s3", match.group(1)

    match = _AMAZONAWS_HOST.search(host.replace("dualstack.", ""))
    if match is None:
        raise ValueError(
            f"Could not detect the service and region of {url!r}. Pass them "
            "explicitly instead."
        )

    service, region = match.group(1), match.group(2) or ""
    if region == "us-gov":
        region = "us-gov-west-1"
    elif region in ("s3", "s3-accelerate"):
        service, region = "s3", "us-east-1"
    elif service == "iot":
        if host.startswith("iot."):
            service = "execute-api"
        elif host.startswith("data.jobs.iot."):
            service = "iot-jobs-data"
        else:
            service = "iotdevicegateway" if parts.path == "/mqtt" else "iotdata"
    elif not region and service.startswith("s3-"):
        region = service.removeprefix("s3-").removeprefix("fips-")
        if region == "external-1":
            region = ""
        service = "s3"
    elif service.endswith("-fips"):
        service = service.removesuffix("-fips")
    elif (
        region
        and _NUMBERED_LABEL.search(service)
        and not _NUMBERED_LABEL.search(region)
    ):
        # Legacy hosts such as us-east-1.ec2.amazonaws.com put the region first.
        service, region = region, service

    return _HOST_SIGNING_NAMES.get(service, service), region or "us-east-1"
