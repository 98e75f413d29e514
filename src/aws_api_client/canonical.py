#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from dataclasses import dataclass
from hashlib import sha256
from urllib.parse import parse_qsl, quote

from ._http import URI, AWSRequest

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "accept",
    "accept-encoding",
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
)
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

UNSIGNED_PAYLOAD: str = "UNSIGNED-PAYLOAD"
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


@dataclass(frozen=True)
class CanonicalRequest:
    """The canonical form of a single request.

    The SigV4 specification defines the canonical request to be::

        <HTTPMethod>\\n
        <CanonicalURI>\\n
        <CanonicalQueryString>\\n
        <CanonicalHeaders>\\n
        <SignedHeaders>\\n
        <HashedPayload>

    ``str()`` of an instance yields exactly that string, which is useful to compare
    inputs when hunting down signature mismatches.
    """

    method: str
    uri: str
    query: str
    headers: str
    """Canonical header block, one ``name:value\\n`` line per signed header."""

    signed_headers: str
    payload_hash: str

    def __str__(self) -> str:
        return (
            f"{self.method}\n"
            f"{self.uri}\n"
            f"{self.query}\n"
            f"{self.headers}\n"
            f"{self.signed_headers}\n"
            f"{self.payload_hash}"
        )


def canonicalize(
    request: AWSRequest,
    *,
    uri_encode_path: bool = True,
    payload_hash: str | None = None,
) -> CanonicalRequest:
    """Build the canonical request for an already-finalized request.

    The request must carry every header that should be signed (``X-Amz-Date``,
    ``X-Amz-Security-Token``, ...) before it is canonicalized.

    :param request: The request to canonicalize. It is not modified.
    :param uri_encode_path: Whether path segments are percent-encoded again. S3 is
        the one service that signs the wire path verbatim.
    :param payload_hash: A precomputed payload hash such as ``UNSIGNED-PAYLOAD``. If
        omitted, an ``X-Amz-Content-SHA256`` field wins, then the body hash.
    """
    normalized_fields = normalize_signing_fields(request)
    return CanonicalRequest(
        method=request.method.upper(),
        uri=format_canonical_path(
            request.destination.path, uri_encode_path=uri_encode_path
        ),
        query=format_canonical_query(request.destination.query),
        headers=format_canonical_fields(normalized_fields),
        signed_headers=";".join(normalized_fields),
        payload_hash=payload_hash or compute_payload_hash(request),
    )


def format_canonical_path(path: str | None, *, uri_encode_path: bool = True) -> str:
    if not path:
        return "/"

    if uri_encode_path:
        normalized_path = _remove_dot_segments(path)
        return quote(string=normalized_path, safe="/")
    return path


def format_canonical_query(query: str | None) -> str:
    if not query:
        return ""

    query_params = parse_qsl(qs=query, keep_blank_values=True)
    query_parts = (
        (quote(string=key, safe=""), quote(string=value, safe=""))
        for key, value in query_params
    )
    # key-value pairs must be in sorted order for their encoded forms.
    return "&".join(f"{key}={value}" for key, value in sorted(query_parts))


def normalize_signing_fields(request: AWSRequest) -> dict[str, str]:
    """Return the signable fields as a sorted ``{lower-case name: value}`` mapping."""
    normalized_fields = {
        field.name.lower(): field.as_string()
        for field in request.fields
        if field.name.lower() not in HEADERS_EXCLUDED_FROM_SIGNING
    }
    if "host" not in normalized_fields:
        normalized_fields["host"] = normalize_host_field(request.destination)

    return dict(sorted(normalized_fields.items()))


def normalize_host_field(uri: URI) -> str:
    if uri.port is not None and DEFAULT_PORTS.get(uri.scheme) == uri.port:
        return uri.host
    return uri.netloc


def format_canonical_fields(fields: dict[str, str]) -> str:
    return "".join(
        f"{key}:{' '.join(value.split())}\n" for key, value in fields.items()
    )


def compute_payload_hash(request: AWSRequest) -> str:
    if (explicit := request.fields.get_value("X-Amz-Content-SHA256")) is not None:
        return explicit

    if not request.body:
        return EMPTY_SHA256_HASH
    return sha256(request.body).hexdigest()


def _remove_dot_segments(path: str) -> str:
    """Removes dot segments from a path per :rfc:`3986#section-5.2.4`.

    Consecutive slashes are collapsed as well.

    :param path: The path to modify.
    :returns: The path with dot segments removed.
    """
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    result = "/".join(output)
    return result.replace("//", "/")
