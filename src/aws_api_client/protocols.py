#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import io
import json
import logging
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, Final
from urllib.parse import quote, urlencode
from xml.etree import ElementTree

import ijson  # type: ignore

from ._http import URI, AWSRequest, Field, Fields
from .exceptions import (
    AWSApiError,
    ClientError,
    ProtocolError,
    ServerError,
    ThrottlingError,
)
from .interfaces.http import HTTPResponse
from .models import AWSResponse, QueryValue, RequestSpec, ResponseBody
from .services import Protocol, ServiceProtocol

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE: Final = "application/x-www-form-urlencoded; charset=utf-8"

THROTTLING_ERROR_CODES: Final = frozenset(
    {
        "BandwidthLimitExceeded",
        "EC2ThrottledException",
        "LimitExceededException",
        "PriorRequestNotComplete",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "RequestThrottledException",
        "SlowDown",
        "ThrottledException",
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
        "TransactionInProgressException",
    }
)

_REQUEST_ID_HEADERS: Final = ("x-amzn-requestid", "x-amz-request-id")

# EC2 success bodies spell the element requestId.
_REQUEST_ID_TAGS: Final = ("RequestId", "RequestID", "requestId")

_JSON_CODE_HEADER: Final = "x-amzn-errortype"

_JSON_CODE_KEYS: Final = ("__type", "code", "Code")

_JSON_MESSAGE_KEYS: Final = {"message", "errormessage", "error_message"}


def create_api_error(
    *, code: str, message: str, status_code: int, request_id: str | None
) -> AWSApiError:
    """Classify a service error by its code and HTTP status."""
    if status_code == 429 or code in THROTTLING_ERROR_CODES:
        error_class = ThrottlingError
    elif status_code >= 500:
        error_class = ServerError
    else:
        error_class = ClientError
    return error_class(
        message,
        code=code,
        status_code=status_code,
        request_id=request_id,
    )


def status_code_name(status: int, reason: str | None = None) -> str:
    """Derive an error code from an HTTP status, e.g. ``404`` -> ``NotFound``."""
    try:
        phrase = HTTPStatus(status).phrase
    except ValueError:
        phrase = reason or str(status)
    return "".join(phrase.split())


def flatten_params(
    params: Mapping[str, Any], prefix: str = "", *, flat_lists: bool = False
) -> list[tuple[str, str]]:
    """Flatten nested parameters into query protocol name/value pairs.

    Maps nest with ``.`` (``Attributes.Name``) and lists become 1-indexed members
    (``Tags.member.1.Key``). With ``flat_lists`` the ``member`` label is left out
    (``InstanceId.1``), as EC2 expects. ``None`` values are skipped.
    """
    flat: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}{key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            flat.extend(
                flatten_params(value, f"{name}.", flat_lists=flat_lists)  # type: ignore
            )
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value, start=1):  # type: ignore
                member = f"{name}.{index}" if flat_lists else f"{name}.member.{index}"
                if isinstance(item, Mapping):
                    flat.extend(
                        flatten_params(  # type: ignore
                            item, f"{member}.", flat_lists=flat_lists
                        )
                    )
                elif item is not None:
                    flat.append((member, _format_scalar(item)))
        else:
            flat.append((name, _format_scalar(value)))
    return flat


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _local_name(tag: str) -> str:
    return tag.rpartition("}")[2]


def xml_to_tree(element: ElementTree.Element) -> ResponseBody:
    """Convert an XML element into a generic tree.

    Namespaces are dropped, leaves become their text, repeated tags become lists,
    and wrappers whose children are all ``member`` or ``item`` become lists.
    """
    children = list(element)
    if not children:
        return element.text or ""

    tags = [_local_name(child.tag) for child in children]
    if all(tag in ("member", "item") for tag in tags):
        return [xml_to_tree(child) for child in children]

    counts = Counter(tags)
    tree: dict[str, Any] = {}
    for tag, child in zip(tags, children):
        value = xml_to_tree(child)
        if counts[tag] > 1:
            tree.setdefault(tag, []).append(value)
        else:
            tree[tag] = value
    return tree


def _find_text(root: ElementTree.Element, *names: str) -> str | None:
    for element in root.iter():
        if _local_name(element.tag) in names and element.text:
            return element.text
    return None


def _build_element(tag: str, value: Any) -> ElementTree.Element:
    element = ElementTree.Element(tag)
    if isinstance(value, Mapping):
        for key, child in value.items():  # type: ignore
            if key.startswith("@"):
                element.set(key[1:], _format_scalar(child))
            elif isinstance(child, (list, tuple)):
                for item in child:  # type: ignore
                    element.append(_build_element(key, item))
            else:
                element.append(_build_element(key, child))
    elif value is not None:
        element.text = _format_scalar(value)
    return element


def tree_to_xml(body: Mapping[str, Any]) -> bytes:
    """Serialize a single-rooted mapping as XML.

    Keys starting with ``@`` become attributes, e.g. ``{"@xmlns": "..."}``, and list
    values become repeated elements.
    """
    if len(body) != 1:
        raise ValueError(
            "XML payloads must have exactly one root element, got "
            f"{len(body)}: {', '.join(body)}"
        )
    ((tag, value),) = body.items()
    return ElementTree.tostring(_build_element(tag, value), encoding="utf-8")


def parse_xml(body: bytes) -> ElementTree.Element:
    try:
        return ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise ProtocolError(f"Unable to parse XML response body: {e}") from e


def parse_json(body: bytes) -> ResponseBody:
    try:
        values = list(ijson.items(io.BytesIO(body), "", use_float=True))
    except (ijson.JSONError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Unable to parse JSON response body: {e}") from e
    if len(values) != 1:
        raise ProtocolError("Expected a single JSON document in the response body.")
    return values[0]


def encode_json(body: Any) -> bytes:
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


class ProtocolCodec(ABC):
    """Encodes a :py:class:`RequestSpec` for one protocol family and decodes the
    responses."""

    protocol: Protocol

    def encode(
        self, spec: RequestSpec, service: ServiceProtocol, endpoint: URI
    ) -> AWSRequest:
        """Build the unsigned wire request for ``spec``.

        The returned body is final: it is the exact payload that gets hashed,
        signed and transmitted.
        """
        method, query, fields, body = self._encode_payload(spec, service)
        if spec.headers:
            for name, value in spec.headers.items():
                fields.set_field(Field(name=name, values=[value]))

        if query is None:
            query = self._wire_query(spec.query)

        return AWSRequest(
            destination=URI(
                scheme=endpoint.scheme,
                host=endpoint.host,
                port=endpoint.port,
                path=self._wire_path(spec),
                query=query,
            ),
            method=method,
            body=body,
            fields=fields,
        )

    def decode(self, response: HTTPResponse, spec: RequestSpec) -> AWSResponse:
        """Decode a response into an :py:class:`AWSResponse`.

        :raises AWSApiError: If the response carries an error status.
        :raises ProtocolError: If the body does not parse.
        """
        if not 200 <= response.status < 300:
            raise self.parse_error(response)

        body, body_request_id = self._decode_success(response, spec)
        return AWSResponse(
            status=response.status,
            headers=response.fields,
            body=body,
            request_id=self._header_request_id(response) or body_request_id,
        )

    def parse_error(self, response: HTTPResponse) -> AWSApiError | ProtocolError:
        """Normalize an error response into an :py:class:`AWSApiError`.

        Error responses without a body use the HTTP status phrase as their code.
        Unparseable bodies on retryable statuses are treated the same way, since
        load balancers may answer with non-service payloads. Otherwise they yield a
        :py:class:`ProtocolError`.
        """
        request_id = self._header_request_id(response)
        if not response.body.strip():
            code, message = status_code_name(response.status, response.reason), ""
        else:
            try:
                code, message, body_request_id = self._parse_error_body(response)
            except ProtocolError as e:
                if response.status != 429 and response.status < 500:
                    return e
                code = status_code_name(response.status, response.reason)
                message = response.body.decode("utf-8", errors="replace")
                body_request_id = None
            request_id = request_id or body_request_id

        error = create_api_error(
            code=code,
            message=message,
            status_code=response.status,
            request_id=request_id,
        )
        logger.debug(
            "Received %s error response %r (request id %s)",
            response.status,
            code,
            request_id,
        )
        return error

    @abstractmethod
    def _encode_payload(
        self, spec: RequestSpec, service: ServiceProtocol
    ) -> tuple[str, str | None, Fields, bytes | None]:
        """Return the method, query override, fields and body for ``spec``."""
        ...

    @abstractmethod
    def _decode_success(
        self, response: HTTPResponse, spec: RequestSpec
    ) -> tuple[ResponseBody, str | None]:
        """Return the decoded body and any request id found inside it."""
        ...

    @abstractmethod
    def _parse_error_body(
        self, response: HTTPResponse
    ) -> tuple[str, str, str | None]:
        """Return the code, message and request id of a non-empty error body."""
        ...

    def _wire_path(self, spec: RequestSpec) -> str:
        path = spec.path or "/"
        if not path.startswith("/"):
            path = f"/{path}"
        if spec.path_is_encoded:
            return path
        return quote(path, safe="/~")

    def _wire_query(self, query: Mapping[str, QueryValue] | None) -> str | None:
        if not query:
            return None
        pairs: list[tuple[str, str]] = []
        for key, value in query.items():
            if isinstance(value, str):
                pairs.append((key, value))
            else:
                pairs.extend((key, item) for item in value)
        return urlencode(pairs, quote_via=quote, safe="~")

    def _header_request_id(self, response: HTTPResponse) -> str | None:
        for name in _REQUEST_ID_HEADERS:
            if (value := response.fields.get_value(name)) is not None:
                return value
        return None

    def _require_operation(self, spec: RequestSpec) -> str:
        if not spec.operation:
            raise ValueError(
                f"The {self.protocol} protocol requires an operation name, but none "
                f"was given for a call to {spec.service}."
            )
        return spec.operation


class _XMLErrorsMixin:
    def _parse_error_body(
        self, response: HTTPResponse
    ) -> tuple[str, str, str | None]:
        root = parse_xml(response.body)
        error = next(
            (el for el in root.iter() if _local_name(el.tag) == "Error"), root
        )
        code = _find_text(error, "Code") or status_code_name(
            response.status, response.reason
        )
        message = _find_text(error, "Message") or ""
        return code, message, _find_text(root, *_REQUEST_ID_TAGS)


class _JSONErrorsMixin:
    def _parse_error_body(
        self, response: HTTPResponse
    ) -> tuple[str, str, str | None]:
        body = parse_json(response.body)
        if not isinstance(body, Mapping):
            raise ProtocolError("Expected a JSON object in the error response body.")

        code = response.fields.get_value(_JSON_CODE_HEADER)
        if not code:
            code = next(
                (str(body[key]) for key in _JSON_CODE_KEYS if body.get(key)), None
            )
        message = next(
            (
                str(value)
                for key, value in body.items()
                if key.lower() in _JSON_MESSAGE_KEYS and value is not None
            ),
            "",
        )
        if not code:
            return status_code_name(response.status, response.reason), message, None
        return sanitize_error_code(code), message, None


def sanitize_error_code(code: str) -> str:
    """Strip the namespace and trailing metadata from a JSON error code.

    ``aws.protocoltests#FooError:http://internal.amazon.com/`` becomes ``FooError``.
    """
    code = code.split(":")[0]
    return code.rpartition("#")[2]


class QueryCodec(_XMLErrorsMixin, ProtocolCodec):
    """``Action``/``Version`` form parameters in, XML out."""

    protocol = Protocol.QUERY

    def _encode_payload(
        self, spec: RequestSpec, service: ServiceProtocol
    ) -> tuple[str, str | None, Fields, bytes | None]:
        params = [("Action", self._require_operation(spec))]
        if service.api_version is not None:
            params.append(("Version", service.api_version))
        params.extend(
            flatten_params(spec.body or {}, flat_lists=service.flat_query_lists)
        )
        form = urlencode(params, quote_via=quote, safe="~")

        method = (spec.method or "POST").upper()
        if method == "GET":
            base = self._wire_query(spec.query)
            return method, f"{base}&{form}" if base else form, Fields(), None

        fields = Fields([Field(name="Content-Type", values=[FORM_CONTENT_TYPE])])
        return method, None, fields, form.encode("utf-8")

    def _decode_success(
        self, response: HTTPResponse, spec: RequestSpec
    ) -> tuple[ResponseBody, str | None]:
        if not response.body.strip():
            return None, None

        root = parse_xml(response.body)
        request_id = _find_text(root, *_REQUEST_ID_TAGS)
        result_name = f"{spec.operation}Result"
        for child in root:
            if _local_name(child.tag) == result_name:
                if len(child) == 0 and not (child.text or "").strip():
                    return {}, request_id
                return xml_to_tree(child), request_id
        return xml_to_tree(root), request_id


class JSONRPCCodec(_JSONErrorsMixin, ProtocolCodec):
    """JSON bodies dispatched through the ``X-Amz-Target`` header."""

    protocol = Protocol.JSON

    def _encode_payload(
        self, spec: RequestSpec, service: ServiceProtocol
    ) -> tuple[str, str | None, Fields, bytes | None]:
        operation = self._require_operation(spec)
        if service.target_prefix is None:
            raise ValueError(
                f"No X-Amz-Target prefix is known for {spec.service}; json calls "
                "require one."
            )
        fields = Fields(
            [
                Field(
                    name="Content-Type",
                    values=[f"application/x-amz-json-{service.json_version}"],
                ),
                Field(
                    name="X-Amz-Target",
                    values=[f"{service.target_prefix}.{operation}"],
                ),
            ]
        )
        body = spec.body if spec.body is not None else {}
        return (spec.method or "POST").upper(), None, fields, encode_json(body)

    def _decode_success(
        self, response: HTTPResponse, spec: RequestSpec
    ) -> tuple[ResponseBody, str | None]:
        if not response.body.strip():
            return None, None
        return parse_json(response.body), None


class _RestCodec(ProtocolCodec):
    _content_type: str
    _media_marker: str

    def _encode_payload(
        self, spec: RequestSpec, service: ServiceProtocol
    ) -> tuple[str, str | None, Fields, bytes | None]:
        method = (spec.method or "GET").upper()
        fields = Fields()
        body = spec.body
        if body is None:
            return method, None, fields, None
        if isinstance(body, bytes):
            return method, None, fields, body
        if isinstance(body, str):
            return method, None, fields, body.encode("utf-8")

        fields.set_field(Field(name="Content-Type", values=[self._content_type]))
        return method, None, fields, self._serialize(body)

    def _decode_success(
        self, response: HTTPResponse, spec: RequestSpec
    ) -> tuple[ResponseBody, str | None]:
        if not response.body.strip():
            return None, None
        content_type = response.fields.get_value("Content-Type")
        if content_type and self._media_marker not in content_type.lower():
            # Raw payloads such as object contents or synthesized audio.
            return response.body, None
        return self._deserialize(response.body), None

    @abstractmethod
    def _serialize(self, body: Any) -> bytes: ...

    @abstractmethod
    def _deserialize(self, body: bytes) -> ResponseBody: ...


class RestJSONCodec(_JSONErrorsMixin, _RestCodec):
    """HTTP bindings with JSON payloads."""

    protocol = Protocol.REST_JSON
    _content_type = "application/json"
    _media_marker = "json"

    def _serialize(self, body: Any) -> bytes:
        return encode_json(body)

    def _deserialize(self, body: bytes) -> ResponseBody:
        return parse_json(body)


class RestXMLCodec(_XMLErrorsMixin, _RestCodec):
    """HTTP bindings with XML payloads."""

    protocol = Protocol.REST_XML
    _content_type = "application/xml"
    _media_marker = "xml"

    def _serialize(self, body: Any) -> bytes:
        if not isinstance(body, Mapping):
            raise ValueError(
                f"Expected a mapping for an XML payload, got {type(body).__name__}."
            )
        return tree_to_xml(body)  # type: ignore

    def _deserialize(self, body: bytes) -> ResponseBody:
        return xml_to_tree(parse_xml(body))


_CODECS: Final[dict[Protocol, ProtocolCodec]] = {
    Protocol.QUERY: QueryCodec(),
    Protocol.JSON: JSONRPCCodec(),
    Protocol.REST_JSON: RestJSONCodec(),
    Protocol.REST_XML: RestXMLCodec(),
}


def get_codec(protocol: Protocol | str) -> ProtocolCodec:
    """Return the codec for a protocol family."""
    return _CODECS[Protocol(protocol)]
