#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from typing import Any
from xml.etree import ElementTree

import pytest
from aws_api_client import (
    URI,
    ClientError,
    HTTPResponse,
    ProtocolError,
    RequestSpec,
    ServerError,
    ThrottlingError,
)
from aws_api_client._http import tuples_to_fields
from aws_api_client.protocols import (
    FORM_CONTENT_TYPE,
    JSONRPCCodec,
    QueryCodec,
    RestJSONCodec,
    RestXMLCodec,
    flatten_params,
    get_codec,
    sanitize_error_code,
    status_code_name,
    tree_to_xml,
    xml_to_tree,
)
from aws_api_client.services import Protocol, get_service_protocol

ENDPOINT = URI(host="service.us-east-1.amazonaws.com")

CREATE_TOPIC_RESPONSE = b"""<CreateTopicResponse
    xmlns="http://sns.amazonaws.com/doc/2010-03-31/">
  <CreateTopicResult>
    <TopicArn>arn:aws:sns:us-east-1:123456789012:orders</TopicArn>
  </CreateTopicResult>
  <ResponseMetadata>
    <RequestId>a8dec8b3-33a4-11df-8963-01868b7c937a</RequestId>
  </ResponseMetadata>
</CreateTopicResponse>"""

INVALID_PARAMETER_RESPONSE = b"""<ErrorResponse
    xmlns="http://sns.amazonaws.com/doc/2010-03-31/">
  <Error>
    <Type>Sender</Type>
    <Code>InvalidParameter</Code>
    <Message>Invalid parameter: Name</Message>
  </Error>
  <RequestId>b5f4e7a3-0000-4000-8000-000000000000</RequestId>
</ErrorResponse>"""


def _response(
    status: int = 200,
    body: bytes = b"",
    headers: list[tuple[str, str]] | None = None,
) -> HTTPResponse:
    return HTTPResponse(
        status=status, fields=tuples_to_fields(headers or []), body=body
    )


def _encode(spec: RequestSpec) -> Any:
    service = get_service_protocol(spec.service, protocol=spec.protocol)
    return get_codec(service.protocol).encode(spec, service, ENDPOINT)


@pytest.mark.parametrize(
    "protocol, codec_class",
    [
        (Protocol.QUERY, QueryCodec),
        ("json", JSONRPCCodec),
        ("rest-json", RestJSONCodec),
        (Protocol.REST_XML, RestXMLCodec),
    ],
)
def test_get_codec(protocol: str, codec_class: type) -> None:
    assert isinstance(get_codec(protocol), codec_class)


def test_get_codec_unknown_protocol() -> None:
    with pytest.raises(ValueError):
        get_codec("smoke-signals")


@pytest.mark.parametrize(
    "status, reason, expected",
    [
        (404, None, "NotFound"),
        (503, None, "ServiceUnavailable"),
        (429, None, "TooManyRequests"),
        (599, "Network Connect Timeout", "NetworkConnectTimeout"),
        (599, None, "599"),
    ],
)
def test_status_code_name(status: int, reason: str | None, expected: str) -> None:
    assert status_code_name(status, reason) == expected


def test_flatten_params() -> None:
    params = {
        "Name": "orders",
        "Attributes": {"DisplayName": "Orders"},
        "Tags": [{"Key": "team", "Value": "billing"}],
        "Enabled": True,
        "Skipped": None,
        "Ids": ["a", "b"],
        "Count": 3,
    }
    assert flatten_params(params) == [
        ("Name", "orders"),
        ("Attributes.DisplayName", "Orders"),
        ("Tags.member.1.Key", "team"),
        ("Tags.member.1.Value", "billing"),
        ("Enabled", "true"),
        ("Ids.member.1", "a"),
        ("Ids.member.2", "b"),
        ("Count", "3"),
    ]


def test_flatten_params_flat_lists() -> None:
    params = {
        "InstanceId": ["i-1", "i-2"],
        "Filter": [{"Name": "instance-state-name", "Values": ["running"]}],
    }
    assert flatten_params(params, flat_lists=True) == [
        ("InstanceId.1", "i-1"),
        ("InstanceId.2", "i-2"),
        ("Filter.1.Name", "instance-state-name"),
        ("Filter.1.Values.1", "running"),
    ]


def test_xml_to_tree() -> None:
    root = ElementTree.fromstring(
        b'<R xmlns="urn:example"><Items><member>a</member><member>b</member></Items>'
        b"<Tag>x</Tag><Tag>y</Tag><Empty/><Nested><Value>1</Value></Nested></R>"
    )
    assert xml_to_tree(root) == {
        "Items": ["a", "b"],
        "Tag": ["x", "y"],
        "Empty": "",
        "Nested": {"Value": "1"},
    }


def test_tree_to_xml() -> None:
    body = tree_to_xml(
        {
            "CreateBucketConfiguration": {
                "@xmlns": "http://s3.amazonaws.com/doc/2006-03-01/",
                "LocationConstraint": "eu-west-1",
                "Tag": ["a", "b"],
            }
        }
    )
    root = ElementTree.fromstring(body)
    assert root.tag == (
        "{http://s3.amazonaws.com/doc/2006-03-01/}CreateBucketConfiguration"
    )
    assert xml_to_tree(root) == {"LocationConstraint": "eu-west-1", "Tag": ["a", "b"]}


def test_tree_to_xml_requires_single_root() -> None:
    with pytest.raises(ValueError, match="exactly one root"):
        tree_to_xml({"A": "1", "B": "2"})


@pytest.mark.parametrize(
    "code, expected",
    [
        ("ResourceNotFoundException", "ResourceNotFoundException"),
        (
            "com.amazonaws.dynamodb.v20120810#ResourceNotFoundException",
            "ResourceNotFoundException",
        ),
        (
            "ValidationException:http://internal.amazon.com/coral/validate/",
            "ValidationException",
        ),
        ("aws.protocoltests#FooError:http://internal.amazon.com/", "FooError"),
    ],
)
def test_sanitize_error_code(code: str, expected: str) -> None:
    assert sanitize_error_code(code) == expected


class TestQueryCodec:
    def test_encode_post(self) -> None:
        request = _encode(
            RequestSpec(service="sns", operation="CreateTopic", body={"Name": "orders"})
        )
        assert request.method == "POST"
        assert request.destination.path == "/"
        assert request.destination.query is None
        assert request.fields["Content-Type"].as_string() == FORM_CONTENT_TYPE
        assert request.body == b"Action=CreateTopic&Version=2010-03-31&Name=orders"

    def test_encode_get(self) -> None:
        request = _encode(
            RequestSpec(service="iam", operation="ListUsers", method="get")
        )
        assert request.method == "GET"
        assert request.body is None
        assert "Content-Type" not in request.fields
        assert request.destination.query == "Action=ListUsers&Version=2010-05-08"

    def test_encode_escapes_values(self) -> None:
        request = _encode(
            RequestSpec(
                service="sqs",
                operation="SendMessage",
                body={"MessageBody": "a b&c=d/é~"},
            )
        )
        assert request.body == (
            b"Action=SendMessage&Version=2012-11-05"
            b"&MessageBody=a%20b%26c%3Dd%2F%C3%A9~"
        )

    def test_encode_ec2_lists_without_member(self) -> None:
        request = _encode(
            RequestSpec(
                service="ec2",
                operation="DescribeInstances",
                body={
                    "InstanceId": ["i-1"],
                    "Filter": [{"Name": "tag:team", "Value": ["a", "b"]}],
                },
            )
        )
        assert request.body == (
            b"Action=DescribeInstances&Version=2016-11-15&InstanceId.1=i-1"
            b"&Filter.1.Name=tag%3Ateam&Filter.1.Value.1=a&Filter.1.Value.2=b"
        )

    def test_unknown_service_has_no_version(self) -> None:
        request = _encode(RequestSpec(service="example", operation="Ping"))
        assert request.body == b"Action=Ping"

    def test_operation_is_required(self) -> None:
        with pytest.raises(ValueError, match="requires an operation"):
            _encode(RequestSpec(service="sns"))

    def test_decode_result(self) -> None:
        spec = RequestSpec(service="sns", operation="CreateTopic")
        response = QueryCodec().decode(_response(body=CREATE_TOPIC_RESPONSE), spec)
        assert response.status == 200
        assert response.body == {
            "TopicArn": "arn:aws:sns:us-east-1:123456789012:orders"
        }
        assert response.request_id == "a8dec8b3-33a4-11df-8963-01868b7c937a"

    def test_decode_empty_result(self) -> None:
        spec = RequestSpec(service="sns", operation="SetTopicAttributes")
        body = (
            b"<SetTopicAttributesResponse><SetTopicAttributesResult/>"
            b"<ResponseMetadata><RequestId>r-1</RequestId></ResponseMetadata>"
            b"</SetTopicAttributesResponse>"
        )
        response = QueryCodec().decode(_response(body=body), spec)
        assert response.body == {}
        assert response.request_id == "r-1"

    def test_decode_without_result_element(self) -> None:
        spec = RequestSpec(service="sns", operation="DeleteTopic")
        body = (
            b"<DeleteTopicResponse><ResponseMetadata><RequestId>r-2</RequestId>"
            b"</ResponseMetadata></DeleteTopicResponse>"
        )
        response = QueryCodec().decode(_response(body=body), spec)
        assert response.body == {"ResponseMetadata": {"RequestId": "r-2"}}

    def test_decode_list_members(self) -> None:
        spec = RequestSpec(service="sns", operation="ListTopics")
        body = (
            b"<ListTopicsResponse><ListTopicsResult><Topics>"
            b"<member><TopicArn>arn:1</TopicArn></member>"
            b"<member><TopicArn>arn:2</TopicArn></member>"
            b"</Topics></ListTopicsResult></ListTopicsResponse>"
        )
        response = QueryCodec().decode(_response(body=body), spec)
        assert response.body == {
            "Topics": [{"TopicArn": "arn:1"}, {"TopicArn": "arn:2"}]
        }

    def test_decode_ec2_request_id(self) -> None:
        spec = RequestSpec(service="ec2", operation="DescribeInstances")
        body = (
            b'<DescribeInstancesResponse xmlns="http://ec2.amazonaws.com/doc/'
            b'2016-11-15/"><requestId>8f7724cf-0000-4000-8000-example</requestId>'
            b"<reservationSet><item><reservationId>r-1</reservationId></item>"
            b"</reservationSet></DescribeInstancesResponse>"
        )
        response = QueryCodec().decode(_response(body=body), spec)
        assert response.request_id == "8f7724cf-0000-4000-8000-example"
        assert response.body == {
            "requestId": "8f7724cf-0000-4000-8000-example",
            "reservationSet": [{"reservationId": "r-1"}],
        }

    def test_decode_malformed_body(self) -> None:
        spec = RequestSpec(service="sns", operation="CreateTopic")
        with pytest.raises(ProtocolError):
            QueryCodec().decode(_response(body=b"<CreateTopicResponse>"), spec)

    def test_parse_error(self) -> None:
        error = QueryCodec().parse_error(
            _response(status=400, body=INVALID_PARAMETER_RESPONSE)
        )
        assert isinstance(error, ClientError)
        assert error.code == "InvalidParameter"
        assert error.message == "Invalid parameter: Name"
        assert error.status_code == 400
        assert error.request_id == "b5f4e7a3-0000-4000-8000-000000000000"
        assert error.retryable is False
        assert str(error) == "InvalidParameter (400): Invalid parameter: Name"

    def test_decode_raises_error(self) -> None:
        spec = RequestSpec(service="sns", operation="CreateTopic")
        with pytest.raises(ClientError) as exc_info:
            QueryCodec().decode(
                _response(status=400, body=INVALID_PARAMETER_RESPONSE), spec
            )
        assert exc_info.value.code == "InvalidParameter"

    def test_throttling_code(self) -> None:
        body = (
            b"<ErrorResponse><Error><Code>Throttling</Code>"
            b"<Message>Rate exceeded</Message></Error></ErrorResponse>"
        )
        error = QueryCodec().parse_error(_response(status=400, body=body))
        assert isinstance(error, ThrottlingError)
        assert error.retryable is True


class TestJSONRPCCodec:
    def test_encode(self) -> None:
        request = _encode(
            RequestSpec(
                service="dynamodb",
                operation="DescribeTable",
                body={"TableName": "orders"},
            )
        )
        assert request.method == "POST"
        assert request.fields["X-Amz-Target"].as_string() == (
            "DynamoDB_20120810.DescribeTable"
        )
        assert request.fields["Content-Type"].as_string() == (
            "application/x-amz-json-1.0"
        )
        assert request.body == b'{"TableName":"orders"}'

    def test_encode_empty_body(self) -> None:
        request = _encode(RequestSpec(service="kms", operation="ListKeys"))
        assert request.body == b"{}"
        assert request.fields["Content-Type"].as_string() == (
            "application/x-amz-json-1.1"
        )

    def test_caller_headers_override_defaults(self) -> None:
        request = _encode(
            RequestSpec(
                service="kms",
                operation="ListKeys",
                headers={"content-type": "application/json"},
            )
        )
        assert request.fields["Content-Type"].as_string() == "application/json"

    def test_target_prefix_is_required(self) -> None:
        with pytest.raises(ValueError, match="X-Amz-Target"):
            _encode(RequestSpec(service="example", operation="Ping", protocol="json"))

    def test_decode(self) -> None:
        spec = RequestSpec(service="dynamodb", operation="DescribeTable")
        response = JSONRPCCodec().decode(
            _response(
                body=b'{"Table": {"ItemCount": 3, "SizeGb": 1.5, "Tags": ["a"]}}',
                headers=[("x-amzn-RequestId", "req-1")],
            ),
            spec,
        )
        assert response.body == {
            "Table": {"ItemCount": 3, "SizeGb": 1.5, "Tags": ["a"]}
        }
        assert response.request_id == "req-1"

    @pytest.mark.parametrize("body", [b"{not json", b"\xff\xfe", b'{"a": 1} {"b": 2}'])
    def test_decode_malformed_body(self, body: bytes) -> None:
        spec = RequestSpec(service="dynamodb", operation="DescribeTable")
        with pytest.raises(ProtocolError):
            JSONRPCCodec().decode(_response(body=body), spec)

    def test_parse_error_type_field(self) -> None:
        error = JSONRPCCodec().parse_error(
            _response(
                status=400,
                body=(
                    b'{"__type": "com.amazonaws.dynamodb.v20120810#'
                    b'ResourceNotFoundException", "message": "Requested resource '
                    b'not found"}'
                ),
                headers=[("x-amzn-RequestId", "req-2")],
            )
        )
        assert isinstance(error, ClientError)
        assert error.code == "ResourceNotFoundException"
        assert error.message == "Requested resource not found"
        assert error.request_id == "req-2"

    def test_parse_error_header_wins(self) -> None:
        error = JSONRPCCodec().parse_error(
            _response(
                status=400,
                body=b'{"__type": "Other", "Message": "bad"}',
                headers=[
                    (
                        "X-Amzn-ErrorType",
                        "ValidationException:http://internal.amazon.com/",
                    )
                ],
            )
        )
        assert isinstance(error, ClientError)
        assert error.code == "ValidationException"
        assert error.message == "bad"

    def test_parse_error_throttling(self) -> None:
        error = JSONRPCCodec().parse_error(
            _response(
                status=400,
                body=b'{"__type": "ProvisionedThroughputExceededException"}',
            )
        )
        assert isinstance(error, ThrottlingError)
        assert error.retryable is True

    @pytest.mark.parametrize(
        "status, error_class, code",
        [
            (404, ClientError, "NotFound"),
            (429, ThrottlingError, "TooManyRequests"),
            (503, ServerError, "ServiceUnavailable"),
        ],
    )
    def test_parse_error_empty_body(
        self, status: int, error_class: type, code: str
    ) -> None:
        error = JSONRPCCodec().parse_error(_response(status=status))
        assert isinstance(error, error_class)
        assert error.code == code
        assert error.message == ""

    def test_parse_error_unparseable_server_error(self) -> None:
        error = JSONRPCCodec().parse_error(
            _response(status=502, body=b"<html>Bad Gateway</html>")
        )
        assert isinstance(error, ServerError)
        assert error.code == "BadGateway"
        assert error.message == "<html>Bad Gateway</html>"
        assert error.retryable is True

    def test_parse_error_unparseable_client_error(self) -> None:
        error = JSONRPCCodec().parse_error(
            _response(status=400, body=b"<html>Bad Request</html>")
        )
        assert isinstance(error, ProtocolError)


class TestRestCodecs:
    def test_rest_json_encode(self) -> None:
        request = _encode(
            RequestSpec(
                service="lambda",
                method="post",
                path="/2015-03-31/functions/my fn/invocations",
                query={"Qualifier": "1", "tag": ["a", "b"]},
                body={"key": "value"},
            )
        )
        assert request.method == "POST"
        assert request.destination.path == "/2015-03-31/functions/my%20fn/invocations"
        assert request.destination.query == "Qualifier=1&tag=a&tag=b"
        assert request.fields["Content-Type"].as_string() == "application/json"
        assert request.body == b'{"key":"value"}'

    def test_rest_defaults_to_get_without_body(self) -> None:
        request = _encode(RequestSpec(service="lambda", path="2015-03-31/functions"))
        assert request.method == "GET"
        assert request.destination.path == "/2015-03-31/functions"
        assert request.body is None
        assert "Content-Type" not in request.fields

    def test_encoded_path_is_sent_verbatim(self) -> None:
        request = _encode(
            RequestSpec(service="s3", path="/bucket/a%2Fb", path_is_encoded=True)
        )
        assert request.destination.path == "/bucket/a%2Fb"

    @pytest.mark.parametrize(
        "body, expected", [(b"\x00raw", b"\x00raw"), ("text", b"text")]
    )
    def test_raw_payloads(self, body: bytes | str, expected: bytes) -> None:
        request = _encode(
            RequestSpec(service="s3", method="PUT", path="/bucket/key", body=body)
        )
        assert request.body == expected
        assert "Content-Type" not in request.fields

    def test_rest_xml_encode(self) -> None:
        request = _encode(
            RequestSpec(
                service="s3",
                method="PUT",
                path="/bucket",
                body={"CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"}},
            )
        )
        assert request.fields["Content-Type"].as_string() == "application/xml"
        assert request.body == (
            b"<CreateBucketConfiguration><LocationConstraint>eu-west-1"
            b"</LocationConstraint></CreateBucketConfiguration>"
        )

    def test_rest_xml_rejects_non_mapping(self) -> None:
        with pytest.raises(ValueError):
            _encode(RequestSpec(service="s3", method="PUT", path="/b", body=[1, 2]))

    def test_rest_json_decode(self) -> None:
        response = RestJSONCodec().decode(
            _response(
                body=b'{"Functions": []}',
                headers=[("Content-Type", "application/json")],
            ),
            RequestSpec(service="lambda"),
        )
        assert response.body == {"Functions": []}

    def test_raw_response_body(self) -> None:
        response = RestJSONCodec().decode(
            _response(body=b"ID3\x04", headers=[("Content-Type", "audio/mpeg")]),
            RequestSpec(service="polly"),
        )
        assert response.body == b"ID3\x04"

    def test_empty_response_body(self) -> None:
        response = RestXMLCodec().decode(
            _response(status=204), RequestSpec(service="s3")
        )
        assert response.status == 204
        assert response.body is None

    def test_rest_xml_decode(self) -> None:
        body = (
            b'<ListAllMyBucketsResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
            b"<Buckets><Bucket><Name>a</Name></Bucket><Bucket><Name>b</Name></Bucket>"
            b"</Buckets></ListAllMyBucketsResult>"
        )
        response = RestXMLCodec().decode(
            _response(
                body=body,
                headers=[
                    ("Content-Type", "application/xml"),
                    ("x-amz-request-id", "s3-req"),
                ],
            ),
            RequestSpec(service="s3"),
        )
        assert response.body == {"Buckets": {"Bucket": [{"Name": "a"}, {"Name": "b"}]}}
        assert response.request_id == "s3-req"

    def test_rest_xml_error(self) -> None:
        body = (
            b"<Error><Code>NoSuchKey</Code><Message>The specified key does not "
            b"exist.</Message><RequestId>4442587FB7D0A2F9</RequestId></Error>"
        )
        error = RestXMLCodec().parse_error(_response(status=404, body=body))
        assert isinstance(error, ClientError)
        assert error.code == "NoSuchKey"
        assert error.request_id == "4442587FB7D0A2F9"

    def test_rest_xml_slow_down(self) -> None:
        body = b"<Error><Code>SlowDown</Code><Message>Reduce rate</Message></Error>"
        error = RestXMLCodec().parse_error(_response(status=503, body=body))
        assert isinstance(error, ThrottlingError)

    def test_rest_json_error_code_field(self) -> None:
        error = RestJSONCodec().parse_error(
            _response(
                status=409,
                body=b'{"code": "ConflictException", "message": "exists"}',
            )
        )
        assert isinstance(error, ClientError)
        assert error.code == "ConflictException"
        assert error.message == "exists"
