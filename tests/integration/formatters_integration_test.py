import json

import pytest

from py_tryfer import encoding
from py_tryfer import Encoding
from py_tryfer import thrift
from py_tryfer.encoding import decode_zipkin_span
from py_tryfer.encoding import get_encoder
from py_tryfer.trace import Annotation
from py_tryfer.trace import Trace

ALL_ENCODINGS = [Encoding.RESTKIN_JSON, Encoding.ZIPKIN_THRIFT, Encoding.QUERY_JSON]


def restkin(testcase):
    return json.loads(encoding.format_for_restkin([testcase]))


def query(testcase):
    return json.loads(encoding.format_for_query_service([testcase]))


def zipkin(testcase):
    return decode_zipkin_span(encoding.format_for_zipkin(*testcase))


class TestRESTkinFormatter:
    def test_basic_trace_and_annotations(self, basic_trace_and_annotations):
        assert restkin(basic_trace_and_annotations) == [
            {
                "trace_id": "0000000000000001",
                "span_id": "000000000000000a",
                "name": "test",
                "annotations": [
                    {"key": "name1", "value": 1, "type": "timestamp"},
                    {"key": "name2", "value": "2", "type": "string"},
                ],
            }
        ]

    def test_trace_with_optional_params(self, trace_with_optional_params):
        assert restkin(trace_with_optional_params) == [
            {
                "trace_id": "0000000000000001",
                "span_id": "000000000000000a",
                "name": "test",
                "debug": True,
                "annotations": [
                    {"key": "name1", "value": 1, "type": "timestamp", "duration": 123},
                    {"key": "name2", "value": "2", "type": "string"},
                ],
            }
        ]

    def test_trace_with_parent_span_id(self, trace_with_parent_span_id):
        assert restkin(trace_with_parent_span_id) == [
            {
                "trace_id": "0000000000000001",
                "parent_span_id": "0000000000000005",
                "span_id": "000000000000000a",
                "name": "test",
                "annotations": [],
            }
        ]

    def test_trace_with_annotation_with_endpoint(
        self, trace_with_annotation_with_endpoint
    ):
        assert restkin(trace_with_annotation_with_endpoint) == [
            {
                "trace_id": "0000000000000001",
                "span_id": "000000000000000a",
                "name": "test",
                "annotations": [
                    {
                        "key": "name1",
                        "value": 1,
                        "type": "timestamp",
                        "host": {
                            "ipv4": "1.1.1.1",
                            "port": 5,
                            "service_name": "service",
                        },
                    }
                ],
            }
        ]


class TestZipkinFormatter:
    def test_basic_trace_and_annotations(self, basic_trace_and_annotations):
        assert zipkin(basic_trace_and_annotations) == thrift.zipkinCore.Span(
            trace_id=1,
            id=10,
            name="test",
            annotations=[thrift.zipkinCore.Annotation(timestamp=1, value="name1")],
            binary_annotations=[
                thrift.zipkinCore.BinaryAnnotation(
                    key="name2",
                    value=b"2",
                    annotation_type=thrift.zipkinCore.AnnotationType.STRING,
                )
            ],
        )

    def test_trace_with_optional_params(self, trace_with_optional_params):
        assert zipkin(trace_with_optional_params) == thrift.zipkinCore.Span(
            trace_id=1,
            id=10,
            name="test",
            debug=True,
            annotations=[
                thrift.zipkinCore.Annotation(timestamp=1, value="name1", duration=123)
            ],
            binary_annotations=[
                thrift.zipkinCore.BinaryAnnotation(
                    key="name2",
                    value=b"2",
                    annotation_type=thrift.zipkinCore.AnnotationType.STRING,
                )
            ],
        )

    def test_trace_with_parent_span_id(self, trace_with_parent_span_id):
        assert zipkin(trace_with_parent_span_id) == thrift.zipkinCore.Span(
            trace_id=1,
            parent_id=5,
            id=10,
            name="test",
            annotations=[],
            binary_annotations=[],
        )

    def test_trace_with_annotation_with_endpoint(
        self, trace_with_annotation_with_endpoint
    ):
        assert zipkin(trace_with_annotation_with_endpoint) == thrift.zipkinCore.Span(
            trace_id=1,
            id=10,
            name="test",
            annotations=[
                thrift.zipkinCore.Annotation(
                    timestamp=1,
                    value="name1",
                    host=thrift.zipkinCore.Endpoint(
                        # (first octet * 256^3) + (second octet * 256^2) +
                        # (third octet * 256) + (fourth octet)
                        ipv4=256 ** 3 + 256 ** 2 + 256 + 1,
                        port=5,
                        service_name="service",
                    ),
                )
            ],
            binary_annotations=[],
        )


class TestQueryServiceFormatter:
    def test_basic_trace_and_annotations(self, basic_trace_and_annotations):
        assert query(basic_trace_and_annotations) == [
            {
                "traceId": "0000000000000001",
                "id": "000000000000000a",
                "name": "test",
                "annotations": [{"timestamp": 1, "value": "name1"}],
                "binaryAnnotations": [{"key": "name2", "value": "2", "type": "string"}],
            }
        ]

    def test_trace_with_parent_span_id(self, trace_with_parent_span_id):
        assert query(trace_with_parent_span_id) == [
            {
                "traceId": "0000000000000001",
                "parentId": "0000000000000005",
                "id": "000000000000000a",
                "name": "test",
                "annotations": [],
                "binaryAnnotations": [],
            }
        ]

    def test_trace_with_annotation_with_endpoint(
        self, trace_with_annotation_with_endpoint
    ):
        assert query(trace_with_annotation_with_endpoint) == [
            {
                "traceId": "0000000000000001",
                "id": "000000000000000a",
                "name": "test",
                "annotations": [
                    {
                        "value": "name1",
                        "timestamp": 1,
                        "endpoint": {
                            "ipv4": "1.1.1.1",
                            "port": 5,
                            "serviceName": "service",
                        },
                    }
                ],
                "binaryAnnotations": [],
            }
        ]


def test_absent_optional_fields_are_never_emitted(basic_trace_and_annotations):
    [restkin_span] = restkin(basic_trace_and_annotations)
    assert "parent_span_id" not in restkin_span
    assert "debug" not in restkin_span
    for annotation in restkin_span["annotations"]:
        assert "duration" not in annotation
        assert "host" not in annotation

    [query_span] = query(basic_trace_and_annotations)
    assert "parentId" not in query_span
    assert "debug" not in query_span
    for annotation in query_span["annotations"] + query_span["binaryAnnotations"]:
        assert "endpoint" not in annotation

    zipkin_span = zipkin(basic_trace_and_annotations)
    assert zipkin_span.parent_id is None
    assert zipkin_span.debug is None
    assert zipkin_span.annotations[0].duration is None
    assert zipkin_span.annotations[0].host is None
    assert zipkin_span.binary_annotations[0].host is None


def test_annotation_order_is_preserved():
    trace = Trace("test", trace_id=1, span_id=10)
    annotations = [Annotation.timestamp(str(i), i) for i in (5, 3, 9, 1)]

    [restkin_span] = restkin((trace, annotations))
    assert [a["key"] for a in restkin_span["annotations"]] == ["5", "3", "9", "1"]

    [query_span] = query((trace, annotations))
    assert [a["value"] for a in query_span["annotations"]] == ["5", "3", "9", "1"]

    zipkin_span = zipkin((trace, annotations))
    assert [a.value for a in zipkin_span.annotations] == ["5", "3", "9", "1"]


@pytest.mark.parametrize("encoding_type", ALL_ENCODINGS)
def test_encoding_is_idempotent(encoding_type, trace_with_optional_params):
    encoder = get_encoder(encoding_type)
    trace, annotations = trace_with_optional_params

    first = encoder.encode_span(trace, annotations)
    second = encoder.encode_span(trace, annotations)

    assert first == second
    # inputs are left untouched
    assert trace == Trace("test", span_id=10, trace_id=1, debug=True)
    assert annotations == [
        Annotation.timestamp("name1", 1, duration=123),
        Annotation.string("name2", "2"),
    ]
