import base64
import json
from unittest import mock

from py_tryfer import encoding
from py_tryfer.exception import EncodingError
from py_tryfer.trace import Annotation
from py_tryfer.trace import Trace


def test_format_for_restkin(basic_trace_and_annotations):
    payload = encoding.format_for_restkin([basic_trace_and_annotations] * 2)
    assert len(json.loads(payload)) == 2


def test_format_for_zipkin(trace_with_parent_span_id):
    payload = encoding.format_for_zipkin(*trace_with_parent_span_id)
    assert base64.b64decode(payload)


def test_format_for_query_service(basic_trace_and_annotations):
    payload = encoding.format_for_query_service([basic_trace_and_annotations])
    assert json.loads(payload)[0]["traceId"] == "0000000000000001"


def test_format_for_restkin_cb(basic_trace_and_annotations):
    callback = mock.Mock()
    encoding.format_for_restkin_cb([basic_trace_and_annotations], callback)
    callback.assert_called_once_with(
        None, encoding.format_for_restkin([basic_trace_and_annotations])
    )


def test_format_for_zipkin_cb(basic_trace_and_annotations):
    callback = mock.Mock()
    encoding.format_for_zipkin_cb(*basic_trace_and_annotations, callback)
    callback.assert_called_once_with(
        None, encoding.format_for_zipkin(*basic_trace_and_annotations)
    )


def test_format_for_query_service_cb(basic_trace_and_annotations):
    callback = mock.Mock()
    encoding.format_for_query_service_cb([basic_trace_and_annotations], callback)
    callback.assert_called_once_with(
        None, encoding.format_for_query_service([basic_trace_and_annotations])
    )


def test_callbacks_report_encoding_errors():
    bad = (Trace("test"), [Annotation.string("a", object())])
    for format_cb, args in [
        (encoding.format_for_restkin_cb, ([bad],)),
        (encoding.format_for_zipkin_cb, bad),
        (encoding.format_for_query_service_cb, ([bad],)),
    ]:
        callback = mock.Mock()
        format_cb(*args, callback)
        error, payload = callback.call_args[0]
        assert isinstance(error, EncodingError)
        assert payload is None


def test_callbacks_report_bad_hosts_as_encoding_errors():
    host = {"ipv4": "1.1.1.1", "port": 5, "service_name": "service"}
    bad = (Trace("test"), [Annotation.timestamp("a", 1, host=host)])
    for format_cb, args in [
        (encoding.format_for_restkin_cb, ([bad],)),
        (encoding.format_for_zipkin_cb, bad),
        (encoding.format_for_query_service_cb, ([bad],)),
    ]:
        callback = mock.Mock()
        format_cb(*args, callback)
        error, payload = callback.call_args[0]
        assert isinstance(error, EncodingError)
        assert payload is None


def test_callbacks_report_nan_as_encoding_errors():
    bad = (Trace("test"), [Annotation.timestamp("a", float("nan"))])
    for format_cb in [
        encoding.format_for_restkin_cb,
        encoding.format_for_query_service_cb,
    ]:
        callback = mock.Mock()
        format_cb([bad], callback)
        error, payload = callback.call_args[0]
        assert isinstance(error, EncodingError)
        assert payload is None
