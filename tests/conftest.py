from concurrent.futures import ThreadPoolExecutor

import pytest

from py_tryfer.trace import Annotation
from py_tryfer.trace import Endpoint
from py_tryfer.trace import Trace


@pytest.fixture
def executor():
    executor = ThreadPoolExecutor(max_workers=2)
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def endpoint():
    return Endpoint(ipv4="1.1.1.1", port=5, service_name="service")


@pytest.fixture
def basic_trace_and_annotations():
    return (
        Trace("test", span_id=10, trace_id=1),
        [Annotation.timestamp("name1", 1), Annotation.string("name2", "2")],
    )


@pytest.fixture
def trace_with_optional_params():
    return (
        Trace("test", span_id=10, trace_id=1, debug=True),
        [
            Annotation.timestamp("name1", 1, duration=123),
            Annotation.string("name2", "2"),
        ],
    )


@pytest.fixture
def trace_with_parent_span_id():
    return Trace("test", parent_span_id=5, span_id=10, trace_id=1), []


@pytest.fixture
def trace_with_annotation_with_endpoint(endpoint):
    return (
        Trace("test", span_id=10, trace_id=1),
        [Annotation.timestamp("name1", 1, host=endpoint)],
    )
