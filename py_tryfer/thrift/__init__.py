import os
from typing import List
from typing import Optional
from typing import TYPE_CHECKING

import thriftpy2
from thriftpy2.protocol import TBinaryProtocol
from thriftpy2.transport import TMemoryBuffer
from typing_extensions import TypedDict

from py_tryfer.util import pack_ipv4
from py_tryfer.util import unsigned_to_signed_16
from py_tryfer.util import unsigned_to_signed_32
from py_tryfer.util import unsigned_to_signed_64


thrift_filepath = os.path.join(os.path.dirname(__file__), "zipkinCore.thrift")

# zipkinCore isn't a "real" module, but the .pyi file pretends it is, so we
# can only import it for real during type checking.
if TYPE_CHECKING:  # pragma: no cover
    from . import zipkinCore
else:
    zipkinCore = thriftpy2.load(thrift_filepath, module_name="zipkinCore_thrift")


def create_endpoint(
    ipv4: str, port: int, service_name: str
) -> "zipkinCore.Endpoint":
    """Create a zipkin Endpoint object.

    :param ipv4: dotted-quad ipv4 address
    :param port: int value of the port
    :param service_name: service name as a str
    :returns: thrift Endpoint object
    """
    return zipkinCore.Endpoint(
        ipv4=unsigned_to_signed_32(pack_ipv4(ipv4)),
        port=unsigned_to_signed_16(port),
        service_name=service_name,
    )


def create_annotation(
    timestamp: int,
    value: str,
    host: Optional["zipkinCore.Endpoint"] = None,
    duration: Optional[int] = None,
) -> "zipkinCore.Annotation":
    """
    Create a zipkin annotation object

    :param timestamp: timestamp of when the annotation occured in microseconds
    :param value: name of the annotation, such as 'sr'
    :param host: optional zipkin endpoint object
    :param duration: optional duration in microseconds
    :returns: zipkin annotation object
    """
    return zipkinCore.Annotation(
        timestamp=timestamp, value=value, host=host, duration=duration
    )


def create_binary_annotation(
    key: str,
    value: bytes,
    host: Optional["zipkinCore.Endpoint"] = None,
) -> "zipkinCore.BinaryAnnotation":
    """
    Create a zipkin binary annotation object. Values are always strings, so
    the annotation type is hard-coded to AnnotationType.STRING.

    :param key: name of the annotation, such as 'http.uri'
    :param value: utf-8 encoded value of the annotation, such as a URI
    :param host: optional zipkin endpoint object
    :returns: zipkin binary annotation object
    """
    return zipkinCore.BinaryAnnotation(
        key=key,
        value=value,
        annotation_type=zipkinCore.AnnotationType.STRING,
        host=host,
    )


class SpanKwargs(TypedDict, total=False):
    trace_id: int
    name: str
    id: int
    annotations: List["zipkinCore.Annotation"]
    binary_annotations: List["zipkinCore.BinaryAnnotation"]
    parent_id: int
    debug: bool


def create_span(
    span_id: int,
    parent_span_id: Optional[int],
    trace_id: int,
    span_name: str,
    annotations: List["zipkinCore.Annotation"],
    binary_annotations: List["zipkinCore.BinaryAnnotation"],
    debug: Optional[bool] = None,
) -> "zipkinCore.Span":
    """Takes a bunch of span attributes and returns a thriftpy2 representation
    of the span. Unsigned ids are converted to signed i64 values since thrift
    has no unsigned types.
    """
    span_dict: SpanKwargs = {
        "trace_id": unsigned_to_signed_64(trace_id),
        "name": span_name,
        "id": unsigned_to_signed_64(span_id),
        "annotations": annotations,
        "binary_annotations": binary_annotations,
    }
    if parent_span_id is not None:
        span_dict["parent_id"] = unsigned_to_signed_64(parent_span_id)
    if debug is not None:
        span_dict["debug"] = debug
    return zipkinCore.Span(**span_dict)


def span_to_bytes(thrift_span: "zipkinCore.Span") -> bytes:
    """
    Returns a TBinaryProtocol encoded Thrift span.

    :param thrift_span: thrift object to encode.
    :returns: thrift object in TBinaryProtocol format bytes.
    """
    transport = TMemoryBuffer()
    protocol = TBinaryProtocol(transport)
    thrift_span.write(protocol)  # type: ignore[attr-defined]

    return bytes(transport.getvalue())


def span_from_bytes(encoded_span: bytes) -> "zipkinCore.Span":
    """
    Reads a TBinaryProtocol encoded Thrift span.

    :param encoded_span: bytes written by span_to_bytes.
    :returns: zipkin span object.
    """
    transport = TMemoryBuffer(encoded_span)
    protocol = TBinaryProtocol(transport)
    thrift_span = zipkinCore.Span()
    thrift_span.read(protocol)  # type: ignore[attr-defined]

    return thrift_span
