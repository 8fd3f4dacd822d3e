import base64
import json
import struct
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

from thriftpy2.protocol.binary import write_list_begin
from thriftpy2.thrift import TType
from thriftpy2.transport import TMemoryBuffer
from typing_extensions import TypedDict

from py_tryfer import thrift
from py_tryfer.encoding._types import Encoding
from py_tryfer.exception import EncodingError
from py_tryfer.exception import UnknownEncoding
from py_tryfer.trace import Annotation
from py_tryfer.trace import AnnotationsArg
from py_tryfer.trace import as_annotation_list
from py_tryfer.trace import Endpoint
from py_tryfer.trace import StringAnnotation
from py_tryfer.trace import TimestampAnnotation
from py_tryfer.trace import Trace
from py_tryfer.util import format_id

TracePair = Tuple[Trace, AnnotationsArg]


def get_encoder(encoding: Encoding) -> "IEncoder":
    """Creates encoder object for the given encoding.

    :param encoding: desired output encoding protocol.
    :type encoding: Encoding
    :return: corresponding IEncoder object
    :rtype: IEncoder
    """
    if encoding == Encoding.RESTKIN_JSON:
        return _RESTkinJSONEncoder()
    if encoding == Encoding.ZIPKIN_THRIFT:
        return _ZipkinThriftEncoder()
    if encoding == Encoding.QUERY_JSON:
        return _QueryJSONEncoder()
    raise UnknownEncoding(f"Unknown encoding: {encoding}")


class IEncoder:
    """Encoder interface."""

    def encode_span(self, trace: Trace, annotations: AnnotationsArg) -> str:
        """Encodes a single trace and its annotations.

        :param trace: the span being reported.
        :type trace: Trace
        :param annotations: annotations recorded on the span, in order.
        :type annotations: Annotation or list of Annotation
        :return: encoded span.
        :rtype: str
        :raises EncodingError: if the input can't be encoded.
        """
        raise NotImplementedError()

    def encode_queue(self, queue: List[str]) -> str:
        """Encodes a list of pre-encoded spans.

        :param queue: list of encoded spans.
        :type queue: list
        :return: encoded list.
        :rtype: str
        """
        raise NotImplementedError()

    def encode_traces(self, traces: Sequence[TracePair]) -> str:
        """Encodes a batch of (trace, annotations) pairs into one payload."""
        return self.encode_queue(
            [self.encode_span(trace, annotations) for trace, annotations in traces]
        )


def _unknown_annotation(annotation: Annotation) -> EncodingError:
    return EncodingError(f"Unknown annotation type: {annotation!r}")


def _annotation_host(annotation: Annotation) -> Optional[Endpoint]:
    host = annotation.host
    if host is not None and not isinstance(host, Endpoint):
        raise EncodingError(
            f"Host of annotation {annotation.name!r} is not an Endpoint: {host!r}"
        )
    return host


class _BaseJSONEncoder(IEncoder):
    """Both JSON encoders share list concatenation and error handling."""

    def _dumps(self, json_span: object) -> str:
        try:
            return json.dumps(json_span, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Unable to encode span to JSON: {e}") from e

    def encode_queue(self, queue: List[str]) -> str:
        """Concatenates the list to a JSON list"""
        return "[" + ",".join(queue) + "]"


class RESTkinHost(TypedDict):
    ipv4: str
    port: int
    service_name: str


class RESTkinAnnotation(TypedDict, total=False):
    key: str
    value: Union[int, float, str]
    type: str
    duration: int
    host: RESTkinHost


class RESTkinSpan(TypedDict, total=False):
    trace_id: str
    span_id: str
    name: str
    parent_span_id: str
    debug: bool
    annotations: List[RESTkinAnnotation]


class _RESTkinJSONEncoder(_BaseJSONEncoder):
    """JSON encoder for the RESTkin ingestion API."""

    def _create_json_host(self, endpoint: Endpoint) -> RESTkinHost:
        return {
            "ipv4": endpoint.ipv4,
            "port": endpoint.port,
            "service_name": endpoint.service_name,
        }

    def _create_json_annotation(self, annotation: Annotation) -> RESTkinAnnotation:
        if not isinstance(annotation, (TimestampAnnotation, StringAnnotation)):
            raise _unknown_annotation(annotation)

        json_annotation: RESTkinAnnotation = {
            "key": annotation.name,
            "value": annotation.value,
            "type": annotation.annotation_type,
        }
        if (
            isinstance(annotation, TimestampAnnotation)
            and annotation.duration is not None
        ):
            json_annotation["duration"] = annotation.duration
        host = _annotation_host(annotation)
        if host is not None:
            json_annotation["host"] = self._create_json_host(host)
        return json_annotation

    def encode_span(self, trace: Trace, annotations: AnnotationsArg) -> str:
        """Encodes a single span to JSON."""
        json_span: RESTkinSpan = {
            "trace_id": format_id(trace.trace_id),
            "span_id": format_id(trace.span_id),
            "name": trace.name,
        }
        if trace.parent_span_id is not None:
            json_span["parent_span_id"] = format_id(trace.parent_span_id)
        if trace.debug is not None:
            json_span["debug"] = trace.debug

        json_span["annotations"] = [
            self._create_json_annotation(annotation)
            for annotation in as_annotation_list(annotations)
        ]

        return self._dumps(json_span)


class QueryEndpoint(TypedDict):
    ipv4: str
    port: int
    serviceName: str


class QueryAnnotation(TypedDict, total=False):
    value: str
    timestamp: Union[int, float]
    endpoint: QueryEndpoint


class QueryBinaryAnnotation(TypedDict, total=False):
    key: str
    value: str
    type: str
    endpoint: QueryEndpoint


class QuerySpan(TypedDict, total=False):
    traceId: str
    id: str
    name: str
    parentId: str
    annotations: List[QueryAnnotation]
    binaryAnnotations: List[QueryBinaryAnnotation]


class _QueryJSONEncoder(_BaseJSONEncoder):
    """JSON encoder shaped like the spans returned by the query API."""

    def _create_json_endpoint(self, endpoint: Endpoint) -> QueryEndpoint:
        return {
            "ipv4": endpoint.ipv4,
            "port": endpoint.port,
            "serviceName": endpoint.service_name,
        }

    def encode_span(self, trace: Trace, annotations: AnnotationsArg) -> str:
        """Encodes a single span to JSON."""
        json_span: QuerySpan = {
            "traceId": format_id(trace.trace_id),
            "id": format_id(trace.span_id),
            "name": trace.name,
        }
        if trace.parent_span_id is not None:
            json_span["parentId"] = format_id(trace.parent_span_id)

        json_annotations: List[QueryAnnotation] = []
        json_binary_annotations: List[QueryBinaryAnnotation] = []
        for annotation in as_annotation_list(annotations):
            host = _annotation_host(annotation)
            if isinstance(annotation, TimestampAnnotation):
                json_annotation: QueryAnnotation = {
                    "value": annotation.name,
                    "timestamp": annotation.value,
                }
                if host is not None:
                    json_annotation["endpoint"] = self._create_json_endpoint(host)
                json_annotations.append(json_annotation)
            elif isinstance(annotation, StringAnnotation):
                json_binary_annotation: QueryBinaryAnnotation = {
                    "key": annotation.name,
                    "value": annotation.value,
                    "type": annotation.annotation_type,
                }
                if host is not None:
                    json_binary_annotation["endpoint"] = self._create_json_endpoint(
                        host
                    )
                json_binary_annotations.append(json_binary_annotation)
            else:
                raise _unknown_annotation(annotation)

        json_span["annotations"] = json_annotations
        json_span["binaryAnnotations"] = json_binary_annotations

        return self._dumps(json_span)


def _wire_int(annotation: Annotation, value: Union[int, float]) -> int:
    # thrift timestamps and durations are integers; refuse to truncate
    if isinstance(value, float) and not value.is_integer():
        raise EncodingError(
            f"Annotation {annotation.name!r} has a non-integral value for "
            f"thrift: {value!r}"
        )
    return int(value)


class _ZipkinThriftEncoder(IEncoder):
    """Base64-wrapped thrift encoder for spans sent to zipkin over scribe.

    Timestamps and durations must be integral. Floats like 1.0 are accepted,
    1.9 raises EncodingError instead of being truncated.
    """

    def _create_thrift_endpoint(
        self, endpoint: Endpoint
    ) -> "thrift.zipkinCore.Endpoint":
        return thrift.create_endpoint(
            endpoint.ipv4, endpoint.port, endpoint.service_name
        )

    def _build_span(
        self, trace: Trace, annotations: AnnotationsArg
    ) -> "thrift.zipkinCore.Span":
        thrift_annotations = []
        thrift_binary_annotations = []
        for annotation in as_annotation_list(annotations):
            endpoint = _annotation_host(annotation)
            host = (
                self._create_thrift_endpoint(endpoint) if endpoint is not None else None
            )
            if isinstance(annotation, TimestampAnnotation):
                thrift_annotations.append(
                    thrift.create_annotation(
                        _wire_int(annotation, annotation.value),
                        annotation.name,
                        host=host,
                        duration=(
                            _wire_int(annotation, annotation.duration)
                            if annotation.duration is not None
                            else None
                        ),
                    )
                )
            elif isinstance(annotation, StringAnnotation):
                if not isinstance(annotation.value, str):
                    raise EncodingError(
                        f"String annotation {annotation.name!r} has a "
                        f"non-string value: {annotation.value!r}"
                    )
                thrift_binary_annotations.append(
                    thrift.create_binary_annotation(
                        annotation.name,
                        annotation.value.encode("utf-8"),
                        host=host,
                    )
                )
            else:
                raise _unknown_annotation(annotation)

        return thrift.create_span(
            trace.span_id,
            trace.parent_span_id,
            trace.trace_id,
            trace.name,
            thrift_annotations,
            thrift_binary_annotations,
            debug=trace.debug,
        )

    def encode_span(self, trace: Trace, annotations: AnnotationsArg) -> str:
        """Encodes the span to thrift and wraps it in base64."""
        try:
            thrift_span = self._build_span(trace, annotations)
            encoded_span = thrift.span_to_bytes(thrift_span)
        except (TypeError, ValueError, OverflowError, struct.error) as e:
            raise EncodingError(f"Unable to encode span to thrift: {e!r}") from e
        return base64.b64encode(encoded_span).decode("ascii")

    def encode_queue(self, queue: List[str]) -> str:
        """Converts the queue of base64 spans to a base64 thrift list"""
        transport = TMemoryBuffer()
        write_list_begin(transport, TType.STRUCT, len(queue))
        for encoded_span in queue:
            transport.write(base64.b64decode(encoded_span))

        return base64.b64encode(bytes(transport.getvalue())).decode("ascii")
