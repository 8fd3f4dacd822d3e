import logging
import time
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import TYPE_CHECKING
from typing import Union

from py_tryfer import request_helpers
from py_tryfer.util import format_id
from py_tryfer.util import generate_random_64bit_id
from py_tryfer.util import IdLike
from py_tryfer.util import pack_ipv4
from py_tryfer.util import parse_id

if TYPE_CHECKING:  # pragma: no cover
    from py_tryfer.tracers import BaseTracer

log = logging.getLogger(__name__)

CLIENT_SEND = "cs"
CLIENT_RECV = "cr"
SERVER_SEND = "ss"
SERVER_RECV = "sr"
HTTP_URI = "http.uri"


def now_us() -> int:
    """Current time as an integer number of microseconds since the epoch."""
    return int(time.time() * 1000000)


class Endpoint(NamedTuple):
    """The network location where an annotation was recorded."""

    ipv4: str
    port: int
    service_name: str


def create_endpoint(ipv4: str, port: int, service_name: str) -> Endpoint:
    """Creates a new Endpoint object.

    :param ipv4: dotted-quad ipv4 address, such as '10.0.0.1'
    :type ipv4: str
    :param port: TCP/UDP port, between 0 and 65535
    :type port: int
    :param service_name: name of the service running at this endpoint
    :type service_name: str
    :returns: Endpoint object
    :raises ValueError: on a malformed address or an out of range port
    """
    # raises ValueError on bad octets
    pack_ipv4(ipv4)
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Invalid port: {port!r}")
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port!r}")
    return Endpoint(ipv4=ipv4, port=port, service_name=service_name)


class Annotation:
    """Base class for everything that can be recorded on a Trace.

    There are exactly two kinds of annotations: TimestampAnnotation and
    StringAnnotation. Use the factory methods below rather than instantiating
    this class.
    """

    annotation_type = ""

    def __init__(self, name: str, host: Optional[Endpoint] = None) -> None:
        self.name = name
        self.host = host

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.__dict__!r})"

    @classmethod
    def timestamp(
        cls,
        name: str,
        timestamp: Optional[int] = None,
        duration: Optional[int] = None,
        host: Optional[Endpoint] = None,
    ) -> "TimestampAnnotation":
        return TimestampAnnotation(name, timestamp, duration=duration, host=host)

    @classmethod
    def string(
        cls, name: str, value: str, host: Optional[Endpoint] = None
    ) -> "StringAnnotation":
        return StringAnnotation(name, value, host=host)

    @classmethod
    def client_send(cls, timestamp: Optional[int] = None) -> "TimestampAnnotation":
        return cls.timestamp(CLIENT_SEND, timestamp)

    @classmethod
    def client_recv(cls, timestamp: Optional[int] = None) -> "TimestampAnnotation":
        return cls.timestamp(CLIENT_RECV, timestamp)

    @classmethod
    def server_send(cls, timestamp: Optional[int] = None) -> "TimestampAnnotation":
        return cls.timestamp(SERVER_SEND, timestamp)

    @classmethod
    def server_recv(cls, timestamp: Optional[int] = None) -> "TimestampAnnotation":
        return cls.timestamp(SERVER_RECV, timestamp)

    @classmethod
    def uri(cls, uri: str) -> "StringAnnotation":
        return cls.string(HTTP_URI, uri)


class TimestampAnnotation(Annotation):
    """An event that happened at a point in time, such as 'cs' or 'sr'.

    :param name: name of the event
    :param value: microseconds since the epoch, defaults to now
    :param duration: optional duration of the event in microseconds
    :param host: optional Endpoint where the event was recorded
    """

    annotation_type = "timestamp"

    def __init__(
        self,
        name: str,
        value: Optional[int] = None,
        duration: Optional[int] = None,
        host: Optional[Endpoint] = None,
    ) -> None:
        super().__init__(name, host)
        self.value = now_us() if value is None else value
        self.duration = duration


class StringAnnotation(Annotation):
    """A key/value piece of information, such as the request URI."""

    annotation_type = "string"

    def __init__(
        self, name: str, value: str, host: Optional[Endpoint] = None
    ) -> None:
        super().__init__(name, host)
        self.value = value


AnnotationsArg = Union[Annotation, Sequence[Annotation]]


def as_annotation_list(annotations: AnnotationsArg) -> List[Annotation]:
    """Tracers accept either a single annotation or a list of them."""
    if isinstance(annotations, Annotation):
        return [annotations]
    return list(annotations)


class Trace:
    """A Trace represents a single span of work.

    Traces sharing a trace_id belong to the same request tree, and a Trace
    whose parent_span_id is set is a child of the span with that id.

    :param name: name of the span
    :type name: str
    :param trace_id: optional identifier of the whole trace; random if unset
    :param span_id: optional identifier of this span; random if unset
    :param parent_span_id: optional identifier of the parent span
    :param debug: optional debug flag, only reported when set
    :type debug: bool
    :param tracers: tracers that annotations get recorded to
    :type tracers: list of BaseTracer
    """

    def __init__(
        self,
        name: str,
        trace_id: Optional[IdLike] = None,
        span_id: Optional[IdLike] = None,
        parent_span_id: Optional[IdLike] = None,
        debug: Optional[bool] = None,
        tracers: Optional[Sequence["BaseTracer"]] = None,
    ) -> None:
        if not isinstance(name, str):
            raise TypeError(f"Trace name must be a str, got {name!r}")

        self.name = name
        self.trace_id = (
            generate_random_64bit_id() if trace_id is None else parse_id(trace_id)
        )
        self.span_id = (
            generate_random_64bit_id() if span_id is None else parse_id(span_id)
        )
        self.parent_span_id = (
            None if parent_span_id is None else parse_id(parent_span_id)
        )
        self.debug = debug
        self.tracers: List["BaseTracer"] = list(tracers or [])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Trace):
            return NotImplemented
        return (
            self.name,
            self.trace_id,
            self.span_id,
            self.parent_span_id,
            self.debug,
        ) == (
            other.name,
            other.trace_id,
            other.span_id,
            other.parent_span_id,
            other.debug,
        )

    def __repr__(self) -> str:
        parent = (
            format_id(self.parent_span_id) if self.parent_span_id is not None else None
        )
        return (
            f"Trace(name={self.name!r}, trace_id={format_id(self.trace_id)}, "
            f"span_id={format_id(self.span_id)}, parent_span_id={parent}, "
            f"debug={self.debug!r})"
        )

    def child(self, name: str) -> "Trace":
        """Returns a new Trace for a child span of this one.

        The child keeps this trace's trace_id, debug flag and tracers, gets a
        new span_id and has this span as its parent.
        """
        return Trace(
            name,
            trace_id=self.trace_id,
            parent_span_id=self.span_id,
            debug=self.debug,
            tracers=self.tracers,
        )

    def record(self, *annotations: Annotation) -> None:
        """Records annotations for this span on every configured tracer.

        Tracing must never break the application, so tracer errors are logged
        and dropped here.
        """
        for tracer in self.tracers:
            try:
                tracer.record(self, list(annotations))
            except Exception:
                log.exception("Tracer %r failed to record %r", tracer, self)

    def to_headers(self) -> Mapping[str, str]:
        """Returns the B3 headers that propagate this span to a downstream
        service.
        """
        return request_helpers.create_http_headers(
            self.trace_id, self.span_id, self.parent_span_id, self.debug
        )

    @classmethod
    def from_headers(
        cls,
        name: str,
        headers: Mapping[str, str],
        tracers: Optional[Sequence["BaseTracer"]] = None,
    ) -> "Trace":
        """Builds the Trace of an incoming request from its B3 headers.

        The new Trace shares the caller's trace_id and span_id, since client
        and server annotate the same span. When the headers are missing or
        malformed a new root Trace is returned instead.
        """
        ids = request_helpers.extract_ids_from_headers(headers)
        if ids is None:
            return cls(name, tracers=tracers)
        return cls(
            name,
            trace_id=ids.trace_id,
            span_id=ids.span_id,
            parent_span_id=ids.parent_span_id,
            debug=ids.debug,
            tracers=tracers,
        )
