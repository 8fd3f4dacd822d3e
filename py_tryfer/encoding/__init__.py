from typing import Callable
from typing import Optional
from typing import Sequence

from py_tryfer.encoding._decoders import decode_zipkin_span  # noqa: F401
from py_tryfer.encoding._decoders import get_decoder  # noqa: F401
from py_tryfer.encoding._encoders import get_encoder
from py_tryfer.encoding._encoders import TracePair
from py_tryfer.encoding._types import Encoding
from py_tryfer.exception import EncodingError
from py_tryfer.trace import AnnotationsArg
from py_tryfer.trace import Trace

FormatCallback = Callable[[Optional[EncodingError], Optional[str]], None]


def format_for_restkin(traces: Sequence[TracePair]) -> str:
    """Formats a batch of traces for the RESTkin ingestion API.

    :param traces: list of (Trace, annotations) tuples.
    :returns: JSON list with one object per trace.
    :raises EncodingError: if a trace can't be serialized.
    """
    return get_encoder(Encoding.RESTKIN_JSON).encode_traces(traces)


def format_for_zipkin(trace: Trace, annotations: AnnotationsArg) -> str:
    """Formats a single trace as a base64 encoded thrift Span, which is what
    zipkin's scribe collector expects.

    :raises EncodingError: if the trace can't be serialized.
    """
    return get_encoder(Encoding.ZIPKIN_THRIFT).encode_span(trace, annotations)


def format_for_query_service(traces: Sequence[TracePair]) -> str:
    """Formats a batch of traces the way the zipkin query service returns
    them.

    :raises EncodingError: if a trace can't be serialized.
    """
    return get_encoder(Encoding.QUERY_JSON).encode_traces(traces)


def _run_with_callback(
    format_fn: Callable[[], str], callback: FormatCallback
) -> None:
    try:
        payload = format_fn()
    except EncodingError as e:
        callback(e, None)
        return
    callback(None, payload)


def format_for_restkin_cb(
    traces: Sequence[TracePair], callback: FormatCallback
) -> None:
    """Same as format_for_restkin, but reports through callback(error, payload).
    error is None on success. Encoding errors are never raised.
    """
    _run_with_callback(lambda: format_for_restkin(traces), callback)


def format_for_zipkin_cb(
    trace: Trace, annotations: AnnotationsArg, callback: FormatCallback
) -> None:
    _run_with_callback(lambda: format_for_zipkin(trace, annotations), callback)


def format_for_query_service_cb(
    traces: Sequence[TracePair], callback: FormatCallback
) -> None:
    _run_with_callback(lambda: format_for_query_service(traces), callback)
