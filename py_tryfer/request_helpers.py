import logging
from typing import Dict
from typing import Mapping
from typing import NamedTuple
from typing import Optional

from py_tryfer.util import format_id
from py_tryfer.util import parse_id

log = logging.getLogger(__name__)


class TraceIds(NamedTuple):
    """Identifiers extracted from the headers of an incoming request.

    :param trace_id: trace id as an unsigned int
    :param span_id: span id as an unsigned int
    :param parent_span_id: parent span id, or None for a root span
    :param debug: True when the caller asked for debug, None otherwise
    """

    trace_id: int
    span_id: int
    parent_span_id: Optional[int]
    debug: Optional[bool]


def _parse_single_header(b3_header: str) -> Dict[str, Optional[str]]:
    """
    Parse out the identifiers of a single b3 header.

    Returns a dict with the following keys:
        'trace_id':             str
        'span_id':              str
        'parent_span_id':       str or None
        'sampled_str':          '0', '1', 'd', or None (defer)
    """
    parsed = dict.fromkeys(("trace_id", "span_id", "parent_span_id", "sampled_str"))

    # b3={TraceId}-{SpanId}-{SamplingState}-{ParentSpanId}
    #      (last 2 fields optional)
    bits = b3_header.split("-")
    if len(bits) < 2:
        raise ValueError("Bad b3 header: %r" % b3_header)
    if len(bits) > 4:
        raise ValueError("Too many segments in b3 header: %r" % b3_header)
    parsed["trace_id"] = bits[0]
    parsed["span_id"] = bits[1]
    if len(bits) > 2 and bits[2]:
        parsed["sampled_str"] = bits[2]
    if len(bits) > 3:
        parsed["parent_span_id"] = bits[3]
        if not parsed["parent_span_id"]:
            raise ValueError("Got empty ParentSpanId")
    return parsed


def _parse_multi_header(headers: Mapping[str, str]) -> Dict[str, Optional[str]]:
    parsed: Dict[str, Optional[str]] = {
        "trace_id": headers.get("X-B3-TraceId", None),
        "span_id": headers.get("X-B3-SpanId", None),
        "parent_span_id": headers.get("X-B3-ParentSpanId", None),
        "sampled_str": None,
    }
    if headers.get("X-B3-Flags") == "1":
        parsed["sampled_str"] = "d"

    # Handle the common case of no headers at all
    if not parsed["trace_id"] and not parsed["span_id"]:
        raise ValueError()  # won't trigger a log message
    if not parsed["trace_id"]:
        raise ValueError("Got X-B3-SpanId but not X-B3-TraceId")
    if not parsed["span_id"]:
        raise ValueError("Got X-B3-TraceId but not X-B3-SpanId")
    return parsed


def extract_ids_from_headers(headers: Mapping[str, str]) -> Optional[TraceIds]:
    """Extracts the identifiers of the caller's span from B3 headers.

    The input headers can be any dict-like container that supports "in"
    membership test and a .get() method that accepts a default value.

    :returns: TraceIds instance or None if the headers are missing or invalid
    """
    try:
        if "b3" in headers:
            parsed = _parse_single_header(headers["b3"])
        else:
            parsed = _parse_multi_header(headers)

        assert parsed["trace_id"] is not None
        assert parsed["span_id"] is not None
        trace_id = parse_id(parsed["trace_id"])
        span_id = parse_id(parsed["span_id"])
        parent_span_id = (
            parse_id(parsed["parent_span_id"]) if parsed["parent_span_id"] else None
        )
    except ValueError as e:
        if str(e):
            log.warning(e)
        return None

    return TraceIds(
        trace_id=trace_id,
        span_id=span_id,
        parent_span_id=parent_span_id,
        debug=True if parsed["sampled_str"] == "d" else None,
    )


def create_http_headers(
    trace_id: int,
    span_id: int,
    parent_span_id: Optional[int] = None,
    debug: Optional[bool] = None,
) -> Dict[str, str]:
    """
    Generate the B3 headers for an outgoing request.

    :returns: dict containing X-B3-{TraceId,SpanId,ParentSpanId,Flags} headers
    """
    headers = {
        "X-B3-TraceId": format_id(trace_id),
        "X-B3-SpanId": format_id(span_id),
    }
    if parent_span_id is not None:
        headers["X-B3-ParentSpanId"] = format_id(parent_span_id)
    if debug:
        headers["X-B3-Flags"] = "1"
    return headers
