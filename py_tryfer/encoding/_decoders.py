import base64
import binascii
import logging
import struct
from typing import List
from typing import Optional
from typing import Tuple

from thriftpy2.protocol import TBinaryProtocol
from thriftpy2.protocol.binary import read_list_begin
from thriftpy2.thrift import TException
from thriftpy2.transport import TMemoryBuffer

from py_tryfer import thrift
from py_tryfer.encoding._types import Encoding
from py_tryfer.exception import EncodingError
from py_tryfer.exception import UnknownEncoding
from py_tryfer.trace import Annotation
from py_tryfer.trace import Endpoint
from py_tryfer.trace import StringAnnotation
from py_tryfer.trace import TimestampAnnotation
from py_tryfer.trace import Trace
from py_tryfer.util import signed_to_unsigned_16
from py_tryfer.util import signed_to_unsigned_64
from py_tryfer.util import unpack_ipv4

log = logging.getLogger("py_tryfer.encoding")

DecodedSpan = Tuple[Trace, List[Annotation]]


def get_decoder(encoding: Encoding) -> "IDecoder":
    """Creates decoder object for the given encoding.
    :param encoding: encoding protocol of the input spans
    :type encoding: Encoding
    :return: corresponding IDecoder object
    :rtype: IDecoder
    """
    if encoding == Encoding.ZIPKIN_THRIFT:
        return _ZipkinThriftDecoder()
    if encoding in (Encoding.RESTKIN_JSON, Encoding.QUERY_JSON):
        raise NotImplementedError(f"{encoding} decoding not yet implemented")
    raise UnknownEncoding(f"Unknown encoding: {encoding}")


class IDecoder:
    """Decoder interface."""

    def decode_span(self, span: str) -> DecodedSpan:
        """Decodes a single encoded span.
        :param span: encoded span
        :type span: str
        :return: the trace and its annotations
        :rtype: tuple of (Trace, list of Annotation)
        """
        raise NotImplementedError()

    def decode_spans(self, spans: str) -> List[DecodedSpan]:
        """Decodes an encoded list of spans.
        :param spans: encoded list of spans
        :type spans: str
        :return: list of (Trace, list of Annotation)
        :rtype: list
        """
        raise NotImplementedError()


def decode_zipkin_span(encoded: str) -> "thrift.zipkinCore.Span":
    """Reads a base64-wrapped thrift span into a zipkinCore.Span.

    :param encoded: base64 string as produced by the ZIPKIN_THRIFT encoder
    :returns: thrift Span object, with binary annotation values as bytes
    :raises EncodingError: if the payload isn't a valid span
    """
    try:
        thrift_span = thrift.span_from_bytes(base64.b64decode(encoded, validate=True))
    except (binascii.Error, TException, struct.error, ValueError) as e:
        raise EncodingError(f"Unable to decode thrift span: {e!r}") from e
    _normalize_binary_values(thrift_span)
    return thrift_span


def _normalize_binary_values(thrift_span: "thrift.zipkinCore.Span") -> None:
    for binary_annotation in thrift_span.binary_annotations or []:
        if isinstance(binary_annotation.value, str):
            binary_annotation.value = binary_annotation.value.encode("utf-8")


class _ZipkinThriftDecoder(IDecoder):
    """Decodes base64-wrapped thrift spans back into traces."""

    def _convert_endpoint(
        self, thrift_endpoint: Optional["thrift.zipkinCore.Endpoint"]
    ) -> Optional[Endpoint]:
        if thrift_endpoint is None:
            return None
        return Endpoint(
            ipv4=unpack_ipv4(thrift_endpoint.ipv4 or 0),
            port=signed_to_unsigned_16(thrift_endpoint.port or 0),
            service_name=thrift_endpoint.service_name,
        )

    def _convert_span(self, thrift_span: "thrift.zipkinCore.Span") -> DecodedSpan:
        trace = Trace(
            thrift_span.name,
            trace_id=signed_to_unsigned_64(thrift_span.trace_id),
            span_id=signed_to_unsigned_64(thrift_span.id),
            parent_span_id=(
                signed_to_unsigned_64(thrift_span.parent_id)
                if thrift_span.parent_id is not None
                else None
            ),
            debug=thrift_span.debug,
        )

        # Annotations and binary annotations travel in separate lists, so the
        # relative order between the two kinds can't be recovered.
        annotations: List[Annotation] = []
        for thrift_annotation in thrift_span.annotations or []:
            annotations.append(
                TimestampAnnotation(
                    thrift_annotation.value,
                    thrift_annotation.timestamp,
                    duration=thrift_annotation.duration,
                    host=self._convert_endpoint(thrift_annotation.host),
                )
            )
        for binary_annotation in thrift_span.binary_annotations or []:
            annotations.append(
                StringAnnotation(
                    binary_annotation.key,
                    binary_annotation.value.decode("utf-8"),
                    host=self._convert_endpoint(binary_annotation.host),
                )
            )
        return trace, annotations

    def _safe_convert_span(self, thrift_span: "thrift.zipkinCore.Span") -> DecodedSpan:
        try:
            return self._convert_span(thrift_span)
        except (TypeError, ValueError, struct.error) as e:
            raise EncodingError(f"Invalid thrift span {thrift_span!r}: {e}") from e

    def decode_span(self, span: str) -> DecodedSpan:
        return self._safe_convert_span(decode_zipkin_span(span))

    def decode_spans(self, spans: str) -> List[DecodedSpan]:
        """Decodes a base64-wrapped thrift list of spans."""
        try:
            transport = TMemoryBuffer(base64.b64decode(spans, validate=True))
            _, size = read_list_begin(transport)
            thrift_spans = []
            for _ in range(size):
                thrift_span = thrift.zipkinCore.Span()
                thrift_span.read(TBinaryProtocol(transport))
                thrift_spans.append(thrift_span)
        except (binascii.Error, TException, struct.error, ValueError) as e:
            raise EncodingError(f"Unable to decode thrift span list: {e!r}") from e

        log.debug("Decoded %d thrift spans", len(thrift_spans))
        decoded = []
        for thrift_span in thrift_spans:
            _normalize_binary_values(thrift_span)
            decoded.append(self._safe_convert_span(thrift_span))
        return decoded
