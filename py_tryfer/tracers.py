import logging
import sys
import threading
from typing import Dict
from typing import IO
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple

from py_tryfer.encoding import format_for_restkin
from py_tryfer.exception import EncodingError
from py_tryfer.trace import Annotation
from py_tryfer.trace import AnnotationsArg
from py_tryfer.trace import as_annotation_list
from py_tryfer.trace import CLIENT_RECV
from py_tryfer.trace import SERVER_SEND
from py_tryfer.trace import Trace

log = logging.getLogger(__name__)

END_ANNOTATIONS = (SERVER_SEND, CLIENT_RECV)


class BaseTracer:
    """A tracer collects annotations recorded on traces and delivers them
    somewhere.

    Delivery is best effort: record must never raise because of a delivery
    problem, and must not block the caller on network I/O.
    """

    def record(self, trace: Trace, annotations: AnnotationsArg) -> object:
        """Records one or more annotations for a trace.

        :param trace: the span the annotations belong to.
        :type trace: Trace
        :param annotations: a single Annotation or a list of them.
        """
        raise NotImplementedError("record is not implemented")


class EndAnnotationTracer(BaseTracer):
    """Buffers annotations until the span ends, then hands the span and all of
    its annotations to the wrapped tracer in a single record call.

    A span ends when one of `end_annotations` is recorded on it, by default
    server send ('ss') or client receive ('cr').

    .. code-block:: python

        tracer = EndAnnotationTracer(ZipkinTracer(scribe_client))
        trace = Trace('GET /', tracers=[tracer])
        trace.record(Annotation.server_recv())
        trace.record(Annotation.uri('/'))
        trace.record(Annotation.server_send())  # all three sent now
    """

    def __init__(
        self,
        tracer: BaseTracer,
        end_annotations: Iterable[str] = END_ANNOTATIONS,
    ) -> None:
        self.tracer = tracer
        self.end_annotations = frozenset(end_annotations)
        self._buffers: Dict[Tuple[int, int], List[Annotation]] = {}
        self._lock = threading.Lock()

    def record(self, trace: Trace, annotations: AnnotationsArg) -> object:
        annotation_list = as_annotation_list(annotations)
        key = (trace.trace_id, trace.span_id)

        with self._lock:
            buffered = self._buffers.setdefault(key, [])
            buffered.extend(annotation_list)
            if not any(a.name in self.end_annotations for a in annotation_list):
                return None
            del self._buffers[key]

        return self.tracer.record(trace, buffered)

    def pending_count(self) -> int:
        """Number of spans that have annotations buffered but haven't ended."""
        with self._lock:
            return len(self._buffers)


class DebugTracer(BaseTracer):
    """Writes every record call as a line of RESTkin JSON. Handy when
    developing locally.

    :param stream: file-like object to write to. Defaults to stdout.
    """

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def record(self, trace: Trace, annotations: AnnotationsArg) -> object:
        try:
            payload = format_for_restkin([(trace, annotations)])
        except EncodingError:
            log.warning("Unable to format %r", trace, exc_info=True)
            return None
        self.stream.write(payload + "\n")
        self.stream.flush()
        return None
