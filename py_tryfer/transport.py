import logging
import threading
from concurrent.futures import Executor
from concurrent.futures import Future
from concurrent.futures import ThreadPoolExecutor
from typing import List
from typing import Optional
from typing import Tuple
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from typing_extensions import Protocol

from py_tryfer.encoding import format_for_restkin
from py_tryfer.encoding import format_for_zipkin
from py_tryfer.exception import TransportError
from py_tryfer.trace import Annotation
from py_tryfer.trace import AnnotationsArg
from py_tryfer.trace import as_annotation_list
from py_tryfer.trace import Trace
from py_tryfer.tracers import BaseTracer

log = logging.getLogger(__name__)

DEFAULT_ZIPKIN_CATEGORY = "zipkin"
DEFAULT_RESTKIN_CATEGORY = "restkin"
RESTKIN_API_VERSION = 3
DEFAULT_MAX_WORKERS = 4

_default_executor: Optional[Executor] = None
_default_executor_lock = threading.Lock()


class CredentialProvider(Protocol):
    def get_tenant_id_and_token(self) -> Tuple[str, str]:
        ...  # pragma: no cover


class ScribeClient(Protocol):
    def send(self, category: str, message: str) -> None:
        ...  # pragma: no cover


def get_default_executor() -> Executor:
    """Returns the executor shared by all tracers that weren't given one."""
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutor(
                max_workers=DEFAULT_MAX_WORKERS,
                thread_name_prefix="py_tryfer",
            )
        return _default_executor


class AsyncTracer(BaseTracer):
    """Base class for tracers that deliver spans over the network.

    record() formats and sends on an executor and returns a Future right
    away. The future resolves to True when the span was delivered and to
    False when delivery failed; it never raises; failures are logged. Callers
    are free to ignore it.
    """

    def __init__(self, executor: Optional[Executor] = None) -> None:
        self._executor = executor

    @property
    def executor(self) -> Executor:
        return self._executor or get_default_executor()

    def send(self, trace: Trace, annotations: List[Annotation]) -> None:
        """Formats and delivers a span. Runs on the executor and may raise,
        record() takes care of the errors.
        """
        raise NotImplementedError("send is not implemented")

    def log_failure(self, trace: Trace, error: Exception) -> None:
        log.warning(
            "%s failed to deliver %r: %r",
            type(self).__name__,
            trace,
            error,
            exc_info=error,
        )

    def _send_safely(self, trace: Trace, annotations: List[Annotation]) -> bool:
        try:
            self.send(trace, annotations)
        except Exception as e:
            self.log_failure(trace, e)
            return False
        return True

    def record(self, trace: Trace, annotations: AnnotationsArg) -> "Future[bool]":
        annotation_list = as_annotation_list(annotations)
        try:
            return self.executor.submit(self._send_safely, trace, annotation_list)
        except RuntimeError:
            # the executor has been shut down
            log.warning("Dropping %r, executor is shut down", trace)
            future: "Future[bool]" = Future()
            future.set_result(False)
            return future


class RESTkinHTTPTracer(AsyncTracer):
    """Sends spans to the RESTkin ingestion API over HTTP.

    Every record call fetches the current tenant id and token from the
    credential provider, then POSTs the RESTkin JSON of the span to
    `<base_url>/3/trace`. There's exactly one credential fetch per span and
    no retry; if the token is rejected the span is dropped.

    .. code-block:: python

        tracer = RESTkinHTTPTracer('http://restkin:6956', keystone_client)
        trace = Trace('GET /', tracers=[tracer])

    :param base_url: root url of the RESTkin API. Trailing slashes are fine.
    :type base_url: str
    :param credential_provider: object with a get_tenant_id_and_token()
        method returning a (tenant_id, token) tuple.
    :param executor: optional executor to run requests on.
    :param timeout: optional socket timeout in seconds for each request.
    :type timeout: float
    :param api_version: version segment of the ingestion path.
    :type api_version: int
    """

    def __init__(
        self,
        base_url: str,
        credential_provider: CredentialProvider,
        executor: Optional[Executor] = None,
        timeout: Optional[float] = None,
        api_version: int = RESTKIN_API_VERSION,
    ) -> None:
        super().__init__(executor)
        self.base_url = base_url
        self.credential_provider = credential_provider
        self.timeout = timeout
        self.trace_url = f"{base_url.rstrip('/')}/{api_version}/trace"

    def _build_request(self, payload: str) -> Request:
        tenant_id, token = self.credential_provider.get_tenant_id_and_token()
        return Request(
            self.trace_url,
            data=payload.encode("utf-8"),
            headers={
                "X-Auth-Token": str(token),
                "X-Tenant-Id": str(tenant_id),
                "Content-Type": "application/json",
            },
            method="POST",
        )

    def send(self, trace: Trace, annotations: List[Annotation]) -> None:
        payload = format_for_restkin([(trace, annotations)])
        request = self._build_request(payload)

        if self.timeout is None:
            response = urlopen(request)
        else:
            response = urlopen(request, timeout=self.timeout)
        with response:
            status = response.getcode()
            if not 200 <= status < 300:
                raise TransportError(
                    f"RESTkin rejected span with status {status} at {self.trace_url}"
                )

    def log_failure(self, trace: Trace, error: Exception) -> None:
        # HTTPError is a URLError too, so is a refused connection
        if isinstance(error, URLError):
            log.warning("Unable to reach RESTkin at %s: %r", self.trace_url, error)
        else:
            super().log_failure(trace, error)


class ZipkinTracer(AsyncTracer):
    """Sends base64 thrift spans to zipkin through a scribe-like client.

    :param scribe_client: object with a send(category, message) method.
    :param category: scribe category, defaults to 'zipkin'.
    :type category: str
    :param executor: optional executor to format and send on.
    """

    def __init__(
        self,
        scribe_client: ScribeClient,
        category: str = DEFAULT_ZIPKIN_CATEGORY,
        executor: Optional[Executor] = None,
    ) -> None:
        super().__init__(executor)
        self.scribe_client = scribe_client
        self.category = category

    def send(self, trace: Trace, annotations: List[Annotation]) -> None:
        self.scribe_client.send(self.category, format_for_zipkin(trace, annotations))


class RESTkinScribeTracer(AsyncTracer):
    """Sends RESTkin JSON spans through a scribe-like client.

    :param scribe_client: object with a send(category, message) method.
    :param category: scribe category, defaults to 'restkin'.
    :type category: str
    :param executor: optional executor to format and send on.
    """

    def __init__(
        self,
        scribe_client: ScribeClient,
        category: str = DEFAULT_RESTKIN_CATEGORY,
        executor: Optional[Executor] = None,
    ) -> None:
        super().__init__(executor)
        self.scribe_client = scribe_client
        self.category = category

    def send(self, trace: Trace, annotations: List[Annotation]) -> None:
        self.scribe_client.send(
            self.category, format_for_restkin([(trace, annotations)])
        )
