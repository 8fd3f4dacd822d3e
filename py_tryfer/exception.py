class TryferError(Exception):
    """Custom error to be raised on py_tryfer errors."""


class EncodingError(TryferError):
    """Raised when a trace or its annotations can't be encoded or decoded."""


class UnknownEncoding(TryferError):
    """Exception class for when encountering an unknown Encoding"""


class TransportError(TryferError):
    """Raised by tracers when the backend rejects a payload. Never escapes
    Tracer.record.
    """
