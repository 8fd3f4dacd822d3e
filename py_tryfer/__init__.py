# Export useful functions and types from private modules.
from py_tryfer.encoding._types import Encoding  # noqa
from py_tryfer.trace import Annotation  # noqa
from py_tryfer.trace import create_endpoint  # noqa
from py_tryfer.trace import Endpoint  # noqa
from py_tryfer.trace import Trace  # noqa
