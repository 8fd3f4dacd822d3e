from py_tryfer.testing.mock_transport import MockCredentialProvider  # noqa
from py_tryfer.testing.mock_transport import MockScribeClient  # noqa
from py_tryfer.testing.mock_transport import MockTracer  # noqa
