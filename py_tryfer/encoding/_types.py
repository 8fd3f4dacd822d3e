from enum import Enum


class Encoding(Enum):
    """Supported output encodings."""

    RESTKIN_JSON = "RESTKIN_JSON"
    ZIPKIN_THRIFT = "ZIPKIN_THRIFT"
    QUERY_JSON = "QUERY_JSON"
