import random
import re
import socket
import struct
from typing import Union

MAX_64BIT_ID = (1 << 64) - 1

IdLike = Union[int, str]

# ASCII digits only, no leading zeros
_IPV4_OCTET_RE = re.compile(r"0|[1-9][0-9]{0,2}")


def generate_random_64bit_id() -> int:
    """Returns a random unsigned 64 bit identifier.

    :returns: int in [0, 2**64)
    """
    return random.getrandbits(64)


def parse_id(value: IdLike) -> int:
    """Converts an identifier to its unsigned 64-bit int value.

    Accepts either an int or a hex string of at most 16 digits, which is
    what we get back from propagation headers.

    :param value: int or hex string identifier
    :returns: unsigned int representation
    :raises ValueError: if the value isn't a valid 64-bit identifier
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid identifier: {value!r}")
    if isinstance(value, int):
        id_value = value
    elif isinstance(value, str):
        if not value or len(value) > 16:
            raise ValueError(f"Invalid identifier: {value!r}")
        id_value = int(value, 16)
    else:
        raise ValueError(f"Invalid identifier: {value!r}")

    if not 0 <= id_value <= MAX_64BIT_ID:
        raise ValueError(f"Identifier out of 64-bit range: {value!r}")
    return id_value


def format_id(value: IdLike) -> str:
    """Renders an identifier as a 16-character, zero-padded lowercase hex string.

    Examples:
        1  => '0000000000000001'
        10 => '000000000000000a'

    :param value: int or hex string identifier
    :returns: 16-character hex string
    """
    return f"{parse_id(value):016x}"


def unsigned_to_signed_64(unsigned_int: int) -> int:
    """Converts an unsigned 64-bit int to a signed int value.

    This is due to the fact that Apache Thrift only has signed values.

    Examples:
        1662740067609015813  => 1662740067609015813
        13176320584593882961 => -5270423489115668655
    """
    return struct.unpack("q", struct.pack("Q", unsigned_int))[0]


def signed_to_unsigned_64(signed_int: int) -> int:
    """Converts a signed 64-bit int back to its unsigned value."""
    return struct.unpack("Q", struct.pack("q", signed_int))[0]


def unsigned_to_signed_32(unsigned_int: int) -> int:
    return struct.unpack("i", struct.pack("I", unsigned_int))[0]


def signed_to_unsigned_32(signed_int: int) -> int:
    return struct.unpack("I", struct.pack("i", signed_int))[0]


def unsigned_to_signed_16(unsigned_int: int) -> int:
    # Zipkin passes unsigned values in signed types because Thrift has no
    # unsigned types, so we have to convert the value.
    return struct.unpack("h", struct.pack("H", unsigned_int))[0]


def signed_to_unsigned_16(signed_int: int) -> int:
    return struct.unpack("H", struct.pack("h", signed_int))[0]


def pack_ipv4(ipv4: str) -> int:
    """Packs a dotted-quad IPv4 address into its unsigned 32-bit value.

    The formula is (first octet * 256^3) + (second octet * 256^2) +
    (third octet * 256) + (fourth octet), so '1.1.1.1' => 16843009.

    :param ipv4: dotted-quad address
    :returns: unsigned int in [0, 2**32)
    :raises ValueError: if the address isn't a valid dotted quad
    """
    octets = ipv4.split(".") if isinstance(ipv4, str) else []
    if len(octets) != 4 or not all(
        _IPV4_OCTET_RE.fullmatch(octet) for octet in octets
    ):
        raise ValueError(f"Invalid ipv4 address: {ipv4!r}")

    packed = 0
    for octet in octets:
        octet_value = int(octet)
        if octet_value > 255:
            raise ValueError(f"Invalid ipv4 address: {ipv4!r}")
        packed = packed * 256 + octet_value
    return packed


def unpack_ipv4(packed: int) -> str:
    """Converts a packed IPv4 address back to dotted-quad form.

    Signed values, as they come off the thrift wire, are accepted too.

    :param packed: int in [-2**31, 2**32)
    :returns: dotted-quad address
    """
    if not -(1 << 31) <= packed < (1 << 32):
        raise ValueError(f"Invalid packed ipv4 address: {packed!r}")
    if packed < 0:
        packed = signed_to_unsigned_32(packed)
    return socket.inet_ntop(socket.AF_INET, struct.pack("!I", packed))
