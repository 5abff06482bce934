"""Per-type decode rules for web100 variables.

Each ``VarType`` has a fixed byte width and a decoder that turns a window of
exactly that width into an int, string or bool. All integers are
little-endian. ``SENTINEL`` marks padding: it accepts any width and produces
no output.
"""

import ipaddress
from enum import IntEnum
from typing import TYPE_CHECKING, Optional, Tuple, Union

from snaplog_etl.web100.errors import BoundsError, FormatError

if TYPE_CHECKING:
    from snaplog_etl.web100.variables import FieldDescriptor
    from snaplog_etl.web100.values import ValueMap

__all__ = ['VarType', 'WIDTHS', 'decode', 'save']

Decoded = Tuple[str, Union[int, str, bool]]


class VarType(IntEnum):
    """web100 variable type codes, in schema-file numbering."""
    INTEGER = 0
    INTEGER32 = 1
    INET_ADDRESS_IPV4 = 2
    COUNTER32 = 3
    GAUGE32 = 4
    UNSIGNED32 = 5
    TIME_TICKS = 6
    COUNTER64 = 7
    INET_PORT_NUMBER = 8
    INET_ADDRESS = 9
    INET_ADDRESS_IPV6 = 10
    STR32 = 11
    OCTET = 12
    SENTINEL = 13


# None means any width is accepted.
WIDTHS = {
    VarType.INTEGER: 4,
    VarType.INTEGER32: 4,
    VarType.INET_ADDRESS_IPV4: 4,
    VarType.COUNTER32: 4,
    VarType.GAUGE32: 4,
    VarType.UNSIGNED32: 4,
    VarType.TIME_TICKS: 4,
    VarType.COUNTER64: 8,
    VarType.INET_PORT_NUMBER: 2,
    VarType.INET_ADDRESS: 17,
    VarType.INET_ADDRESS_IPV6: 17,
    VarType.STR32: 32,
    VarType.OCTET: 1,
    VarType.SENTINEL: None,
}

_SIGNED = {VarType.INTEGER, VarType.INTEGER32}
_UNSIGNED = {
    VarType.COUNTER32,
    VarType.GAUGE32,
    VarType.UNSIGNED32,
    VarType.TIME_TICKS,
    VarType.COUNTER64,
    VarType.INET_PORT_NUMBER,
}

# Trailing type byte of a 17-byte INET_ADDRESS.
_ADDR_TYPE_IPV4 = 1
_ADDR_TYPE_IPV6 = 2


def _decode_address(var_type: VarType, window: bytes) -> str:
    if var_type == VarType.INET_ADDRESS_IPV4:
        return str(ipaddress.IPv4Address(bytes(window)))
    if var_type == VarType.INET_ADDRESS_IPV6:
        return str(ipaddress.IPv6Address(bytes(window[:16])))

    addr_type = window[16]
    if addr_type == _ADDR_TYPE_IPV4:
        return str(ipaddress.IPv4Address(bytes(window[:4])))
    if addr_type == _ADDR_TYPE_IPV6:
        return str(ipaddress.IPv6Address(bytes(window[:16])))
    raise FormatError(f"Unknown INET_ADDRESS type byte: {addr_type}")


def decode(var_type: VarType, window: bytes) -> Optional[Decoded]:
    """Decode one variable window.

    Parameters
    ----------
    var_type : VarType
        Type code of the variable.
    window : bytes-like
        Bytes holding the value. Extra trailing bytes are ignored.

    Returns
    -------
    tuple or None
        ``(kind, value)`` where kind is ``"int"``, ``"string"`` or
        ``"bool"``; None for ``SENTINEL``.

    Raises
    ------
    BoundsError
        If the window is shorter than the type's width.
    FormatError
        If the bytes cannot represent a value of the type.

    Examples
    --------
    >>> decode(VarType.INTEGER32, b"\\xff\\xff\\xff\\xff")
    ('int', -1)
    """
    width = WIDTHS[var_type]
    if width is None:
        return None
    if len(window) < width:
        raise BoundsError(
            f"{var_type.name} needs {width} bytes, window has {len(window)}"
        )
    window = window[:width]

    if var_type in _SIGNED:
        return "int", int.from_bytes(window, "little", signed=True)
    if var_type in _UNSIGNED:
        return "int", int.from_bytes(window, "little", signed=False)
    if var_type == VarType.OCTET:
        return "bool", window[0] != 0
    if var_type == VarType.STR32:
        raw = bytes(window).split(b"\x00", 1)[0]
        return "string", raw.decode("ascii", errors="replace").rstrip()
    return "string", _decode_address(var_type, window)


def save(descriptor: "FieldDescriptor", record: memoryview, sink: "ValueMap",
         name: Optional[str] = None) -> None:
    """Decode ``descriptor`` out of ``record`` and write it into ``sink``.

    The descriptor window must lie entirely within the record.
    """
    end = descriptor.offset + descriptor.length
    if end > len(record):
        raise BoundsError(
            f"{descriptor.name}: window [{descriptor.offset}, {end}) "
            f"outside record of {len(record)} bytes"
        )
    decoded = decode(descriptor.type_code, record[descriptor.offset:end])
    if decoded is None:
        return

    kind, value = decoded
    key = name or descriptor.effective_name
    if kind == "int":
        sink.set_int64(key, value)
    elif kind == "bool":
        sink.set_bool(key, value)
    else:
        sink.set_string(key, value)
