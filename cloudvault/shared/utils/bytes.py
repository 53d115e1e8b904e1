"""Byte-count helpers: human-readable formatting and wire conversion.

Counters can exceed 2**53, so they cross JSON boundaries as decimal
strings rather than numbers.
"""

import re

MAX_BYTE_COUNT = 2**63 - 1

_UNITS = ("Bytes", "KB", "MB", "GB", "TB")
_DECIMAL_RE = re.compile(r"^-?[0-9]+$")


def format_bytes(num_bytes: int | None) -> str:
    """Return a human-readable size (base 1024), e.g. '1.5 MB'.

    None and negative values render as '0 Bytes'.
    """
    if num_bytes is None or num_bytes <= 0:
        return "0 Bytes"
    index = 0
    whole = num_bytes
    while whole >= 1024 and index < len(_UNITS) - 1:
        whole //= 1024
        index += 1
    if index == 0:
        return f"{num_bytes} Bytes"
    value = round(num_bytes / (1024**index), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[index]}"


def bytes_to_wire(value: int) -> str:
    """Serialize a byte counter as a decimal string.

    Raises:
        TypeError: If value is not an int (floats are rejected).
        ValueError: If value is outside the signed 64-bit range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Byte counts must be int, got {type(value).__name__}")
    if value > MAX_BYTE_COUNT or value < -MAX_BYTE_COUNT - 1:
        raise ValueError("Byte count outside 64-bit range")
    return str(value)


def bytes_from_wire(value: str | int) -> int:
    """Parse a byte counter from its wire form (decimal string or int).

    Raises:
        TypeError: If value is a float or another unsupported type.
        ValueError: If the string is not a plain decimal integer or is out of range.
    """
    if isinstance(value, bool):
        raise TypeError("Byte counts must be int or decimal string")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not _DECIMAL_RE.match(text):
            raise ValueError(f"Invalid byte count: {value!r}")
        parsed = int(text)
    else:
        raise TypeError(f"Byte counts must be int or decimal string, got {type(value).__name__}")
    if parsed > MAX_BYTE_COUNT or parsed < -MAX_BYTE_COUNT - 1:
        raise ValueError("Byte count outside 64-bit range")
    return parsed
