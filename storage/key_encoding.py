"""
Catalog Key Encoding
====================
Order-preserving, type-tagged tuple encoding for store keys and values.
Packed tuples compare with memcmp (byte-by-byte) in the same order as
the original tuples, so a tuple prefix maps to a contiguous key range.

Encoding rules (one tag byte per component):
  None   → 0x00
  BYTES  → 0x01 + escaped bytes + 0x00 0x00
  STRING → 0x02 + escaped UTF-8 + 0x00 0x00
           Embedded 0x00 escaped as 0x00 0x01.
  INT    → 0x15 + XOR sign bit + big-endian int64 (8 bytes)
  FALSE  → 0x26
  TRUE   → 0x27

Components of different types sort by tag. Every component encoding is
prefix-free, so pack(a) is a prefix of pack(b) iff a is a prefix of b.
"""

import struct
from typing import Any, Tuple

# ─── Type tags ──────────────────────────────────────────────────────────────

NULL_CODE = 0x00
BYTES_CODE = 0x01
STRING_CODE = 0x02
INT_CODE = 0x15
FALSE_CODE = 0x26
TRUE_CODE = 0x27

_INT_MIN = -(1 << 63)
_INT_MAX = (1 << 63) - 1


class KeyEncodingError(ValueError):
    """Raised when a tuple cannot be packed or a byte string cannot be unpacked."""
    pass


# ─── Encode ─────────────────────────────────────────────────────────────────

def pack(items: tuple) -> bytes:
    """Encode a tuple of components to an order-preserving byte string."""
    if not isinstance(items, tuple):
        raise KeyEncodingError(f"Expected a tuple, got {type(items).__name__}")
    result = bytearray()
    for item in items:
        result += _encode_component(item)
    return bytes(result)


def _encode_component(value: Any) -> bytes:
    if value is None:
        return bytes([NULL_CODE])

    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return bytes([TRUE_CODE if value else FALSE_CODE])

    if isinstance(value, int):
        return bytes([INT_CODE]) + _encode_int(value)

    if isinstance(value, str):
        return bytes([STRING_CODE]) + _escape(value.encode("utf-8"))

    if isinstance(value, (bytes, bytearray)):
        return bytes([BYTES_CODE]) + _escape(bytes(value))

    raise KeyEncodingError(f"Unsupported tuple component type: {type(value).__name__}")


def _encode_int(val: int) -> bytes:
    """
    INT encoding: XOR the sign bit of a big-endian int64.
    This maps: MIN → 0x00.., 0 → 0x80.., MAX → 0xFF..
    Binary order == numeric order.
    """
    if val < _INT_MIN or val > _INT_MAX:
        raise KeyEncodingError(f"Integer out of 64-bit range: {val}")
    raw = bytearray(struct.pack(">q", val))
    raw[0] ^= 0x80
    return bytes(raw)


def _escape(data: bytes) -> bytes:
    """Escape 0x00 as 0x00 0x01 and append the 0x00 0x00 terminator."""
    return data.replace(b"\x00", b"\x00\x01") + b"\x00\x00"


# ─── Decode ─────────────────────────────────────────────────────────────────

def unpack(data: bytes) -> tuple:
    """Decode a packed byte string back to its tuple."""
    items = []
    offset = 0
    while offset < len(data):
        value, offset = _decode_component(data, offset)
        items.append(value)
    return tuple(items)


def _decode_component(data: bytes, offset: int) -> Tuple[Any, int]:
    code = data[offset]
    offset += 1

    if code == NULL_CODE:
        return None, offset
    if code == FALSE_CODE:
        return False, offset
    if code == TRUE_CODE:
        return True, offset
    if code == INT_CODE:
        return _decode_int(data, offset)
    if code == STRING_CODE:
        raw, offset = _unescape(data, offset)
        try:
            return raw.decode("utf-8"), offset
        except UnicodeDecodeError as e:
            raise KeyEncodingError(f"Invalid UTF-8 in string component: {e}")
    if code == BYTES_CODE:
        return _unescape(data, offset)

    raise KeyEncodingError(f"Unknown type code 0x{code:02X} at offset {offset - 1}")


def _decode_int(data: bytes, offset: int) -> Tuple[int, int]:
    """Reverse the XOR sign-bit transform and unpack int64."""
    if offset + 8 > len(data):
        raise KeyEncodingError(f"Truncated integer at offset {offset}")
    raw = bytearray(data[offset:offset + 8])
    raw[0] ^= 0x80
    return struct.unpack(">q", bytes(raw))[0], offset + 8


def _unescape(data: bytes, offset: int) -> Tuple[bytes, int]:
    """
    Decode an escaped, terminated byte run.
    0x00 0x01 → literal 0x00
    0x00 0x00 → end of component
    """
    result = bytearray()
    i = offset
    while i < len(data):
        b = data[i]
        if b != 0x00:
            result.append(b)
            i += 1
            continue
        if i + 1 >= len(data):
            break
        next_b = data[i + 1]
        if next_b == 0x00:
            return bytes(result), i + 2
        if next_b == 0x01:
            result.append(0x00)
            i += 2
        else:
            raise KeyEncodingError(f"Invalid escape sequence 0x00 0x{next_b:02X} at offset {i}")
    raise KeyEncodingError(f"Unterminated component starting at offset {offset}")


# ─── Ranges ─────────────────────────────────────────────────────────────────

def range_of(prefix: tuple) -> Tuple[bytes, bytes]:
    """
    Key range [begin, end) holding every tuple that strictly extends `prefix`.
    No component starts with 0xFF, and pack(prefix) itself sorts below
    begin, so the range holds extensions only.
    """
    p = pack(prefix)
    return p + b"\x00", p + b"\xff"


def strinc(key: bytes) -> bytes:
    """
    Smallest byte string greater than every key that starts with `key`.
    Raises KeyEncodingError if `key` is empty or all 0xFF.
    """
    stripped = key.rstrip(b"\xff")
    if not stripped:
        raise KeyEncodingError("Key must contain at least one byte other than 0xFF")
    return stripped[:-1] + bytes([stripped[-1] + 1])
