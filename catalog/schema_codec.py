"""
Schema Codec
============
Byte encoding of the catalog records kept inside each table's directory.

  ("attributes",)        → pack((name_1, name_2, ...))     attribute list
  ("attribute", name)    → pack((type_tag, is_primary_key)) attribute record

The list key is a 1-tuple and record keys are 2-tuples, so no attribute
name can collide with the list record.

Decoding failures mean the stored bytes are damaged and raise
SchemaCorruptionError; they are never reported as a status code.
"""

from typing import List, Sequence, Tuple

from catalog.types import AttributeType
from storage import key_encoding

ATTRIBUTE_LIST_KEY: tuple = ("attributes",)
ATTRIBUTE_RECORD_TAG = "attribute"


class SchemaCorruptionError(ValueError):
    """A stored catalog record cannot be decoded."""
    pass


def attribute_key(name: str) -> tuple:
    return (ATTRIBUTE_RECORD_TAG, name)


# ─── Attribute record ───────────────────────────────────────────────────────

def encode_attribute(attr_type: AttributeType, is_primary_key: bool) -> bytes:
    return key_encoding.pack((attr_type.value, bool(is_primary_key)))


def decode_attribute(data: bytes) -> Tuple[AttributeType, bool]:
    items = _unpack(data, "attribute record")
    if len(items) != 2 or not isinstance(items[0], str) or not isinstance(items[1], bool):
        raise SchemaCorruptionError(f"Malformed attribute record: {items!r}")
    try:
        attr_type = AttributeType(items[0])
    except ValueError:
        raise SchemaCorruptionError(f"Unknown attribute type tag {items[0]!r}")
    return attr_type, items[1]


# ─── Attribute list ─────────────────────────────────────────────────────────

def encode_attribute_list(names: Sequence[str]) -> bytes:
    return key_encoding.pack(tuple(names))


def decode_attribute_list(data: bytes) -> List[str]:
    items = _unpack(data, "attribute list")
    if not all(isinstance(item, str) for item in items):
        raise SchemaCorruptionError(f"Attribute list holds non-string names: {items!r}")
    return list(items)


def _unpack(data: bytes, what: str) -> tuple:
    try:
        return key_encoding.unpack(data)
    except (key_encoding.KeyEncodingError, IndexError) as e:
        raise SchemaCorruptionError(f"Cannot decode {what}: {e}")
