"""
Schema Codec and Catalog Type Tests
===================================
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from catalog.schema_codec import (
    ATTRIBUTE_LIST_KEY, SchemaCorruptionError, attribute_key,
    decode_attribute, decode_attribute_list, encode_attribute, encode_attribute_list,
)
from catalog.types import AttributeType, TableMetadata, type_from_value
from storage.key_encoding import pack


# ═══════════════════════════════════════════════════════════════════════════
# 1. Attribute Records
# ═══════════════════════════════════════════════════════════════════════════

class TestAttributeRecord:

    def test_decode_encoded(self):
        data = encode_attribute(AttributeType.DOUBLE, True)
        assert decode_attribute(data) == (AttributeType.DOUBLE, True)

    def test_unknown_type_tag(self):
        with pytest.raises(SchemaCorruptionError, match="BLOB"):
            decode_attribute(pack(("BLOB", False)))

    def test_wrong_shape(self):
        with pytest.raises(SchemaCorruptionError):
            decode_attribute(pack(("INT",)))
        with pytest.raises(SchemaCorruptionError):
            decode_attribute(pack(("INT", 1)))

    def test_undecodable_bytes(self):
        with pytest.raises(SchemaCorruptionError):
            decode_attribute(b"\x99garbage")

    def test_record_key_never_matches_list_key(self):
        assert attribute_key("attributes") != ATTRIBUTE_LIST_KEY
        assert pack(attribute_key("attributes")) != pack(ATTRIBUTE_LIST_KEY)


# ═══════════════════════════════════════════════════════════════════════════
# 2. Attribute List
# ═══════════════════════════════════════════════════════════════════════════

class TestAttributeList:

    def test_order_preserved(self):
        names = ["zeta", "alpha", "with,comma", "nul\x00byte"]
        assert decode_attribute_list(encode_attribute_list(names)) == names

    def test_empty_list(self):
        assert decode_attribute_list(encode_attribute_list([])) == []

    def test_non_string_entry(self):
        with pytest.raises(SchemaCorruptionError):
            decode_attribute_list(pack(("a", 7)))

    def test_truncated(self):
        data = encode_attribute_list(["abc"])
        with pytest.raises(SchemaCorruptionError):
            decode_attribute_list(data[:-1])

    def test_corruption_is_value_error(self):
        assert issubclass(SchemaCorruptionError, ValueError)


# ═══════════════════════════════════════════════════════════════════════════
# 3. Types and Metadata
# ═══════════════════════════════════════════════════════════════════════════

class TestTypes:

    @pytest.mark.parametrize("value,expected", [
        (AttributeType.INT, AttributeType.INT),
        ("int", AttributeType.INT),
        ("VarChar", AttributeType.VARCHAR),
        (" DOUBLE ", AttributeType.DOUBLE),
        ("BLOB", None),
        (3, None),
        (None, None),
    ])
    def test_type_from_value(self, value, expected):
        assert type_from_value(value) is expected

    def test_metadata_lookups(self):
        meta = TableMetadata(["id", "name"], [AttributeType.INT, AttributeType.VARCHAR], ["id"])
        assert meta.attribute_count == 2
        assert meta.has_attribute("name")
        assert meta.type_of("name") is AttributeType.VARCHAR
        assert meta.is_primary_key("id")
        assert not meta.is_primary_key("name")
        with pytest.raises(KeyError):
            meta.type_of("missing")

    def test_copy_is_independent(self):
        meta = TableMetadata(["id"], [AttributeType.INT], ["id"])
        clone = meta.copy()
        clone.attribute_names.append("x")
        assert meta.attribute_names == ["id"]
        assert clone != meta

    def test_to_dict(self):
        meta = TableMetadata(["id", "v"], [AttributeType.INT, AttributeType.DOUBLE], ["id"])
        assert meta.to_dict() == {"attributes": [
            {"name": "id", "type": "INT", "primary_key": True},
            {"name": "v", "type": "DOUBLE", "primary_key": False},
        ]}


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
