"""
Catalog Types
=============
Attribute types, operation status codes and per-table metadata.

AttributeType is a closed set: INT, VARCHAR, DOUBLE. The member value is
the tag written to the store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class AttributeType(Enum):
    """Supported attribute types."""
    INT = "INT"
    VARCHAR = "VARCHAR"
    DOUBLE = "DOUBLE"


class StatusCode(Enum):
    """Outcome of a catalog mutation."""
    SUCCESS = "SUCCESS"
    TABLE_ALREADY_EXISTS = "TABLE_ALREADY_EXISTS"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    TABLE_CREATION_ATTRIBUTE_INVALID = "TABLE_CREATION_ATTRIBUTE_INVALID"
    TABLE_CREATION_NO_PRIMARY_KEY = "TABLE_CREATION_NO_PRIMARY_KEY"
    TABLE_CREATION_PRIMARY_KEY_NOT_FOUND = "TABLE_CREATION_PRIMARY_KEY_NOT_FOUND"
    ATTRIBUTE_TYPE_NOT_SUPPORTED = "ATTRIBUTE_TYPE_NOT_SUPPORTED"
    ATTRIBUTE_ALREADY_EXISTS = "ATTRIBUTE_ALREADY_EXISTS"
    ATTRIBUTE_NOT_FOUND = "ATTRIBUTE_NOT_FOUND"


def type_from_value(value: Any) -> Optional[AttributeType]:
    """
    Resolve an AttributeType member or its name ('int', 'VARCHAR', ...).
    Returns None for anything outside the supported set.
    """
    if isinstance(value, AttributeType):
        return value
    if isinstance(value, str):
        try:
            return AttributeType(value.strip().upper())
        except ValueError:
            return None
    return None


@dataclass
class TableMetadata:
    """
    Schema of one table: attribute names with their parallel types, and
    the names of the primary-key attributes.
    """
    attribute_names: List[str] = field(default_factory=list)
    attribute_types: List[AttributeType] = field(default_factory=list)
    primary_key_names: List[str] = field(default_factory=list)

    @property
    def attribute_count(self) -> int:
        return len(self.attribute_names)

    def has_attribute(self, name: str) -> bool:
        return name in self.attribute_names

    def type_of(self, name: str) -> AttributeType:
        """Type of an attribute. Raises KeyError if not found."""
        for attr_name, attr_type in zip(self.attribute_names, self.attribute_types):
            if attr_name == name:
                return attr_type
        raise KeyError(f"Attribute '{name}' not found. "
                       f"Available: {self.attribute_names}")

    def is_primary_key(self, name: str) -> bool:
        return name in self.primary_key_names

    def copy(self) -> "TableMetadata":
        return TableMetadata(list(self.attribute_names),
                             list(self.attribute_types),
                             list(self.primary_key_names))

    def to_dict(self) -> dict:
        return {
            "attributes": [
                {"name": n, "type": t.value, "primary_key": n in self.primary_key_names}
                for n, t in zip(self.attribute_names, self.attribute_types)
            ],
        }
