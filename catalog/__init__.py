# Schema Catalog Package
# ======================
# Table and attribute metadata kept transactionally in the KV store.

from catalog.types import AttributeType, StatusCode, TableMetadata, type_from_value
from catalog.schema_codec import SchemaCorruptionError
from catalog.namespace import NamespaceDirectory
from catalog.cache import SchemaCache
from catalog.table_manager import TableManager
