"""
Table Manager Tests
===================
End-to-end tests of the catalog API against an in-memory store.

Tests prove:
  - Create / list round trip, including primary keys and attribute order
  - Table names are unique; a second create changes nothing
  - Validation order for create_table and add_attribute
  - Rejected requests write nothing
  - Delete and drop-all remove every key of the table
  - Attribute list and attribute records always agree
  - Damaged records fail the listing instead of returning partial data
  - Catalog survives a store reopen
  - Listing cache follows mutations from any manager on the store
"""

import os
import sys
import shutil
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from catalog import (
    AttributeType, SchemaCorruptionError, StatusCode, TableManager, TableMetadata,
)
from catalog.schema_codec import ATTRIBUTE_LIST_KEY, ATTRIBUTE_RECORD_TAG, attribute_key
from storage.kv_store import KVStore

INT, VARCHAR, DOUBLE = AttributeType.INT, AttributeType.VARCHAR, AttributeType.DOUBLE


class CatalogTestBase(unittest.TestCase):

    def setUp(self):
        self.store = KVStore()
        self.manager = TableManager(self.store)

    def create_users(self):
        return self.manager.create_table(
            "Users", ["id", "name", "score"], [INT, VARCHAR, DOUBLE], ["id"])

    def table_keys(self, table_name):
        """Raw (key, value) pairs inside a table's directory."""
        with self.store.create_transaction() as tr:
            table = self.manager.namespace.open(tr, table_name)
            return table, tr.get_range_startswith(table.key)

    def assert_consistent(self, table_name):
        with self.store.create_transaction() as tr:
            table = self.manager.namespace.open(tr, table_name)
            listed = tr.get(table.pack(ATTRIBUTE_LIST_KEY))
            begin, end = table.range((ATTRIBUTE_RECORD_TAG,))
            recorded = {table.unpack(k)[1] for k, _ in tr.get_range(begin, end)}
        meta = self.manager.describe_table(table_name)
        self.assertIsNotNone(listed)
        self.assertEqual(set(meta.attribute_names), recorded)
        self.assertEqual(len(meta.attribute_names), len(recorded))


# ═══════════════════════════════════════════════════════════════════════════
# 1. Create / List
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateAndList(CatalogTestBase):

    def test_empty_catalog(self):
        self.assertEqual(self.manager.list_tables(), {})

    def test_create_then_list(self):
        self.assertEqual(self.create_users(), StatusCode.SUCCESS)
        tables = self.manager.list_tables()
        self.assertEqual(list(tables), ["Users"])
        meta = tables["Users"]
        self.assertEqual(meta.attribute_names, ["id", "name", "score"])
        self.assertEqual(meta.attribute_types, [INT, VARCHAR, DOUBLE])
        self.assertEqual(meta.primary_key_names, ["id"])

    def test_composite_primary_key(self):
        status = self.manager.create_table(
            "Orders", ["order_id", "line", "amount"], [INT, INT, DOUBLE], ["line", "order_id"])
        self.assertEqual(status, StatusCode.SUCCESS)
        meta = self.manager.list_tables()["Orders"]
        self.assertEqual(set(meta.primary_key_names), {"order_id", "line"})
        self.assertEqual(meta.attribute_names, ["order_id", "line", "amount"])

    def test_type_names_accepted(self):
        status = self.manager.create_table("T", ["a", "b"], ["int", "Varchar"], ["a"])
        self.assertEqual(status, StatusCode.SUCCESS)
        self.assertEqual(self.manager.list_tables()["T"].attribute_types, [INT, VARCHAR])

    def test_several_tables(self):
        self.create_users()
        self.manager.create_table("Items", ["sku"], [VARCHAR], ["sku"])
        self.assertEqual(sorted(self.manager.list_tables()), ["Items", "Users"])

    def test_describe_table(self):
        self.create_users()
        self.assertEqual(self.manager.describe_table("Users"),
                         self.manager.list_tables()["Users"])
        self.assertIsNone(self.manager.describe_table("Missing"))

    def test_attribute_named_like_list_record(self):
        status = self.manager.create_table(
            "T", ["attributes", "attribute"], [VARCHAR, INT], ["attributes"])
        self.assertEqual(status, StatusCode.SUCCESS)
        meta = self.manager.list_tables()["T"]
        self.assertEqual(meta.attribute_names, ["attributes", "attribute"])
        self.assert_consistent("T")

    def test_unicode_names(self):
        self.assertEqual(
            self.manager.create_table("Café", ["naïve"], [VARCHAR], ["naïve"]),
            StatusCode.SUCCESS)
        self.assertIn("Café", self.manager.list_tables())

    def test_bad_name_arguments(self):
        with self.assertRaises(TypeError):
            self.manager.create_table(123, ["a"], [INT], ["a"])
        with self.assertRaises(ValueError):
            self.manager.delete_table("")
        with self.assertRaises(TypeError):
            self.manager.add_attribute("T", None, INT)

    def test_separate_roots_are_isolated(self):
        self.create_users()
        other = TableManager(self.store, root_path=("other",))
        self.assertEqual(other.list_tables(), {})
        other.create_table("Users", ["x"], [INT], ["x"])
        self.assertEqual(self.manager.list_tables()["Users"].attribute_names,
                         ["id", "name", "score"])


# ═══════════════════════════════════════════════════════════════════════════
# 2. Uniqueness and Validation
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateValidation(CatalogTestBase):

    def test_duplicate_table_rejected(self):
        self.create_users()
        before = self.manager.list_tables()
        status = self.manager.create_table("Users", ["other"], [INT], ["other"])
        self.assertEqual(status, StatusCode.TABLE_ALREADY_EXISTS)
        self.assertEqual(self.manager.list_tables(), before)

    def test_attribute_lists_missing_or_mismatched(self):
        cases = [
            (None, [INT], ["a"]),
            (["a"], None, ["a"]),
            (["a", "b"], [INT], ["a"]),
            (["a"], [INT, INT], ["a"]),
        ]
        for names, types, pk in cases:
            with self.subTest(names=names, types=types):
                self.assertEqual(self.manager.create_table("T", names, types, pk),
                                 StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID)

    def test_duplicate_or_empty_attribute_names(self):
        self.assertEqual(self.manager.create_table("T", ["a", "a"], [INT, INT], ["a"]),
                         StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID)
        self.assertEqual(self.manager.create_table("T", ["a", ""], [INT, INT], ["a"]),
                         StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID)

    def test_no_primary_key(self):
        self.assertEqual(self.manager.create_table("T", ["a"], [INT], None),
                         StatusCode.TABLE_CREATION_NO_PRIMARY_KEY)
        self.assertEqual(self.manager.create_table("T", ["a"], [INT], []),
                         StatusCode.TABLE_CREATION_NO_PRIMARY_KEY)

    def test_primary_key_not_declared(self):
        self.assertEqual(self.manager.create_table("T", ["a"], [INT], ["b"]),
                         StatusCode.TABLE_CREATION_PRIMARY_KEY_NOT_FOUND)

    def test_primary_key_names_must_be_strings(self):
        for bad in (["a"], None, 1):
            self.assertEqual(self.manager.create_table("T", ["a"], [INT], [bad]),
                             StatusCode.TABLE_CREATION_PRIMARY_KEY_NOT_FOUND)
        self.assertEqual(self.manager.list_tables(), {})

    def test_unsupported_type(self):
        self.assertEqual(self.manager.create_table("T", ["a", "b"], [INT, "BLOB"], ["a"]),
                         StatusCode.ATTRIBUTE_TYPE_NOT_SUPPORTED)
        self.assertEqual(self.manager.create_table("T", ["a"], [None], ["a"]),
                         StatusCode.ATTRIBUTE_TYPE_NOT_SUPPORTED)

    def test_check_order(self):
        # Mismatched lengths beat a missing primary key.
        self.assertEqual(self.manager.create_table("T", ["a", "b"], [INT], None),
                         StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID)
        # Missing primary key attribute beats an unsupported type.
        self.assertEqual(self.manager.create_table("T", ["a"], ["BLOB"], ["b"]),
                         StatusCode.TABLE_CREATION_PRIMARY_KEY_NOT_FOUND)
        # Argument checks beat the existence check.
        self.create_users()
        self.assertEqual(self.manager.create_table("Users", ["a"], [INT], []),
                         StatusCode.TABLE_CREATION_NO_PRIMARY_KEY)

    def test_rejections_write_nothing(self):
        self.create_users()
        version = self.store.version
        self.manager.create_table("Users", ["a"], [INT], ["a"])
        self.manager.create_table("T", ["a"], ["BLOB"], ["a"])
        self.manager.delete_table("Missing")
        self.manager.add_attribute("Users", "id", INT)
        self.manager.add_attribute("Missing", "x", INT)
        self.manager.drop_attribute("Users", "missing")
        self.assertEqual(self.store.version, version)


# ═══════════════════════════════════════════════════════════════════════════
# 3. Delete / Drop All
# ═══════════════════════════════════════════════════════════════════════════

class TestDelete(CatalogTestBase):

    def test_delete_table(self):
        self.create_users()
        table, _ = self.table_keys("Users")
        self.assertEqual(self.manager.delete_table("Users"), StatusCode.SUCCESS)
        self.assertEqual(self.manager.list_tables(), {})
        with self.store.create_transaction() as tr:
            self.assertEqual(tr.get_range_startswith(table.key), [])

    def test_delete_missing(self):
        self.assertEqual(self.manager.delete_table("Users"), StatusCode.TABLE_NOT_FOUND)

    def test_recreate_after_delete(self):
        self.create_users()
        self.manager.delete_table("Users")
        status = self.manager.create_table("Users", ["uid"], [VARCHAR], ["uid"])
        self.assertEqual(status, StatusCode.SUCCESS)
        meta = self.manager.list_tables()["Users"]
        self.assertEqual(meta.attribute_names, ["uid"])
        self.assertEqual(meta.attribute_types, [VARCHAR])

    def test_create_delete_cycles_do_not_grow_store(self):
        self.create_users()
        self.manager.delete_table("Users")
        baseline = len(self.store._keys)
        for _ in range(100):
            self.create_users()
            self.manager.add_attribute("Users", "email", VARCHAR)
            self.manager.delete_table("Users")
        self.assertEqual(len(self.store._keys), baseline)
        self.assertEqual(len(self.store._chains), baseline)

    def test_drop_all_tables(self):
        self.create_users()
        self.manager.create_table("Items", ["sku"], [VARCHAR], ["sku"])
        self.assertEqual(self.manager.drop_all_tables(), StatusCode.SUCCESS)
        self.assertEqual(self.manager.list_tables(), {})

    def test_drop_all_on_empty_catalog(self):
        self.assertEqual(self.manager.drop_all_tables(), StatusCode.SUCCESS)
        self.assertEqual(self.manager.drop_all_tables(), StatusCode.SUCCESS)
        self.assertEqual(self.manager.list_tables(), {})

    def test_drop_all_leaves_other_roots(self):
        other = TableManager(self.store, root_path=("other",))
        other.create_table("Keep", ["k"], [INT], ["k"])
        self.create_users()
        self.manager.drop_all_tables()
        self.assertIn("Keep", other.list_tables())


# ═══════════════════════════════════════════════════════════════════════════
# 4. Attributes
# ═══════════════════════════════════════════════════════════════════════════

class TestAttributes(CatalogTestBase):

    def test_add_attribute(self):
        self.create_users()
        self.assertEqual(self.manager.add_attribute("Users", "email", VARCHAR),
                         StatusCode.SUCCESS)
        meta = self.manager.list_tables()["Users"]
        self.assertEqual(meta.attribute_names[-1], "email")
        self.assertEqual(meta.type_of("email"), VARCHAR)
        self.assertFalse(meta.is_primary_key("email"))
        self.assert_consistent("Users")

    def test_add_attribute_by_type_name(self):
        self.create_users()
        self.assertEqual(self.manager.add_attribute("Users", "rank", "int"), StatusCode.SUCCESS)
        self.assertEqual(self.manager.describe_table("Users").type_of("rank"), INT)

    def test_add_existing_attribute(self):
        self.create_users()
        self.assertEqual(self.manager.add_attribute("Users", "name", INT),
                         StatusCode.ATTRIBUTE_ALREADY_EXISTS)
        self.assertEqual(self.manager.describe_table("Users").type_of("name"), VARCHAR)

    def test_add_attribute_missing_table_checked_first(self):
        self.assertEqual(self.manager.add_attribute("Missing", "x", "BLOB"),
                         StatusCode.TABLE_NOT_FOUND)

    def test_add_unsupported_type(self):
        self.create_users()
        self.assertEqual(self.manager.add_attribute("Users", "blob", "BLOB"),
                         StatusCode.ATTRIBUTE_TYPE_NOT_SUPPORTED)
        self.assertFalse(self.manager.describe_table("Users").has_attribute("blob"))

    def test_drop_attribute(self):
        self.create_users()
        self.assertEqual(self.manager.drop_attribute("Users", "name"), StatusCode.SUCCESS)
        meta = self.manager.list_tables()["Users"]
        self.assertEqual(meta.attribute_names, ["id", "score"])
        self.assertEqual(meta.attribute_types, [INT, DOUBLE])
        self.assert_consistent("Users")

    def test_drop_missing(self):
        self.assertEqual(self.manager.drop_attribute("Users", "name"),
                         StatusCode.TABLE_NOT_FOUND)
        self.create_users()
        self.assertEqual(self.manager.drop_attribute("Users", "nope"),
                         StatusCode.ATTRIBUTE_NOT_FOUND)

    def test_drop_primary_key_attribute(self):
        self.create_users()
        self.assertEqual(self.manager.drop_attribute("Users", "id"), StatusCode.SUCCESS)
        meta = self.manager.list_tables()["Users"]
        self.assertEqual(meta.primary_key_names, [])
        self.assertEqual(meta.attribute_names, ["name", "score"])

    def test_drop_then_add_same_name(self):
        self.create_users()
        self.manager.drop_attribute("Users", "score")
        self.manager.add_attribute("Users", "score", INT)
        meta = self.manager.describe_table("Users")
        self.assertEqual(meta.attribute_names, ["id", "name", "score"])
        self.assertEqual(meta.type_of("score"), INT)
        self.assert_consistent("Users")


# ═══════════════════════════════════════════════════════════════════════════
# 5. Corruption
# ═══════════════════════════════════════════════════════════════════════════

class TestCorruption(CatalogTestBase):

    def _write_raw(self, rel_key, value):
        with self.store.create_transaction() as tr:
            table = self.manager.namespace.open(tr, "Users")
            if value is None:
                tr.clear(table.pack(rel_key))
            else:
                tr.set(table.pack(rel_key), value)

    def test_bad_attribute_record(self):
        self.create_users()
        self._write_raw(attribute_key("name"), b"\x99")
        with self.assertRaises(SchemaCorruptionError):
            self.manager.list_tables()
        with self.assertRaises(SchemaCorruptionError):
            self.manager.describe_table("Users")

    def test_missing_attribute_list(self):
        self.create_users()
        self._write_raw(ATTRIBUTE_LIST_KEY, None)
        with self.assertRaises(SchemaCorruptionError):
            self.manager.list_tables()

    def test_list_and_records_disagree(self):
        self.create_users()
        self._write_raw(attribute_key("name"), None)
        with self.assertRaises(SchemaCorruptionError):
            self.manager.list_tables()

    def test_no_partial_listing(self):
        self.create_users()
        self.manager.create_table("Good", ["g"], [INT], ["g"])
        self._write_raw(attribute_key("score"), b"")
        with self.assertRaises(SchemaCorruptionError):
            self.manager.list_tables()


# ═══════════════════════════════════════════════════════════════════════════
# 6. Durability
# ═══════════════════════════════════════════════════════════════════════════

class TestDurability(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="catalog_tm_test_")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_catalog_survives_reopen(self):
        with KVStore(self.tmp) as store:
            manager = TableManager(store)
            manager.create_table("Users", ["id", "name"], [INT, VARCHAR], ["id"])
            manager.add_attribute("Users", "age", INT)
            manager.create_table("Gone", ["g"], [INT], ["g"])
            manager.delete_table("Gone")

        with KVStore(self.tmp) as store:
            tables = TableManager(store).list_tables()
        self.assertEqual(list(tables), ["Users"])
        self.assertEqual(tables["Users"], TableMetadata(
            ["id", "name", "age"], [INT, VARCHAR, INT], ["id"]))


# ═══════════════════════════════════════════════════════════════════════════
# 7. Listing Cache
# ═══════════════════════════════════════════════════════════════════════════

class TestListingCache(CatalogTestBase):

    def test_repeat_listing_hits_cache(self):
        self.create_users()
        first = self.manager.list_tables()
        second = self.manager.list_tables()
        self.assertEqual(first, second)
        self.assertEqual(self.manager.cache.hits, 1)

    def test_local_mutation_invalidates(self):
        self.create_users()
        self.manager.list_tables()
        self.manager.add_attribute("Users", "email", VARCHAR)
        self.assertIn("email", self.manager.list_tables()["Users"].attribute_names)

    def test_other_manager_mutation_invalidates(self):
        other = TableManager(self.store)
        self.create_users()
        self.assertIn("Users", other.list_tables())
        self.manager.create_table("Items", ["sku"], [VARCHAR], ["sku"])
        self.assertEqual(sorted(other.list_tables()), ["Items", "Users"])
        self.manager.drop_all_tables()
        self.assertEqual(other.list_tables(), {})

    def test_returned_listing_is_a_copy(self):
        self.create_users()
        listing = self.manager.list_tables()
        listing["Users"].attribute_names.append("bogus")
        listing.pop("Users")
        self.assertEqual(self.manager.list_tables()["Users"].attribute_names,
                         ["id", "name", "score"])

    def test_cache_disabled(self):
        manager = TableManager(self.store, cache_enabled=False)
        self.assertIsNone(manager.cache)
        manager.create_table("T", ["a"], [INT], ["a"])
        self.assertIn("T", manager.list_tables())


if __name__ == "__main__":
    unittest.main()
