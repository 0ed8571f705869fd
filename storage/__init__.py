"""
Catalog Storage Layer
=====================
Ordered key-value store beneath the schema catalog.

Components:
  - key_encoding.py: order-preserving, type-tagged tuple encoding
  - subspace.py: Subspace (prefix-bounded key range)
  - kv_store.py: KVStore (multi-version ordered store, optional commit log)
  - directory.py: DirectoryLayer (named, isolated key ranges)
  - errors.py: StoreError hierarchy
"""
