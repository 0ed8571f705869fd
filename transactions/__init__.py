"""
Catalog Store Transactions
==========================
Serializable optimistic transactions for the catalog's key-value store.

Components:
  - transaction.py: Transaction (snapshot reads, buffered writes, conflict ranges)
  - retry.py: @transactional decorator (one transaction per call, retried on conflict)
  - wal.py: CommitLog (append-only, CRC32-checked record per commit)
"""
