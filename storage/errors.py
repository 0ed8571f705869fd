"""
Store Errors
============
Infrastructure failures raised by the key-value store. None of these are
catalog status codes: they mean the store could not complete the request.
"""


class StoreError(Exception):
    """Base class for key-value store failures."""
    pass


class TransactionConflictError(StoreError):
    """A key read by the transaction was committed by another transaction first."""
    pass


class TransactionRetryLimitError(StoreError):
    """A transactional function kept conflicting past its retry budget."""
    pass


class TransactionStateError(StoreError):
    """Operation on a transaction that is already committed or aborted."""
    pass


class CommitLogCorruptionError(StoreError):
    """The durable commit log holds a damaged record before its tail."""
    pass
