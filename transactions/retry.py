"""
Transactional Retry
===================
Decorator that runs a function inside one store transaction.

    @transactional
    def move(tr, src, dst):
        ...

    move(store, b"a", b"b")   # new transaction, committed, retried on conflict
    move(tr, b"a", b"b")      # joins the caller's transaction, no commit

The first positional argument selects the mode. Given a KVStore, the
function body runs in a fresh transaction which is committed on return;
on TransactionConflictError the whole body is re-run with a new snapshot,
with jittered exponential backoff, up to the store's retry_limit. Any
other exception aborts the transaction and propagates.
"""

import functools
import logging
import random
import time

from storage.errors import TransactionConflictError, TransactionRetryLimitError
from transactions.transaction import Transaction

logger = logging.getLogger(__name__)

INITIAL_BACKOFF = 0.001   # seconds
MAX_BACKOFF = 0.1


def transactional(func):
    @functools.wraps(func)
    def wrapper(db_or_tr, *args, **kwargs):
        if isinstance(db_or_tr, Transaction):
            return func(db_or_tr, *args, **kwargs)
        return run_transaction(db_or_tr, func, *args, **kwargs)
    return wrapper


def run_transaction(store, func, *args, **kwargs):
    """Run func(tr, *args, **kwargs) in a new transaction with retries."""
    backoff = INITIAL_BACKOFF
    attempt = 0
    while True:
        tr = store.create_transaction()
        try:
            result = func(tr, *args, **kwargs)
            tr.commit()
            return result
        except TransactionConflictError as e:
            attempt += 1
            if attempt > store.retry_limit:
                raise TransactionRetryLimitError(
                    f"{func.__name__} still conflicting after {store.retry_limit} retries") from e
            logger.warning("%s conflicted (attempt %d), retrying: %s",
                           func.__name__, attempt, e)
            time.sleep(random.uniform(0, backoff))
            backoff = min(backoff * 2, MAX_BACKOFF)
        finally:
            tr.abort()
