# Overview: Row-locking helper for lifecycle transitions on return records.

from __future__ import annotations


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Posting paths do not retry; the caller owns retries via its idempotency key.
    """
    return query.with_for_update()
