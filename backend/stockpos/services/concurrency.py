# Overview: Service-layer helpers for concurrency; row locking and bounded conflict retries.

from __future__ import annotations

import time

from flask import current_app


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Compare-and-set on version_id still guards SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, retry_on: tuple, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute an optimistic read-then-commit operation, retrying on conflicts.

    `func` must re-read everything it depends on, so each attempt runs
    against the post-conflict state. Only the exception types in
    `retry_on` are retried; everything else propagates immediately.
    """
    if attempts is None:
        attempts = 3
    if backoff_base is None:
        backoff_base = current_app.config.get("RETRY_BACKOFF_BASE", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Retrying after conflict (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
