"""Concurrency guard for the booking transaction.

On PostgreSQL the ``appointments_scope_no_overlap`` exclusion constraint
rejects a second live reservation whose blocked range overlaps another one of
the same scope; the insert fails with SQLSTATE 23P01 and is reported as a
conflict. On SQLite every transaction starts with ``BEGIN IMMEDIATE``, so the
check and the insert run while holding the write lock; lock timeouts are
retried here with backoff.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from scheduling_core.database.models import APPOINTMENTS_NO_OVERLAP_CONSTRAINT
from scheduling_core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXCLUSION_VIOLATION = "23P01"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


def scope_key_for(department_id: str, user_id: Optional[str] = None) -> str:
    """Reservation owner: the operator when one is chosen, else the department."""
    if user_id:
        return f"user:{user_id}"
    return f"department:{department_id}"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def is_exclusion_violation(exc: IntegrityError) -> bool:
    """Whether an integrity error comes from the overlap exclusion constraint."""
    if _sqlstate(exc) == EXCLUSION_VIOLATION:
        return True
    return APPOINTMENTS_NO_OVERLAP_CONSTRAINT in str(exc.orig)


def is_retryable(exc: DBAPIError) -> bool:
    """Whether a failed transaction may succeed if simply run again."""
    if _sqlstate(exc) in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return "database is locked" in message or "database is busy" in message
    return False


async def run_with_retries(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff_ms: int,
    description: str = "transaction",
) -> T:
    """Run ``operation`` until it commits or retries are exhausted.

    ``operation`` must open and close its own transaction so every attempt
    starts from a fresh snapshot.

    Raises:
        DatabaseError: If every attempt failed with a retryable error
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except DBAPIError as e:
            if isinstance(e, IntegrityError) or not is_retryable(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise DatabaseError(
                    f"Could not complete {description}, store is busy",
                    details={"attempts": attempt},
                ) from e
            delay = backoff_ms * (2 ** (attempt - 1)) / 1000.0
            delay += random.uniform(0, backoff_ms / 1000.0)
            logger.warning(
                f"{description} hit a lock or serialization failure "
                f"(attempt {attempt}/{max_attempts}), retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)
