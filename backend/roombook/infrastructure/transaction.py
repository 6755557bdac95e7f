from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError

from ..domain.errors import ConflictError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs and MySQL error numbers that mean "lost a race, try again".
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
_RETRYABLE_MYSQL_CODES = {1205, 1213}


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in _RETRYABLE_MYSQL_CODES:
        return True
    message = str(exc).lower()
    return any(
        marker in message
        for marker in ("deadlock", "could not serialize", "lock wait timeout", "database is locked")
    )


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> T:
    """
    Run one write unit, re-running it on lock contention or serialization
    failure with exponential backoff. Other errors propagate untouched,
    except unique-guard violations, which are reported as conflicts.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except IntegrityError as exc:
            raise ConflictError(
                "Time slot already booked",
                rule="unique_window",
            ) from exc
        except DBAPIError as exc:
            if not is_serialization_failure(exc):
                raise
            error: TransientStoreError = TransientStoreError(
                "The booking store is busy, please retry",
                rule="serialization_failure",
            )
            error.__cause__ = exc
        except TransientStoreError as exc:
            error = exc

        if attempt == attempts:
            raise error
        delay = backoff_seconds * 2 ** (attempt - 1)
        logger.info("retrying write unit after %s (attempt %d/%d, sleeping %.3fs)", error.rule, attempt, attempts, delay)
        await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
