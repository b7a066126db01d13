"""Optimistic-concurrency retry for read-modify-write commands.

Subscriptions and invoices carry a ``version`` column; SQLAlchemy adds
``WHERE version = :old`` to every UPDATE and raises ``StaleDataError`` when
another writer got there first. Each attempt runs inside a SAVEPOINT so a
failed attempt leaves nothing behind, and the command re-reads fresh state on
the next attempt.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from billing_engine.config import settings
from billing_engine.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")


async def load_for_update(db: AsyncSession, model: type[M], entity_id: uuid.UUID) -> M | None:
    """Fetch a row with a fresh read, locking it where the backend supports it.

    ``populate_existing`` overwrites any stale copy in the identity map, which
    is what makes a retry see the winner's write.
    """
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)  # type: ignore[attr-defined]
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def run_with_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    attempts: int | None = None,
) -> T:
    """Run ``operation`` atomically, retrying on version conflicts.

    ``operation`` must load everything it mutates itself (with
    ``populate_existing``) so a retry sees the committed state. Domain errors
    raised by ``operation`` roll back the savepoint and propagate unchanged.
    """
    max_attempts = attempts or settings.conflict_retry_attempts
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            async with db.begin_nested():
                return await operation()
        except StaleDataError as e:
            last_error = e
            logger.warning("Version conflict on %s (attempt %d/%d)", description, attempt, max_attempts)
        except IntegrityError as e:
            # Unique sequence/live-subscription races surface as integrity errors
            last_error = e
            logger.warning(
                "Integrity conflict on %s (attempt %d/%d): %s", description, attempt, max_attempts, e.orig
            )

    raise ConflictError(
        f"Concurrent modification of {description}; gave up after {max_attempts} attempts"
    ) from last_error
