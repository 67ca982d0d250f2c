"""
Active-version invariant enforcement.

Every operation that can change which published version of a family is visible
runs through run_atomically(): the steps execute inside one savepoint, the
single-active invariant is verified before the savepoint is released, and any
storage failure rolls the whole operation back.

Statement order matters. The partial unique index on the active flag rejects a
second active row immediately, so callers always deactivate (or delete) first
and activate second.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.document_version import ONE_ACTIVE_INDEX, DocumentVersion
from services.exceptions import TransactionFailureError, VersionValidationError
from services.family_resolver import family_filter, newest_first

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attempts for an operation that lost a race on the one-active index
MAX_ATTEMPTS = 3


async def run_atomically(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
) -> T:
    """
    Run an operation inside a savepoint, retrying one-active conflicts.

    The operation callable must perform its whole read-modify-write sequence
    so that a retry recomputes everything from fresh state.

    Args:
        db: Database session.
        operation: Zero-argument coroutine function performing the steps.
        description: Short label for log and error messages.

    Returns:
        Whatever the operation returns.

    Raises:
        TransactionFailureError: If the savepoint aborted for a storage reason,
            or a one-active conflict persisted across MAX_ATTEMPTS attempts.
        VersionLifecycleError: Any lifecycle error raised by the operation
            (the savepoint is rolled back first).
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            async with db.begin_nested():  # Creates savepoint
                return await operation()
        except IntegrityError as e:
            if ONE_ACTIVE_INDEX not in str(e.orig):
                logger.warning("%s aborted by integrity error: %s", description, e.orig)
                raise TransactionFailureError(f"Failed to {description}") from e
            if attempt == MAX_ATTEMPTS:
                logger.warning(
                    "%s lost the active-version race %d times, giving up",
                    description,
                    attempt,
                )
                raise TransactionFailureError(
                    f"Failed to {description}: concurrent active-version change",
                ) from e
            logger.warning(
                "%s conflicted on active version (attempt %d), retrying",
                description,
                attempt,
            )
        except DBAPIError as e:
            logger.warning("%s aborted by storage error: %s", description, e.orig)
            raise TransactionFailureError(f"Failed to {description}") from e

    # Unreachable: the loop either returns or raises
    raise TransactionFailureError(f"Failed to {description}")


async def deactivate_family(db: AsyncSession, root_id: UUID) -> None:
    """Clear is_active on every published row of the family."""
    await db.execute(
        update(DocumentVersion)
        .where(
            family_filter(root_id),
            DocumentVersion.is_draft.is_(False),
            DocumentVersion.is_active.is_(True),
        )
        .values(is_active=False)
        .execution_options(synchronize_session="fetch"),
    )


async def activate(db: AsyncSession, version: DocumentVersion) -> None:
    """
    Make version the single active row of its family.

    Deactivates the rest of the family first, then activates the target.

    Raises:
        VersionValidationError: If version is a draft.
    """
    if version.is_draft:
        raise VersionValidationError("Drafts cannot be set as the active version")

    await deactivate_family(db, version.family_root_id)
    await db.execute(
        update(DocumentVersion)
        .where(DocumentVersion.id == version.id)
        .values(is_active=True)
        .execution_options(synchronize_session="fetch"),
    )


async def latest_published(
    db: AsyncSession,
    root_id: UUID,
    exclude_id: UUID | None = None,
) -> DocumentVersion | None:
    """Published row of the family with the highest version_number."""
    query = select(DocumentVersion).where(
        family_filter(root_id),
        DocumentVersion.is_draft.is_(False),
    )
    if exclude_id is not None:
        query = query.where(DocumentVersion.id != exclude_id)
    result = await db.execute(query.order_by(*newest_first()).limit(1))
    return result.scalar_one_or_none()


async def promote_latest(db: AsyncSession, root_id: UUID) -> DocumentVersion | None:
    """
    Activate the latest published row of a family that has no active row.

    Returns:
        The newly active row, or None if no published row remains.
    """
    replacement = await latest_published(db, root_id)
    if replacement is None:
        return None
    await activate(db, replacement)
    return replacement


async def count_active(db: AsyncSession, root_id: UUID) -> int:
    """Number of active published rows in the family."""
    result = await db.execute(
        select(func.count())
        .select_from(DocumentVersion)
        .where(
            family_filter(root_id),
            DocumentVersion.is_draft.is_(False),
            DocumentVersion.is_active.is_(True),
        ),
    )
    return result.scalar_one()


async def count_published(db: AsyncSession, root_id: UUID) -> int:
    """Number of published rows in the family."""
    result = await db.execute(
        select(func.count())
        .select_from(DocumentVersion)
        .where(family_filter(root_id), DocumentVersion.is_draft.is_(False)),
    )
    return result.scalar_one()


async def assert_single_active(db: AsyncSession, root_id: UUID) -> None:
    """
    Post-condition: exactly one active row while published rows exist, else none.

    Raises:
        TransactionFailureError: If the family would be committed in a broken
            state. Raised inside the savepoint so the operation rolls back.
    """
    await db.flush()
    active = await count_active(db, root_id)
    published = await count_published(db, root_id)
    expected = 1 if published else 0
    if active != expected:
        logger.error(
            "Family %s has %d active of %d published versions, rolling back",
            root_id,
            active,
            published,
        )
        raise TransactionFailureError(
            f"Active version invariant violated for family {root_id}",
        )
