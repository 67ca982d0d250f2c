"""
Version family resolution.

A family is one logical document: the root row (root_id IS NULL) plus every row
whose root_id points at it. These helpers locate a row's family and enforce that
the caller owns it. All functions are read-only.
"""
from uuid import UUID

from sqlalchemy import ColumnElement, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.document_version import DocumentVersion
from services.exceptions import VersionNotFoundError, VersionPermissionError


def family_filter(root_id: UUID) -> ColumnElement[bool]:
    """WHERE clause matching every row of the family rooted at root_id."""
    return or_(
        DocumentVersion.id == root_id,
        DocumentVersion.root_id == root_id,
    )


def newest_first() -> tuple:
    """Canonical family ordering: highest version_number, then newest row."""
    return (
        DocumentVersion.version_number.desc(),
        DocumentVersion.created_at.desc(),
        DocumentVersion.id.desc(),
    )


async def get_version_row(db: AsyncSession, version_id: UUID) -> DocumentVersion:
    """
    Fetch a single version row by id.

    Raises:
        VersionNotFoundError: If no row has this id.
    """
    result = await db.execute(
        select(DocumentVersion).where(DocumentVersion.id == version_id),
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise VersionNotFoundError(version_id)
    return version


async def get_owned_version(
    db: AsyncSession,
    user_id: UUID,
    version_id: UUID,
) -> DocumentVersion:
    """
    Fetch a version row and verify the caller owns its family.

    Raises:
        VersionNotFoundError: If no row has this id.
        VersionPermissionError: If the row belongs to another user.
    """
    version = await get_version_row(db, version_id)
    if version.owner_id != user_id:
        raise VersionPermissionError(version_id)
    return version


async def resolve_root(db: AsyncSession, version_id: UUID) -> UUID:
    """Return the root id of the family containing version_id."""
    version = await get_version_row(db, version_id)
    return version.family_root_id


async def resolve_family(
    db: AsyncSession,
    root_id: UUID,
    include_drafts: bool = True,
) -> list[DocumentVersion]:
    """
    List every row of a family, newest version_number first.

    Ties on version_number (a published row and its drafts, or two rows
    created under a race) fall back to created_at descending.

    Raises:
        VersionNotFoundError: If the family has no rows at all.
    """
    query = select(DocumentVersion).where(family_filter(root_id))
    if not include_drafts:
        query = query.where(DocumentVersion.is_draft.is_(False))
    result = await db.execute(query.order_by(*newest_first()))
    versions = list(result.scalars().all())
    if not versions and include_drafts:
        raise VersionNotFoundError(root_id, f"Version family not found: {root_id}")
    return versions


async def max_version_number(db: AsyncSession, root_id: UUID) -> int:
    """Highest version_number in the family (0 if the family is empty)."""
    result = await db.execute(
        select(DocumentVersion.version_number)
        .where(family_filter(root_id))
        .order_by(DocumentVersion.version_number.desc())
        .limit(1),
    )
    return result.scalar_one_or_none() or 0


async def find_family_root(db: AsyncSession, version_id: UUID) -> UUID:
    """
    Family root for an id that should name a family.

    Any member's id maps to its family's root. An id with no row is returned
    unchanged, so a family whose root row was deleted is still addressable by
    the deleted root's id.
    """
    result = await db.execute(
        select(DocumentVersion.root_id, DocumentVersion.id)
        .where(DocumentVersion.id == version_id),
    )
    row = result.one_or_none()
    if row is None:
        return version_id
    return row.root_id if row.root_id is not None else row.id


async def count_owned_families(db: AsyncSession, user_id: UUID) -> int:
    """Number of families with at least one published row owned by user_id."""
    family_key = func.coalesce(DocumentVersion.root_id, DocumentVersion.id)
    result = await db.execute(
        select(func.count(distinct(family_key))).where(
            DocumentVersion.owner_id == user_id,
            DocumentVersion.is_draft.is_(False),
        ),
    )
    return result.scalar_one()
