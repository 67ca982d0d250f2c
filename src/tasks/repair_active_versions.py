"""
Active version repair task.

Restores the active-version invariants for families written outside the
service layer (manual SQL, imports, restores from backups). Designed to run as
a one-off or scheduled job.

Usage:
    python -m tasks.repair_active_versions

The task:
1. Clears is_active on drafts (drafts are never active)
2. Keeps only the highest-numbered active version where several are active
3. Activates the highest-numbered published version of families with none active
"""
import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import async_session_factory
from models.document_version import DocumentVersion
from services.active_version import promote_latest
from services.family_resolver import family_filter, newest_first

logger = logging.getLogger(__name__)

family_key = func.coalesce(DocumentVersion.root_id, DocumentVersion.id)


@dataclass
class RepairStats:
    """Statistics from a repair run."""

    drafts_deactivated: int = 0
    duplicates_deactivated: int = 0
    families_activated: int = 0

    # Families touched by each step, for verification
    collapsed_families: list[UUID] = field(default_factory=list)
    activated_families: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "drafts_deactivated": self.drafts_deactivated,
            "duplicates_deactivated": self.duplicates_deactivated,
            "families_activated": self.families_activated,
        }


async def deactivate_active_drafts(db: AsyncSession) -> int:
    """Clear is_active on every draft. Returns the number of rows changed."""
    result = await db.execute(
        update(DocumentVersion)
        .where(
            DocumentVersion.is_draft.is_(True),
            DocumentVersion.is_active.is_(True),
        )
        .values(is_active=False)
        .execution_options(synchronize_session=False),
    )
    deactivated = result.rowcount
    if deactivated > 0:
        logger.info("Deactivated %d active drafts", deactivated)
    await db.commit()
    return deactivated


async def collapse_multiple_active(db: AsyncSession) -> RepairStats:
    """
    Keep a single active version in families with more than one.

    The survivor is the active row with the highest version_number (newest
    row on ties).
    """
    stats = RepairStats()

    result = await db.execute(
        select(family_key)
        .where(
            DocumentVersion.is_draft.is_(False),
            DocumentVersion.is_active.is_(True),
        )
        .group_by(family_key)
        .having(func.count() > 1),
    )
    root_ids = list(result.scalars().all())

    for root_id in root_ids:
        active = await db.execute(
            select(DocumentVersion.id)
            .where(
                family_filter(root_id),
                DocumentVersion.is_draft.is_(False),
                DocumentVersion.is_active.is_(True),
            )
            .order_by(*newest_first()),
        )
        keep_id, *extra_ids = active.scalars().all()
        await db.execute(
            update(DocumentVersion)
            .where(DocumentVersion.id.in_(extra_ids))
            .values(is_active=False)
            .execution_options(synchronize_session=False),
        )
        stats.duplicates_deactivated += len(extra_ids)
        stats.collapsed_families.append(root_id)
        logger.info(
            "Family %s had %d active versions, kept %s",
            root_id,
            len(extra_ids) + 1,
            keep_id,
        )

    await db.commit()
    return stats


async def activate_families_without_active(db: AsyncSession) -> RepairStats:
    """Activate the latest published version of every family with none active."""
    stats = RepairStats()

    published = await db.execute(
        select(family_key).where(DocumentVersion.is_draft.is_(False)).distinct(),
    )
    with_active = await db.execute(
        select(family_key)
        .where(
            DocumentVersion.is_draft.is_(False),
            DocumentVersion.is_active.is_(True),
        )
        .distinct(),
    )
    missing = set(published.scalars().all()) - set(with_active.scalars().all())

    for root_id in sorted(missing):
        replacement = await promote_latest(db, root_id)
        if replacement is None:
            continue
        stats.families_activated += 1
        stats.activated_families.append(root_id)
        logger.info(
            "Family %s had no active version, activated version %d (%s)",
            root_id,
            replacement.version_number,
            replacement.id,
        )

    await db.commit()
    return stats


async def repair_active_versions(db: AsyncSession | None = None) -> RepairStats:
    """
    Run all repair steps.

    Order matters: duplicates are collapsed before empty families are filled,
    so a family is never activated twice in one run.

    Args:
        db: Database session. If None, creates one from async_session_factory.

    Returns:
        Combined RepairStats from all steps.
    """
    logger.info("Starting active version repair")

    async def _run(session: AsyncSession) -> RepairStats:
        drafts = await deactivate_active_drafts(session)
        collapsed = await collapse_multiple_active(session)
        activated = await activate_families_without_active(session)
        return RepairStats(
            drafts_deactivated=drafts,
            duplicates_deactivated=collapsed.duplicates_deactivated,
            families_activated=activated.families_activated,
            collapsed_families=collapsed.collapsed_families,
            activated_families=activated.activated_families,
        )

    if db is not None:
        stats = await _run(db)
    else:
        async with async_session_factory() as session:
            stats = await _run(session)

    logger.info("Repair complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """Entry point for running the repair as a script."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(repair_active_versions())


if __name__ == "__main__":
    main()
