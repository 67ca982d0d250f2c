"""
Draft slot management.

Each (family, version_number) pair holds at most `max_drafts_per_version`
drafts. Saving another draft once the slots are full overwrites the oldest one
in place (FIFO by creation order, not by last edit), keeping its id and
created_at.
"""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from models.base import utc_now
from models.document_version import DocumentVersion
from schemas.document import DocumentContent
from services.active_version import run_atomically
from services.exceptions import VersionNotFoundError, VersionPermissionError
from services.family_resolver import (
    find_family_root,
    get_owned_version,
    resolve_family,
)
from services.utils import check_content_limits, draft_label

logger = logging.getLogger(__name__)


class DraftSlotService:
    """Creates drafts or recycles the oldest slot once the cap is reached."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> Settings:
        """Settings in effect (resolved lazily so tests can swap the cache)."""
        return self._settings or get_settings()

    async def list_drafts(
        self,
        db: AsyncSession,
        root_id: UUID,
        version_number: int,
    ) -> list[DocumentVersion]:
        """Drafts for one version number of a family, newest first."""
        result = await db.execute(
            select(DocumentVersion)
            .where(
                DocumentVersion.root_id == root_id,
                DocumentVersion.version_number == version_number,
                DocumentVersion.is_draft.is_(True),
            )
            .order_by(DocumentVersion.created_at.desc(), DocumentVersion.id.desc()),
        )
        return list(result.scalars().all())

    async def upsert_draft(
        self,
        db: AsyncSession,
        user_id: UUID,
        content: DocumentContent,
        version_id: UUID | None = None,
        root_id: UUID | None = None,
        version_number: int | None = None,
    ) -> DocumentVersion:
        """
        Save content as a draft of a published version.

        The target is given either as version_id (any row of the family; the
        draft takes that row's version_number) or as root_id + version_number.

        Args:
            db: Database session.
            user_id: Acting user; must own the family.
            content: Draft content.
            version_id: Any version or draft whose version number to draft against.
            root_id: Family root id, or any member id of the family (with version_number).
            version_number: Published version number to draft against (with root_id).

        Returns:
            The newly created draft, or the oldest draft after being overwritten.

        Raises:
            VersionNotFoundError: If the target row or published version does not exist.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If the content is outside configured limits.
            ValueError: If neither or both target forms are given.
        """
        if (version_id is None) == (root_id is None or version_number is None):
            raise ValueError("Provide either version_id or root_id with version_number")

        check_content_limits(content, self.settings)

        if version_id is not None:
            target = await get_owned_version(db, user_id, version_id)
            family_root = target.family_root_id
            target_number = target.version_number
        else:
            family_root = await find_family_root(db, root_id)
            target_number = version_number
            family = await resolve_family(db, family_root)
            if family[0].owner_id != user_id:
                raise VersionPermissionError(family_root)
            if not any(v.version_number == target_number and not v.is_draft for v in family):
                raise VersionNotFoundError(
                    family_root,
                    f"Published version {target_number} not found in family {family_root}",
                )

        async def _save() -> DocumentVersion:
            drafts = await self.list_drafts(db, family_root, target_number)
            now = utc_now()

            if len(drafts) < self.settings.max_drafts_per_version:
                draft = DocumentVersion(
                    root_id=family_root,
                    version_number=target_number,
                    is_draft=True,
                    is_active=False,
                    owner_id=user_id,
                    change_log=draft_label(len(drafts) + 1, now),
                    **content.model_dump(),
                )
                db.add(draft)
                await db.flush()
                logger.info(
                    "Created draft %s for family %s version %d (%d/%d slots)",
                    draft.id,
                    family_root,
                    target_number,
                    len(drafts) + 1,
                    self.settings.max_drafts_per_version,
                )
                return draft

            oldest = drafts[-1]
            for field, value in content.model_dump().items():
                setattr(oldest, field, value)
            oldest.change_log = draft_label(None, now)
            oldest.updated_at = now
            await db.flush()
            logger.info(
                "Draft slots full for family %s version %d, overwrote oldest draft %s",
                family_root,
                target_number,
                oldest.id,
            )
            return oldest

        draft = await run_atomically(db, _save, "save draft")
        await db.refresh(draft)
        return draft

    async def delete_drafts_for_version(
        self,
        db: AsyncSession,
        root_id: UUID,
        version_number: int,
    ) -> list[UUID]:
        """Delete every draft of one version number. Returns the deleted ids."""
        drafts = await self.list_drafts(db, root_id, version_number)
        for draft in drafts:
            await db.delete(draft)
        await db.flush()
        return [draft.id for draft in drafts]
