"""
Service layer for the document version lifecycle.

Operations on a version family:
- create_initial: new family, version 1, active
- create_published_version: next version number, becomes the only active row
- update_in_place: content change on a draft or published row
- upsert_draft: bounded draft slots (delegates to DraftSlotService)
- promote_draft: copy a draft onto its published version, then drop the draft
- rename_change_log: metadata-only change
- activate: switch the visible version
- delete_version: delete a row, cascading drafts and re-activating if needed

Every mutation runs in one savepoint via run_atomically(); operations that can
change the active row also verify the single-active invariant before release.
"""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from models.base import utc_now
from models.document_version import CONTENT_FIELDS, DocumentVersion
from schemas.document import (
    DocumentContent,
    DocumentCreate,
    DocumentUpdate,
    DocumentVersionCreate,
)
from services import active_version
from services.active_version import assert_single_active, run_atomically
from services.draft_service import DraftSlotService
from services.exceptions import VersionNotFoundError, VersionValidationError
from services.family_resolver import (
    family_filter,
    get_owned_version,
    get_version_row,
    max_version_number,
    newest_first,
    resolve_family,
)
from services.utils import check_change_log, check_content_limits

logger = logging.getLogger(__name__)


class VersionService:
    """Lifecycle manager for document version families."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings
        self.drafts = DraftSlotService(settings)

    @property
    def settings(self) -> Settings:
        """Settings in effect (resolved lazily so tests can swap the cache)."""
        return self._settings or get_settings()

    # --- Reads ---

    async def get_version(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
    ) -> DocumentVersion:
        """
        Get a single version.

        Drafts are private to the owner; other callers get VersionNotFoundError.
        """
        version = await get_version_row(db, version_id)
        if version.is_draft and version.owner_id != user_id:
            raise VersionNotFoundError(version_id)
        return version

    async def get_active_version(
        self,
        db: AsyncSession,
        version_id: UUID,
    ) -> DocumentVersion:
        """
        Get the active published version of the family containing version_id.

        Raises:
            VersionNotFoundError: If the row does not exist or the family has no
                active version.
        """
        root_id = (await get_version_row(db, version_id)).family_root_id
        result = await db.execute(
            select(DocumentVersion)
            .where(
                family_filter(root_id),
                DocumentVersion.is_draft.is_(False),
                DocumentVersion.is_active.is_(True),
            )
            .order_by(*newest_first())
            .limit(1),
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise VersionNotFoundError(
                root_id, f"No active version in family {root_id}",
            )
        return version

    async def list_family(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
    ) -> tuple[UUID, list[DocumentVersion], bool]:
        """
        List every version of the family containing version_id.

        Returns:
            Tuple of (root id, versions newest first, whether the caller owns
            the family). Drafts are only included for the owner.
        """
        version = await get_version_row(db, version_id)
        root_id = version.family_root_id
        is_owner = version.owner_id == user_id
        versions = await resolve_family(db, root_id, include_drafts=is_owner)
        return root_id, versions, is_owner

    # --- Creation ---

    async def create_initial(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: DocumentCreate,
    ) -> DocumentVersion:
        """
        Create a new family: version 1, published and active.

        Raises:
            VersionValidationError: If the content is outside configured limits.
        """
        check_content_limits(data, self.settings)
        change_log = check_change_log(data.change_log, self.settings)

        async def _create() -> DocumentVersion:
            version = DocumentVersion(
                root_id=None,
                version_number=1,
                is_draft=False,
                is_active=True,
                owner_id=user_id,
                change_log=change_log,
                **data.model_dump(include=set(CONTENT_FIELDS)),
            )
            db.add(version)
            await db.flush()
            return version

        version = await run_atomically(db, _create, "create document")
        await db.refresh(version)
        logger.info("Created document family %s for user %s", version.id, user_id)
        return version

    async def create_published_version(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
        data: DocumentVersionCreate,
    ) -> DocumentVersion:
        """
        Publish new content as the next version of a family.

        The new row gets max(version_number) + 1 and becomes the only active
        version; the previously active row is deactivated in the same savepoint.

        Args:
            db: Database session.
            user_id: Acting user; must own the family.
            version_id: Any row of the family (usually the root).
            data: New content and change log.

        Raises:
            VersionNotFoundError: If version_id does not exist.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If the content is outside configured limits.
            TransactionFailureError: If the savepoint aborted.
        """
        member = await get_owned_version(db, user_id, version_id)
        root_id = member.family_root_id
        check_content_limits(data, self.settings)
        change_log = check_change_log(data.change_log, self.settings)

        async def _publish() -> DocumentVersion:
            next_number = await max_version_number(db, root_id) + 1
            await active_version.deactivate_family(db, root_id)
            version = DocumentVersion(
                root_id=root_id,
                version_number=next_number,
                is_draft=False,
                is_active=True,
                owner_id=member.owner_id,
                change_log=change_log,
                **data.model_dump(include=set(CONTENT_FIELDS)),
            )
            db.add(version)
            await db.flush()
            await assert_single_active(db, root_id)
            return version

        version = await run_atomically(db, _publish, "create document version")
        await db.refresh(version)
        logger.info(
            "Published version %d (%s) of family %s",
            version.version_number,
            version.id,
            root_id,
        )
        return version

    async def upsert_draft(
        self,
        db: AsyncSession,
        user_id: UUID,
        content: DocumentContent,
        version_id: UUID | None = None,
        root_id: UUID | None = None,
        version_number: int | None = None,
    ) -> DocumentVersion:
        """Save a draft against a published version (see DraftSlotService.upsert_draft)."""
        return await self.drafts.upsert_draft(
            db,
            user_id,
            content,
            version_id=version_id,
            root_id=root_id,
            version_number=version_number,
        )

    # --- Mutation ---

    async def update_in_place(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
        data: DocumentUpdate,
    ) -> DocumentVersion:
        """
        Update content of a draft or published row without touching lifecycle fields.

        version_number, is_draft and is_active are never changed here.

        Raises:
            VersionNotFoundError: If version_id does not exist.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If no field is given or limits are exceeded.
        """
        version = await get_owned_version(db, user_id, version_id)
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field == "abstract"
        }
        if not changes:
            raise VersionValidationError("No content fields provided for update")

        merged = DocumentContent.model_validate({**version.content(), **changes})
        check_content_limits(merged, self.settings)

        async def _update() -> DocumentVersion:
            for field, value in changes.items():
                setattr(version, field, value)
            version.updated_at = utc_now()
            await db.flush()
            return version

        version = await run_atomically(db, _update, "update document version")
        await db.refresh(version)
        logger.info("Updated %s in place (%s)", version.id, ", ".join(sorted(changes)))
        return version

    async def promote_draft(
        self,
        db: AsyncSession,
        user_id: UUID,
        draft_id: UUID,
        content: DocumentContent | None = None,
    ) -> DocumentVersion:
        """
        Copy a draft onto its published version and delete the draft.

        The published row keeps its id, version_number, change log and active
        flag; only the content changes.

        Args:
            db: Database session.
            user_id: Acting user; must own the family.
            draft_id: The draft to promote.
            content: Content to write. Defaults to the draft's stored content.

        Returns:
            The updated published version.

        Raises:
            VersionNotFoundError: If the draft or its published version is missing.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If draft_id is not a draft.
        """
        draft = await get_owned_version(db, user_id, draft_id)
        if not draft.is_draft:
            raise VersionValidationError("Only drafts can be promoted")

        payload = content if content is not None else DocumentContent.model_validate(
            draft.content(),
        )
        check_content_limits(payload, self.settings)
        root_id = draft.family_root_id

        async def _promote() -> DocumentVersion:
            result = await db.execute(
                select(DocumentVersion)
                .where(
                    family_filter(root_id),
                    DocumentVersion.version_number == draft.version_number,
                    DocumentVersion.is_draft.is_(False),
                )
                .order_by(*newest_first())
                .limit(1),
            )
            published = result.scalar_one_or_none()
            if published is None:
                raise VersionNotFoundError(
                    draft_id,
                    f"Published version {draft.version_number} not found for draft {draft_id}",
                )

            for field, value in payload.model_dump().items():
                setattr(published, field, value)
            published.updated_at = utc_now()
            await db.delete(draft)
            await db.flush()
            return published

        published = await run_atomically(db, _promote, "promote draft")
        await db.refresh(published)
        logger.info(
            "Promoted draft %s onto version %d (%s)",
            draft_id,
            published.version_number,
            published.id,
        )
        return published

    async def rename_change_log(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
        change_log: str,
    ) -> DocumentVersion:
        """
        Replace a row's change log annotation.

        Raises:
            VersionNotFoundError: If version_id does not exist.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If the annotation is blank or too long.
        """
        version = await get_owned_version(db, user_id, version_id)
        normalized = check_change_log(change_log, self.settings)
        if normalized is None:
            raise VersionValidationError("Change log cannot be empty")

        async def _rename() -> DocumentVersion:
            version.change_log = normalized
            await db.flush()
            return version

        version = await run_atomically(db, _rename, "rename document version")
        await db.refresh(version)
        return version

    async def activate(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
    ) -> None:
        """
        Make a published version the family's single active version.

        Raises:
            VersionNotFoundError: If version_id does not exist.
            VersionPermissionError: If the caller does not own the family.
            VersionValidationError: If version_id is a draft.
        """
        version = await get_owned_version(db, user_id, version_id)
        if version.is_draft:
            logger.warning("Rejected activation of draft %s", version_id)
            raise VersionValidationError("Drafts cannot be set as the active version")

        async def _activate() -> None:
            await active_version.activate(db, version)
            await assert_single_active(db, version.family_root_id)

        await run_atomically(db, _activate, "set active version")
        logger.info(
            "Activated version %d (%s) of family %s",
            version.version_number,
            version.id,
            version.family_root_id,
        )

    async def delete_version(
        self,
        db: AsyncSession,
        user_id: UUID,
        version_id: UUID,
    ) -> int:
        """
        Delete a version.

        - Draft: only the draft is deleted.
        - Published: drafts sharing its version number are deleted first, then
          the row itself; if it was active, the remaining published row with
          the highest version_number becomes active.

        Returns:
            Number of rows deleted (the target plus cascaded drafts).

        Raises:
            VersionNotFoundError: If version_id does not exist.
            VersionPermissionError: If the caller does not own the family.
            TransactionFailureError: If the savepoint aborted.
        """
        version = await get_owned_version(db, user_id, version_id)
        root_id = version.family_root_id

        async def _delete() -> int:
            if version.is_draft:
                await db.delete(version)
                await db.flush()
                return 1

            cascaded = await self.drafts.delete_drafts_for_version(
                db, root_id, version.version_number,
            )
            was_active = version.is_active
            await db.delete(version)
            await db.flush()

            if was_active:
                replacement = await active_version.promote_latest(db, root_id)
                if replacement is not None:
                    logger.info(
                        "Re-activated version %d (%s) of family %s after delete",
                        replacement.version_number,
                        replacement.id,
                        root_id,
                    )
            await assert_single_active(db, root_id)
            return 1 + len(cascaded)

        deleted_count = await run_atomically(db, _delete, "delete document version")
        logger.info(
            "Deleted %s from family %s (%d rows)", version_id, root_id, deleted_count,
        )
        return deleted_count


version_service = VersionService()
