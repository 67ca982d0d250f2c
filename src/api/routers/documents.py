"""Document version endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.document import (
    ChangeLogUpdate,
    DeleteVersionResponse,
    DocumentContent,
    DocumentCreate,
    DocumentUpdate,
    DocumentVersionCreate,
    DocumentVersionListItem,
    DocumentVersionResponse,
    DraftPromote,
    VersionFamilyResponse,
)
from services.version_service import version_service

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/", response_model=DocumentVersionResponse, status_code=201)
async def create_document(
    data: DocumentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Create a new document (version 1 of a new family, active)."""
    version = await version_service.create_initial(db, current_user.id, data)
    return DocumentVersionResponse.model_validate(version)


@router.get("/{version_id}", response_model=DocumentVersionResponse)
async def get_document_version(
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Get a single version. Drafts are only visible to their owner."""
    version = await version_service.get_version(db, current_user.id, version_id)
    return DocumentVersionResponse.model_validate(version)


@router.get("/{version_id}/versions", response_model=VersionFamilyResponse)
async def list_document_versions(
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> VersionFamilyResponse:
    """
    List every version in the family of the given version.

    - Ordered by version_number descending, newest row first within a number
    - Drafts are included only when the caller owns the family
    """
    root_id, versions, is_owner = await version_service.list_family(
        db, current_user.id, version_id,
    )
    return VersionFamilyResponse(
        root_id=root_id,
        items=[DocumentVersionListItem.model_validate(v) for v in versions],
        is_owner=is_owner,
    )


@router.get("/{version_id}/active", response_model=DocumentVersionResponse)
async def get_active_document_version(
    version_id: UUID,
    _current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Get the active published version of the family of the given version."""
    version = await version_service.get_active_version(db, version_id)
    return DocumentVersionResponse.model_validate(version)


@router.post(
    "/{version_id}/versions",
    response_model=DocumentVersionResponse,
    status_code=201,
)
async def create_document_version(
    version_id: UUID,
    data: DocumentVersionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Publish new content as the next version; it becomes the active version."""
    version = await version_service.create_published_version(
        db, current_user.id, version_id, data,
    )
    return DocumentVersionResponse.model_validate(version)


@router.patch("/{version_id}", response_model=DocumentVersionResponse)
async def update_document_version(
    version_id: UUID,
    data: DocumentUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Update content in place. Version number and active flag are unchanged."""
    version = await version_service.update_in_place(
        db, current_user.id, version_id, data,
    )
    return DocumentVersionResponse.model_validate(version)


@router.post("/{version_id}/drafts", response_model=DocumentVersionResponse)
async def save_draft(
    version_id: UUID,
    data: DocumentContent,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """
    Save a draft against the version number of the given row.

    Creates a new draft slot while under the per-version cap, otherwise
    overwrites the oldest draft.
    """
    draft = await version_service.upsert_draft(
        db, current_user.id, data, version_id=version_id,
    )
    return DocumentVersionResponse.model_validate(draft)


@router.post(
    "/{root_id}/versions/{version_number}/drafts",
    response_model=DocumentVersionResponse,
)
async def save_draft_for_version_number(
    root_id: UUID,
    version_number: int,
    data: DocumentContent,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Save a draft against a published version addressed by family and number."""
    draft = await version_service.upsert_draft(
        db,
        current_user.id,
        data,
        root_id=root_id,
        version_number=version_number,
    )
    return DocumentVersionResponse.model_validate(draft)


@router.post("/{draft_id}/promote", response_model=DocumentVersionResponse)
async def promote_draft(
    draft_id: UUID,
    data: DraftPromote | None = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """
    Copy a draft's content onto its published version and delete the draft.

    Pass `content` to promote edited content instead of the stored draft.
    """
    version = await version_service.promote_draft(
        db,
        current_user.id,
        draft_id,
        content=data.content if data is not None else None,
    )
    return DocumentVersionResponse.model_validate(version)


@router.patch("/{version_id}/change-log", response_model=DocumentVersionResponse)
async def rename_change_log(
    version_id: UUID,
    data: ChangeLogUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DocumentVersionResponse:
    """Replace the change log annotation of a version."""
    version = await version_service.rename_change_log(
        db, current_user.id, version_id, data.change_log,
    )
    return DocumentVersionResponse.model_validate(version)


@router.post("/{version_id}/activate", status_code=204)
async def activate_document_version(
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Make a published version the family's active version."""
    await version_service.activate(db, current_user.id, version_id)


@router.delete("/{version_id}", response_model=DeleteVersionResponse)
async def delete_document_version(
    version_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DeleteVersionResponse:
    """
    Delete a version.

    Deleting a published version also deletes its drafts. Deleting the active
    version activates the highest remaining published version.
    """
    deleted_count = await version_service.delete_version(
        db, current_user.id, version_id,
    )
    return DeleteVersionResponse(deleted_count=deleted_count)
