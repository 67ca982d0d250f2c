"""Tests for draft slot management (bounded drafts with FIFO overwrite)."""
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from models.document_version import DocumentVersion
from models.user import User
from schemas.document import DocumentContent, DocumentCreate, DocumentVersionCreate
from services.draft_service import DraftSlotService
from services.exceptions import (
    VersionNotFoundError,
    VersionPermissionError,
    VersionValidationError,
)
from services.version_service import VersionService

BODY = "Draft body that is long enough to pass validation."


def make_content(label: str) -> DocumentContent:
    """Draft content payload with a distinguishable body."""
    return DocumentContent(title="Design doc", body=f"{BODY} [{label}]")


@pytest.fixture
def drafts() -> DraftSlotService:
    """Draft service using the environment settings (3 slots)."""
    return DraftSlotService()


@pytest.fixture
async def root(db_session: AsyncSession, test_user: User) -> DocumentVersion:
    """Create a family with a single active version."""
    return await VersionService().create_initial(
        db_session,
        test_user.id,
        DocumentCreate(title="Design doc", body=BODY),
    )


async def test__upsert_draft__creates_labelled_drafts_under_cap(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that drafts below the cap are new rows with ordinal labels."""
    first = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), version_id=root.id,
    )
    second = await drafts.upsert_draft(
        db_session, test_user.id, make_content("b"), version_id=root.id,
    )

    assert first.id != second.id
    for draft in (first, second):
        assert draft.is_draft is True
        assert draft.is_active is False
        assert draft.root_id == root.id
        assert draft.version_number == 1
        assert draft.owner_id == test_user.id
    assert first.change_log.startswith("Draft 1 - ")
    assert second.change_log.startswith("Draft 2 - ")
    assert first.change_log.endswith(" UTC")


async def test__upsert_draft__fourth_save_overwrites_oldest(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test FIFO eviction: the oldest draft is overwritten, keeping its id and created_at."""
    created = [
        await drafts.upsert_draft(
            db_session, test_user.id, make_content(f"d{i}"), version_id=root.id,
        )
        for i in range(3)
    ]
    oldest_id = created[0].id
    oldest_created_at = created[0].created_at
    others = {d.id: d.body for d in created[1:]}

    overwritten = await drafts.upsert_draft(
        db_session, test_user.id, make_content("d3"), version_id=root.id,
    )

    assert overwritten.id == oldest_id
    assert overwritten.created_at == oldest_created_at
    assert overwritten.body == f"{BODY} [d3]"
    assert overwritten.change_log.startswith("Draft changes - ")

    remaining = await drafts.list_drafts(db_session, root.id, 1)
    assert len(remaining) == 3
    assert {d.id: d.body for d in remaining if d.id != oldest_id} == others


async def test__upsert_draft__overflow_keeps_recycling_creation_oldest(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that eviction follows creation order, not the last edit."""
    created = [
        (await drafts.upsert_draft(
            db_session, test_user.id, make_content(f"d{i}"), version_id=root.id,
        )).id
        for i in range(3)
    ]

    for label in ("x", "y"):
        recycled = await drafts.upsert_draft(
            db_session, test_user.id, make_content(label), version_id=root.id,
        )
        assert recycled.id == created[0]

    remaining = await drafts.list_drafts(db_session, root.id, 1)
    assert [d.id for d in remaining] == list(reversed(created))


async def test__upsert_draft__slots_are_per_version_number(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that full slots on one version don't affect another version."""
    v2 = await VersionService().create_published_version(
        db_session,
        test_user.id,
        root.id,
        DocumentVersionCreate(title="Design doc", body=f"{BODY} v2", change_log="v2"),
    )
    for i in range(3):
        await drafts.upsert_draft(
            db_session, test_user.id, make_content(f"v1-{i}"), version_id=root.id,
        )

    v2_draft = await drafts.upsert_draft(
        db_session, test_user.id, make_content("v2-0"), version_id=v2.id,
    )

    assert v2_draft.version_number == 2
    assert v2_draft.change_log.startswith("Draft 1 - ")
    assert len(await drafts.list_drafts(db_session, root.id, 1)) == 3
    assert len(await drafts.list_drafts(db_session, root.id, 2)) == 1


async def test__upsert_draft__draft_id_target_inherits_version_number(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that drafting against a draft lands in the same version's slots."""
    first = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), version_id=root.id,
    )

    second = await drafts.upsert_draft(
        db_session, test_user.id, make_content("b"), version_id=first.id,
    )

    assert second.version_number == first.version_number == 1
    assert second.root_id == root.id


async def test__upsert_draft__custom_cap(
    db_session: AsyncSession,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that the slot cap comes from settings."""
    settings = Settings(
        database_url="sqlite+aiosqlite://", dev_mode=True, max_drafts_per_version=1,
    )
    drafts = DraftSlotService(settings)

    first = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), version_id=root.id,
    )
    second = await drafts.upsert_draft(
        db_session, test_user.id, make_content("b"), version_id=root.id,
    )

    assert second.id == first.id
    assert len(await drafts.list_drafts(db_session, root.id, 1)) == 1


async def test__upsert_draft__root_and_number_form(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test addressing the target by family root and version number."""
    draft = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), root_id=root.id, version_number=1,
    )

    assert draft.root_id == root.id
    assert draft.version_number == 1


async def test__upsert_draft__unknown_version_number_raises_not_found(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that drafting against a version number with no published row fails."""
    with pytest.raises(VersionNotFoundError, match="Published version 4"):
        await drafts.upsert_draft(
            db_session, test_user.id, make_content("a"), root_id=root.id, version_number=4,
        )


async def test__upsert_draft__root_form_with_member_id_joins_real_family(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that a non-root member id in the root form still drafts into the family."""
    service = VersionService()
    v2 = await service.create_published_version(
        db_session,
        test_user.id,
        root.id,
        DocumentVersionCreate(title="Design doc", body=f"{BODY} v2", change_log="v2"),
    )

    draft = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), root_id=v2.id, version_number=2,
    )

    assert draft.root_id == root.id
    assert draft.family_root_id == root.id
    _, versions, _ = await service.list_family(db_session, test_user.id, root.id)
    assert draft.id in [v.id for v in versions]


async def test__upsert_draft__both_target_forms_share_slots_and_cascade(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that drafts saved through either target form share one capped set of slots."""
    service = VersionService()
    v2 = await service.create_published_version(
        db_session,
        test_user.id,
        root.id,
        DocumentVersionCreate(title="Design doc", body=f"{BODY} v2", change_log="v2"),
    )
    targets = [
        {"version_id": v2.id},
        {"root_id": root.id, "version_number": 2},
        {"root_id": v2.id, "version_number": 2},
        {"version_id": v2.id},
        {"root_id": v2.id, "version_number": 2},
    ]
    saved = [
        await drafts.upsert_draft(
            db_session, test_user.id, make_content(f"d{i}"), **target,
        )
        for i, target in enumerate(targets)
    ]

    slots = await drafts.list_drafts(db_session, root.id, 2)
    assert len(slots) == 3
    assert {d.id for d in saved} == {d.id for d in slots}
    assert await drafts.list_drafts(db_session, v2.id, 2) == []

    deleted = await service.delete_version(db_session, test_user.id, v2.id)

    assert deleted == 4
    assert await drafts.list_drafts(db_session, root.id, 2) == []
    _, versions, _ = await service.list_family(db_session, test_user.id, root.id)
    assert [v.id for v in versions] == [root.id]


async def test__upsert_draft__root_form_after_root_deleted(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that a surviving family stays addressable by its deleted root's id."""
    service = VersionService()
    await service.create_published_version(
        db_session,
        test_user.id,
        root.id,
        DocumentVersionCreate(title="Design doc", body=f"{BODY} v2", change_log="v2"),
    )
    root_id = root.id
    await service.delete_version(db_session, test_user.id, root_id)

    draft = await drafts.upsert_draft(
        db_session, test_user.id, make_content("a"), root_id=root_id, version_number=2,
    )

    assert draft.root_id == root_id
    assert draft.version_number == 2


async def test__upsert_draft__unknown_version_id_raises_not_found(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
) -> None:
    """Test that drafting against a missing row fails with not found."""
    with pytest.raises(VersionNotFoundError):
        await drafts.upsert_draft(
            db_session,
            test_user.id,
            make_content("a"),
            version_id=UUID("00000000-0000-0000-0000-000000000000"),
        )


@pytest.mark.parametrize("by_root", [False, True])
async def test__upsert_draft__non_owner_raises_permission_error(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    other_user: User,
    root: DocumentVersion,
    by_root: bool,
) -> None:
    """Test that only the owner can save drafts, for both target forms."""
    target = (
        {"root_id": root.id, "version_number": 1} if by_root else {"version_id": root.id}
    )
    with pytest.raises(VersionPermissionError):
        await drafts.upsert_draft(db_session, other_user.id, make_content("a"), **target)


async def test__upsert_draft__invalid_content_raises_validation_error(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test that draft content is held to the same limits as published content."""
    content = DocumentContent(title="Design doc", body="tiny")

    with pytest.raises(VersionValidationError):
        await drafts.upsert_draft(db_session, test_user.id, content, version_id=root.id)

    assert await drafts.list_drafts(db_session, root.id, 1) == []


@pytest.mark.parametrize(
    "target",
    [
        {},
        {"root_id": "root"},
        {"version_id": "root", "root_id": "root", "version_number": 1},
    ],
)
async def test__upsert_draft__requires_exactly_one_target_form(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
    target: dict,
) -> None:
    """Test that ambiguous or missing targets are rejected."""
    kwargs = {key: root.id if value == "root" else value for key, value in target.items()}

    with pytest.raises(ValueError, match="either version_id"):
        await drafts.upsert_draft(db_session, test_user.id, make_content("a"), **kwargs)


async def test__delete_drafts_for_version__returns_deleted_ids(
    db_session: AsyncSession,
    drafts: DraftSlotService,
    test_user: User,
    root: DocumentVersion,
) -> None:
    """Test bulk draft deletion for one version number."""
    created = {
        (await drafts.upsert_draft(
            db_session, test_user.id, make_content(f"d{i}"), version_id=root.id,
        )).id
        for i in range(2)
    }

    deleted = await drafts.delete_drafts_for_version(db_session, root.id, 1)

    assert set(deleted) == created
    assert await drafts.list_drafts(db_session, root.id, 1) == []
