"""DocumentVersion model - one physical row of a document's version family."""
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin

if TYPE_CHECKING:
    from models.user import User


# Content fields copied between rows on publish/draft/promote
CONTENT_FIELDS = ("title", "abstract", "body", "attributes")

ONE_ACTIVE_INDEX = "uq_document_versions_one_active"


class DocumentVersion(Base, UUIDv7Mixin, TimestampMixin):
    """
    A single version (published or draft) of a logical document.

    Family semantics:
    - root_id IS NULL: this row is the family root (the original version 1)
    - root_id IS NOT NULL: a later published version or a draft of the family
      rooted at root_id
    - The family key of any row is coalesce(root_id, id)

    Visibility semantics:
    - Published rows (is_draft = false) are visible to readers only when is_active
    - At most one published row per family is active (enforced by a partial
      unique index, see ONE_ACTIVE_INDEX)
    - Drafts are never active (check constraint)
    - Drafts share the version_number of the published version they belong to
    """

    __tablename__ = "document_versions"
    __table_args__ = (
        CheckConstraint(
            "NOT (is_draft AND is_active)",
            name="ck_document_versions_draft_inactive",
        ),
        CheckConstraint("version_number >= 1", name="ck_document_versions_version_positive"),
        # Draft slot lookup: WHERE root_id = ? AND version_number = ? AND is_draft
        Index(
            "ix_document_versions_root_version_draft",
            "root_id",
            "version_number",
            "is_draft",
        ),
    )

    # id provided by UUIDv7Mixin
    # Not a foreign key: the root row may be deleted while later versions survive.
    root_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    version_number: Mapped[int] = mapped_column(nullable=False, default=1)
    is_draft: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=False)

    owner_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    change_log: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Content payload - opaque to the lifecycle rules
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attributes: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    owner: Mapped["User"] = relationship(back_populates="document_versions")

    @property
    def family_root_id(self) -> UUID:
        """Root id of this row's family (the row itself when it is the root)."""
        return self.root_id if self.root_id is not None else self.id

    @property
    def is_root(self) -> bool:
        """True when this row is the original version of its family."""
        return self.root_id is None

    def content(self) -> dict:
        """Snapshot of the content payload."""
        return {field: getattr(self, field) for field in CONTENT_FIELDS}


# At most one active published version per family. Declared here so the
# functional expression can reference the mapped columns.
Index(
    ONE_ACTIVE_INDEX,
    func.coalesce(DocumentVersion.root_id, DocumentVersion.id),
    unique=True,
    postgresql_where=text("is_active AND NOT is_draft"),
    sqlite_where=text("is_active AND NOT is_draft"),
)
