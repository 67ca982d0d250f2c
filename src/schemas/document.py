"""Pydantic schemas for document version endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentContent(BaseModel):
    """Content payload of a version (title, abstract, body, free-form attributes)."""

    title: str
    abstract: str | None = None
    body: str
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def check_title_not_empty(cls, v: str) -> str:
        """Validate title is not empty and strip surrounding whitespace."""
        if not v or not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @field_validator("body")
    @classmethod
    def check_body_not_empty(cls, v: str) -> str:
        """Validate body is not blank."""
        if not v or not v.strip():
            raise ValueError("Body cannot be empty")
        return v


class DocumentCreate(DocumentContent):
    """Schema for creating a brand-new document (version 1 of a new family)."""

    change_log: str | None = None


class DocumentVersionCreate(DocumentContent):
    """Schema for publishing a new version of an existing family."""

    change_log: str = Field(min_length=1)


class DocumentUpdate(BaseModel):
    """Schema for an in-place content update. Omitted fields are left unchanged."""

    title: str | None = None
    abstract: str | None = None
    body: str | None = None
    attributes: dict[str, Any] | None = None

    @field_validator("title")
    @classmethod
    def check_title_not_empty(cls, v: str | None) -> str | None:
        """Validate title is not empty (if provided)."""
        if v is not None and not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip() if v is not None else None

    @field_validator("body")
    @classmethod
    def check_body_not_empty(cls, v: str | None) -> str | None:
        """Validate body is not blank (if provided)."""
        if v is not None and not v.strip():
            raise ValueError("Body cannot be empty")
        return v


class DraftPromote(BaseModel):
    """
    Schema for promoting a draft.

    When content is omitted the draft's stored content is promoted as-is.
    """

    content: DocumentContent | None = None


class ChangeLogUpdate(BaseModel):
    """Schema for renaming a version's change log."""

    change_log: str = Field(min_length=1)


class DocumentVersionListItem(BaseModel):
    """Version metadata without the body (used for family listings)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    root_id: UUID | None
    family_root_id: UUID
    version_number: int
    is_draft: bool
    is_active: bool
    owner_id: UUID
    change_log: str | None
    title: str
    created_at: datetime
    updated_at: datetime


class DocumentVersionResponse(DocumentVersionListItem):
    """Full version including content payload."""

    abstract: str | None
    body: str
    attributes: dict[str, Any]


class VersionFamilyResponse(BaseModel):
    """Family listing with the caller's ownership flag."""

    root_id: UUID
    items: list[DocumentVersionListItem]
    is_owner: bool


class DeleteVersionResponse(BaseModel):
    """Result of deleting a version (the version plus any cascaded drafts)."""

    deleted_count: int
