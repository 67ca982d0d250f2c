"""Helpers shared by the version and draft services."""
from datetime import datetime

from core.config import Settings
from schemas.document import DocumentContent
from services.exceptions import VersionValidationError


def check_content_limits(content: DocumentContent, settings: Settings) -> None:
    """
    Enforce configured length limits on a content payload.

    Raises:
        VersionValidationError: If a field is outside its configured bounds.
    """
    errors: list[str] = []
    if len(content.title) > settings.max_title_length:
        errors.append(
            f"Title must be at most {settings.max_title_length} characters",
        )
    if len(content.body) < settings.min_body_length:
        errors.append(f"Body must be at least {settings.min_body_length} characters")
    if len(content.body) > settings.max_body_length:
        errors.append(f"Body must be at most {settings.max_body_length} characters")
    if errors:
        raise VersionValidationError(", ".join(errors))


def check_change_log(change_log: str | None, settings: Settings) -> str | None:
    """
    Normalize and bound a change log annotation.

    Raises:
        VersionValidationError: If the annotation is too long.
    """
    if change_log is None:
        return None
    change_log = change_log.strip()
    if len(change_log) > settings.max_change_log_length:
        raise VersionValidationError(
            f"Change log must be at most {settings.max_change_log_length} characters",
        )
    return change_log or None


def draft_label(ordinal: int | None, now: datetime) -> str:
    """Auto-generated change log for a draft slot ("Draft 2 - 2025-01-01 10:00:00 UTC")."""
    stamp = now.strftime("%Y-%m-%d %H:%M:%S UTC")
    if ordinal is None:
        return f"Draft changes - {stamp}"
    return f"Draft {ordinal} - {stamp}"
