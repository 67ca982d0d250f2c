"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_async_session
from models.document_version import DocumentVersion

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    document_versions: str


async def check_document_versions_table(db: AsyncSession) -> str:
    """
    Check that the document_versions table can be read.

    Returns "ready", or "missing" when the read fails (typically an unmigrated
    database). The read runs in a savepoint so the request transaction survives.
    """
    try:
        async with db.begin_nested():
            await db.execute(select(DocumentVersion.id).limit(1))
    except SQLAlchemyError:
        logger.exception("document_versions table check failed")
        return "missing"
    return "ready"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """Check database connectivity and that the versions schema is in place."""
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("Database health check failed")
        return HealthResponse(
            status="degraded", database="unhealthy", document_versions="unknown",
        )

    table_status = await check_document_versions_table(db)
    return HealthResponse(
        status="healthy" if table_status == "ready" else "degraded",
        database="healthy",
        document_versions=table_status,
    )
