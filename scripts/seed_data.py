"""Seed script to populate the local dev database with a sample document family.

Usage:
    PYTHONPATH=src python scripts/seed_data.py populate
    PYTHONPATH=src python scripts/seed_data.py populate --force
    PYTHONPATH=src python scripts/seed_data.py clear
"""

import argparse
import asyncio

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.auth import get_or_create_dev_user
from core.config import get_settings
from db.session import build_engine
from models import Base, DocumentVersion, User
from schemas.document import DocumentContent, DocumentCreate, DocumentVersionCreate
from services.version_service import version_service

# Dev user auth0_id (matches core/auth.py dev mode)
DEV_AUTH0_ID = 'dev|local-development-user'

SAMPLE_DOCUMENT = {
    'title': 'Service Level Objectives',
    'abstract': 'Availability and latency targets for the public API.',
    'body': (
        'The public API targets 99.9% monthly availability.\n\n'
        '## Latency\n\n'
        '- p50 under 100 ms\n'
        '- p99 under 750 ms\n'
    ),
    'attributes': {'team': 'platform', 'review_cycle': 'quarterly'},
}

REVISIONS = [
    {
        'change_log': 'Tighten p99 latency target',
        'body': (
            'The public API targets 99.9% monthly availability.\n\n'
            '## Latency\n\n'
            '- p50 under 100 ms\n'
            '- p99 under 500 ms\n'
        ),
    },
    {
        'change_log': 'Add error budget policy',
        'body': (
            'The public API targets 99.9% monthly availability.\n\n'
            '## Latency\n\n'
            '- p50 under 100 ms\n'
            '- p99 under 500 ms\n\n'
            '## Error budget\n\n'
            'Feature releases freeze when more than 75% of the monthly budget is spent.\n'
        ),
    },
]

DRAFT_BODY = (
    'The public API targets 99.95% monthly availability.\n\n'
    '## Latency\n\n'
    '- p50 under 80 ms\n'
    '- p99 under 500 ms\n'
)


async def create_sample_family(session: AsyncSession, user: User) -> DocumentVersion:
    """Create a three-version family with a draft on the latest version."""
    root = await version_service.create_initial(
        session, user.id, DocumentCreate(**SAMPLE_DOCUMENT, change_log='Initial version'),
    )
    latest = root
    for revision in REVISIONS:
        latest = await version_service.create_published_version(
            session,
            user.id,
            root.id,
            DocumentVersionCreate(**{**SAMPLE_DOCUMENT, **revision}),
        )
    await version_service.upsert_draft(
        session,
        user.id,
        DocumentContent(**{**SAMPLE_DOCUMENT, 'body': DRAFT_BODY}),
        version_id=latest.id,
    )
    return root


async def clear_data(session: AsyncSession) -> None:
    """Delete all document versions owned by the dev user."""
    result = await session.execute(select(User.id).where(User.auth0_id == DEV_AUTH0_ID))
    user_id = result.scalar_one_or_none()
    if user_id is None:
        print('Dev user not found, nothing to clear.')
        return

    count = (await session.execute(
        select(func.count()).select_from(DocumentVersion).where(
            DocumentVersion.owner_id == user_id,
        ),
    )).scalar()
    await session.execute(delete(DocumentVersion).where(DocumentVersion.owner_id == user_id))
    print(f'Deleted {count} document versions.')


async def populate(force: bool = False) -> None:
    """Populate the database with seed data."""
    settings = get_settings()
    engine = build_engine(settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        try:
            user = await get_or_create_dev_user(session)

            existing = (await session.execute(
                select(func.count()).select_from(DocumentVersion).where(
                    DocumentVersion.owner_id == user.id,
                ),
            )).scalar()

            if existing:
                if force:
                    print('Existing data found, clearing first (--force)...')
                    await clear_data(session)
                    await session.flush()
                else:
                    print(
                        f'Data already exists ({existing} document versions). '
                        f'Use --force to clear and re-seed.'
                    )
                    return

            print('Populating seed data...')
            root = await create_sample_family(session, user)
            await session.commit()
            print(f'Seed data created successfully (family {root.id}).')
        except Exception:
            await session.rollback()
            raise
        finally:
            await engine.dispose()


async def clear() -> None:
    """Clear all dev user data."""
    settings = get_settings()
    engine = build_engine(settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            await clear_data(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await engine.dispose()


def main() -> None:
    """CLI entry point."""
    settings = get_settings()
    if not settings.dev_mode:
        print(
            "ERROR: Seed script requires DEV_MODE=true (or VITE_DEV_MODE=true).\n"
            "This script modifies data directly and must only run against a local dev database."
        )
        raise SystemExit(1)

    parser = argparse.ArgumentParser(description='Seed the dev database with a sample document.')
    subparsers = parser.add_subparsers(dest='command', required=True)

    populate_parser = subparsers.add_parser('populate', help='Populate database with test data')
    populate_parser.add_argument(
        '--force', action='store_true',
        help='Clear existing data before populating',
    )

    subparsers.add_parser('clear', help='Remove all dev user data')

    args = parser.parse_args()

    if args.command == 'populate':
        asyncio.run(populate(force=args.force))
    elif args.command == 'clear':
        asyncio.run(clear())


if __name__ == '__main__':
    main()
