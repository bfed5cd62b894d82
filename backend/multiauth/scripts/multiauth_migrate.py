"""
Migrate legacy single-provider remote accounts to the multi-provider schema.

Usage:
    python -m multiauth.scripts.multiauth_migrate --provider=<provider id>

The provider id must be a key of OAUTH_PROVIDERS. Safe to re-run: users that
were already migrated are no longer listed in the legacy table.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence, TextIO

from multiauth.config import Settings, settings
from multiauth.core.database import AsyncSessionLocal
from multiauth.core.logging_config import get_logger, setup_logging
from multiauth.services.identity.exceptions import MigrationError
from multiauth.services.multiauth_migration_service import (
    multiauth_migration_service,
    progress_percentage,
)

logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate legacy remote accounts to the multi-provider mapping table."
    )
    parser.add_argument(
        "--provider",
        required=True,
        help="The ID of the provider to migrate all the existing remote accounts to.",
    )
    return parser.parse_args(argv)


async def run_migration(
    provider_id: str,
    session_factory=AsyncSessionLocal,
    out: TextIO = sys.stdout,
) -> None:
    """Run the migration and print progress to ``out``."""

    def print_progress(current: int, total: int) -> None:
        out.write(
            f"\rMigrating users ... \t {progress_percentage(current, total)}% ({current}/{total})"
        )
        out.flush()

    async with session_factory() as db:
        if not await multiauth_migration_service.requires_migration(db):
            out.write("Nothing to migrate.\n")
            return

        try:
            report = await multiauth_migration_service.migrate_users(
                db, provider_id, progress=print_progress
            )
        except MigrationError as e:
            out.write("\n")
            out.write("\t... failure, rolling back most recent migration ...\n")
            logger.error("multiauth_migration_failed", provider_id=provider_id, error=str(e))
            raise

    logger.info(
        "multiauth_migration_finished",
        provider_id=provider_id,
        total=report.total,
        migrated=report.migrated,
    )
    out.write("\n")
    out.write("\t... done ... \n")


def main(argv: Optional[Sequence[str]] = None, app_settings: Optional[Settings] = None) -> int:
    args = parse_args(argv)
    app_settings = app_settings or settings
    setup_logging()

    if app_settings.get_provider_data(args.provider) is None:
        print(
            "The specified provider is not configured or does not exist. "
            "Please configure it before migrating.",
            file=sys.stderr,
        )
        return 1

    asyncio.run(run_migration(args.provider))
    return 0


if __name__ == "__main__":
    sys.exit(main())
