#!/usr/bin/env python3
"""CLI script to push every published product to the back office."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from backoffice_sync.config import get_settings
from backoffice_sync.exceptions import ConfigMissing
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.connection import dispose_engine, get_db_session
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.infrastructure.redis import CacheService, close_redis, get_redis_client
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.services import PendingRegistrationStore, SyncDispatcher

logger = structlog.get_logger()


async def main() -> int:
    """Main sync function."""
    settings = get_settings()
    logger.info("Starting product sync", backoffice=settings.backoffice_api_base_url)

    cache = CacheService(await get_redis_client())
    try:
        async with get_db_session() as session:
            dispatcher = SyncDispatcher(
                CommerceRepository(session),
                BackOfficeClient(settings),
                SyncLog(settings.sync_log_path),
                PendingRegistrationStore(cache, settings.pending_registration_ttl_seconds),
            )
            summary = await dispatcher.sync_all_products()
    except ConfigMissing as e:
        logger.error("Product sync aborted", error=str(e))
        return 1
    finally:
        await close_redis()
        await dispose_engine()

    logger.info("Product sync completed", message=summary.message)
    return 0 if summary.error_count == 0 else 2


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
