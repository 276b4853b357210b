"""
Notekeeper Backend - Storage Engines
=====================================

What:  Engine contract (base.py), SQL engine (sql.py), in-memory engine
       (memory.py), and the factory the application lifespan uses to build
       the configured one.

Only the startup schema check is retried here. Calls made while serving
requests are never retried by the storage layer.
"""

import logging

from sqlalchemy.exc import OperationalError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notekeeper.config import Settings
from notekeeper.database import create_engine, create_tables
from notekeeper.storage.base import (
    Cursor,
    Entity,
    Key,
    Property,
    Query,
    QueryResult,
    StorageClient,
)
from notekeeper.storage.memory import MemoryStorageClient
from notekeeper.storage.sql import SQLStorageClient

logger = logging.getLogger(__name__)

__all__ = [
    "Cursor",
    "Entity",
    "Key",
    "MemoryStorageClient",
    "Property",
    "Query",
    "QueryResult",
    "SQLStorageClient",
    "StorageClient",
    "create_storage_client",
]


async def create_storage_client(settings: Settings) -> StorageClient:
    """
    Build the storage engine named by `settings.data_backend`.

    For the SQL backend the engine is created and missing tables are
    created, retrying connection failures with exponential backoff (the
    database container often starts after the application).

    Raises:
        OperationalError: database still unreachable after all attempts.
    """
    if settings.data_backend == "memory":
        logger.warning("Using in-memory storage; notes are lost on restart")
        return MemoryStorageClient()

    engine = create_engine(settings)

    @retry(
        retry=retry_if_exception_type((OperationalError, OSError)),
        stop=stop_after_attempt(settings.startup_retry_attempts),
        wait=wait_exponential_jitter(initial=1, max=10, jitter=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _prepare() -> None:
        await create_tables(engine)

    try:
        await _prepare()
    except Exception:
        await engine.dispose()
        raise

    logger.info("SQL storage ready (%s)", engine.url.render_as_string(hide_password=True))
    return SQLStorageClient(engine)
