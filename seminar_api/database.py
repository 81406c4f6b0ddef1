import json
import asyncpg
from pathlib import Path
from contextlib import asynccontextmanager
from seminar_api.config import settings
import logging

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


async def _init_connection(conn):
    """Decode json/jsonb columns to Python objects on every pooled connection"""
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog'
        )


class DatabasePool:
    _pool = None

    @classmethod
    async def create_pool(cls):
        if cls._pool is None:
            try:
                cls._pool = await asyncpg.create_pool(
                    **settings.db_connection_params,
                    min_size=settings.db_pool_min_size,
                    max_size=settings.db_pool_max_size,
                    max_queries=50000,
                    max_inactive_connection_lifetime=300,
                    command_timeout=60,
                    timeout=30,
                    init=_init_connection
                )
                logger.info(f"Database pool created: {settings.db_name}@{settings.db_host}")
            except Exception as e:
                logger.error(f"Failed to create database pool: {e}")
                raise
        return cls._pool

    @classmethod
    async def close_pool(cls):
        if cls._pool:
            await cls._pool.close()
            cls._pool = None
            logger.info("Database pool closed")


@asynccontextmanager
async def get_db_connection(use_transaction: bool = True):
    """
    Get database connection from pool.

    Args:
        use_transaction: If True, wraps operations in a transaction.
                        Set to False for read-only operations.

    Usage:
    async with get_db_connection() as conn:
        result = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)

    Read-only usage:
    async with get_db_connection(use_transaction=False) as conn:
        result = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
    """
    pool = await DatabasePool.create_pool()
    async with pool.acquire() as connection:
        if use_transaction:
            async with connection.transaction():
                yield connection
        else:
            yield connection


async def apply_schema():
    """Create tables and indexes if they do not exist yet"""
    ddl = SCHEMA_PATH.read_text()
    async with get_db_connection() as conn:
        await conn.execute(ddl)
    logger.info("Database schema applied")
