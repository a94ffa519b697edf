# src/async_query/db_implementations/postgresql_database.py

import asyncio
import logging
from typing import Optional

import asyncpg

from async_query.base.exceptions import DatabaseNotReadyException
from async_query.config import DatabaseConfig

base_logger = logging.getLogger("async_query.db_implementations.postgresql_database")


class PostgresDatabase:
    """
    Owns the asyncpg pool every repository runs against.

    The pool is created by `start()`, which also verifies connectivity
    within `conn_timeout`, and released by `close()`.

        database = PostgresDatabase(DatabaseConfig.finalize(name="app", user="app"))
        await database.start()
        documents = DocumentRepository(database.pool, pagination)
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._logger = logging.getLogger(f"{base_logger.name}[{config.name}]")

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise DatabaseNotReadyException()
        return self._pool

    async def start(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        cfg = self._config
        self._logger.info(f"Starting database connection to {cfg.host}:{cfg.port}/{cfg.name}")
        pool = await asyncpg.create_pool(
            dsn=cfg.dsn(),
            min_size=cfg.min_idle_conns,
            max_size=cfg.max_open_conns,
            max_inactive_connection_lifetime=cfg.conn_max_idle_time,
            timeout=cfg.conn_timeout,
        )

        try:
            async with pool.acquire(timeout=cfg.conn_timeout) as conn:
                await asyncio.wait_for(conn.fetchval("SELECT 1"), cfg.conn_timeout)
        except Exception as e:
            self._logger.error(f"Database ping failed: {e}", exc_info=True)
            await pool.close()
            raise

        self._pool = pool
        self._logger.info("Database connection established")
        return pool

    async def close(self) -> None:
        if self._pool is None:
            return
        self._logger.info("Closing database connection")
        pool, self._pool = self._pool, None
        await pool.close()
        self._logger.info("Database connection closed")

    async def __aenter__(self) -> "PostgresDatabase":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
