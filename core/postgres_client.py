"""
PostgreSQL Client Wrapper

Centralized PostgreSQL access built on an asyncpg connection pool.
Provides service discovery integration and consistent database access pattern.

Usage:
    from core.postgres_client import get_postgres_client

    # Get client instance
    db = await get_postgres_client("campaign_progress_service")

    # Execute queries
    async with db:
        result = await db.query("SELECT * FROM goals WHERE user_id = $1", [user_id])
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import get_settings

logger = logging.getLogger(__name__)


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper with service discovery integration.

    Owns a lazily created asyncpg pool and provides:
    - Service discovery for host/port configuration
    - Consistent initialization pattern
    - Rows returned as plain dicts
    """

    def __init__(
        self,
        service_name: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            host: PostgreSQL host (defaults to env/service discovery)
            port: PostgreSQL port (defaults to 5432)
            database: Database name (defaults to 'postgres')
            username: Database username
            password: Database password
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Per-command timeout in seconds
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name
        infra = get_settings().infra

        # Use ConfigManager for service discovery
        config = ConfigManager(service_name)
        discovered_host, discovered_port = config.discover_service(
            service_name="postgres_service",
            default_host=infra.postgres_host,
            default_port=infra.postgres_port,
            env_host_key="POSTGRES_HOST",
            env_port_key="POSTGRES_PORT",
        )

        # Apply overrides
        self.host = host or discovered_host
        self.port = port or discovered_port
        self.database = database or infra.postgres_db
        self.username = username or infra.postgres_user
        self.password = password or infra.postgres_password
        self.min_size = min_size or infra.postgres_pool_min
        self.max_size = max_size or infra.postgres_pool_max
        self.timeout = timeout or infra.postgres_timeout

        self._pool: Optional[asyncpg.Pool] = None

        logger.info(f"PostgreSQL client initialized for {service_name}: {self.host}:{self.port}/{self.database}")

    async def connect(self) -> None:
        """Create the connection pool if needed"""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.username,
            password=self.password,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.timeout,
        )
        logger.info(f"PostgreSQL pool ready for {self.service_name}")

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit (pool stays open for reuse)"""
        return False

    async def health_check(self) -> Optional[Dict]:
        """Check database health"""
        row = await self.query_row("SELECT 1 AS healthy")
        return {"healthy": bool(row and row.get("healthy") == 1)}

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        await self.connect()
        records = await self._pool.fetch(sql, *(params or []))
        return [dict(record) for record in records]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        await self.connect()
        record = await self._pool.fetchrow(sql, *(params or []))
        return dict(record) if record is not None else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """Execute SQL statement and return the command status tag"""
        await self.connect()
        return await self._pool.execute(sql, *(params or []))

    async def close(self):
        """Close connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

