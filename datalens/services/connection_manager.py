"""
Connection pool manager for warehouse databases.

Resolves per-request credentials (or the configured defaults) to a cached
asyncpg pool. Pools are keyed by a hash of the normalized URL and the
credentials, kept in least-recently-used order and closed when evicted or
when the application shuts down.
"""
import asyncio
import hashlib
import ssl
import time
from collections import OrderedDict
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

import asyncpg
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from datalens.config import Settings, get_settings
from datalens.core.errors import InvalidRequestError, QueryExecutionError
from datalens.core.logging import get_logger
from datalens.models.lens import DataSourceDescriptor
from datalens.services.sql_ast import RenderedQuery

logger = get_logger(__name__)

DEFAULT_POOL_KEY = "default"
DEFAULT_PORT = 5432
POSTGRES_SCHEMES = ("postgresql", "postgres")

# Errors raised by asyncpg while connecting or running a statement
DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

SSLOption = Union[str, ssl.SSLContext]

# Datetime output is labelled UTC and cursors are parsed as UTC
SERVER_SETTINGS = {"timezone": "UTC"}


def driver_message(error: Exception) -> str:
    """Driver error text; timeouts carry no message of their own."""
    return str(error) or error.__class__.__name__


@dataclass(frozen=True)
class ConnectionTarget:
    """Everything needed to open a pool, plus its cache key."""
    host: str
    port: int
    database: str
    user: str
    password: str
    ssl: SSLOption
    key: str

    @property
    def display_url(self) -> str:
        """Connection URL with the password masked, for logs."""
        url = URL.create(
            "postgresql",
            username=self.user,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database,
        )
        return url.render_as_string(hide_password=True)


def build_ssl(
    mode: str,
    ca_cert: Optional[str] = None,
    client_cert: Optional[str] = None,
    client_key: Optional[str] = None,
) -> SSLOption:
    """
    Build the asyncpg ``ssl`` argument.

    Server certificates are never verified; managed instances commonly use
    private CAs.
    """
    if mode == "disable" or not (ca_cert or client_cert):
        return mode
    context = ssl.create_default_context(cafile=ca_cert)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    if client_cert:
        context.load_cert_chain(client_cert, keyfile=client_key)
    return context


def credential_key(normalized_url: str, username: str, password: str) -> str:
    digest = hashlib.sha256()
    for part in (normalized_url, username, password):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def parse_jdbc_url(jdbc_url: str) -> Tuple[str, int, str, Dict[str, Any]]:
    """
    Split a JDBC-style PostgreSQL URL into host, port, database and options.

    Example:
        >>> parse_jdbc_url("jdbc:postgresql://db.example.com:6543/sales?sslmode=require")
        ('db.example.com', 6543, 'sales', {'sslmode': 'require'})

    Raises:
        InvalidRequestError: If the URL is not a PostgreSQL URL with a host
    """
    raw = jdbc_url.strip()
    if raw.lower().startswith("jdbc:"):
        raw = raw[len("jdbc:"):]
    try:
        url = make_url(raw)
    except ArgumentError:
        raise InvalidRequestError(f"Invalid JDBC URL: '{jdbc_url}'")
    if url.drivername.split("+")[0] not in POSTGRES_SCHEMES or not url.host:
        raise InvalidRequestError(f"Invalid JDBC URL: '{jdbc_url}'")
    return url.host, url.port or DEFAULT_PORT, url.database or "", dict(url.query)


def target_from_descriptor(descriptor: DataSourceDescriptor, settings: Settings) -> ConnectionTarget:
    host, port, database, options = parse_jdbc_url(descriptor.jdbc_url)
    ssl_mode = options.get("sslmode") or settings.db_ssl_mode
    if isinstance(ssl_mode, tuple):
        ssl_mode = ssl_mode[-1]
    normalized = f"postgresql://{host.lower()}:{port}/{database}"
    return ConnectionTarget(
        host=host,
        port=port,
        database=database,
        user=descriptor.username,
        password=descriptor.password,
        ssl=ssl_mode,
        key=credential_key(normalized, descriptor.username, descriptor.password),
    )


def default_target(settings: Settings) -> ConnectionTarget:
    return ConnectionTarget(
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_database,
        user=settings.db_user,
        password=settings.db_password,
        ssl=build_ssl(
            settings.db_ssl_mode,
            ca_cert=settings.db_ca_cert,
            client_cert=settings.db_client_cert,
            client_key=settings.db_client_key,
        ),
        key=DEFAULT_POOL_KEY,
    )


class ConnectionPoolManager:
    """LRU cache of asyncpg pools keyed by credential identity."""

    def __init__(self, settings: Optional[Settings] = None, pool_factory=None):
        """
        Args:
            settings: Application settings (defaults to ``get_settings()``)
            pool_factory: Coroutine function creating a pool; ``asyncpg.create_pool``
                unless overridden
        """
        self.settings = settings or get_settings()
        self._pool_factory = pool_factory or asyncpg.create_pool
        self._pools: "OrderedDict[str, asyncpg.Pool]" = OrderedDict()
        # One lock per key being created; cache hits never wait on them
        self._creating: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._pools)

    def target_for(self, descriptor: Optional[DataSourceDescriptor] = None) -> ConnectionTarget:
        if descriptor is None:
            return default_target(self.settings)
        return target_from_descriptor(descriptor, self.settings)

    def _cached(self, key: str) -> Optional[asyncpg.Pool]:
        pool = self._pools.get(key)
        if pool is not None:
            self._pools.move_to_end(key)
        return pool

    def _store(self, key: str, pool: asyncpg.Pool) -> List[Tuple[str, asyncpg.Pool]]:
        """Cache ``pool`` and return the entries pushed out past capacity."""
        self._pools[key] = pool
        self._pools.move_to_end(key)
        evicted = []
        while len(self._pools) > self.settings.pool_cache_max_size:
            evicted.append(self._pools.popitem(last=False))
        return evicted

    async def resolve(self, descriptor: Optional[DataSourceDescriptor] = None) -> asyncpg.Pool:
        """
        Return the pool for ``descriptor``, creating it on first use.

        Concurrent first requests for the same credentials share one creation;
        requests for other credentials are never blocked by it.

        Args:
            descriptor: Per-request credentials; None uses the configured defaults

        Raises:
            InvalidRequestError: If the JDBC URL cannot be parsed
            QueryExecutionError: If the database cannot be reached
        """
        target = self.target_for(descriptor)
        pool = self._cached(target.key)
        if pool is not None:
            return pool

        lock = self._creating.setdefault(target.key, asyncio.Lock())
        evicted: List[Tuple[str, asyncpg.Pool]] = []
        try:
            async with lock:
                pool = self._cached(target.key)
                if pool is None:
                    pool = await self._create_pool(target)
                    existing = self._cached(target.key)
                    if existing is not None:
                        # Another creation for this key finished first
                        evicted = [(target.key, pool)]
                        pool = existing
                    else:
                        evicted = self._store(target.key, pool)
        finally:
            if self._creating.get(target.key) is lock and not lock.locked():
                del self._creating[target.key]

        for key, old_pool in evicted:
            logger.info("Evicting least recently used connection pool", extra={"pool_key": key[:12]})
            await self._close_pool(key, old_pool)

        return pool

    async def _create_pool(self, target: ConnectionTarget) -> asyncpg.Pool:
        logger.info(f"Creating connection pool for {target.display_url}", extra={"pool_key": target.key[:12]})
        try:
            pool = await self._pool_factory(
                host=target.host,
                port=target.port,
                user=target.user,
                password=target.password,
                database=target.database,
                ssl=target.ssl,
                min_size=self.settings.pool_min_size,
                max_size=self.settings.pool_max_size,
                max_inactive_connection_lifetime=self.settings.pool_idle_timeout,
                timeout=self.settings.pool_connect_timeout,
                server_settings=dict(SERVER_SETTINGS),
            )
        except DRIVER_ERRORS as e:
            logger.error(f"Failed to connect to {target.display_url}: {e}")
            raise QueryExecutionError(driver_message(e)) from e

        try:
            info = await pool.fetchrow(
                "SELECT current_database() AS database, current_user AS user_name, version() AS version"
            )
        except DRIVER_ERRORS as e:
            logger.error(f"Connection check failed for {target.display_url}: {e}")
            pool.terminate()
            raise QueryExecutionError(driver_message(e)) from e

        logger.info(f"Connected to database {info['database']} as {info['user_name']}")
        return pool

    async def _close_pool(self, key: str, pool: asyncpg.Pool) -> None:
        try:
            await asyncio.wait_for(pool.close(), timeout=self.settings.pool_close_timeout)
        except asyncio.TimeoutError:
            logger.warning("Connection pool did not close in time, terminating", extra={"pool_key": key[:12]})
            pool.terminate()

    async def close_all(self) -> None:
        """Close every cached pool. Called on application shutdown."""
        pools = list(self._pools.items())
        self._pools.clear()
        for key, pool in pools:
            await self._close_pool(key, pool)
        if pools:
            logger.info(f"Closed {len(pools)} connection pools")


async def fetch_rows(pool: asyncpg.Pool, query: RenderedQuery) -> List[Dict[str, Any]]:
    """
    Run a rendered query and return rows as dicts.

    Every statement is logged with its SQL, parameters, execution time and
    row count. Failures are not retried.

    Raises:
        QueryExecutionError: Carrying the driver's message
    """
    start = time.perf_counter()
    try:
        records = await pool.fetch(query.sql, *query.params)
    except DRIVER_ERRORS as e:
        logger.error(
            f"Database query error: {e}",
            extra={"sql": query.sql, "params": query.params},
        )
        raise QueryExecutionError(driver_message(e)) from e

    execution_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.info(
        "Executed query",
        extra={
            "sql": query.sql,
            "params": query.params,
            "execution_ms": execution_ms,
            "row_count": len(records),
        },
    )
    return [dict(record) for record in records]


async def check_connection(descriptor: DataSourceDescriptor, settings: Optional[Settings] = None) -> Tuple[bool, Optional[str]]:
    """
    Open a single connection with ``descriptor`` and run ``SELECT 1``.

    Returns:
        (True, None) on success, (False, driver message) otherwise
    """
    settings = settings or get_settings()
    target = target_from_descriptor(descriptor, settings)
    try:
        connection = await asyncpg.connect(
            host=target.host,
            port=target.port,
            user=target.user,
            password=target.password,
            database=target.database,
            ssl=target.ssl,
            timeout=settings.pool_connect_timeout,
            server_settings=dict(SERVER_SETTINGS),
        )
    except DRIVER_ERRORS as e:
        logger.warning(f"Connection test failed for {target.display_url}: {e}")
        return False, driver_message(e)

    try:
        await connection.execute("SELECT 1")
        return True, None
    except DRIVER_ERRORS as e:
        logger.warning(f"Connection test query failed for {target.display_url}: {e}")
        return False, driver_message(e)
    finally:
        await connection.close()


@lru_cache()
def get_connection_manager() -> ConnectionPoolManager:
    """
    Get the process-wide pool manager.
    Singleton so concurrent requests share pools.
    """
    return ConnectionPoolManager()
