"""
Database engine management for the source and replica stores.

Supports: MySQL/MariaDB (pymysql), PostgreSQL (psycopg2), SQLite.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from erpsync.domain.config import DatabaseSettings
from erpsync.domain.errors import (
    ConfigurationError,
    ConnectivityError,
    ReplicaUnavailableError,
    SourceUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_DRIVERS = {
    "mysql": "pymysql",
    "postgresql": "psycopg2",
}

DEFAULT_PORTS = {
    "mysql": 3306,
    "postgresql": 5432,
}

SOURCE = "source"
REPLICA = "replica"


def build_connection_url(settings: DatabaseSettings) -> URL:
    """
    Build a SQLAlchemy URL from connection settings.

    An explicit `url` wins over the discrete fields. Credentials are passed
    through URL.create, which escapes special characters.

    Raises:
        ConfigurationError: If the dialect is unsupported or the URL is invalid
    """
    if settings.url is not None:
        try:
            return make_url(settings.url.get_secret_value())
        except Exception as e:
            raise ConfigurationError(f"Invalid database URL for {settings.dialect}: {e}") from e

    dialect = settings.dialect
    if dialect == "sqlite":
        return URL.create("sqlite", database=settings.database)

    if dialect not in DEFAULT_DRIVERS:
        raise ConfigurationError(f"Unsupported database dialect: {dialect}")
    if not settings.host or not settings.database:
        raise ConfigurationError(f"{dialect} connection needs both a host and a database name")

    driver = settings.driver or DEFAULT_DRIVERS[dialect]
    return URL.create(
        f"{dialect}+{driver}",
        username=settings.user,
        password=settings.password.get_secret_value() if settings.password else None,
        host=settings.host,
        port=settings.port or DEFAULT_PORTS[dialect],
        database=settings.database,
    )


def _connect_args(url: URL, settings: DatabaseSettings, read_timeout_ms: Optional[int] = None) -> dict:
    backend = url.get_backend_name()
    if backend == "mysql":
        args = {"connect_timeout": settings.connect_timeout}
        if read_timeout_ms:
            # Bounds every socket read, whether or not the server honours a statement deadline
            args["read_timeout"] = read_timeout_ms / 1000
        if settings.ssl:
            args["ssl"] = {"check_hostname": False}
        return args
    if backend == "postgresql":
        args = {"connect_timeout": settings.connect_timeout}
        if settings.ssl:
            args["sslmode"] = "require"
        return args
    return {}


def create_database_engine(
    settings: DatabaseSettings,
    role: str,
    read_timeout_ms: Optional[int] = None,
) -> Engine:
    """
    Create a SQLAlchemy engine for one store.

    Args:
        settings: Connection settings
        role: "source" or "replica", used for logging and error mapping
        read_timeout_ms: Socket read deadline (MySQL backends only)

    Returns:
        Engine: SQLAlchemy engine instance
    """
    url = build_connection_url(settings)
    engine = create_engine(
        url,
        connect_args=_connect_args(url, settings, read_timeout_ms),
        pool_pre_ping=True,  # Test connections before using
        pool_recycle=3600,
        echo=False,
    )
    logger.info("Created %s engine for %s", role, settings.describe())
    return engine


def unavailable_error(role: str, error: BaseException) -> ConnectivityError:
    """Map a driver failure to the connectivity error of the given store."""
    cls = SourceUnavailableError if role == SOURCE else ReplicaUnavailableError
    return cls(f"{role} store unavailable: {error}")


def verify_connection(engine: Engine, role: str) -> None:
    """
    Run a trivial query against a store.

    Raises:
        SourceUnavailableError / ReplicaUnavailableError: If the store
            cannot be reached
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error("Connection test failed for %s: %s", role, e)
        raise unavailable_error(role, e) from e
    logger.debug("Connection test passed for %s", role)

