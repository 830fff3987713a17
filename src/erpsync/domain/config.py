"""
Configuration domain models.

Connection parameters, batch size, query timeout and the entity allow-list
are collected into one immutable ReplicatorConfig, built once at process
start (see erpsync.infrastructure.config_loader) and passed explicitly
into the orchestrator.
"""

import logging
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from .entities import parse_entity_filter

logger = logging.getLogger(__name__)


class DatabaseSettings(BaseModel):
    """Connection parameters for one store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    dialect: str = Field("mysql", description="SQLAlchemy dialect (mysql, postgresql, sqlite)")
    driver: Optional[str] = Field(None, description="DBAPI driver (pymysql, psycopg2)")
    host: Optional[str] = Field(None, description="Server host name or IP")
    port: Optional[int] = Field(None, description="Server port")
    user: Optional[str] = Field(None, description="Login name")
    password: Optional[SecretStr] = Field(None, description="Login password")
    database: Optional[str] = Field(None, description="Database name (file path for sqlite)")
    ssl: bool = Field(False, description="Require TLS without certificate verification")
    connect_timeout: int = Field(10, ge=1, le=300, description="Seconds to wait for a connection")
    url: Optional[SecretStr] = Field(None, description="Full SQLAlchemy URL, overrides the fields above")

    @field_validator("dialect")
    @classmethod
    def normalize_dialect(cls, v: str) -> str:
        v = v.strip().lower()
        if v in ("postgres", "pg"):
            return "postgresql"
        if v == "mariadb":
            return "mysql"
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    def describe(self) -> str:
        """Connection summary safe for logs (no credentials)."""
        if self.url is not None:
            return f"{self.dialect} (url)"
        location = self.host or "local"
        if self.port:
            location = f"{location}:{self.port}"
        return f"{self.dialect}://{location}/{self.database or ''}"


class SyncSettings(BaseModel):
    """Batching, timeout and selection parameters."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    batch_size: int = Field(2000, ge=1, le=100_000, description="Max rows per fetch")
    query_timeout_ms: int = Field(60_000, ge=1, description="Deadline for each fetch")
    only: Optional[Tuple[str, ...]] = Field(None, description="Entity allow-list; None means all")
    always_probe: bool = Field(
        False, description="Confirm exhaustion with an empty fetch instead of trusting a short batch"
    )
    strict_key_order: Optional[bool] = Field(
        None, description="Require names to grow at equal timestamps; None means all but MySQL sources"
    )
    verbose: bool = Field(False, description="Log at DEBUG level")
    log_file: Optional[str] = Field(None, description="Optional log file path")

    @field_validator("query_timeout_ms")
    @classmethod
    def warn_long_timeout(cls, v: int) -> int:
        if v > 600_000:
            logger.warning("Query timeout of %s ms is very high - a stuck fetch will block the run", v)
        return v

    @field_validator("only", mode="before")
    @classmethod
    def split_only(cls, v):
        if isinstance(v, str):
            wanted = parse_entity_filter(v)
            return tuple(sorted(wanted)) if wanted else None
        if v is not None and len(v) == 0:
            return None
        return v


class ReplicatorConfig(BaseModel):
    """Complete, immutable configuration of one replication process."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    source: DatabaseSettings = Field(default_factory=DatabaseSettings)
    replica: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(dialect="postgresql")
    )
    sync: SyncSettings = Field(default_factory=SyncSettings)
    source_tables: Dict[str, str] = Field(
        default_factory=dict, description="Per-entity source table overrides"
    )

    @property
    def only(self) -> Optional[frozenset]:
        return frozenset(self.sync.only) if self.sync.only else None
