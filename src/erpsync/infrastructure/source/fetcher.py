"""
Change fetcher - reads the next ordered batch of changed source rows.

The batch predicate is

    modified > :time OR (modified = :time AND name > :key)
    ORDER BY modified, name
    LIMIT :limit

A plain `modified > :time` would skip rows sharing the watermark's
timestamp that sort after it. With the (modified, name) tie-break every
row is visited exactly once however many rows share a timestamp, as long
as `name` is unique.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sqlalchemy import MetaData, Table, Text, and_, case, func, literal, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, OperationalError, SQLAlchemyError
from sqlalchemy.sql import Select

from erpsync.domain.entities import EntityDescriptor
from erpsync.domain.errors import ConfigurationError, FetchTimeoutError
from erpsync.domain.models import Watermark, format_timestamp
from ..database import SOURCE, unavailable_error
from ..identifiers import safe_identifier

logger = logging.getLogger(__name__)

# Driver error codes meaning "the server cancelled the statement on its deadline".
MYSQL_TIMEOUT_CODES = {3024, 1969}
POSTGRES_QUERY_CANCELED = "57014"
# PyMySQL read_timeout expiry surfaces as CR_SERVER_LOST ("... (timed out)")
MYSQL_SERVER_LOST = 2013


def is_timeout_error(error: OperationalError) -> bool:
    """Check whether a driver error is a statement or read timeout."""
    orig = error.orig
    if getattr(orig, "pgcode", None) == POSTGRES_QUERY_CANCELED:
        return True
    args = getattr(orig, "args", ())
    if not args:
        return False
    if args[0] in MYSQL_TIMEOUT_CODES:
        return True
    return args[0] == MYSQL_SERVER_LOST and "timed out" in str(args[1:])


def session_timeout_statement(dialect, timeout_ms: int):
    """
    Per-connection statement deadline, where the server needs one set up front.

    MariaDB ignores the MAX_EXECUTION_TIME optimizer hint and only honours
    max_statement_time (seconds); PostgreSQL scopes statement_timeout to
    the current transaction.
    """
    if dialect.name == "postgresql":
        return text(f"SET LOCAL statement_timeout = {int(timeout_ms)}")
    if dialect.name == "mysql" and getattr(dialect, "is_mariadb", False):
        return text(f"SET SESSION max_statement_time = {timeout_ms / 1000:.3f}")
    return None


def comparable_time(column, dialect_name: str):
    """
    Expression that orders a timestamp column like the watermark time.

    SQLite keeps datetimes as text in whatever shape the writer chose
    ("2024-01-01 00:00:00", "...T...", "....123"), so the column is brought
    to the persisted "YYYY-MM-DD HH:MM:SS.ffffff" form before comparing.
    Other backends compare native temporal values.
    """
    if dialect_name != "sqlite":
        return column
    value = func.replace(column, "T", " ", type_=Text)
    return case(
        (func.length(value) == 10, value.concat(" 00:00:00.000000")),
        (func.length(value) == 19, value.concat(".000000")),
        else_=func.substr(value.concat("000000"), 1, 26),
    )


class ChangeFetcher:
    """
    Fetches batches of changed rows for one entity.

    The source table is reflected on first use, so rows come back with
    driver-native types (datetime, Decimal, date) whatever the table holds.
    """

    def __init__(
        self,
        engine: Engine,
        descriptor: EntityDescriptor,
        query_timeout_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.descriptor = descriptor
        self.query_timeout_ms = query_timeout_ms
        self._clock = clock
        self._table: Table | None = None
        safe_identifier(descriptor.source_table)

    @property
    def table(self) -> Table:
        if self._table is None:
            self._table = self._reflect()
        return self._table

    def _reflect(self) -> Table:
        name = self.descriptor.source_table
        try:
            table = Table(name, MetaData(), autoload_with=self.engine)
        except NoSuchTableError as e:
            raise ConfigurationError(f"Source table not found: {name!r}") from e
        except SQLAlchemyError as e:
            raise unavailable_error(SOURCE, e) from e

        for field in (self.descriptor.time_field, self.descriptor.key_field):
            if field not in table.c:
                raise ConfigurationError(f"Source table {name!r} has no column {field!r}")
        logger.debug("Reflected source table %s (%d columns)", name, len(table.c))
        return table

    def build_query(self, watermark: Watermark, limit: int) -> Select:
        """Build the ordered, bounded batch query strictly after `watermark`."""
        dialect_name = self.engine.dialect.name
        modified = comparable_time(self.table.c[self.descriptor.time_field], dialect_name)
        name = self.table.c[self.descriptor.key_field]
        if dialect_name == "sqlite":
            since = literal(format_timestamp(watermark.time), Text)
        else:
            since = watermark.time
        stmt = (
            select(self.table)
            .where(
                or_(
                    modified > since,
                    and_(modified == since, name > watermark.key),
                )
            )
            .order_by(modified.asc(), name.asc())
            .limit(limit)
        )
        return stmt.prefix_with(f"/*+ MAX_EXECUTION_TIME({int(self.query_timeout_ms)}) */", dialect="mysql")

    def fetch(self, watermark: Watermark, limit: int) -> list[dict[str, Any]]:
        """
        Read up to `limit` rows after `watermark`, ordered by (modified, name).

        Raises:
            FetchTimeoutError: If the read does not complete within the deadline
            SourceUnavailableError: If the source cannot be queried
        """
        entity = self.descriptor.entity_id
        stmt = self.build_query(watermark, limit)
        started = self._clock()
        try:
            with self.engine.connect() as conn:
                deadline = session_timeout_statement(conn.dialect, self.query_timeout_ms)
                if deadline is not None:
                    conn.execute(deadline)
                rows = [dict(row._mapping) for row in conn.execute(stmt)]
        except OperationalError as e:
            if is_timeout_error(e):
                raise FetchTimeoutError(entity, self.query_timeout_ms) from e
            raise unavailable_error(SOURCE, e) from e
        except SQLAlchemyError as e:
            raise unavailable_error(SOURCE, e) from e

        elapsed_ms = (self._clock() - started) * 1000
        if elapsed_ms > self.query_timeout_ms:
            raise FetchTimeoutError(entity, self.query_timeout_ms, elapsed_ms)

        logger.debug("[%s] fetched %d rows after %s in %.0f ms", entity, len(rows), watermark, elapsed_ms)
        return rows
