"""
Shared fixtures.

Both the source and the replica are SQLite files under tmp_path. The
source tables mirror the ERPNext layout (space in the table names,
`name` natural key, `modified` timestamp).
"""

from __future__ import annotations

import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parents[1] / "src"))

import pytest
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
)

from erpsync.domain.config import DatabaseSettings, ReplicatorConfig, SyncSettings

T0 = datetime(2024, 1, 1, 0, 0, 0)


def build_source_metadata() -> MetaData:
    metadata = MetaData()
    Table(
        "tabItem",
        metadata,
        Column("name", Text, primary_key=True),
        Column("item_name", Text),
        Column("item_category", Text),
        Column("cost", Float),
        Column("modified", DateTime),
    )
    Table(
        "tabSales Invoice",
        metadata,
        Column("name", Text, primary_key=True),
        Column("posting_date", Date),
        Column("modified", DateTime),
        Column("customer", Text),
        Column("docstatus", Integer),
        Column("grand_total", Float),
        Column("outstanding_amount", Float),
        Column("currency", Text),
    )
    Table(
        "tabSales Invoice Item",
        metadata,
        Column("name", Text, primary_key=True),
        Column("parent", Text),
        Column("item_code", Text),
        Column("warehouse", Text),
        Column("qty", Float),
        Column("rate", Float),
        Column("amount", Float),
        Column("creation", DateTime),
        Column("modified", DateTime),
        Column("docstatus", Integer),
        Column("idx", Integer),
    )
    return metadata


class SourceDatabase:
    """Test helper wrapping the source engine and its tables."""

    def __init__(self, engine):
        self.engine = engine
        self.metadata = build_source_metadata()
        self.metadata.create_all(engine)

    def table(self, name: str) -> Table:
        return self.metadata.tables[name]

    def insert(self, table_name: str, rows: Iterable[dict[str, Any]]) -> None:
        rows = list(rows)
        if rows:
            with self.engine.begin() as conn:
                conn.execute(self.table(table_name).insert(), rows)

    def update(self, table_name: str, name: str, **values: Any) -> None:
        table = self.table(table_name)
        with self.engine.begin() as conn:
            conn.execute(table.update().where(table.c.name == name).values(**values))

    def drop(self, table_name: str) -> None:
        self.table(table_name).drop(self.engine)


def invoice_row(name: str, modified: datetime = T0, **overrides: Any) -> dict[str, Any]:
    row = {
        "name": name,
        "posting_date": date(2024, 1, 1),
        "modified": modified,
        "customer": "CUST-001",
        "docstatus": 1,
        "grand_total": 100.0,
        "outstanding_amount": 0.0,
        "currency": "EUR",
    }
    row.update(overrides)
    return row


def item_row(name: str, modified: datetime = T0, **overrides: Any) -> dict[str, Any]:
    row = {
        "name": name,
        "item_name": f"Item {name}",
        "item_category": "Food",
        "cost": 2.5,
        "modified": modified,
    }
    row.update(overrides)
    return row


def invoice_item_row(name: str, parent: str, modified: datetime = T0, **overrides: Any) -> dict[str, Any]:
    row = {
        "name": name,
        "parent": parent,
        "item_code": "ITEM-1",
        "warehouse": "Main",
        "qty": 2.0,
        "rate": 5.0,
        "amount": 10.0,
        "creation": modified,
        "modified": modified,
        "docstatus": 1,
        "idx": 1,
    }
    row.update(overrides)
    return row


@pytest.fixture
def source_path(tmp_path: Path) -> Path:
    return tmp_path / "source.db"


@pytest.fixture
def replica_path(tmp_path: Path) -> Path:
    return tmp_path / "replica.db"


@pytest.fixture
def source_engine(source_path: Path):
    engine = create_engine(f"sqlite:///{source_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def replica_engine(replica_path: Path):
    engine = create_engine(f"sqlite:///{replica_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def source(source_engine) -> SourceDatabase:
    return SourceDatabase(source_engine)


@pytest.fixture
def make_config(source_path: Path, replica_path: Path):
    """Factory for a sqlite-to-sqlite ReplicatorConfig."""

    def _make(**sync: Any) -> ReplicatorConfig:
        return ReplicatorConfig(
            source=DatabaseSettings(dialect="sqlite", database=str(source_path)),
            replica=DatabaseSettings(dialect="sqlite", database=str(replica_path)),
            sync=SyncSettings(**sync),
        )

    return _make
