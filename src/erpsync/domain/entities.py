"""
Entity descriptors.

An EntityDescriptor is the static, read-only description of one replicated
record type: where it is read from, where it is written to, which source
fields are projected into typed replica columns and which key drives the
upsert. The three built-in descriptors cover ERPNext sales data.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ConfigurationError


class ColumnType(str, Enum):
    """Replica column types used by projections."""

    TEXT = "text"
    TIMESTAMP = "timestamp"
    DATE = "date"
    INTEGER = "integer"
    NUMERIC = "numeric"


class ProjectedColumn(BaseModel):
    """One typed replica column fed from a source field."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Replica column name")
    type: ColumnType = Field(ColumnType.TEXT, description="Replica column type")
    source_field: Optional[str] = Field(None, description="Source field (defaults to name)")
    required: bool = Field(False, description="Reject batches where this field is null")
    indexed: bool = Field(False, description="Create a secondary index on this column")

    @property
    def field(self) -> str:
        return self.source_field or self.name


class EntityDescriptor(BaseModel):
    """
    Static per-entity configuration.

    Owned by configuration and never mutated at runtime; use
    `with_source_table()` to derive a copy pointing at another table.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(..., description="Operator-facing entity name")
    source_table: str = Field(..., description="Table in the source store")
    target_table: str = Field(..., description="Table in the replica store")
    columns: Tuple[ProjectedColumn, ...] = Field(..., description="Typed projection")
    conflict_key: str = Field("name", description="Natural key used as upsert conflict target")
    time_field: str = Field("modified", description="Modification timestamp field")
    key_field: str = Field("name", description="Tie-break key field")
    payload_column: str = Field("raw", description="Column holding the full source record")
    cursor_prefix: Optional[str] = Field(None, description="Cursor key prefix (defaults to target table)")
    batch_size: Optional[int] = Field(None, ge=1, description="Per-entity batch size override")

    @model_validator(mode="after")
    def _check_projection(self) -> "EntityDescriptor":
        names = [c.name for c in self.columns]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate projected columns in '{self.entity_id}'")
        if self.conflict_key not in names:
            raise ValueError(f"Conflict key '{self.conflict_key}' is not projected in '{self.entity_id}'")
        if self.payload_column in names:
            raise ValueError(f"Payload column '{self.payload_column}' clashes with a projected column")
        return self

    @property
    def cursor_key(self) -> str:
        return self.cursor_prefix or self.target_table

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def required_fields(self) -> list[str]:
        fields = [c.field for c in self.columns if c.required]
        for name in (self.key_field, self.time_field):
            if name not in fields:
                fields.append(name)
        return fields

    def with_source_table(self, source_table: str) -> "EntityDescriptor":
        return self.model_copy(update={"source_table": source_table})


def _col(name: str, type_: ColumnType = ColumnType.TEXT, **kwargs) -> ProjectedColumn:
    return ProjectedColumn(name=name, type=type_, **kwargs)


ITEM = EntityDescriptor(
    entity_id="item",
    source_table="tabItem",
    target_table="item",
    columns=(
        _col("name", required=True),
        _col("item_category"),
        _col("cost", ColumnType.NUMERIC),
        _col("modified", ColumnType.TIMESTAMP, required=True, indexed=True),
    ),
)

INVOICE = EntityDescriptor(
    entity_id="invoice",
    source_table="tabSales Invoice",
    target_table="sales_invoice",
    columns=(
        _col("name", required=True),
        _col("posting_date", ColumnType.DATE, indexed=True),
        _col("modified", ColumnType.TIMESTAMP, required=True, indexed=True),
        _col("customer"),
        _col("docstatus", ColumnType.INTEGER, indexed=True),
        _col("grand_total", ColumnType.NUMERIC),
        _col("outstanding_amount", ColumnType.NUMERIC),
    ),
)

INVOICE_ITEM = EntityDescriptor(
    entity_id="invoice_item",
    source_table="tabSales Invoice Item",
    target_table="sales_invoice_item",
    columns=(
        _col("name", required=True),
        _col("parent", indexed=True),
        _col("item_code"),
        _col("warehouse"),
        _col("qty", ColumnType.NUMERIC),
        _col("rate", ColumnType.NUMERIC),
        _col("amount", ColumnType.NUMERIC),
        _col("creation", ColumnType.TIMESTAMP),
        _col("modified", ColumnType.TIMESTAMP, required=True, indexed=True),
        _col("docstatus", ColumnType.INTEGER),
        _col("idx", ColumnType.INTEGER),
    ),
)

# Fixed run order. Entities share no state, so the order only has to be stable.
DEFAULT_ENTITIES: Tuple[EntityDescriptor, ...] = (ITEM, INVOICE, INVOICE_ITEM)


def entity_ids(descriptors: Iterable[EntityDescriptor] = DEFAULT_ENTITIES) -> list[str]:
    return [d.entity_id for d in descriptors]


def parse_entity_filter(raw: str | None) -> frozenset[str] | None:
    """
    Parse an operator allow-list such as "invoice, item".

    Returns:
        The set of names, or None (meaning "all entities") when the value
        is absent or blank
    """
    if raw is None:
        return None
    wanted = frozenset(part.strip() for part in raw.split(",") if part.strip())
    return wanted or None


def select_entities(
    descriptors: Iterable[EntityDescriptor],
    only: Iterable[str] | None = None,
) -> list[EntityDescriptor]:
    """
    Restrict descriptors to an allow-list, preserving their order.

    Raises:
        ConfigurationError: If the allow-list names an unknown entity
    """
    descriptors = list(descriptors)
    if only is None:
        return descriptors

    wanted = set(only)
    unknown = wanted - {d.entity_id for d in descriptors}
    if unknown:
        known = ", ".join(entity_ids(descriptors))
        raise ConfigurationError(
            f"Unknown entities in allow-list: {', '.join(sorted(unknown))} (known: {known})"
        )
    return [d for d in descriptors if d.entity_id in wanted]
