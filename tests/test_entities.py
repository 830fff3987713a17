"""
Tests for entity descriptors, allow-list parsing and identifier checks.
"""

import pytest
from pydantic import ValidationError

from erpsync.domain.entities import (
    DEFAULT_ENTITIES,
    INVOICE,
    ColumnType,
    EntityDescriptor,
    ProjectedColumn,
    entity_ids,
    parse_entity_filter,
    select_entities,
)
from erpsync.domain.errors import ConfigurationError
from erpsync.infrastructure.identifiers import safe_identifier


class TestDescriptors:
    """Built-in descriptors and validation."""

    def test_fixed_order(self):
        assert entity_ids() == ["item", "invoice", "invoice_item"]

    def test_cursor_prefix_defaults_to_target_table(self):
        assert [d.cursor_key for d in DEFAULT_ENTITIES] == ["item", "sales_invoice", "sales_invoice_item"]

    def test_required_fields_include_ordering_columns(self):
        for descriptor in DEFAULT_ENTITIES:
            assert "name" in descriptor.required_fields
            assert "modified" in descriptor.required_fields

    def test_descriptors_are_immutable(self):
        with pytest.raises(ValidationError):
            INVOICE.source_table = "other"

    def test_with_source_table_copies(self):
        other = INVOICE.with_source_table("tabPOS Invoice")
        assert other.source_table == "tabPOS Invoice"
        assert INVOICE.source_table == "tabSales Invoice"
        assert other.columns == INVOICE.columns

    def test_conflict_key_must_be_projected(self):
        with pytest.raises(ValidationError):
            EntityDescriptor(
                entity_id="x",
                source_table="tabX",
                target_table="x",
                columns=(ProjectedColumn(name="modified", type=ColumnType.TIMESTAMP),),
            )

    def test_payload_column_cannot_clash(self):
        with pytest.raises(ValidationError):
            EntityDescriptor(
                entity_id="x",
                source_table="tabX",
                target_table="x",
                columns=(ProjectedColumn(name="name"), ProjectedColumn(name="raw")),
            )


class TestEntityFilter:
    """Operator allow-list."""

    def test_absent_means_all(self):
        assert parse_entity_filter(None) is None
        assert parse_entity_filter(" , ") is None

    def test_parse_trims(self):
        assert parse_entity_filter(" invoice ,item,") == frozenset({"invoice", "item"})

    def test_select_preserves_descriptor_order(self):
        selected = select_entities(DEFAULT_ENTITIES, {"invoice_item", "item"})
        assert [d.entity_id for d in selected] == ["item", "invoice_item"]

    def test_select_all(self):
        assert select_entities(DEFAULT_ENTITIES, None) == list(DEFAULT_ENTITIES)

    def test_unknown_entity_rejected(self):
        with pytest.raises(ConfigurationError, match="customer"):
            select_entities(DEFAULT_ENTITIES, {"invoice", "customer"})


class TestSafeIdentifier:
    """Configured table names."""

    @pytest.mark.parametrize("name", ["tabItem", "tabSales Invoice Item", "sales_invoice_2"])
    def test_accepts(self, name):
        assert safe_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "   ", "tab`Item", "x; DROP TABLE item", "a-b", "a" * 65])
    def test_rejects(self, name):
        with pytest.raises(ConfigurationError):
            safe_identifier(name)
