"""Replica-side adapters: schema, cursor store and batch upserter."""

from .cursor_store import CursorStore
from .schema import ReplicaSchema, build_schema, provision_schema
from .upserter import BatchUpserter

__all__ = ["BatchUpserter", "CursorStore", "ReplicaSchema", "build_schema", "provision_schema"]
