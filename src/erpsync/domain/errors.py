"""
Error taxonomy for the replication engine.

Every failure raised by erpsync derives from ErpSyncError so the CLI can
map it to an exit code. Connectivity and timeout problems are never
retried inside the engine: the whole process is re-run and idempotent
writes make that safe.
"""

from __future__ import annotations


class ErpSyncError(Exception):
    """Base class for all erpsync failures."""


class ConfigurationError(ErpSyncError):
    """Invalid settings, unknown entity names, unsafe identifiers."""


# ============================================================================
# Connectivity
# ============================================================================

class ConnectivityError(ErpSyncError):
    """A store could not be reached or a query did not complete."""


class SourceUnavailableError(ConnectivityError):
    """The transactional source store is unreachable."""


class ReplicaUnavailableError(ConnectivityError):
    """The analytical replica store is unreachable."""


class FetchTimeoutError(ConnectivityError):
    """A change fetch exceeded the configured query deadline."""

    def __init__(self, entity: str, timeout_ms: int, elapsed_ms: float | None = None):
        self.entity = entity
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        detail = f"fetch for '{entity}' exceeded {timeout_ms} ms"
        if elapsed_ms is not None:
            detail += f" (took {elapsed_ms:.0f} ms)"
        super().__init__(detail)


# ============================================================================
# Replica writes
# ============================================================================

class SchemaProvisioningError(ErpSyncError):
    """Replica tables, indexes or the cursor table could not be created."""


class BatchWriteError(ErpSyncError):
    """A batch could not be written; nothing from it was applied."""

    def __init__(self, entity: str, message: str):
        self.entity = entity
        super().__init__(f"[{entity}] {message}")


class MalformedRowError(BatchWriteError):
    """A row is missing a required projected field."""

    def __init__(self, entity: str, row_name: object, field: str):
        self.row_name = row_name
        self.field = field
        super().__init__(entity, f"row {row_name!r} has no value for required field '{field}'")


class CursorStoreError(ErpSyncError):
    """Replication progress could not be read or saved."""


class CursorRegressionError(ErpSyncError):
    """A batch would move the watermark backwards or leave it in place."""


class EntitySyncError(ErpSyncError):
    """An entity loop failed; raised by the orchestrator to abort the run."""

    def __init__(self, entity: str, cause: BaseException, run_result=None):
        self.entity = entity
        self.cause = cause
        self.run_result = run_result
        super().__init__(f"sync of '{entity}' failed: {cause}")
