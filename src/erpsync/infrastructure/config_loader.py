"""
Configuration loader module.

Builds the one immutable ReplicatorConfig of a process from, in order of
increasing precedence:
- built-in defaults
- an optional JSON config file
- environment variables (a .env file is loaded by the CLI)
- explicit overrides (CLI options)
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from erpsync.domain.config import ReplicatorConfig
from erpsync.domain.entities import entity_ids
from erpsync.domain.errors import ConfigurationError
from .identifiers import safe_identifier

logger = logging.getLogger(__name__)

# Environment variable -> (section, field)
ENV_MAPPING: Dict[str, tuple] = {
    "SOURCE_URL": ("source", "url"),
    "SOURCE_DIALECT": ("source", "dialect"),
    "DB_HOST": ("source", "host"),
    "DB_PORT": ("source", "port"),
    "DB_USER": ("source", "user"),
    "DB_PASSWORD": ("source", "password"),
    "DB_NAME": ("source", "database"),
    "REPLICA_URL": ("replica", "url"),
    "REPLICA_DIALECT": ("replica", "dialect"),
    "PG_HOST": ("replica", "host"),
    "PG_PORT": ("replica", "port"),
    "PG_USER": ("replica", "user"),
    "PG_PASSWORD": ("replica", "password"),
    "PG_DB": ("replica", "database"),
    "PG_SSL": ("replica", "ssl"),
    "SYNC_BATCH_SIZE": ("sync", "batch_size"),
    "SYNC_QUERY_TIMEOUT_MS": ("sync", "query_timeout_ms"),
    "SYNC_ONLY": ("sync", "only"),
    "SYNC_ALWAYS_PROBE": ("sync", "always_probe"),
    "SYNC_STRICT_KEY_ORDER": ("sync", "strict_key_order"),
    "SYNC_VERBOSE": ("sync", "verbose"),
    "SYNC_LOG_FILE": ("sync", "log_file"),
    "ITEM_TABLE": ("source_tables", "item"),
    "SALES_INVOICE_TABLE": ("source_tables", "invoice"),
    "SALES_ITEM_TABLE": ("source_tables", "invoice_item"),
}


def _merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge `overlay` into a copy of `base`, skipping None values."""
    merged = dict(base)
    for key, value in overlay.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """
    Load and validate the replicator configuration.

    Usage:
        config = ConfigLoader(Path("erpsync.json")).load({"sync": {"batch_size": 500}})
    """

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            config_path: Optional JSON config file
            environ: Environment to read (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ

    def _load_json_file(self) -> Dict[str, Any]:
        """
        Load the JSON config file.

        Raises:
            ConfigurationError: If the file is missing or not valid JSON
        """
        if self.config_path is None:
            return {}
        if not self.config_path.exists():
            raise ConfigurationError(f"Config file not found: {self.config_path}")
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in {self.config_path} (line {e.lineno}, column {e.colno}): {e.msg}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a JSON object")
        logger.info("Loaded config file: %s", self.config_path)
        return data

    def _from_environment(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for var, (section, field) in ENV_MAPPING.items():
            value = self.environ.get(var)
            if value is None or value == "":
                continue
            data.setdefault(section, {})[field] = value
        return data

    @staticmethod
    def _check_source_tables(tables: Mapping[str, str]) -> None:
        known = set(entity_ids())
        for entity_id, table in tables.items():
            if entity_id not in known:
                raise ConfigurationError(f"source_tables names unknown entity: {entity_id!r}")
            safe_identifier(table)

    def load(self, overrides: Optional[Mapping[str, Any]] = None) -> ReplicatorConfig:
        """
        Build the configuration.

        Args:
            overrides: Nested dict of explicit settings; None values are ignored

        Raises:
            ConfigurationError: If any layer is invalid
        """
        data = self._load_json_file()
        data = _merge(data, self._from_environment())
        data = _merge(data, overrides or {})

        try:
            config = ReplicatorConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        self._check_source_tables(config.source_tables)
        logger.debug(
            "Configuration: source=%s replica=%s batch_size=%d timeout=%d ms only=%s",
            config.source.describe(),
            config.replica.describe(),
            config.sync.batch_size,
            config.sync.query_timeout_ms,
            ",".join(config.sync.only) if config.sync.only else "all",
        )
        return config
