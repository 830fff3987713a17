"""
Identifier sanitization for table and column names taken from configuration.

ERPNext table names contain spaces ("tabSales Invoice Item"), so names
are validated against a conservative whitelist and then handed to
SQLAlchemy, which applies dialect-correct quoting.
"""

import re

from erpsync.domain.errors import ConfigurationError

_SAFE_IDENTIFIER = re.compile(r"^[A-Za-z0-9_ ]+$")
_MAX_LENGTH = 64


def safe_identifier(name: str) -> str:
    """
    Validate a configured table/column name.

    Args:
        name: Raw identifier from configuration

    Returns:
        The identifier, unchanged

    Raises:
        ConfigurationError: If the name is empty, too long or contains
            characters outside letters, digits, underscore and space
    """
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("Identifier must be a non-empty string")
    if len(name) > _MAX_LENGTH:
        raise ConfigurationError(f"Identifier too long ({len(name)} > {_MAX_LENGTH}): {name!r}")
    if not _SAFE_IDENTIFIER.match(name):
        raise ConfigurationError(f"Unsafe identifier: {name!r}")
    return name
