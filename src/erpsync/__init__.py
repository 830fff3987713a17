"""
erpsync - incremental replication of ERP sales data.

Copies sales invoices, invoice line items and item master data from an
ERPNext-style MySQL database into a PostgreSQL analytics replica, resuming
from a (modified, name) watermark per entity.

Usage:
    # CLI (recommended)
    erpsync run --only invoice,invoice_item

    # Programmatic
    from erpsync.application.container import Container
    from erpsync.infrastructure.config_loader import ConfigLoader

    with Container(ConfigLoader().load()) as container:
        result = container.sync_service.run()
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
