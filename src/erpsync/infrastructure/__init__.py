"""Infrastructure layer: database engines, replica and source adapters, config and logging."""
