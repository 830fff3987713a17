"""Interface layer: command line."""
