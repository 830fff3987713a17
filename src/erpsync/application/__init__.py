"""Application layer: the sync loop, the orchestrator and status reporting."""
