"""Source-side adapters: change fetcher and payload serialization."""

from .fetcher import ChangeFetcher
from .payload import to_payload

__all__ = ["ChangeFetcher", "to_payload"]
