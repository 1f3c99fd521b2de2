"""Entity stores."""

from leasegate.store.base import InMemoryStore, Store

__all__ = ["InMemoryStore", "Store"]
