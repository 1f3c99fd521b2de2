"""Keyed entity stores.

All mutations of a store are serialized by the store itself. Reads and
writes exchange copies, so an entity held by a caller can never be changed
behind the store's back; read-modify-write sequences go through ``update``
which runs the mutation under the store lock.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Store(ABC, Generic[K, V]):
    """Persistence interface the engine depends on."""

    @abstractmethod
    async def get(self, key: K) -> Optional[V]:
        """Return a copy of the entity, or None."""

    @abstractmethod
    async def put(self, key: K, value: V) -> V:
        """Insert or replace an entity."""

    @abstractmethod
    async def update(self, key: K, mutate: Callable[[V], V | None]) -> Optional[V]:
        """
        Atomically apply ``mutate`` to the stored entity.

        ``mutate`` receives a working copy and returns the new value (or None
        to keep the mutated copy). Exceptions raised by ``mutate`` abort the
        update and propagate. Returns None when the key is absent.
        """

    @abstractmethod
    async def create(self, factory: Callable[[int], V], key_of: Callable[[V], K]) -> V:
        """Allocate the next integer id, build the entity from it and store it."""

    @abstractmethod
    async def values(self, predicate: Callable[[V], bool] | None = None) -> list[V]:
        """Return copies of all entities (optionally filtered) in insertion order."""


class InMemoryStore(Store[K, V]):
    """Process-local store; contents are lost on restart."""

    def __init__(self, name: str = "store"):
        self.name = name
        self._items: dict[K, V] = {}
        self._counter = 0
        self._lock = asyncio.Lock()

    async def get(self, key: K) -> Optional[V]:
        async with self._lock:
            item = self._items.get(key)
            return copy.deepcopy(item) if item is not None else None

    async def put(self, key: K, value: V) -> V:
        async with self._lock:
            self._items[key] = copy.deepcopy(value)
            return value

    async def update(self, key: K, mutate: Callable[[V], V | None]) -> Optional[V]:
        async with self._lock:
            current = self._items.get(key)
            if current is None:
                return None
            working = copy.deepcopy(current)
            result = mutate(working)
            updated = working if result is None else result
            self._items[key] = copy.deepcopy(updated)
            return updated

    async def create(self, factory: Callable[[int], V], key_of: Callable[[V], K]) -> V:
        async with self._lock:
            self._counter += 1
            value = factory(self._counter)
            self._items[key_of(value)] = copy.deepcopy(value)
            return value

    async def values(self, predicate: Callable[[V], bool] | None = None) -> list[V]:
        async with self._lock:
            return [
                copy.deepcopy(item)
                for item in self._items.values()
                if predicate is None or predicate(item)
            ]

    def __len__(self) -> int:
        return len(self._items)
