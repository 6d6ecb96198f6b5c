"""Non-authoritative cache of API records grouped into named collections.

Invariants:
- A collection that was never loaded or has been invalidated is stale, and
  the next ``read`` reloads it from the server.
- Records are stored as copies, so callers cannot mutate cached state.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

Record = dict[str, Any]

LIBRARY = "library"
QUEUE = "queue"
NOTES = "notes"


@dataclass
class _Collection:
    records: dict[str, Record] = field(default_factory=dict)
    stale: bool = True


class EntityCache:
    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}

    def _collection(self, name: str) -> _Collection:
        return self._collections.setdefault(name, _Collection())

    def get(self, collection: str, entity_id: str) -> Record | None:
        record = self._collection(collection).records.get(str(entity_id))
        return copy.deepcopy(record) if record is not None else None

    def all(self, collection: str) -> list[Record]:
        return [copy.deepcopy(record) for record in self._collection(collection).records.values()]

    def put(self, collection: str, record: Record) -> None:
        self._collection(collection).records[str(record["id"])] = copy.deepcopy(record)

    def replace_all(self, collection: str, records: list[Record]) -> None:
        """Swap in a freshly loaded collection and mark it fresh."""
        target = self._collection(collection)
        target.records = {str(record["id"]): copy.deepcopy(record) for record in records}
        target.stale = False

    def remove(self, collection: str, entity_id: str) -> Record | None:
        return self._collection(collection).records.pop(str(entity_id), None)

    def invalidate(self, collection: str) -> None:
        self._collection(collection).stale = True

    def is_stale(self, collection: str) -> bool:
        return self._collection(collection).stale

    async def read(self, collection: str, loader: Callable[[], Awaitable[list[Record]]]) -> list[Record]:
        """Return the collection, reloading it first when stale."""
        if self.is_stale(collection):
            self.replace_all(collection, await loader())
        return self.all(collection)
