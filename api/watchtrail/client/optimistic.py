"""Optimistic commands: apply a change locally now, undo it if the server refuses."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from watchtrail.client.cache import EntityCache, Record

logger = logging.getLogger("watchtrail.client.optimistic")

T = TypeVar("T")


@dataclass(frozen=True)
class OptimisticCommand:
    forward: Callable[[], None]
    inverse: Callable[[], None]
    label: str = ""


class OptimisticLedger:
    """Pending optimistic commands keyed by a ledger token.

    Invariants:
    - ``confirm`` drops the inverse without running it.
    - ``rollback`` runs the inverse exactly once.
    """

    def __init__(self) -> None:
        self._pending: dict[int, OptimisticCommand] = {}
        self._tokens = itertools.count(1)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def apply(self, command: OptimisticCommand) -> int:
        command.forward()
        token = next(self._tokens)
        self._pending[token] = command
        return token

    def confirm(self, token: int) -> None:
        self._pending.pop(token, None)

    def rollback(self, token: int) -> None:
        command = self._pending.pop(token, None)
        if command is None:
            return
        logger.info("Rolling back optimistic change %s", command.label or token)
        command.inverse()

    async def run(self, command: OptimisticCommand, request: Callable[[], Awaitable[T]]) -> T:
        """Apply ``command``, await the server call, then confirm or roll back."""
        token = self.apply(command)
        try:
            result = await request()
        except Exception:
            self.rollback(token)
            raise
        self.confirm(token)
        return result


def update_command(cache: EntityCache, collection: str, entity_id: str, changes: dict[str, Any]) -> OptimisticCommand:
    """Merge ``changes`` into a cached record; the inverse restores the exact prior record."""
    prior = cache.get(collection, entity_id)
    if prior is None:
        raise KeyError(f"{collection}/{entity_id} is not cached")

    def forward() -> None:
        cache.put(collection, {**prior, **changes})

    return OptimisticCommand(forward, lambda: cache.put(collection, prior), label=f"update {collection}/{entity_id}")


def create_command(cache: EntityCache, collection: str, record: Record) -> OptimisticCommand:
    """Insert a provisional record; the inverse removes it."""
    return OptimisticCommand(
        lambda: cache.put(collection, record),
        lambda: cache.remove(collection, record["id"]),
        label=f"create {collection}/{record['id']}",
    )


def delete_command(cache: EntityCache, collection: str, entity_id: str) -> OptimisticCommand:
    prior = cache.get(collection, entity_id)
    if prior is None:
        raise KeyError(f"{collection}/{entity_id} is not cached")
    return OptimisticCommand(
        lambda: cache.remove(collection, entity_id),
        lambda: cache.put(collection, prior),
        label=f"delete {collection}/{entity_id}",
    )
