"""Optimistic queue additions and removals on top of the cached queue.

Implementation notes:
- An added entry appears at once under a provisional ``pending-`` id at the
  end of the cached queue; the server record replaces it on success.
- A removal drops the cached entry at once. Positions of the remaining
  entries are left to the server, so the collection is invalidated after the
  request succeeds.
"""

from __future__ import annotations

import uuid

from watchtrail.client.cache import QUEUE, EntityCache, Record
from watchtrail.client.http import WatchtrailClient
from watchtrail.client.optimistic import OptimisticLedger, create_command, delete_command

PENDING_PREFIX = "pending-"


class QueueTracker:
    def __init__(self, client: WatchtrailClient, cache: EntityCache, ledger: OptimisticLedger | None = None) -> None:
        self.client = client
        self.cache = cache
        self.ledger = ledger or OptimisticLedger()

    def _next_position(self) -> int:
        positions = [record.get("position") or 0 for record in self.cache.all(QUEUE) if not record.get("watched")]
        return max(positions, default=0) + 1

    async def add(self, payload: Record) -> Record:
        """Queue ``payload`` optimistically; a refused request leaves the cache as it was."""
        provisional: Record = {
            **payload,
            "id": f"{PENDING_PREFIX}{uuid.uuid4().hex}",
            "position": self._next_position(),
            "watched": False,
        }
        command = create_command(self.cache, QUEUE, provisional)
        saved = await self.ledger.run(command, lambda: self.client.add_to_queue(payload))
        self.cache.remove(QUEUE, provisional["id"])
        self.cache.put(QUEUE, saved)
        return saved

    async def remove(self, item_id: str) -> None:
        item_id = str(item_id)
        command = delete_command(self.cache, QUEUE, item_id)
        await self.ledger.run(command, lambda: self.client.remove_from_queue(item_id))
        self.cache.invalidate(QUEUE)
