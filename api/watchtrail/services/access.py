"""Ownership checks shared by single-row and bulk operations."""

from __future__ import annotations

import uuid
from typing import Iterable, Sequence, TypeVar

from fastapi import HTTPException, status

Row = TypeVar("Row")


def unique_ids(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


def ensure_owned(row: Row | None, user_id: uuid.UUID, *, noun: str) -> Row:
    """404 when the row is missing, 403 when it belongs to someone else."""
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{noun} not found")
    if row.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{noun} belongs to another user")
    return row


def ensure_all_owned(rows: Sequence[Row], ids: Sequence[uuid.UUID], user_id: uuid.UUID, *, noun: str) -> list[Row]:
    """Check a whole batch before anything is written.

    Every requested id must exist (404 otherwise) and every row must belong to
    the caller (403 otherwise). Rows come back in request order.
    """
    by_id = {row.id: row for row in rows}
    missing = [str(item_id) for item_id in ids if item_id not in by_id]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"{noun} not found: {', '.join(missing)}"
        )
    if any(row.user_id != user_id for row in by_id.values()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{noun} belongs to another user")
    return [by_id[item_id] for item_id in ids]
