"""Opaque keyset cursors for newest-first listings."""

from __future__ import annotations

import base64
import uuid
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy import Select, and_, or_
from sqlalchemy.orm import InstrumentedAttribute


def encode_cursor(created_at: datetime, row_id: uuid.UUID) -> str:
    raw = f"{created_at.isoformat()}|{row_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, uuid.UUID]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        created_raw, id_raw = base64.urlsafe_b64decode(padded.encode()).decode().split("|", 1)
        return datetime.fromisoformat(created_raw), uuid.UUID(id_raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor") from exc


def paginate_newest_first(
    query: Select,
    created_col: InstrumentedAttribute,
    id_col: InstrumentedAttribute,
    *,
    limit: int,
    cursor: str | None,
) -> Select:
    """Order by (created, id) descending, resume after ``cursor`` and fetch one extra row."""
    if cursor:
        created_at, row_id = decode_cursor(cursor)
        query = query.where(or_(created_col < created_at, and_(created_col == created_at, id_col < row_id)))
    return query.order_by(created_col.desc(), id_col.desc()).limit(limit + 1)


def split_page(rows: list, limit: int) -> tuple[list, str | None]:
    """Trim the look-ahead row and build the next cursor from the last kept row."""
    if len(rows) <= limit:
        return rows, None
    page = rows[:limit]
    last = page[-1]
    return page, encode_cursor(last.created_at, last.id)
