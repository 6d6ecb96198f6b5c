"""Scheduled refresh of TV show metadata from the catalog."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any

from watchtrail.core.config import settings
from watchtrail.db.session import async_session
from watchtrail.services import watched_item_service
from watchtrail.utils.datetime import utcnow

logger = logging.getLogger("watchtrail.jobs.metadata")


def refresh_metadata_job(user_id: str | None = None, only_missing: bool = False) -> dict[str, Any]:
    """Refresh show totals and season counts that are missing or stale.

    Without ``user_id`` every user's shows older than ``metadata_refresh_hours``
    are refreshed.
    """

    async def _run() -> dict[str, Any]:
        stale_before = None
        if user_id is None:
            stale_before = utcnow() - timedelta(hours=settings.metadata_refresh_hours)
        async with async_session() as session:
            result = await watched_item_service.refresh_all_details(
                session,
                uuid.UUID(user_id) if user_id else None,
                only_missing=only_missing,
                stale_before=stale_before,
            )
        return result.model_dump(mode="json")

    outcome = asyncio.run(_run())
    logger.info(
        "Metadata refresh for %s: %d updated, %d failed", user_id or "all users", outcome["updated"], outcome["failed"]
    )
    return outcome
