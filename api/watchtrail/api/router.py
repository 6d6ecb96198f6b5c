"""API router composition for all route groups."""

from fastapi import APIRouter

from .routes import auth, library, notes, queue, releases, stats, users

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, tags=["users"])
api_router.include_router(library.router, prefix="/library", tags=["library"])
api_router.include_router(notes.router, prefix="/notes", tags=["notes"])
api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
api_router.include_router(releases.router, prefix="/releases", tags=["releases"])
