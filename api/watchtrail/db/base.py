"""Import all models here for Alembic autogenerate."""

from watchtrail.db.base_class import Base
from watchtrail.models import library, queue, user  # noqa: F401

__all__ = ["Base"]
