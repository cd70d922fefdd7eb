"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy.engine import Engine

from .models import Base


def init_db(engine: Engine) -> None:
    """Create every table known to the declarative base if it is missing."""
    Base.metadata.create_all(engine)


def drop_db(engine: Engine) -> None:
    Base.metadata.drop_all(engine)
