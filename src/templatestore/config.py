"""Application configuration for the template store layer.

Settings are read from ``TEMPLATESTORE_*`` environment variables. SQLite is the
default so that tooling works out of the box; production deployments point
``TEMPLATESTORE_DATABASE_URL`` at PostgreSQL.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


class Settings(BaseSettings):
    """Pydantic settings container for the persistence layer."""

    model_config = SettingsConfigDict(env_prefix="TEMPLATESTORE_")

    database_url: str = Field(
        default="sqlite:///templatestore.db",
        description="SQLAlchemy URL of the database holding template_store_ref.",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo emitted SQL through the sqlalchemy.engine logger.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level; DEBUG also enables stale-write diagnostics.",
    )
    log_json: bool = Field(
        default=True,
        description="Render structlog events as JSON instead of console output.",
    )


@dataclass(slots=True)
class AppConfig:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def load_config(settings: Settings | None = None) -> AppConfig:
    """Build engine and session factory from settings and ensure the schema exists."""
    settings = settings or Settings()
    engine = create_engine(settings.database_url, echo=settings.database_echo, future=True)
    session_factory = build_session_factory(engine)

    init_db(engine)

    return AppConfig(settings=settings, engine=engine, session_factory=session_factory)
