"""Persistence and lifecycle tracking for template-to-store associations."""

from .domain import (
    DataStoreRole,
    DownloadStatus,
    ObjectInStoreEvent,
    ObjectInStoreState,
    ObjectInStoreStateMachine,
    TemplateStoreRef,
)
from .repositories import (
    SQLAlchemyStoreTopology,
    SQLAlchemyTemplateCatalog,
    TemplateStoreRefRepository,
)

__all__ = [
    "DataStoreRole",
    "DownloadStatus",
    "ObjectInStoreEvent",
    "ObjectInStoreState",
    "ObjectInStoreStateMachine",
    "SQLAlchemyStoreTopology",
    "SQLAlchemyTemplateCatalog",
    "TemplateStoreRef",
    "TemplateStoreRefRepository",
]
