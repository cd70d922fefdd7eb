"""Repositories for template store associations and their collaborators."""

from .filters import TemplateStoreRefClauseFactory
from .interfaces import StoreTopology, TemplateCatalog
from .store_topology import SQLAlchemyStoreTopology
from .template_catalog import SQLAlchemyTemplateCatalog
from .template_store_ref_repository import TemplateStoreRefRepository

__all__ = [
    "SQLAlchemyStoreTopology",
    "SQLAlchemyTemplateCatalog",
    "StoreTopology",
    "TemplateCatalog",
    "TemplateStoreRefClauseFactory",
    "TemplateStoreRefRepository",
]
