"""Database models and utilities for template store bookkeeping."""

from .db_init import drop_db, init_db
from .models import (
    Base,
    ImageStoreModel,
    TemplateStoreRefModel,
    TemplateZoneRefModel,
    VMTemplateModel,
)

__all__ = [
    "Base",
    "ImageStoreModel",
    "TemplateStoreRefModel",
    "TemplateZoneRefModel",
    "VMTemplateModel",
    "drop_db",
    "init_db",
]
