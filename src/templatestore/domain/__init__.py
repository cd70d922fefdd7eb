"""Domain types for template store associations."""

from .models import (
    DataStoreRole,
    DownloadStatus,
    ImageStore,
    ObjectInStoreEvent,
    ObjectInStoreState,
    TemplateInfo,
    TemplateStoreRef,
)
from .state_machine import ObjectInStoreStateMachine

__all__ = [
    "DataStoreRole",
    "DownloadStatus",
    "ImageStore",
    "ObjectInStoreEvent",
    "ObjectInStoreState",
    "ObjectInStoreStateMachine",
    "TemplateInfo",
    "TemplateStoreRef",
]
