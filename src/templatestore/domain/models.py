"""Domain models for template-to-store associations.

The dataclasses here are detached snapshots of persisted rows. Repositories
build them from ORM instances and hand them to callers; mutations always go
back through repository operations so the version token in
``TemplateStoreRef.updated_count`` stays authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DataStoreRole(str, Enum):
    """Purpose of a store inside the storage hierarchy."""

    PRIMARY = "Primary"
    IMAGE = "Image"
    IMAGE_CACHE = "ImageCache"
    BACKUP = "Backup"


class ObjectInStoreState(str, Enum):
    """Lifecycle states of an object held by a data store.

    ``Allocated`` is the state of a freshly associated record. ``Ready`` is
    the terminal success state and ``Destroyed`` the terminal teardown state;
    reaching ``Destroyed`` also flips the ``destroyed`` soft-delete marker.
    """

    ALLOCATED = "Allocated"
    CREATING = "Creating"
    CREATED = "Created"
    READY = "Ready"
    COPYING = "Copying"
    MIGRATING = "Migrating"
    DESTROYING = "Destroying"
    DESTROYED = "Destroyed"
    FAILED = "Failed"


class ObjectInStoreEvent(str, Enum):
    """Events driving :class:`ObjectInStoreState` transitions."""

    CREATE_REQUESTED = "CreateRequested"
    CREATE_ONLY_REQUESTED = "CreateOnlyRequested"
    COPYING_REQUESTED = "CopyingRequested"
    MIGRATION_REQUESTED = "MigrationRequested"
    OPERATION_SUCCEEDED = "OperationSucceeded"
    OPERATION_FAILED = "OperationFailed"
    DESTROY_REQUESTED = "DestroyRequested"


class DownloadStatus(str, Enum):
    """Transfer status reported by the download/upload pipeline."""

    UNKNOWN = "UNKNOWN"
    NOT_DOWNLOADED = "NOT_DOWNLOADED"
    DOWNLOAD_IN_PROGRESS = "DOWNLOAD_IN_PROGRESS"
    DOWNLOADED = "DOWNLOADED"
    DOWNLOAD_ERROR = "DOWNLOAD_ERROR"
    ABANDONED = "ABANDONED"
    UPLOAD_IN_PROGRESS = "UPLOAD_IN_PROGRESS"
    UPLOADED = "UPLOADED"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    BYPASSED = "BYPASSED"


@dataclass(slots=True)
class TemplateStoreRef:
    """One template bound to one store, with its synchronisation status."""

    id: int
    template_id: int
    store_id: int
    store_role: DataStoreRole
    state: ObjectInStoreState
    download_state: DownloadStatus | None
    updated_count: int
    created: datetime
    updated: datetime | None = None
    download_percent: int = 0
    download_url: str | None = None
    error_string: str | None = None
    install_path: str | None = None
    size: int | None = None
    physical_size: int | None = None
    ref_cnt: int = 0
    destroyed: bool = False


@dataclass(slots=True)
class TemplateInfo:
    """Catalog view of a template, as far as this layer needs it."""

    id: int
    name: str
    cross_zones: bool


@dataclass(slots=True)
class ImageStore:
    """A secondary storage location; ``zone_id`` of ``None`` means region-wide."""

    id: int
    name: str
    role: DataStoreRole
    zone_id: int | None = None
