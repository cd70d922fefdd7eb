"""Collaborator interfaces consumed by the template store repository."""

from __future__ import annotations

from typing import Protocol

from ..domain.models import TemplateInfo


class StoreTopology(Protocol):
    """Resolves a zone scope to the stores eligible to serve it."""

    def resolve_image_stores(self, zone_id: int | None) -> list[int]:
        """Return ids of image stores visible from ``zone_id``, in preference order."""

    def resolve_image_cache_stores(self, zone_id: int | None) -> list[int]:
        """Return ids of cache stores inside ``zone_id``, in preference order."""


class TemplateCatalog(Protocol):
    """Owner of template metadata and zone availability bookkeeping."""

    def find(self, template_id: int) -> TemplateInfo | None:
        """Return catalog metadata for ``template_id`` or ``None`` when unknown."""

    def mark_cross_zone(self, template_id: int) -> None:
        """Flag the template as available across zones; raise ``NotFoundError`` if it is gone."""

    def associate_to_zone(self, template_id: int, zone_id: int | None) -> None:
        """Register zone availability; ``None`` registers the all-zones marker."""
