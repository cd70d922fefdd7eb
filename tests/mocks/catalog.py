"""Test double recording calls made against the template catalog."""

from __future__ import annotations

from collections import Counter

from templatestore.domain.models import TemplateInfo
from templatestore.repositories import SQLAlchemyTemplateCatalog


class RecordingCatalog:
    """Delegate to the SQLAlchemy catalog while counting mutations per template."""

    def __init__(self, inner: SQLAlchemyTemplateCatalog) -> None:
        self.inner = inner
        self.lookups: list[int] = []
        self.cross_zone_marks: Counter[int] = Counter()
        self.zone_associations: list[tuple[int, int | None]] = []

    def register(self, name: str, *, cross_zones: bool = False) -> TemplateInfo:
        return self.inner.register(name, cross_zones=cross_zones)

    def find(self, template_id: int) -> TemplateInfo | None:
        self.lookups.append(template_id)
        return self.inner.find(template_id)

    def mark_cross_zone(self, template_id: int) -> None:
        self.cross_zone_marks[template_id] += 1
        self.inner.mark_cross_zone(template_id)

    def associate_to_zone(self, template_id: int, zone_id: int | None) -> None:
        self.zone_associations.append((template_id, zone_id))
        self.inner.associate_to_zone(template_id, zone_id)
