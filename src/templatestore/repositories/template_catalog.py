"""SQLAlchemy-backed template catalog used during region store promotion."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Session, sessionmaker

from ..db.models import TemplateZoneRefModel, VMTemplateModel
from ..domain.models import TemplateInfo
from ..exceptions import ensure_found, handle_sqlalchemy_errors

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyTemplateCatalog:
    """Manage ``vm_template`` metadata and ``template_zone_ref`` rows.

    Every mutating call commits on its own so that work done for one template
    survives a failure on another.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def register(self, name: str, *, cross_zones: bool = False) -> TemplateInfo:
        model = VMTemplateModel(name=name, cross_zones=cross_zones)
        with handle_sqlalchemy_errors(entity="vm_template"), self._session_factory.begin() as session:
            session.add(model)
            session.flush()
            return self._to_domain(model)

    def find(self, template_id: int) -> TemplateInfo | None:
        with self._session_factory() as session:
            model = session.get(VMTemplateModel, template_id)
            return self._to_domain(model) if model is not None else None

    def mark_cross_zone(self, template_id: int) -> None:
        with handle_sqlalchemy_errors(entity="vm_template"), self._session_factory.begin() as session:
            model = session.get(VMTemplateModel, template_id)
            model = ensure_found(model, entity="vm_template", identifier=str(template_id))
            model.cross_zones = True

    def associate_to_zone(self, template_id: int, zone_id: int | None) -> None:
        """Record availability of a template in ``zone_id`` (``None``: every zone)."""
        zone_match = (
            TemplateZoneRefModel.zone_id.is_(None)
            if zone_id is None
            else TemplateZoneRefModel.zone_id == zone_id
        )
        with handle_sqlalchemy_errors(entity="template_zone_ref"), self._session_factory.begin() as session:
            existing = session.scalars(
                sa.select(TemplateZoneRefModel).where(
                    TemplateZoneRefModel.template_id == template_id, zone_match
                )
            ).first()
            now = _utcnow()
            if existing is not None:
                existing.last_updated = now
                return
            session.add(
                TemplateZoneRefModel(
                    template_id=template_id, zone_id=zone_id, created=now, last_updated=now
                )
            )
        logger.info(
            "template_zone_ref.associated",
            extra={"template_id": template_id, "zone_id": zone_id},
        )

    def list_zone_associations(self, template_id: int) -> list[int | None]:
        stmt = (
            sa.select(TemplateZoneRefModel.zone_id)
            .where(TemplateZoneRefModel.template_id == template_id)
            .order_by(TemplateZoneRefModel.id)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    @staticmethod
    def _to_domain(model: VMTemplateModel) -> TemplateInfo:
        return TemplateInfo(id=model.id, name=model.name, cross_zones=model.cross_zones)
