"""SQLAlchemy-backed resolution of zone scopes to image stores."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Session, sessionmaker

from ..db.models import ImageStoreModel
from ..domain.models import DataStoreRole, ImageStore


class SQLAlchemyStoreTopology:
    """Resolve eligible stores from the ``image_store`` table.

    Image stores with a NULL ``zone_id`` are region-wide and visible from every
    zone. Cache stores always belong to exactly one zone.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def register(
        self, name: str, role: DataStoreRole, *, zone_id: int | None = None
    ) -> ImageStore:
        model = ImageStoreModel(name=name, role=role, zone_id=zone_id)
        with self._session_factory.begin() as session:
            session.add(model)
            session.flush()
            return ImageStore(id=model.id, name=model.name, role=model.role, zone_id=model.zone_id)

    def resolve_image_stores(self, zone_id: int | None) -> list[int]:
        conditions = [ImageStoreModel.role == DataStoreRole.IMAGE]
        if zone_id is not None:
            conditions.append(
                sa.or_(ImageStoreModel.zone_id == zone_id, ImageStoreModel.zone_id.is_(None))
            )
        return self._resolve(conditions)

    def resolve_image_cache_stores(self, zone_id: int | None) -> list[int]:
        conditions = [ImageStoreModel.role == DataStoreRole.IMAGE_CACHE]
        if zone_id is not None:
            conditions.append(ImageStoreModel.zone_id == zone_id)
        return self._resolve(conditions)

    def _resolve(self, conditions: list[sa.ColumnElement[bool]]) -> list[int]:
        stmt = sa.select(ImageStoreModel.id).where(*conditions).order_by(ImageStoreModel.id)
        with self._session_factory() as session:
            return list(session.scalars(stmt))
