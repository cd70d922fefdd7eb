from __future__ import annotations

import pytest

from templatestore.db.models import TemplateZoneRefModel
from templatestore.exceptions import NotFoundError
from templatestore.repositories import SQLAlchemyTemplateCatalog

pytestmark = pytest.mark.unit


@pytest.fixture
def template_catalog(database) -> SQLAlchemyTemplateCatalog:
    return SQLAlchemyTemplateCatalog(database.session_factory)


def test_find_unknown_template(template_catalog) -> None:
    assert template_catalog.find(999) is None


def test_mark_cross_zone(template_catalog) -> None:
    template = template_catalog.register("debian-12")
    assert template.cross_zones is False

    template_catalog.mark_cross_zone(template.id)

    assert template_catalog.find(template.id).cross_zones is True


def test_mark_cross_zone_unknown_template(template_catalog) -> None:
    with pytest.raises(NotFoundError, match="vm_template '999' not found"):
        template_catalog.mark_cross_zone(999)


def test_zone_association_is_idempotent(template_catalog) -> None:
    template = template_catalog.register("debian-12")

    template_catalog.associate_to_zone(template.id, None)
    template_catalog.associate_to_zone(template.id, None)
    template_catalog.associate_to_zone(template.id, 4)

    assert template_catalog.list_zone_associations(template.id) == [None, 4]


def test_zone_association_refreshes_timestamp(template_catalog, database) -> None:
    template = template_catalog.register("debian-12")
    template_catalog.associate_to_zone(template.id, 4)
    with database.session_factory() as session:
        first = session.query(TemplateZoneRefModel).one().last_updated

    template_catalog.associate_to_zone(template.id, 4)

    with database.session_factory() as session:
        rows = session.query(TemplateZoneRefModel).all()
    assert len(rows) == 1
    assert rows[0].last_updated >= first
