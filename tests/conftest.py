from __future__ import annotations

import random
from dataclasses import dataclass, field

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from templatestore.db import TemplateStoreRefModel, drop_db, init_db
from templatestore.domain.models import DataStoreRole, ObjectInStoreState
from templatestore.repositories import (
    SQLAlchemyStoreTopology,
    SQLAlchemyTemplateCatalog,
    TemplateStoreRefRepository,
)
from tests.mocks.catalog import RecordingCatalog
from tests.mocks.clock import SteppingClock


@dataclass
class DatabaseFixture:
    url: str
    engine: Engine = field(init=False)
    session_factory: sessionmaker[Session] = field(init=False)

    def __post_init__(self) -> None:
        self.engine = create_engine(self.url, future=True)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        init_db(self.engine)

    def dispose(self) -> None:
        drop_db(self.engine)
        self.engine.dispose()

    def force_version(self, ref_id: int, *, state: ObjectInStoreState, updated_count: int) -> None:
        """Place a row at a given state/version without going through the repository."""
        with self.session_factory.begin() as session:
            model = session.get(TemplateStoreRefModel, ref_id)
            assert model is not None
            model.state = state
            model.updated_count = updated_count

    def raw(self, ref_id: int) -> TemplateStoreRefModel | None:
        with self.session_factory() as session:
            return session.get(TemplateStoreRefModel, ref_id)

    def count(self) -> int:
        with self.session_factory() as session:
            return session.query(TemplateStoreRefModel).count()


@pytest.fixture
def database(tmp_path) -> DatabaseFixture:
    fixture = DatabaseFixture(url=f"sqlite:///{tmp_path / 'templatestore.db'}")
    yield fixture
    fixture.dispose()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def topology(database: DatabaseFixture) -> SQLAlchemyStoreTopology:
    return SQLAlchemyStoreTopology(database.session_factory)


@pytest.fixture
def catalog(database: DatabaseFixture) -> RecordingCatalog:
    return RecordingCatalog(SQLAlchemyTemplateCatalog(database.session_factory))


@pytest.fixture
def repo(database, topology, catalog, clock) -> TemplateStoreRefRepository:
    return TemplateStoreRefRepository(
        database.session_factory,
        topology=topology,
        catalog=catalog,
        rng=random.Random(1234),
        clock=clock,
    )


@pytest.fixture
def zone_stores(topology: SQLAlchemyStoreTopology) -> dict[str, int]:
    """Two image stores and a cache in zone 1, a region-wide store, and a store in zone 2."""
    return {
        "image_a": topology.register("nfs-a", DataStoreRole.IMAGE, zone_id=1).id,
        "image_b": topology.register("nfs-b", DataStoreRole.IMAGE, zone_id=1).id,
        "cache": topology.register("staging", DataStoreRole.IMAGE_CACHE, zone_id=1).id,
        "region": topology.register("swift", DataStoreRole.IMAGE).id,
        "other_zone": topology.register("nfs-z2", DataStoreRole.IMAGE, zone_id=2).id,
    }
