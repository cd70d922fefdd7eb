"""Persistence layer for template_store_ref records.

Writers never hold a lock across their read-decide-write window. State changes
go through :meth:`TemplateStoreRefRepository.update_state`, a single
conditional ``UPDATE`` guarded by the row's ``updated_count`` version token.
The statement matches at most one row, so among concurrent writers that
observed the same version exactly one succeeds. The others get ``False`` back
and decide for themselves whether to re-read and retry.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..db.models import TemplateStoreRefModel
from ..domain.models import (
    DataStoreRole,
    DownloadStatus,
    ObjectInStoreEvent,
    ObjectInStoreState,
    TemplateStoreRef,
)
from ..domain.state_machine import ObjectInStoreStateMachine
from ..exceptions import NotFoundError, ReferentialIntegrityError, handle_sqlalchemy_errors
from .filters import Clause, TemplateStoreRefClauseFactory as Clauses
from .interfaces import StoreTopology, TemplateCatalog

logger = logging.getLogger(__name__)

_ENTITY = "template_store_ref"

TRANSFER_METADATA_FIELDS = frozenset(
    {
        "download_state",
        "download_percent",
        "download_url",
        "error_string",
        "install_path",
        "size",
        "physical_size",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TemplateStoreRefRepository:
    """Query, transition and batch operations over template-store associations.

    Every public method opens its own session unless ``session`` is passed, in
    which case the work joins the caller's transaction and the caller commits.
    Row locks (``lock=True``) always require a caller session because the lock
    is released when that transaction ends.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        topology: StoreTopology,
        catalog: TemplateCatalog,
        state_machine: ObjectInStoreStateMachine | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._topology = topology
        self._catalog = catalog
        self._state_machine = state_machine or ObjectInStoreStateMachine()
        self._rng = rng or random.Random()
        self._clock = clock or _utcnow

    # Creation and point lookups -----------------------------------------

    def create(
        self,
        template_id: int,
        store_id: int,
        role: DataStoreRole,
        *,
        state: ObjectInStoreState = ObjectInStoreState.ALLOCATED,
        download_state: DownloadStatus | None = DownloadStatus.NOT_DOWNLOADED,
        download_url: str | None = None,
        install_path: str | None = None,
        size: int | None = None,
        physical_size: int | None = None,
        ref_cnt: int = 0,
        session: Session | None = None,
    ) -> TemplateStoreRef:
        if ref_cnt < 0:
            raise ValueError("ref_cnt must not be negative")
        now = self._clock()
        model = TemplateStoreRefModel(
            template_id=template_id,
            store_id=store_id,
            store_role=role,
            state=state,
            download_state=download_state,
            download_percent=0,
            download_url=download_url,
            install_path=install_path,
            size=size,
            physical_size=physical_size,
            ref_cnt=ref_cnt,
            destroyed=False,
            updated_count=0,
            created=now,
            updated=now,
        )
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_scope(session, write=True) as db:
            db.add(model)
            db.flush()
            record = self._to_domain(model)
        logger.debug(
            "template_store_ref.created",
            extra={"ref_id": record.id, "template_id": template_id, "store_id": store_id},
        )
        return record

    def find_by_id(
        self,
        ref_id: int,
        *,
        include_destroyed: bool = False,
        session: Session | None = None,
    ) -> TemplateStoreRef | None:
        return self._find_one(
            Clauses.by_id(ref_id, include_destroyed=include_destroyed), session=session
        )

    # Store scoped listings ----------------------------------------------

    def list_by_store(self, store_id: int) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_store(store_id))

    def list_destroyed(self, store_id: int) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_store_including_destroyed(store_id, destroyed=True))

    def list_active_on_cache(self, store_id: int) -> list[TemplateStoreRef]:
        """Return referenced records on ``store_id``; these must not be evicted."""
        return self._list(Clauses.active_on_cache(store_id))

    def delete_for_store(self, store_id: int) -> int:
        """Hard-delete every row of a decommissioned store."""
        removed = self._delete(Clauses.by_store_including_destroyed(store_id))
        logger.info(
            "template_store_ref.store_purged",
            extra={"store_id": store_id, "rows": removed},
        )
        return removed

    def delete_for_template(self, template_id: int) -> int:
        """Hard-delete every row of a template, soft-deleted ones included."""
        removed = self._delete(Clauses.by_template_including_destroyed(template_id))
        logger.info(
            "template_store_ref.template_purged",
            extra={"template_id": template_id, "rows": removed},
        )
        return removed

    # Template/store listings --------------------------------------------

    def list_by_template_store(self, template_id: int, store_id: int) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_template_store(template_id, store_id))

    def list_by_template_store_states(
        self, template_id: int, store_id: int, *states: ObjectInStoreState
    ) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_template_store_states(template_id, store_id, states))

    def list_by_template_store_download_statuses(
        self, template_id: int, store_id: int, *statuses: DownloadStatus
    ) -> list[TemplateStoreRef]:
        return self._list(
            Clauses.by_template_store_download_statuses(template_id, store_id, statuses)
        )

    def list_by_template(self, template_id: int) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_template(template_id))

    def list_on_cache(self, template_id: int) -> list[TemplateStoreRef]:
        return self._list(Clauses.by_template_role(template_id, DataStoreRole.IMAGE_CACHE))

    def find_by_store_template(
        self,
        store_id: int,
        template_id: int,
        *,
        lock: bool = False,
        session: Session | None = None,
    ) -> TemplateStoreRef | None:
        """Return one live record for the pair.

        With ``lock=True`` a random matching row is selected ``FOR UPDATE``
        inside the caller's ``session``.
        """
        if lock and session is None:
            raise ValueError("a row lock requires a caller-managed session")
        return self._find_one(
            Clauses.by_template_store(template_id, store_id),
            session=session,
            lock=lock,
            randomize=lock,
        )

    def find_by_template_role(
        self, template_id: int, role: DataStoreRole
    ) -> TemplateStoreRef | None:
        return self._find_one(Clauses.by_template_role(template_id, role))

    def find_ready_on_cache(self, template_id: int) -> TemplateStoreRef | None:
        return self._find_one(
            Clauses.by_template_role(
                template_id, DataStoreRole.IMAGE_CACHE, ObjectInStoreState.READY
            )
        )

    # Zone scoped resolution ---------------------------------------------

    def list_by_template_zone_download_statuses(
        self, template_id: int, zone_id: int | None, *statuses: DownloadStatus
    ) -> list[TemplateStoreRef]:
        result: list[TemplateStoreRef] = []
        for store_id in self._topology.resolve_image_stores(zone_id):
            result.extend(
                self.list_by_template_store_download_statuses(template_id, store_id, *statuses)
            )
        return result

    def find_by_template_zone_download_status(
        self, template_id: int, zone_id: int | None, *statuses: DownloadStatus
    ) -> TemplateStoreRef | None:
        """Pick a random match from the first image store that has any.

        Matches on one store are equally good mirrors; the random pick spreads
        load between them.
        """
        for store_id in self._topology.resolve_image_stores(zone_id):
            matches = self.list_by_template_store_download_statuses(
                template_id, store_id, *statuses
            )
            if matches:
                self._rng.shuffle(matches)
                return matches[0]
        return None

    def find_by_template_zone(
        self, template_id: int, zone_id: int | None, role: DataStoreRole
    ) -> TemplateStoreRef | None:
        if role is DataStoreRole.IMAGE:
            store_ids = self._topology.resolve_image_stores(zone_id)
        elif role is DataStoreRole.IMAGE_CACHE:
            store_ids = self._topology.resolve_image_cache_stores(zone_id)
        else:
            return None
        for store_id in store_ids:
            matches = self.list_by_template_store(template_id, store_id)
            if matches:
                return matches[0]
        return None

    # State transitions --------------------------------------------------

    def update_state(
        self,
        record: TemplateStoreRef,
        current_state: ObjectInStoreState,
        event: ObjectInStoreEvent,
        next_state: ObjectInStoreState,
        *,
        session: Session | None = None,
    ) -> bool:
        """Move ``record`` to ``next_state`` if nobody changed it since it was read.

        Returns ``False`` when the persisted row no longer carries
        ``current_state`` and the in-memory version. ``record`` is refreshed
        only on success.
        """
        stale_count = record.updated_count
        stale_updated = record.updated
        now = self._clock()
        values: dict[str, object] = {
            "state": next_state,
            "updated_count": stale_count + 1,
            "updated": now,
        }
        if next_state is ObjectInStoreState.DESTROYED:
            values["destroyed"] = True

        stmt = (
            sa.update(TemplateStoreRefModel)
            .where(Clauses.state_version_match(record.id, current_state, stale_count))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_scope(session, write=True) as db:
            rows = db.execute(stmt).rowcount

        if rows != 1:
            if logger.isEnabledFor(logging.DEBUG):
                self._log_stale_write(
                    record,
                    current_state=current_state,
                    event=event,
                    next_state=next_state,
                    stale_count=stale_count,
                    stale_updated=stale_updated,
                    attempted_at=now,
                    session=session,
                )
            return False

        record.state = next_state
        record.updated_count = stale_count + 1
        record.updated = now
        if next_state is ObjectInStoreState.DESTROYED:
            record.destroyed = True
        return True

    def transit(
        self,
        record: TemplateStoreRef,
        event: ObjectInStoreEvent,
        *,
        session: Session | None = None,
    ) -> bool:
        """Apply ``event`` using the transition table, then :meth:`update_state`."""
        next_state = self._state_machine.next_state(record.state, event)
        return self.update_state(record, record.state, event, next_state, session=session)

    # Passthrough metadata and reference counting ------------------------

    def update_transfer_metadata(
        self, ref_id: int, *, session: Session | None = None, **fields: object
    ) -> bool:
        unknown = set(fields) - TRANSFER_METADATA_FIELDS
        if unknown:
            raise ValueError(f"unsupported transfer metadata fields: {sorted(unknown)}")
        if not fields:
            raise ValueError("no transfer metadata fields given")
        return self._update_one(Clauses.by_id(ref_id), fields, session=session)

    def increment_ref_cnt(self, ref_id: int, *, session: Session | None = None) -> bool:
        return self._update_one(
            Clauses.by_id(ref_id),
            {"ref_cnt": TemplateStoreRefModel.ref_cnt + 1},
            session=session,
        )

    def decrement_ref_cnt(self, ref_id: int, *, session: Session | None = None) -> bool:
        """Release one reference; a count already at zero is left untouched."""
        return self._update_one(
            sa.and_(Clauses.by_id(ref_id), TemplateStoreRefModel.ref_cnt > 0),
            {"ref_cnt": TemplateStoreRefModel.ref_cnt - 1},
            session=session,
        )

    # Region store promotion ---------------------------------------------

    def duplicate_cache_records_on_region_store(self, store_id: int) -> int:
        """Copy every live cache record onto region-wide store ``store_id``.

        The copies carry no install path because the content has not been
        pushed yet, and one extra reference so the cache janitor leaves them
        alone until it is. Once the copies are committed each touched template
        is marked cross-zone in the catalog. A template the catalog does not
        know is skipped and reported through :class:`ReferentialIntegrityError`
        after the remaining templates have been processed.
        """
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_factory.begin() as db:
            sources = db.scalars(
                sa.select(TemplateStoreRefModel)
                .where(Clauses.by_role(DataStoreRole.IMAGE_CACHE))
                .order_by(TemplateStoreRefModel.id)
            ).all()
            logger.info(
                "template_store_ref.duplicate_to_region_store",
                extra={"store_id": store_id, "records": len(sources)},
            )
            now = self._clock()
            db.add_all(
                [
                    TemplateStoreRefModel(
                        template_id=source.template_id,
                        store_id=store_id,
                        store_role=DataStoreRole.IMAGE,
                        state=source.state,
                        download_percent=source.download_percent,
                        download_state=source.download_state,
                        size=source.size,
                        physical_size=source.physical_size,
                        error_string=source.error_string,
                        download_url=source.download_url,
                        install_path=None,
                        ref_cnt=source.ref_cnt + 1,
                        destroyed=False,
                        updated_count=0,
                        created=now,
                        updated=now,
                    )
                    for source in sources
                ]
            )
            created = len(sources)
            template_ids = list(dict.fromkeys(source.template_id for source in sources))

        missing: list[int] = []
        for template_id in template_ids:
            if self._catalog.find(template_id) is None:
                logger.error(
                    "template_store_ref.duplicate.template_missing",
                    extra={"template_id": template_id, "store_id": store_id},
                )
                missing.append(template_id)
                continue
            try:
                self._catalog.mark_cross_zone(template_id)
            except NotFoundError:
                logger.error(
                    "template_store_ref.duplicate.template_missing",
                    extra={"template_id": template_id, "store_id": store_id},
                )
                missing.append(template_id)
                continue
            self._catalog.associate_to_zone(template_id, None)
        if missing:
            raise ReferentialIntegrityError(missing)
        return created

    def update_store_role_to_cache(self, store_id: int) -> int:
        """Relabel every live record on ``store_id`` as image cache."""
        stmt = (
            sa.update(TemplateStoreRefModel)
            .where(Clauses.by_store(store_id))
            .values(store_role=DataStoreRole.IMAGE_CACHE)
            .execution_options(synchronize_session=False)
        )
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_factory.begin() as db:
            rows = db.execute(stmt).rowcount
        logger.info(
            "template_store_ref.store_role_to_cache",
            extra={"store_id": store_id, "rows": rows},
        )
        return rows

    # Helpers ------------------------------------------------------------

    @contextmanager
    def _session_scope(self, session: Session | None, *, write: bool = False) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        if write:
            with self._session_factory.begin() as own:
                yield own
        else:
            with self._session_factory() as own:
                yield own

    def _list(self, where: Clause) -> list[TemplateStoreRef]:
        stmt = sa.select(TemplateStoreRefModel).where(where).order_by(TemplateStoreRefModel.id)
        with self._session_scope(None) as db:
            return [self._to_domain(model) for model in db.scalars(stmt)]

    def _find_one(
        self,
        where: Clause,
        *,
        session: Session | None = None,
        lock: bool = False,
        randomize: bool = False,
    ) -> TemplateStoreRef | None:
        stmt = sa.select(TemplateStoreRefModel).where(where)
        if randomize:
            stmt = stmt.order_by(sa.func.random())
        else:
            stmt = stmt.order_by(TemplateStoreRefModel.id)
        stmt = stmt.limit(1)
        if lock:
            stmt = stmt.with_for_update()
        with self._session_scope(session) as db:
            model = db.scalars(stmt).first()
            return self._to_domain(model) if model is not None else None

    def _delete(self, where: Clause) -> int:
        stmt = (
            sa.delete(TemplateStoreRefModel)
            .where(where)
            .execution_options(synchronize_session=False)
        )
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_factory.begin() as db:
            return db.execute(stmt).rowcount

    def _update_one(
        self, where: Clause, values: dict[str, object], *, session: Session | None
    ) -> bool:
        stmt = (
            sa.update(TemplateStoreRefModel)
            .where(where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with handle_sqlalchemy_errors(entity=_ENTITY), self._session_scope(session, write=True) as db:
            return db.execute(stmt).rowcount == 1

    def _log_stale_write(
        self,
        record: TemplateStoreRef,
        *,
        current_state: ObjectInStoreState,
        event: ObjectInStoreEvent,
        next_state: ObjectInStoreState,
        stale_count: int,
        stale_updated: datetime | None,
        attempted_at: datetime,
        session: Session | None,
    ) -> None:
        try:
            persisted = self.find_by_id(record.id, include_destroyed=True, session=session)
        except SQLAlchemyError:
            logger.debug(
                "template_store_ref.stale_write.lookup_failed",
                extra={"ref_id": record.id},
                exc_info=True,
            )
            return
        if persisted is None:
            logger.debug(
                "template_store_ref.stale_write.gone",
                extra={"ref_id": record.id, "event": event.value},
            )
            return
        logger.debug(
            "template_store_ref.stale_write",
            extra={
                "ref_id": record.id,
                "event": event.value,
                "db_state": persisted.state.value,
                "db_updated_count": persisted.updated_count,
                "db_updated": persisted.updated,
                "new_state": next_state.value,
                "new_updated_count": stale_count + 1,
                "new_updated": attempted_at,
                "stale_state": current_state.value,
                "stale_updated_count": stale_count,
                "stale_updated": stale_updated,
            },
        )

    @staticmethod
    def _to_domain(model: TemplateStoreRefModel) -> TemplateStoreRef:
        return TemplateStoreRef(
            id=model.id,
            template_id=model.template_id,
            store_id=model.store_id,
            store_role=model.store_role,
            state=model.state,
            download_state=model.download_state,
            updated_count=model.updated_count,
            created=model.created,
            updated=model.updated,
            download_percent=model.download_percent,
            download_url=model.download_url,
            error_string=model.error_string,
            install_path=model.install_path,
            size=model.size,
            physical_size=model.physical_size,
            ref_cnt=model.ref_cnt,
            destroyed=model.destroyed,
        )
