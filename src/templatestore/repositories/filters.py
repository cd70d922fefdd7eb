"""Named predicates over ``template_store_ref``.

Every query issued against the association table is composed from the
clauses below. Unless a clause name says otherwise, soft-deleted rows
(``destroyed = true``) are excluded.
"""

from __future__ import annotations

from typing import Iterable

import sqlalchemy as sa

from ..db.models import TemplateStoreRefModel as Ref
from ..domain.models import DataStoreRole, DownloadStatus, ObjectInStoreState

Clause = sa.ColumnElement[bool]


class TemplateStoreRefClauseFactory:
    """Factory for the fixed set of association table predicates."""

    @classmethod
    def not_destroyed(cls) -> Clause:
        return Ref.destroyed.is_(False)

    @classmethod
    def by_id(cls, ref_id: int, *, include_destroyed: bool = False) -> Clause:
        if include_destroyed:
            return Ref.id == ref_id
        return sa.and_(Ref.id == ref_id, cls.not_destroyed())

    @classmethod
    def by_store(cls, store_id: int) -> Clause:
        return cls.by_store_including_destroyed(store_id, destroyed=False)

    @classmethod
    def by_store_including_destroyed(cls, store_id: int, destroyed: bool | None = None) -> Clause:
        """Match a store; ``destroyed`` pins the marker, ``None`` ignores it."""
        if destroyed is None:
            return Ref.store_id == store_id
        return sa.and_(Ref.store_id == store_id, Ref.destroyed.is_(destroyed))

    @classmethod
    def active_on_cache(cls, store_id: int) -> Clause:
        return sa.and_(Ref.store_id == store_id, cls.not_destroyed(), Ref.ref_cnt != 0)

    @classmethod
    def by_template(cls, template_id: int) -> Clause:
        return sa.and_(Ref.template_id == template_id, cls.not_destroyed())

    @classmethod
    def by_template_including_destroyed(cls, template_id: int) -> Clause:
        return Ref.template_id == template_id

    @classmethod
    def by_role(cls, role: DataStoreRole) -> Clause:
        return sa.and_(Ref.store_role == role, cls.not_destroyed())

    @classmethod
    def by_template_role(
        cls,
        template_id: int,
        role: DataStoreRole,
        state: ObjectInStoreState | None = None,
    ) -> Clause:
        conditions: list[Clause] = [
            Ref.template_id == template_id,
            Ref.store_role == role,
            cls.not_destroyed(),
        ]
        if state is not None:
            conditions.append(Ref.state == state)
        return sa.and_(*conditions)

    @classmethod
    def by_template_store(cls, template_id: int, store_id: int) -> Clause:
        return sa.and_(
            Ref.template_id == template_id,
            Ref.store_id == store_id,
            cls.not_destroyed(),
        )

    @classmethod
    def by_template_store_states(
        cls, template_id: int, store_id: int, states: Iterable[ObjectInStoreState]
    ) -> Clause:
        return sa.and_(cls.by_template_store(template_id, store_id), Ref.state.in_(list(states)))

    @classmethod
    def by_template_store_download_statuses(
        cls, template_id: int, store_id: int, statuses: Iterable[DownloadStatus]
    ) -> Clause:
        return sa.and_(
            cls.by_template_store(template_id, store_id),
            Ref.download_state.in_(list(statuses)),
        )

    @classmethod
    def state_version_match(
        cls, ref_id: int, state: ObjectInStoreState, updated_count: int
    ) -> Clause:
        """Compare-and-swap guard: the live row must still hold the observed state and version."""
        return sa.and_(
            Ref.id == ref_id,
            cls.not_destroyed(),
            Ref.state == state,
            Ref.updated_count == updated_count,
        )
