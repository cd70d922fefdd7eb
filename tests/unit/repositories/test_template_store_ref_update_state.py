"""Compare-and-swap behaviour of TemplateStoreRefRepository.update_state."""

from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from templatestore.domain.models import (
    DataStoreRole,
    ObjectInStoreEvent as Event,
    ObjectInStoreState as State,
)
from templatestore.exceptions import InvalidStateTransition

pytestmark = pytest.mark.unit


def test_successful_transition_bumps_version_and_timestamp(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    before = database.raw(ref.id)

    assert repo.update_state(ref, State.ALLOCATED, Event.CREATE_REQUESTED, State.CREATING)

    after = database.raw(ref.id)
    assert after.state is State.CREATING
    assert after.updated_count == before.updated_count + 1
    assert after.updated > before.updated
    assert ref.state is State.CREATING
    assert ref.updated_count == 1


def test_every_success_adds_exactly_one(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)

    assert repo.transit(ref, Event.CREATE_REQUESTED)
    assert repo.transit(ref, Event.OPERATION_SUCCEEDED)
    assert repo.transit(ref, Event.COPYING_REQUESTED)

    assert database.raw(ref.id).updated_count == 3
    assert database.raw(ref.id).state is State.COPYING


def test_stale_version_loses_and_keeps_winner(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    stale = replace(ref)

    assert repo.update_state(ref, State.ALLOCATED, Event.CREATE_REQUESTED, State.CREATING)
    assert not repo.update_state(stale, State.ALLOCATED, Event.DESTROY_REQUESTED, State.DESTROYING)

    persisted = database.raw(ref.id)
    assert persisted.updated_count == 1
    assert persisted.state is State.CREATING
    assert stale.updated_count == 0
    assert stale.state is State.ALLOCATED


def test_mismatched_current_state_is_rejected(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)

    assert not repo.update_state(ref, State.READY, Event.COPYING_REQUESTED, State.COPYING)
    assert database.raw(ref.id).updated_count == 0


def test_racing_ready_and_failed_exactly_one_wins(repo, database) -> None:
    """Template 7 on store 3 is Creating at version 4; two callers race."""
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    database.force_version(ref.id, state=State.CREATING, updated_count=4)
    first = repo.find_by_store_template(3, 7)
    second = repo.find_by_store_template(3, 7)
    assert first.updated_count == second.updated_count == 4

    ready = repo.update_state(first, State.CREATING, Event.OPERATION_SUCCEEDED, State.READY)
    failed = repo.update_state(second, State.CREATING, Event.OPERATION_FAILED, State.FAILED)

    assert (ready, failed) == (True, False)
    persisted = database.raw(ref.id)
    assert persisted.updated_count == 5
    assert persisted.state is State.READY


def test_loser_can_reread_and_retry(repo) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    stale = replace(ref)
    assert repo.transit(ref, Event.CREATE_REQUESTED)

    assert not repo.transit(stale, Event.CREATE_REQUESTED)
    fresh = repo.find_by_id(stale.id)
    assert repo.transit(fresh, Event.OPERATION_FAILED)
    assert fresh.state is State.FAILED
    assert fresh.updated_count == 2


def test_destroyed_target_sets_marker_atomically(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE_CACHE, state=State.READY)

    assert repo.transit(ref, Event.DESTROY_REQUESTED)
    assert not database.raw(ref.id).destroyed
    assert repo.transit(ref, Event.OPERATION_SUCCEEDED)

    persisted = database.raw(ref.id)
    assert persisted.state is State.DESTROYED
    assert persisted.destroyed is True
    assert ref.destroyed is True
    assert repo.find_by_id(ref.id) is None
    assert repo.find_by_id(ref.id, include_destroyed=True).state is State.DESTROYED


def test_transit_rejects_undefined_event(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE, state=State.READY)

    with pytest.raises(InvalidStateTransition):
        repo.transit(ref, Event.CREATE_REQUESTED)
    assert database.raw(ref.id).updated_count == 0


def test_stale_write_diagnostics_are_logged(repo, caplog) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    stale = replace(ref)
    assert repo.transit(ref, Event.CREATE_REQUESTED)

    with caplog.at_level(logging.DEBUG, logger="templatestore.repositories.template_store_ref_repository"):
        assert not repo.update_state(stale, State.ALLOCATED, Event.CREATE_REQUESTED, State.CREATING)

    records = [r for r in caplog.records if r.getMessage() == "template_store_ref.stale_write"]
    assert len(records) == 1
    record = records[0]
    assert record.db_state == "Creating"
    assert record.db_updated_count == 1
    assert record.stale_updated_count == 0
    assert record.new_updated_count == 1
    assert record.event == "CreateRequested"


def test_stale_write_for_vanished_row(repo, database, caplog) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)
    repo.delete_for_template(7)

    with caplog.at_level(logging.DEBUG, logger="templatestore.repositories.template_store_ref_repository"):
        assert not repo.transit(ref, Event.CREATE_REQUESTED)

    assert any(r.getMessage() == "template_store_ref.stale_write.gone" for r in caplog.records)


def test_update_within_caller_session_commits_with_caller(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)

    with database.session_factory.begin() as session:
        locked = repo.find_by_store_template(3, 7, lock=True, session=session)
        assert locked.id == ref.id
        assert repo.transit(locked, Event.CREATE_REQUESTED, session=session)

    assert database.raw(ref.id).state is State.CREATING


def test_update_within_rolled_back_session_is_discarded(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE)

    with database.session_factory() as session:
        session.begin()
        assert repo.transit(ref, Event.CREATE_REQUESTED, session=session)
        session.rollback()

    persisted = database.raw(ref.id)
    assert persisted.state is State.ALLOCATED
    assert persisted.updated_count == 0


def test_destroyed_row_refuses_further_writes(repo, database) -> None:
    ref = repo.create(7, 3, DataStoreRole.IMAGE, state=State.READY)
    assert repo.transit(ref, Event.DESTROY_REQUESTED)
    assert repo.transit(ref, Event.OPERATION_SUCCEEDED)

    assert not repo.update_state(ref, State.DESTROYED, Event.CREATE_REQUESTED, State.READY)

    persisted = database.raw(ref.id)
    assert persisted.state is State.DESTROYED
    assert persisted.destroyed is True
    assert persisted.updated_count == 2
    assert ref.state is State.DESTROYED
