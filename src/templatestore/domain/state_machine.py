"""Transition table for objects held by data stores."""

from __future__ import annotations

from typing import Mapping

from ..exceptions import InvalidStateTransition
from .models import ObjectInStoreEvent as Event
from .models import ObjectInStoreState as State

TERMINAL_STATES = frozenset({State.DESTROYED})

_TRANSITIONS: dict[tuple[State, Event], State] = {
    (State.ALLOCATED, Event.CREATE_REQUESTED): State.CREATING,
    (State.ALLOCATED, Event.CREATE_ONLY_REQUESTED): State.CREATING,
    (State.ALLOCATED, Event.COPYING_REQUESTED): State.COPYING,
    (State.CREATING, Event.OPERATION_SUCCEEDED): State.READY,
    (State.CREATING, Event.OPERATION_FAILED): State.FAILED,
    (State.CREATED, Event.COPYING_REQUESTED): State.COPYING,
    (State.CREATED, Event.OPERATION_SUCCEEDED): State.READY,
    (State.READY, Event.COPYING_REQUESTED): State.COPYING,
    (State.READY, Event.MIGRATION_REQUESTED): State.MIGRATING,
    (State.COPYING, Event.OPERATION_SUCCEEDED): State.READY,
    (State.COPYING, Event.OPERATION_FAILED): State.FAILED,
    (State.MIGRATING, Event.OPERATION_SUCCEEDED): State.READY,
    (State.MIGRATING, Event.OPERATION_FAILED): State.FAILED,
    (State.FAILED, Event.CREATE_REQUESTED): State.CREATING,
    (State.DESTROYING, Event.OPERATION_SUCCEEDED): State.DESTROYED,
    (State.DESTROYING, Event.OPERATION_FAILED): State.DESTROYING,
}
for _state in State:
    if _state not in TERMINAL_STATES:
        _TRANSITIONS[(_state, Event.DESTROY_REQUESTED)] = State.DESTROYING


class ObjectInStoreStateMachine:
    """Resolve the next state for an event, rejecting undefined transitions."""

    def __init__(self, transitions: Mapping[tuple[State, Event], State] | None = None) -> None:
        self._transitions = dict(_TRANSITIONS if transitions is None else transitions)

    def next_state(self, current: State, event: Event) -> State:
        try:
            return self._transitions[(current, event)]
        except KeyError:
            raise InvalidStateTransition(
                f"event {event.value} is not allowed in state {current.value}"
            ) from None

    def possible_events(self, current: State) -> list[Event]:
        return [event for (state, event) in self._transitions if state is current]

    @staticmethod
    def is_terminal(state: State) -> bool:
        return state in TERMINAL_STATES
