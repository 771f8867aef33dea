"""
Selection flow state machine.

The interactive prompts behind /request-items, /request-reassignment and
/list-requests are modelled as an immutable `SelectionState` threaded through
`advance(state, event) -> (state, effects)`. The Discord layer owns the
timers and components and simply renders whatever effects come back.

    AWAITING_PROJECT
      -> AWAITING_TECHNOLOGIES  (REQUEST, LISTING)
      -> AWAITING_ITEM_NUMBER   (REASSIGNMENT, via a one-shot form)
    -> AWAITING_CONFIRMATION    (REQUEST, REASSIGNMENT)
    -> SUBMITTED | CANCELLED | TIMED_OUT

A reassignment whose item number is refused (already requested) ends in
REJECTED straight from AWAITING_ITEM_NUMBER, carrying the reason as `notice`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from reqbot.queue.models import LastSelection, dedupe


class FlowKind(str, Enum):
    REQUEST = "request-items"
    REASSIGNMENT = "request-reassignment"
    LISTING = "list-requests"


class Phase(str, Enum):
    AWAITING_PROJECT = "awaiting_project"
    AWAITING_TECHNOLOGIES = "awaiting_technologies"
    AWAITING_ITEM_NUMBER = "awaiting_item_number"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"


TERMINAL_PHASES = frozenset({Phase.SUBMITTED, Phase.CANCELLED, Phase.TIMED_OUT, Phase.REJECTED})


@dataclass(frozen=True)
class SelectionState:
    kind: FlowKind
    owner_id: int
    phase: Phase = Phase.AWAITING_PROJECT
    project: str | None = None
    technologies: tuple[str, ...] = ()
    item_number: str | None = None
    repeated: bool = False
    notice: str | None = None

    @property
    def done(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def summary(self) -> str:
        if self.kind is FlowKind.REASSIGNMENT:
            return f"Project: {self.project}\nItem Number: {self.item_number}"
        return f"Project: {self.project}\nTechnologies: {', '.join(self.technologies)}"


# ── Events ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProjectChosen:
    user_id: int
    project: str


@dataclass(frozen=True)
class TechnologiesChosen:
    user_id: int
    technologies: tuple[str, ...]


@dataclass(frozen=True)
class ItemNumberEntered:
    user_id: int
    item_number: str


@dataclass(frozen=True)
class ItemNumberRejected:
    user_id: int
    item_number: str
    reason: str


@dataclass(frozen=True)
class Confirmed:
    user_id: int


@dataclass(frozen=True)
class Cancelled:
    user_id: int


@dataclass(frozen=True)
class TimedOut:
    pass


Event = Union[
    ProjectChosen, TechnologiesChosen, ItemNumberEntered, ItemNumberRejected, Confirmed, Cancelled, TimedOut
]


# ── Effects ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ShowControls:
    phase: Phase


@dataclass(frozen=True)
class ShowItemNumberForm:
    pass


@dataclass(frozen=True)
class ShowConfirmation:
    summary: str


@dataclass(frozen=True)
class Finish:
    phase: Phase


Effect = Union[ShowControls, ShowItemNumberForm, ShowConfirmation, Finish]


def start(kind: FlowKind, owner_id: int, last: LastSelection | None = None) -> SelectionState:
    """
    Initial state for a flow.

    Passing the user's stored `last` selection skips the prompts entirely for
    the technology-based flows.
    """
    state = SelectionState(kind=kind, owner_id=owner_id)
    if last is not None and kind is not FlowKind.REASSIGNMENT and last.project and last.technologies:
        return replace(
            state,
            phase=Phase.SUBMITTED,
            project=last.project,
            technologies=tuple(last.technologies),
            repeated=True,
        )
    return state


def _after_project(state: SelectionState) -> tuple[SelectionState, list[Effect]]:
    if state.kind is FlowKind.REASSIGNMENT:
        return replace(state, phase=Phase.AWAITING_ITEM_NUMBER), [ShowItemNumberForm()]
    return replace(state, phase=Phase.AWAITING_TECHNOLOGIES), [ShowControls(Phase.AWAITING_TECHNOLOGIES)]


def advance(state: SelectionState, event: Event) -> tuple[SelectionState, list[Effect]]:
    if state.done:
        return state, []

    if isinstance(event, TimedOut):
        return replace(state, phase=Phase.TIMED_OUT), [Finish(Phase.TIMED_OUT)]

    # Inputs from anyone but the invoking user are ignored.
    if event.user_id != state.owner_id:
        return state, []

    if isinstance(event, Cancelled):
        return replace(state, phase=Phase.CANCELLED), [Finish(Phase.CANCELLED)]

    # Picking the project again while the item number form is pending reopens
    # the form (it may have been dismissed).
    if isinstance(event, ProjectChosen) and state.phase in (Phase.AWAITING_PROJECT, Phase.AWAITING_ITEM_NUMBER):
        if not event.project:
            return state, []
        return _after_project(replace(state, project=event.project))

    if isinstance(event, TechnologiesChosen) and state.phase is Phase.AWAITING_TECHNOLOGIES:
        technologies = tuple(dedupe(t for t in event.technologies if t))
        if not technologies:
            return state, []
        state = replace(state, technologies=technologies)
        if state.kind is FlowKind.LISTING:
            return replace(state, phase=Phase.SUBMITTED), [Finish(Phase.SUBMITTED)]
        return replace(state, phase=Phase.AWAITING_CONFIRMATION), [ShowConfirmation(state.summary())]

    if isinstance(event, ItemNumberEntered) and state.phase is Phase.AWAITING_ITEM_NUMBER:
        item_number = event.item_number.strip()
        if not item_number:
            return state, []
        state = replace(state, item_number=item_number, phase=Phase.AWAITING_CONFIRMATION)
        return state, [ShowConfirmation(state.summary())]

    if isinstance(event, ItemNumberRejected) and state.phase is Phase.AWAITING_ITEM_NUMBER:
        state = replace(state, item_number=event.item_number.strip(), notice=event.reason, phase=Phase.REJECTED)
        return state, [Finish(Phase.REJECTED)]

    if isinstance(event, Confirmed) and state.phase is Phase.AWAITING_CONFIRMATION:
        return replace(state, phase=Phase.SUBMITTED), [Finish(Phase.SUBMITTED)]

    return state, []
