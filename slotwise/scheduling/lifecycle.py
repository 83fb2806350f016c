"""Booking status state machine.

::

    pending ──confirm──> confirmed ──check_in──> in_progress ──check_out──> completed
       │                    │                        │
       ├──── cancel ────────┴────────────────────────┴──> cancelled
       ├──── no_show ───────┘ (pending|confirmed)  ──> no_show
       └──── reschedule (any non-terminal) ──> rescheduled  (+ new pending record)

``completed``, ``cancelled`` and ``no_show`` are terminal; ``rescheduled``
marks a superseded record and is closed as well.
"""

import enum

from slotwise.exceptions import InvalidTransitionError
from slotwise.models.booking import ACTIVE_STATUSES, BookingStatus


class Action(str, enum.Enum):
    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
    RESCHEDULE = "reschedule"


# action -> (allowed source statuses, target status)
TRANSITIONS: dict[Action, tuple[frozenset[str], str]] = {
    Action.CONFIRM: (frozenset({BookingStatus.PENDING.value}), BookingStatus.CONFIRMED.value),
    Action.CHECK_IN: (frozenset({BookingStatus.CONFIRMED.value}), BookingStatus.IN_PROGRESS.value),
    Action.CHECK_OUT: (frozenset({BookingStatus.IN_PROGRESS.value}), BookingStatus.COMPLETED.value),
    Action.CANCEL: (ACTIVE_STATUSES, BookingStatus.CANCELLED.value),
    Action.NO_SHOW: (
        frozenset({BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}),
        BookingStatus.NO_SHOW.value,
    ),
    Action.RESCHEDULE: (ACTIVE_STATUSES, BookingStatus.RESCHEDULED.value),
}


def next_status(current: str, action: Action) -> str:
    """Return the status ``action`` leads to from ``current``.

    Raises:
        InvalidTransitionError: If ``action`` is not legal from ``current``.
    """
    sources, target = TRANSITIONS[action]
    if current not in sources:
        raise InvalidTransitionError(current, action.value)
    return target


def can_transition(current: str, action: Action) -> bool:
    return current in TRANSITIONS[action][0]


def is_closed(status: str) -> bool:
    """True once no further transition is possible."""
    return status not in ACTIVE_STATUSES
