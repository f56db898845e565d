"""Appointment state machine.

Every legal status change is an entry in ``TRANSITIONS``; nothing else in the
code base decides whether an edge exists.
"""

from dataclasses import dataclass
from enum import Enum

from app.core.exceptions import InvalidStateException
from app.schemas.actors import ActorRole
from app.schemas.appointments import AppointmentStatus


class AppointmentAction(str, Enum):
    """Mutations that move an appointment between statuses."""

    APPROVE = "approve"
    CANCEL = "cancel"
    COMPLETE = "complete"
    NO_SHOW = "no_show"


@dataclass(frozen=True)
class Transition:
    """One labelled edge set of the state machine."""

    action: AppointmentAction
    sources: frozenset[AppointmentStatus]
    target: AppointmentStatus
    roles: frozenset[ActorRole]


TRANSITIONS: dict[AppointmentAction, Transition] = {
    AppointmentAction.APPROVE: Transition(
        action=AppointmentAction.APPROVE,
        sources=frozenset({AppointmentStatus.PENDING}),
        target=AppointmentStatus.CONFIRMED,
        roles=frozenset({ActorRole.BARBER, ActorRole.ADMIN}),
    ),
    AppointmentAction.CANCEL: Transition(
        action=AppointmentAction.CANCEL,
        sources=frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.CANCELLED,
        roles=frozenset({ActorRole.CUSTOMER, ActorRole.BARBER, ActorRole.ADMIN}),
    ),
    AppointmentAction.COMPLETE: Transition(
        action=AppointmentAction.COMPLETE,
        sources=frozenset({AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.COMPLETED,
        roles=frozenset({ActorRole.BARBER}),
    ),
    AppointmentAction.NO_SHOW: Transition(
        action=AppointmentAction.NO_SHOW,
        sources=frozenset({AppointmentStatus.CONFIRMED}),
        target=AppointmentStatus.NO_SHOW,
        roles=frozenset({ActorRole.BARBER}),
    ),
}

# Statuses that hold a slot and count toward overlap checks
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)


def resolve_transition(
    action: AppointmentAction,
    current: AppointmentStatus,
) -> Transition:
    """
    Look up the edge for an action taken from a status.

    Args:
        action: Requested mutation
        current: Status the appointment is in now

    Returns:
        The matching transition

    Raises:
        InvalidStateException: If the action is not legal from ``current``
    """
    transition = TRANSITIONS[action]
    if current not in transition.sources:
        raise InvalidStateException(
            f"Cannot {action.value.replace('_', '-')} an appointment that is {current.value}"
        )
    return transition


def role_may_perform(action: AppointmentAction, role: ActorRole) -> bool:
    """Check whether a role appears on an action's actor list."""
    return role in TRANSITIONS[action].roles
