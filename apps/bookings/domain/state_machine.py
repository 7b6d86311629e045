"""
Booking Status State Machine

Pure decision component: no database access, no side effects.

Status graph:
- PENDING -> ACCEPTED, REJECTED, CANCELLED
- ACCEPTED -> IN_PROGRESS, CANCELLED
- IN_PROGRESS -> COMPLETED, CANCELLED
- REJECTED, COMPLETED, CANCELLED are terminal

Every status has a set of events that must already be in the booking's
event log. A transition is only allowed when the log proves the booking
legitimately reached its *current* status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.exceptions import InvalidTransitionError


class BookingStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    ACCEPTED = "accepted", _("Accepted")
    REJECTED = "rejected", _("Rejected")
    IN_PROGRESS = "in_progress", _("In progress")
    COMPLETED = "completed", _("Completed")
    CANCELLED = "cancelled", _("Cancelled")


class BookingEventType(models.TextChoices):
    CREATED = "created", _("Created")
    ACCEPTED = "accepted", _("Accepted")
    REJECTED = "rejected", _("Rejected")
    CHECKED_IN = "checked_in", _("Checked in")
    CHECKED_OUT = "checked_out", _("Checked out")
    COMPLETED = "completed", _("Completed")
    CANCELLED = "cancelled", _("Cancelled")
    # Audit events appended by the payment coordinator, never required
    PAYMENT_COMPLETED = "payment_completed", _("Payment completed")
    REFUNDED = "refunded", _("Refunded")


S = BookingStatus
E = BookingEventType

TRANSITIONS: dict[BookingStatus, tuple[BookingStatus, ...]] = {
    S.PENDING: (S.ACCEPTED, S.REJECTED, S.CANCELLED),
    S.ACCEPTED: (S.IN_PROGRESS, S.CANCELLED),
    S.IN_PROGRESS: (S.COMPLETED, S.CANCELLED),
    S.REJECTED: (),
    S.COMPLETED: (),
    S.CANCELLED: (),
}

# Ordered, so rejection messages list missing events in lifecycle order
REQUIRED_EVENTS: dict[BookingStatus, tuple[BookingEventType, ...]] = {
    S.PENDING: (E.CREATED,),
    S.ACCEPTED: (E.CREATED, E.ACCEPTED),
    S.REJECTED: (E.CREATED, E.REJECTED),
    S.IN_PROGRESS: (E.CREATED, E.ACCEPTED, E.CHECKED_IN),
    S.COMPLETED: (E.CREATED, E.ACCEPTED, E.CHECKED_IN, E.CHECKED_OUT, E.COMPLETED),
    S.CANCELLED: (E.CREATED, E.CANCELLED),
}

TRANSITION_EVENTS: dict[tuple[BookingStatus, BookingStatus], BookingEventType] = {
    (S.PENDING, S.ACCEPTED): E.ACCEPTED,
    (S.PENDING, S.REJECTED): E.REJECTED,
    (S.PENDING, S.CANCELLED): E.CANCELLED,
    (S.ACCEPTED, S.IN_PROGRESS): E.CHECKED_IN,
    (S.ACCEPTED, S.CANCELLED): E.CANCELLED,
    (S.IN_PROGRESS, S.COMPLETED): E.COMPLETED,
    (S.IN_PROGRESS, S.CANCELLED): E.CANCELLED,
}

TERMINAL_STATUSES = frozenset({S.REJECTED, S.COMPLETED, S.CANCELLED})

del S, E


@dataclass(frozen=True)
class TransitionCheck:
    """Outcome of a transition check; falsy when the transition is refused."""

    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


def _status(value) -> BookingStatus:
    return BookingStatus(value)


def _event_types(values: Iterable) -> set[BookingEventType]:
    return {BookingEventType(value) for value in values}


def missing_events(status, existing_events: Iterable) -> list[BookingEventType]:
    """Required events of ``status`` that are absent from the log, in lifecycle order."""
    present = _event_types(existing_events)
    return [event for event in REQUIRED_EVENTS[_status(status)] if event not in present]


def can_transition(current, target, existing_events: Iterable) -> TransitionCheck:
    """
    Decide whether ``current -> target`` is legal for the given event log.

    The edge must exist in the graph and the log must contain every event
    required by the *current* status.
    """
    current_status = _status(current)
    target_status = _status(target)

    if target_status not in TRANSITIONS[current_status]:
        return TransitionCheck(
            False, f"Cannot transition from {current_status.name} to {target_status.name}"
        )

    missing = missing_events(current_status, existing_events)
    if missing:
        names = ", ".join(event.name for event in missing)
        return TransitionCheck(False, f"Missing required events for current status: {names}")

    return TransitionCheck(True)


def required_event_for(current, target) -> BookingEventType:
    """Event type that must be appended when moving ``current -> target``."""
    current_status = _status(current)
    target_status = _status(target)
    try:
        return TRANSITION_EVENTS[(current_status, target_status)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot transition from {current_status.name} to {target_status.name}"
        ) from None


def ensure_transition(current, target, existing_events: Iterable) -> BookingEventType:
    """Validate a transition and return its event type, raising when refused."""
    check = can_transition(current, target, existing_events)
    if not check:
        raise InvalidTransitionError(check.reason or "Transition not allowed")
    return required_event_for(current, target)


def is_terminal(status) -> bool:
    return _status(status) in TERMINAL_STATUSES


def can_be_cancelled(status) -> bool:
    """
    Cheap pre-check for UI and authorization.

    Looser than the graph: a REJECTED booking passes here but has no
    CANCELLED edge, so callers must still run ``can_transition``.
    """
    return _status(status) != BookingStatus.COMPLETED


def next_statuses(status) -> list[BookingStatus]:
    return list(TRANSITIONS[_status(status)])


def status_display(status) -> str:
    return str(_status(status).label)


def event_type_display(event_type) -> str:
    return str(BookingEventType(event_type).label)
