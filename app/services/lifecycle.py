from app.core.config import settings
from app.core.errors import InvalidTransition
from app.models.appointment import TERMINAL_STATUSES, AppointmentStatus

S = AppointmentStatus

STRICT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.IN_EXAM, S.CANCELLED}),
    S.IN_EXAM: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

# Front-desk shortcut: start or complete from any open state
RELAXED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.SCHEDULED: STRICT_TRANSITIONS[S.SCHEDULED] | {S.IN_EXAM, S.COMPLETED},
    S.CONFIRMED: STRICT_TRANSITIONS[S.CONFIRMED] | {S.IN_EXAM, S.COMPLETED},
    S.CHECKED_IN: STRICT_TRANSITIONS[S.CHECKED_IN] | {S.COMPLETED},
    S.IN_EXAM: STRICT_TRANSITIONS[S.IN_EXAM],
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}


def transition_table(strict: bool | None = None) -> dict[AppointmentStatus, frozenset[AppointmentStatus]]:
    if strict is None:
        strict = settings.strict_lifecycle
    return STRICT_TRANSITIONS if strict else RELAXED_TRANSITIONS


def can_transition(current: str, target: str, strict: bool | None = None) -> bool:
    return S(target) in transition_table(strict)[S(current)]


def ensure_transition(
    current: str, target: str, appointment_id: int | None = None, strict: bool | None = None
) -> None:
    if can_transition(current, target, strict):
        return
    if S(current) in TERMINAL_STATUSES:
        message = f"Appointment is already {current}"
    else:
        message = f"Cannot move appointment from {current} to {target}"
    raise InvalidTransition(message, field="status", appointment_id=appointment_id)
