from bloodbank.domain.exceptions import InvalidTransitionError
from bloodbank.domain.models import AppointmentAction, AppointmentStatus

# action -> (statuses it may be applied from, resulting status)
TRANSITIONS: dict[AppointmentAction, tuple[frozenset[AppointmentStatus], AppointmentStatus]] = {
    AppointmentAction.CONFIRM: (
        frozenset({AppointmentStatus.SCHEDULED}),
        AppointmentStatus.CONFIRMED,
    ),
    AppointmentAction.COMPLETE: (
        frozenset({AppointmentStatus.CONFIRMED}),
        AppointmentStatus.COMPLETED,
    ),
    AppointmentAction.CANCEL: (
        frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED}),
        AppointmentStatus.CANCELLED,
    ),
}

ACTIVITY_NAMES: dict[AppointmentAction, str] = {
    AppointmentAction.CONFIRM: "appointment_confirmed",
    AppointmentAction.COMPLETE: "appointment_completed",
    AppointmentAction.CANCEL: "appointment_cancelled",
}


def next_status(
    current: AppointmentStatus,
    action: AppointmentAction,
    appointment_id: int | None = None,
) -> AppointmentStatus:
    """Return the status ``action`` leads to from ``current``.

    Raises:
        InvalidTransitionError: If ``action`` is not legal from ``current``.
    """
    allowed_from, target = TRANSITIONS[action]
    if current not in allowed_from:
        raise InvalidTransitionError(action.value, current.value, appointment_id)
    return target


def allowed_actions(current: AppointmentStatus) -> list[AppointmentAction]:
    return [action for action, (allowed_from, _) in TRANSITIONS.items() if current in allowed_from]
