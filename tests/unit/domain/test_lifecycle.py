import pytest

from bloodbank.domain.exceptions import InvalidTransitionError
from bloodbank.domain.lifecycle import allowed_actions, next_status
from bloodbank.domain.models import AppointmentAction, AppointmentStatus

S = AppointmentStatus
A = AppointmentAction


class TestNextStatus:
    @pytest.mark.parametrize(
        ("current", "action", "expected"),
        [
            (S.SCHEDULED, A.CONFIRM, S.CONFIRMED),
            (S.CONFIRMED, A.COMPLETE, S.COMPLETED),
            (S.SCHEDULED, A.CANCEL, S.CANCELLED),
            (S.CONFIRMED, A.CANCEL, S.CANCELLED),
        ],
        ids=["confirm", "complete", "cancel-scheduled", "cancel-confirmed"],
    )
    def test_legal_transitions(
        self, current: AppointmentStatus, action: AppointmentAction, expected: AppointmentStatus
    ) -> None:
        assert next_status(current, action) is expected

    @pytest.mark.parametrize(
        ("current", "action"),
        [
            (S.SCHEDULED, A.COMPLETE),
            (S.CONFIRMED, A.CONFIRM),
            (S.COMPLETED, A.CONFIRM),
            (S.COMPLETED, A.COMPLETE),
            (S.COMPLETED, A.CANCEL),
            (S.CANCELLED, A.CONFIRM),
            (S.CANCELLED, A.COMPLETE),
            (S.CANCELLED, A.CANCEL),
        ],
        ids=[
            "complete-unconfirmed",
            "confirm-twice",
            "confirm-completed",
            "complete-twice",
            "cancel-completed",
            "confirm-cancelled",
            "complete-cancelled",
            "cancel-twice",
        ],
    )
    def test_illegal_transitions(
        self, current: AppointmentStatus, action: AppointmentAction
    ) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_status(current, action, appointment_id=42)

        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.appointment_id == 42
        assert exc_info.value.message == (
            f"Cannot {action.value} appointment with current status: {current.value}"
        )


class TestAllowedActions:
    @pytest.mark.parametrize(
        ("current", "expected"),
        [
            (S.SCHEDULED, [A.CONFIRM, A.CANCEL]),
            (S.CONFIRMED, [A.COMPLETE, A.CANCEL]),
            (S.COMPLETED, []),
            (S.CANCELLED, []),
        ],
        ids=["scheduled", "confirmed", "completed", "cancelled"],
    )
    def test_lists_open_actions(
        self, current: AppointmentStatus, expected: list[AppointmentAction]
    ) -> None:
        assert allowed_actions(current) == expected
