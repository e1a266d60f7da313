class BloodBankError(Exception):
    """Base exception for all appointment and directory errors."""

    code = "ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(BloodBankError):
    """Raised when a date, time, blood type or other field is malformed."""

    code = "VALIDATION_ERROR"


class NotFoundError(BloodBankError):
    """Raised when a donor, hospital or appointment does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: object, message: str | None = None) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity.capitalize()} not found: {identifier}")


class SlotTakenError(BloodBankError):
    """Raised when a booking collides with an active appointment."""

    code = "SLOT_TAKEN"

    @classmethod
    def for_slot(cls) -> "SlotTakenError":
        return cls("This time slot is already booked. Please choose a different time.")

    @classmethod
    def for_donor_day(cls) -> "SlotTakenError":
        return cls(
            "You already have an appointment scheduled for this date. "
            "Please choose a different date."
        )


class InvalidTransitionError(BloodBankError):
    """Raised when an action is not legal from the appointment's current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, action: str, status: str, appointment_id: int | None = None) -> None:
        self.action = action
        self.status = status
        self.appointment_id = appointment_id
        super().__init__(f"Cannot {action} appointment with current status: {status}")


class DonorIneligibleError(BloodBankError):
    """Raised when a donor is not currently eligible to donate."""

    code = "NOT_ELIGIBLE"


class PermissionDeniedError(BloodBankError):
    """Raised when a donor acts on an appointment they do not own."""

    code = "FORBIDDEN"


class StoreUnavailableError(BloodBankError):
    """Raised when the persistence store fails or is unreachable."""

    code = "STORE_ERROR"
