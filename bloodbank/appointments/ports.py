import datetime as dt
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from bloodbank.domain.models import (
    Appointment,
    AppointmentAction,
    AppointmentDetails,
    AppointmentListing,
    AppointmentRequest,
    AppointmentStatus,
    Donor,
    Hospital,
)


class AbstractAppointmentService(ABC):
    """Abstract base class for the donation appointment lifecycle."""

    @abstractmethod
    async def create_appointment(self, request: AppointmentRequest) -> AppointmentDetails:
        """Book a donation slot for a donor at a hospital.

        Args:
            request: The validated booking details.

        Returns:
            The stored appointment, with its generated ID and ``scheduled`` status.

        Raises:
            NotFoundError: If the donor or hospital is unknown, or the hospital
                is not approved and active.
            DonorIneligibleError: If the donor may not donate right now, or the
                date falls within 56 days of their last donation.
            InvalidRequestError: If the date is not strictly in the future.
            SlotTakenError: If the slot, or the donor's day, is already booked.
            StoreUnavailableError: If the store fails.
        """

    @abstractmethod
    async def update_appointment_status(
        self,
        appointment_id: int,
        action: AppointmentAction,
        *,
        actor_donor_id: int | None = None,
    ) -> AppointmentDetails:
        """Apply ``action`` (confirm, complete or cancel) to an appointment.

        Args:
            appointment_id: The appointment's unique ID.
            action: The lifecycle action to apply.
            actor_donor_id: When set, the donor performing the action; they
                must own the appointment.

        Returns:
            The updated appointment with display fields.

        Raises:
            NotFoundError: If the appointment does not exist.
            PermissionDeniedError: If ``actor_donor_id`` does not own it.
            InvalidTransitionError: If ``action`` is illegal from the current status.
            StoreUnavailableError: If the store fails.
        """

    @abstractmethod
    async def list_appointments(
        self,
        *,
        donor_id: int | None = None,
        hospital_id: int | None = None,
    ) -> AppointmentListing:
        """List a donor's or a hospital's appointments.

        Returns:
            Every appointment, plus the upcoming (active, not past) subset.

        Raises:
            InvalidRequestError: Unless exactly one filter is given.
            NotFoundError: If the donor or hospital does not exist.
            StoreUnavailableError: If the store fails.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable and responding."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by this service."""


class AppointmentUnitOfWork(Protocol):
    """Store operations available inside a single transaction."""

    async def get_donor(self, donor_id: int) -> Donor | None:
        """Fetch a donor by ID."""
        ...

    async def find_donor(self, identifier: str) -> Donor | None:
        """Fetch an active donor whose phone, email or username equals ``identifier``."""
        ...

    async def get_hospital(self, hospital_id: int) -> Hospital | None:
        """Fetch a hospital by ID."""
        ...

    async def get_appointment(self, appointment_id: int) -> AppointmentDetails | None:
        """Fetch an appointment joined with donor and hospital fields."""
        ...

    async def add_appointment(self, request: AppointmentRequest) -> int:
        """Insert a ``scheduled`` appointment and return its ID.

        Raises ``SlotTakenError`` when an active appointment already holds the
        slot or the donor's day.
        """
        ...

    async def update_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        """Set ``new`` only if the status is still ``expected``. Returns whether it did."""
        ...

    async def record_donation(self, appointment: Appointment) -> None:
        """Record a completed donation and credit the hospital's inventory."""
        ...

    async def last_donation_date(self, donor_id: int) -> dt.date | None:
        """Date of the donor's most recent recorded donation, if any."""
        ...

    async def log_activity(self, donor_id: int, action: str, details: dict[str, Any]) -> None:
        """Append an activity-log entry."""
        ...

    async def notify(self, donor_id: int, title: str, message: str) -> None:
        """Queue a notification for a donor."""
        ...

    async def list_appointments(
        self,
        *,
        donor_id: int | None = None,
        hospital_id: int | None = None,
    ) -> list[AppointmentDetails]:
        """List appointments ordered by date and time."""
        ...


class AppointmentStoreProtocol(Protocol):
    """Low-level interface to the persistence store."""

    def transaction(self) -> AbstractAsyncContextManager[AppointmentUnitOfWork]:
        """Open a transaction; commits on exit, rolls back on error."""
        ...

    async def create_schema(self) -> None:
        """Create any missing tables."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
