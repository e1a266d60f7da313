import datetime as dt
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from bloodbank.appointments.ports import AbstractAppointmentService, AppointmentStoreProtocol
from bloodbank.domain.exceptions import (
    BloodBankError,
    DonorIneligibleError,
    InvalidRequestError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreUnavailableError,
)
from bloodbank.domain.lifecycle import ACTIVITY_NAMES, next_status
from bloodbank.domain.models import (
    AppointmentAction,
    AppointmentDetails,
    AppointmentListing,
    AppointmentRequest,
)


# Minimum gap between a completed donation and the next booked one.
DONATION_INTERVAL = dt.timedelta(days=56)


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def resolve_timezone(name: str) -> dt.tzinfo:
    """Look up an IANA zone name; unknown or malformed names fall back to UTC."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown bank timezone {!r}; using UTC", name)
        return dt.timezone.utc


def _activity_details(appointment: AppointmentDetails) -> dict[str, Any]:
    return {
        "appointment_id": appointment.appointment_id,
        "hospital_id": appointment.hospital_id,
        "hospital_name": appointment.hospital_name,
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time.isoformat(),
        "blood_type": appointment.blood_type.value,
    }


class AppointmentService(AbstractAppointmentService):
    """Appointment lifecycle rules on top of an AppointmentStoreProtocol.

    Every operation runs in a single store transaction: reads, checks and
    writes commit together or not at all.
    """

    def __init__(
        self,
        store: AppointmentStoreProtocol,
        *,
        bank_timezone: str = "UTC",
        max_lead_days: int | None = None,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._tz = resolve_timezone(bank_timezone)
        self._max_lead_days = max_lead_days
        self._clock = clock

    def today(self) -> dt.date:
        return self._clock().astimezone(self._tz).date()

    def _check_booking_date(self, date: dt.date) -> None:
        today = self.today()
        if date <= today:
            raise InvalidRequestError(
                "Appointment must be scheduled for a future date (tomorrow or later)."
            )
        if self._max_lead_days and date > today + dt.timedelta(days=self._max_lead_days):
            raise InvalidRequestError(
                f"Appointments can only be scheduled up to {self._max_lead_days} days in advance."
            )

    async def create_appointment(self, request: AppointmentRequest) -> AppointmentDetails:
        """Validate the booking and store it as ``scheduled``."""
        logger.info(
            "Creating appointment request: hospital={}, date={}, time={}",
            request.hospital_id,
            request.appointment_date,
            request.appointment_time,
        )
        self._check_booking_date(request.appointment_date)

        try:
            async with self._store.transaction() as tx:
                donor = await tx.get_donor(request.donor_id)
                if donor is None or not donor.is_active:
                    raise NotFoundError("donor", request.donor_id)
                if not donor.is_eligible:
                    raise DonorIneligibleError("Donor is not currently eligible for donation")
                last_donation = await tx.last_donation_date(donor.donor_id)
                if last_donation is not None:
                    next_eligible = last_donation + DONATION_INTERVAL
                    if request.appointment_date < next_eligible:
                        raise DonorIneligibleError(
                            f"Donors must wait {DONATION_INTERVAL.days} days between donations. "
                            f"Next eligible date: {next_eligible.isoformat()}"
                        )

                hospital = await tx.get_hospital(request.hospital_id)
                if hospital is None or not hospital.accepts_appointments:
                    raise NotFoundError(
                        "hospital", request.hospital_id, "Hospital not found or not approved"
                    )

                stored = request.model_copy(
                    update={
                        "contact_person": request.contact_person or hospital.contact_person,
                        "contact_phone": request.contact_phone or hospital.contact_phone,
                    }
                )
                appointment_id = await tx.add_appointment(stored)
                appointment = await tx.get_appointment(appointment_id)
                if appointment is None:
                    raise StoreUnavailableError(
                        f"Appointment {appointment_id} vanished after insert"
                    )

                await tx.log_activity(
                    donor.donor_id, "appointment_created", _activity_details(appointment)
                )
                await tx.notify(
                    donor.donor_id,
                    "Appointment Scheduled",
                    f"Your blood donation appointment has been scheduled for "
                    f"{appointment.appointment_date} at {appointment.appointment_time} "
                    f"at {hospital.name}.",
                )
        except BloodBankError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Appointment creation failed: {exc}") from exc

        logger.info("Appointment created: id={}", appointment.appointment_id)
        return appointment

    async def update_appointment_status(
        self,
        appointment_id: int,
        action: AppointmentAction,
        *,
        actor_donor_id: int | None = None,
    ) -> AppointmentDetails:
        """Move an appointment along its lifecycle."""
        logger.info("Updating appointment: id={}, action={}", appointment_id, action.value)

        try:
            async with self._store.transaction() as tx:
                current = await tx.get_appointment(appointment_id)
                if current is None:
                    raise NotFoundError("appointment", appointment_id)
                if actor_donor_id is not None and current.donor_id != actor_donor_id:
                    raise PermissionDeniedError(
                        "You do not have permission to update this appointment"
                    )

                new_status = next_status(current.status, action, appointment_id)
                if not await tx.update_status(appointment_id, current.status, new_status):
                    # Another transaction moved it first.
                    raise InvalidTransitionError(action.value, current.status.value, appointment_id)

                if action is AppointmentAction.COMPLETE:
                    await tx.record_donation(current)
                await tx.log_activity(
                    current.donor_id, ACTIVITY_NAMES[action], _activity_details(current)
                )
                if action is AppointmentAction.CANCEL:
                    await tx.notify(
                        current.donor_id,
                        "Appointment Cancelled",
                        f"Your appointment on {current.appointment_date} at "
                        f"{current.appointment_time} has been cancelled.",
                    )

                updated = await tx.get_appointment(appointment_id)
                if updated is None:
                    raise StoreUnavailableError(
                        f"Appointment {appointment_id} vanished during update"
                    )
        except BloodBankError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Appointment update failed: {exc}") from exc

        logger.info(
            "Appointment {} moved {} -> {}",
            appointment_id,
            current.status.value,
            updated.status.value,
        )
        return updated

    async def list_appointments(
        self,
        *,
        donor_id: int | None = None,
        hospital_id: int | None = None,
    ) -> AppointmentListing:
        """Return all appointments for one donor or hospital, split out the upcoming ones."""
        if (donor_id is None) == (hospital_id is None):
            raise InvalidRequestError("Provide exactly one of 'donor_id' or 'hospital_id'.")

        try:
            async with self._store.transaction() as tx:
                if donor_id is not None:
                    if await tx.get_donor(donor_id) is None:
                        raise NotFoundError("donor", donor_id)
                elif hospital_id is not None and await tx.get_hospital(hospital_id) is None:
                    raise NotFoundError("hospital", hospital_id)
                appointments = await tx.list_appointments(
                    donor_id=donor_id, hospital_id=hospital_id
                )
        except BloodBankError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Appointment listing failed: {exc}") from exc

        today = self.today()
        upcoming = [a for a in appointments if a.is_upcoming(today)]
        logger.debug("Listed {} appointment(s), {} upcoming", len(appointments), len(upcoming))
        return AppointmentListing(all=appointments, upcoming=upcoming)

    async def health_check(self) -> bool:
        return await self._store.health_check()

    async def close(self) -> None:
        await self._store.close()
