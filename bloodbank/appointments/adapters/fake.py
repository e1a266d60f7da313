import asyncio
import datetime as dt
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from bloodbank.domain.exceptions import SlotTakenError
from bloodbank.domain.models import (
    Appointment,
    AppointmentDetails,
    AppointmentRequest,
    AppointmentStatus,
    BloodType,
    Donor,
    Hospital,
)


class FakeAppointmentStore:
    """In-memory store honouring the AppointmentStoreProtocol contract.

    Pre-load ``donors`` and ``hospitals`` (or use ``add_donor`` and
    ``add_hospital``) to control the directory.  Set ``transaction_error``,
    ``add_error``, ``notify_error``, etc. to make the corresponding call raise.

    Transactions are serialised with a lock; a failing transaction restores
    the snapshot taken when it began, so partial writes never survive.

    After calls, inspect ``appointments``, ``donations``, ``inventory``,
    ``activity`` and ``notifications`` to verify what was written.
    """

    def __init__(self) -> None:
        self.donors: dict[int, Donor] = {}
        self.hospitals: dict[int, Hospital] = {}
        self.appointments: dict[int, Appointment] = {}
        self.donations: list[Appointment] = []
        self.inventory: dict[tuple[int, BloodType], int] = {}
        self.activity: list[tuple[int, str, dict[str, Any]]] = []
        self.notifications: list[tuple[int, str, str]] = []
        self.healthy: bool = True
        self.closed: bool = False
        self.schema_created: bool = False

        self.transaction_error: Exception | None = None
        self.add_error: Exception | None = None
        self.donation_error: Exception | None = None
        self.notify_error: Exception | None = None
        self.list_error: Exception | None = None

        self._next_id = 1
        self._lock = asyncio.Lock()

    def add_donor(self, donor: Donor) -> Donor:
        self.donors[donor.donor_id] = donor
        return donor

    def add_hospital(self, hospital: Hospital) -> Hospital:
        self.hospitals[hospital.hospital_id] = hospital
        return hospital

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["FakeAppointmentStore"]:
        if self.transaction_error:
            raise self.transaction_error
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise

    def _snapshot(self) -> tuple[Any, ...]:
        return (
            dict(self.appointments),
            list(self.donations),
            dict(self.inventory),
            list(self.activity),
            list(self.notifications),
            self._next_id,
        )

    def _restore(self, snapshot: tuple[Any, ...]) -> None:
        (
            self.appointments,
            self.donations,
            self.inventory,
            self.activity,
            self.notifications,
            self._next_id,
        ) = snapshot

    async def get_donor(self, donor_id: int) -> Donor | None:
        return self.donors.get(donor_id)

    async def find_donor(self, identifier: str) -> Donor | None:
        for donor in sorted(self.donors.values(), key=lambda d: d.donor_id):
            if donor.is_active and identifier in (donor.phone, donor.email, donor.username):
                return donor
        return None

    async def get_hospital(self, hospital_id: int) -> Hospital | None:
        return self.hospitals.get(hospital_id)

    async def get_appointment(self, appointment_id: int) -> AppointmentDetails | None:
        appointment = self.appointments.get(appointment_id)
        return self._details(appointment) if appointment else None

    async def add_appointment(self, request: AppointmentRequest) -> int:
        if self.add_error:
            raise self.add_error
        for existing in self.appointments.values():
            if not existing.is_active or existing.appointment_date != request.appointment_date:
                continue
            if (
                existing.hospital_id == request.hospital_id
                and existing.appointment_time == request.appointment_time
            ):
                raise SlotTakenError.for_slot()
            if existing.donor_id == request.donor_id:
                raise SlotTakenError.for_donor_day()

        appointment_id = self._next_id
        self._next_id += 1
        self.appointments[appointment_id] = Appointment(
            appointment_id=appointment_id,
            status=AppointmentStatus.SCHEDULED,
            created_at=dt.datetime.now(dt.timezone.utc),
            **request.model_dump(),
        )
        return appointment_id

    async def update_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        appointment = self.appointments.get(appointment_id)
        if appointment is None or appointment.status != expected:
            return False
        self.appointments[appointment_id] = appointment.model_copy(
            update={"status": new, "updated_at": dt.datetime.now(dt.timezone.utc)}
        )
        return True

    async def record_donation(self, appointment: Appointment) -> None:
        if self.donation_error:
            raise self.donation_error
        self.donations.append(appointment)
        key = (appointment.hospital_id, appointment.blood_type)
        self.inventory[key] = self.inventory.get(key, 0) + 1

    async def last_donation_date(self, donor_id: int) -> dt.date | None:
        dates = [d.appointment_date for d in self.donations if d.donor_id == donor_id]
        return max(dates, default=None)

    async def log_activity(self, donor_id: int, action: str, details: dict[str, Any]) -> None:
        self.activity.append((donor_id, action, details))

    async def notify(self, donor_id: int, title: str, message: str) -> None:
        if self.notify_error:
            raise self.notify_error
        self.notifications.append((donor_id, title, message))

    async def list_appointments(
        self,
        *,
        donor_id: int | None = None,
        hospital_id: int | None = None,
    ) -> list[AppointmentDetails]:
        if self.list_error:
            raise self.list_error
        matches = [
            a
            for a in self.appointments.values()
            if (donor_id is None or a.donor_id == donor_id)
            and (hospital_id is None or a.hospital_id == hospital_id)
        ]
        matches.sort(key=lambda a: (a.appointment_date, a.appointment_time, a.appointment_id))
        return [self._details(a) for a in matches]

    def _details(self, appointment: Appointment) -> AppointmentDetails:
        donor = self.donors.get(appointment.donor_id)
        hospital = self.hospitals.get(appointment.hospital_id)
        return AppointmentDetails(
            **appointment.model_dump(),
            donor_name=donor.full_name if donor else "",
            donor_phone=donor.phone if donor else None,
            hospital_name=hospital.name if hospital else "",
            hospital_city=hospital.city if hospital else None,
        )

    async def create_schema(self) -> None:
        self.schema_created = True

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True
