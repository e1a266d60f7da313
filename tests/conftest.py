import datetime as dt
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from bloodbank.appointments.adapters.fake import FakeAppointmentStore
from bloodbank.appointments.adapters.sqlalchemy import SqlAlchemyAppointmentStore
from bloodbank.appointments.adapters.tables import DonorRow, HospitalRow
from bloodbank.appointments.directory import DirectoryLookup
from bloodbank.appointments.service import AppointmentService
from bloodbank.domain.models import AppointmentRequest, BloodType, Donor, Hospital

# Every test runs at 09:00 UTC on this day.
TODAY = dt.date(2026, 10, 19)
NOW = dt.datetime(2026, 10, 19, 9, 0, tzinfo=dt.timezone.utc)

# Directory shared by the in-memory and SQLite fixtures:
#   donor 1 (Asha, eligible), donor 2 (Ben, eligible), donor 3 (Chen, ineligible)
#   hospital 10 (approved), hospital 11 (awaiting approval)
DONORS = [
    Donor(
        donor_id=1,
        username="asha",
        full_name="Asha Rao",
        email="asha@example.org",
        phone="5550101",
        blood_type=BloodType.O_POS,
    ),
    Donor(
        donor_id=2,
        username="ben",
        full_name="Ben Okafor",
        email="ben@example.org",
        phone="5550102",
        blood_type=BloodType.A_NEG,
    ),
    Donor(
        donor_id=3,
        username="chen",
        full_name="Chen Li",
        phone="5550103",
        blood_type=BloodType.B_POS,
        is_eligible=False,
    ),
]
HOSPITALS = [
    Hospital(
        hospital_id=10,
        name="City General",
        city="Pune",
        contact_person="Dr. Mehta",
        contact_phone="5559000",
        is_approved=True,
    ),
    Hospital(hospital_id=11, name="Riverside Clinic", city="Pune", is_approved=False),
]


@pytest.fixture
def today() -> dt.date:
    return TODAY


@pytest.fixture
def make_request() -> Callable[..., AppointmentRequest]:
    """Build a valid booking five days out; override any field."""

    def _make(**overrides: Any) -> AppointmentRequest:
        fields: dict[str, Any] = {
            "donor_id": 1,
            "hospital_id": 10,
            "appointment_date": TODAY + dt.timedelta(days=5),
            "appointment_time": "13:15:00",
            "blood_type": "O+",
        }
        fields.update(overrides)
        return AppointmentRequest.model_validate(fields)

    return _make


@pytest.fixture
def fake_store() -> FakeAppointmentStore:
    store = FakeAppointmentStore()
    for donor in DONORS:
        store.add_donor(donor)
    for hospital in HOSPITALS:
        store.add_hospital(hospital)
    return store


@pytest.fixture
def service(fake_store: FakeAppointmentStore) -> AppointmentService:
    return AppointmentService(fake_store, clock=lambda: NOW)


@pytest.fixture
def directory(fake_store: FakeAppointmentStore) -> DirectoryLookup:
    return DirectoryLookup(fake_store)


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlAlchemyAppointmentStore]:
    """A SQLite-backed store with the shared directory loaded."""
    store = SqlAlchemyAppointmentStore(f"sqlite+aiosqlite:///{tmp_path / 'bloodbank.db'}")
    await store.create_schema()
    async with AsyncSession(store.engine) as session, session.begin():
        session.add_all(
            [
                DonorRow(
                    id=d.donor_id,
                    username=d.username,
                    full_name=d.full_name,
                    email=d.email,
                    phone=d.phone,
                    blood_type=d.blood_type.value if d.blood_type else None,
                    is_active=d.is_active,
                    is_eligible=d.is_eligible,
                )
                for d in DONORS
            ]
        )
        session.add_all(
            [
                HospitalRow(
                    id=h.hospital_id,
                    name=h.name,
                    city=h.city,
                    contact_person=h.contact_person,
                    contact_phone=h.contact_phone,
                    is_approved=h.is_approved,
                    is_active=h.is_active,
                )
                for h in HOSPITALS
            ]
        )
    yield store
    await store.close()


@pytest.fixture
def sql_service(sql_store: SqlAlchemyAppointmentStore) -> AppointmentService:
    return AppointmentService(sql_store, clock=lambda: NOW)
