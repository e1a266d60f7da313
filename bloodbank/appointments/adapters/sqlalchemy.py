import datetime as dt
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from sqlalchemy import Select, event, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bloodbank.appointments.adapters.tables import (
    ActivityLogRow,
    AppointmentRow,
    Base,
    DonationRow,
    DonorRow,
    HospitalRow,
    InventoryRow,
    NotificationRow,
    utcnow,
)
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

_SLOT_INDEX = "uq_appointments_active_slot"
_DONOR_DAY_INDEX = "uq_appointments_active_donor_day"


def _to_donor(row: DonorRow) -> Donor:
    return Donor(
        donor_id=row.id,
        username=row.username,
        full_name=row.full_name,
        email=row.email,
        phone=row.phone,
        blood_type=BloodType(row.blood_type) if row.blood_type else None,
        is_active=row.is_active,
        is_eligible=row.is_eligible,
    )


def _to_hospital(row: HospitalRow) -> Hospital:
    return Hospital(
        hospital_id=row.id,
        name=row.name,
        city=row.city,
        address=row.address,
        contact_person=row.contact_person,
        contact_phone=row.contact_phone,
        is_approved=row.is_approved,
        is_active=row.is_active,
    )


def _to_details(
    row: AppointmentRow,
    donor_name: str,
    donor_phone: str | None,
    hospital_name: str,
    hospital_city: str | None,
) -> AppointmentDetails:
    return AppointmentDetails(
        appointment_id=row.id,
        donor_id=row.donor_id,
        hospital_id=row.hospital_id,
        appointment_date=row.appointment_date,
        appointment_time=row.appointment_time,
        blood_type=BloodType(row.blood_type),
        status=AppointmentStatus(row.status),
        notes=row.notes or "",
        contact_person=row.contact_person,
        contact_phone=row.contact_phone,
        created_at=row.created_at,
        updated_at=row.updated_at,
        donor_name=donor_name,
        donor_phone=donor_phone,
        hospital_name=hospital_name,
        hospital_city=hospital_city,
    )


def _constraint_name(exc: IntegrityError) -> str | None:
    """Constraint name reported by the driver (asyncpg sets it, sqlite3 does not)."""
    driver_error = getattr(exc.orig, "__cause__", None) or exc.orig
    return getattr(driver_error, "constraint_name", None)


def _slot_error(exc: IntegrityError) -> SlotTakenError | None:
    """Map a unique-index violation on ``appointments`` to the slot it protects."""
    name = _constraint_name(exc)
    if name is not None:
        if name == _DONOR_DAY_INDEX:
            return SlotTakenError.for_donor_day()
        if name == _SLOT_INDEX:
            return SlotTakenError.for_slot()
        return None

    # SQLite: "UNIQUE constraint failed: appointments.donor_id, appointments.appointment_date"
    message = str(exc.orig)
    if "UNIQUE constraint failed: appointments." not in message:
        return None
    if "appointments.hospital_id" in message:
        return SlotTakenError.for_slot()
    if "appointments.donor_id" in message:
        return SlotTakenError.for_donor_day()
    return None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlAlchemyUnitOfWork:
    """Store operations bound to one ``AsyncSession`` transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _details_query(self) -> Select[tuple[AppointmentRow, str, str | None, str, str | None]]:
        return (
            select(
                AppointmentRow,
                DonorRow.full_name,
                DonorRow.phone,
                HospitalRow.name,
                HospitalRow.city,
            )
            .join(DonorRow, AppointmentRow.donor_id == DonorRow.id)
            .join(HospitalRow, AppointmentRow.hospital_id == HospitalRow.id)
            .execution_options(populate_existing=True)
        )

    async def get_donor(self, donor_id: int) -> Donor | None:
        row = await self._session.get(DonorRow, donor_id)
        return _to_donor(row) if row else None

    async def find_donor(self, identifier: str) -> Donor | None:
        stmt = (
            select(DonorRow)
            .where(
                DonorRow.is_active.is_(True),
                or_(
                    DonorRow.phone == identifier,
                    DonorRow.email == identifier,
                    DonorRow.username == identifier,
                ),
            )
            .order_by(DonorRow.id)
            .limit(1)
        )
        row = (await self._session.scalars(stmt)).first()
        return _to_donor(row) if row else None

    async def get_hospital(self, hospital_id: int) -> Hospital | None:
        row = await self._session.get(HospitalRow, hospital_id)
        return _to_hospital(row) if row else None

    async def get_appointment(self, appointment_id: int) -> AppointmentDetails | None:
        stmt = self._details_query().where(AppointmentRow.id == appointment_id)
        result = (await self._session.execute(stmt)).first()
        return _to_details(*result) if result else None

    async def add_appointment(self, request: AppointmentRequest) -> int:
        row = AppointmentRow(
            donor_id=request.donor_id,
            hospital_id=request.hospital_id,
            appointment_date=request.appointment_date,
            appointment_time=request.appointment_time,
            blood_type=request.blood_type.value,
            status=AppointmentStatus.SCHEDULED.value,
            notes=request.notes,
            contact_person=request.contact_person,
            contact_phone=request.contact_phone,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            error = _slot_error(exc)
            if error is None:
                raise
            raise error from exc
        return row.id

    async def update_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        result = await self._session.execute(
            update(AppointmentRow)
            .where(AppointmentRow.id == appointment_id, AppointmentRow.status == expected.value)
            .values(status=new.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def record_donation(self, appointment: Appointment) -> None:
        self._session.add(
            DonationRow(
                donor_id=appointment.donor_id,
                hospital_id=appointment.hospital_id,
                appointment_id=appointment.appointment_id,
                blood_type=appointment.blood_type.value,
                donation_date=appointment.appointment_date,
                donation_time=appointment.appointment_time,
            )
        )
        result = await self._session.execute(
            update(InventoryRow)
            .where(
                InventoryRow.hospital_id == appointment.hospital_id,
                InventoryRow.blood_type == appointment.blood_type.value,
            )
            .values(units_available=InventoryRow.units_available + 1, last_updated=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            self._session.add(
                InventoryRow(
                    hospital_id=appointment.hospital_id,
                    blood_type=appointment.blood_type.value,
                    units_available=1,
                )
            )
        await self._session.flush()

    async def last_donation_date(self, donor_id: int) -> dt.date | None:
        return await self._session.scalar(
            select(func.max(DonationRow.donation_date)).where(DonationRow.donor_id == donor_id)
        )

    async def log_activity(self, donor_id: int, action: str, details: dict[str, Any]) -> None:
        self._session.add(ActivityLogRow(donor_id=donor_id, action=action, details=details))
        await self._session.flush()

    async def notify(self, donor_id: int, title: str, message: str) -> None:
        self._session.add(NotificationRow(donor_id=donor_id, title=title, message=message))
        await self._session.flush()

    async def list_appointments(
        self,
        *,
        donor_id: int | None = None,
        hospital_id: int | None = None,
    ) -> list[AppointmentDetails]:
        stmt = self._details_query()
        if donor_id is not None:
            stmt = stmt.where(AppointmentRow.donor_id == donor_id)
        if hospital_id is not None:
            stmt = stmt.where(AppointmentRow.hospital_id == hospital_id)
        stmt = stmt.order_by(
            AppointmentRow.appointment_date,
            AppointmentRow.appointment_time,
            AppointmentRow.id,
        )
        rows = (await self._session.execute(stmt)).all()
        return [_to_details(*row) for row in rows]


class SqlAlchemyAppointmentStore:
    """Relational store via SQLAlchemy's asyncio extension.

    Works with any async driver SQLAlchemy supports; slot exclusivity needs
    partial unique indexes, so SQLite and PostgreSQL are the targets.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(url, echo=echo)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyUnitOfWork]:
        async with self._sessionmaker() as session, session.begin():
            yield SqlAlchemyUnitOfWork(session)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def health_check(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.warning("Database health check failed: {}", exc)
            return False

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")
