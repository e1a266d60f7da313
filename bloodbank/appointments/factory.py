from typing import Callable

from loguru import logger

from bloodbank.appointments.adapters.fake import FakeAppointmentStore
from bloodbank.appointments.adapters.sqlalchemy import SqlAlchemyAppointmentStore
from bloodbank.appointments.ports import AppointmentStoreProtocol
from bloodbank.appointments.service import AppointmentService
from bloodbank.config import AppConfig, DatabaseConfig, StoreBackend


def _build_sqlalchemy(config: DatabaseConfig) -> AppointmentStoreProtocol:
    return SqlAlchemyAppointmentStore(config.url, echo=config.echo)


def _build_memory(config: DatabaseConfig) -> AppointmentStoreProtocol:
    return FakeAppointmentStore()


_BUILDERS: dict[StoreBackend, Callable[[DatabaseConfig], AppointmentStoreProtocol]] = {
    StoreBackend.SQLALCHEMY: _build_sqlalchemy,
    StoreBackend.MEMORY: _build_memory,
}


def build_store(config: AppConfig) -> AppointmentStoreProtocol:
    """Build the appropriate store based on config."""
    backend = config.database.backend
    logger.info("Building appointment store with backend: {}", backend.value)
    return _BUILDERS[backend](config.database)


def build_appointment_service(
    config: AppConfig, store: AppointmentStoreProtocol
) -> AppointmentService:
    return AppointmentService(
        store,
        bank_timezone=config.bank_timezone,
        max_lead_days=config.max_lead_days,
    )
