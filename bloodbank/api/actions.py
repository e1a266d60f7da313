import datetime as dt
from collections.abc import Mapping
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from bloodbank.appointments.directory import DirectoryLookup
from bloodbank.appointments.ports import AbstractAppointmentService
from bloodbank.domain.exceptions import BloodBankError, InvalidRequestError, StoreUnavailableError
from bloodbank.domain.lifecycle import allowed_actions
from bloodbank.domain.models import (
    AppointmentDetails,
    AppointmentQuery,
    AppointmentRequest,
    DonorLookupRequest,
    StatusUpdateRequest,
)

M = TypeVar("M", bound=BaseModel)


def format_long_date(date: dt.date) -> str:
    """``date(2026, 10, 24)`` -> ``October 24, 2026``."""
    return f"{date:%B} {date.day}, {date.year}"


def format_clock_time(time: dt.time) -> str:
    """``time(13, 15)`` -> ``1:15 PM``; the hour has no leading zero."""
    suffix = "PM" if time.hour >= 12 else "AM"
    return f"{(time.hour - 1) % 12 + 1}:{time.minute:02d} {suffix}"


def serialize_appointment(appointment: AppointmentDetails) -> dict[str, Any]:
    """JSON-ready appointment with display strings and the actions still open to it."""
    data = appointment.model_dump(mode="json")
    data["formatted_date"] = format_long_date(appointment.appointment_date)
    data["formatted_time"] = format_clock_time(appointment.appointment_time)
    data["allowed_actions"] = [action.value for action in allowed_actions(appointment.status)]
    return data


def _error_result(exc: BloodBankError) -> dict[str, Any]:
    return {"success": False, "error": exc.code, "message": exc.message}


def _describe(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _parse(model: type[M], arguments: object) -> M:
    """Validate a raw payload into ``model``, raising InvalidRequestError on failure."""
    if not isinstance(arguments, Mapping):
        raise InvalidRequestError("Request payload must be a JSON object.")
    try:
        return model.model_validate(dict(arguments))
    except ValidationError as exc:
        raise InvalidRequestError(_describe(exc)) from exc


class ActionHandlers:
    """Request/response actions over the appointment service and directory.

    Every handler takes the raw payload and returns a ``{"success": ...}``
    dict; failures carry an ``error`` code and a ``message``.
    """

    def __init__(
        self,
        appointments: AbstractAppointmentService,
        directory: DirectoryLookup,
    ) -> None:
        self._appointments = appointments
        self._directory = directory

    async def create_appointment(self, arguments: object) -> dict[str, Any]:
        logger.debug("Action: create_appointment")
        try:
            request = _parse(AppointmentRequest, arguments)
            appointment = await self._appointments.create_appointment(request)
        except BloodBankError as exc:
            return _error_result(exc)
        except Exception:
            logger.exception("Unexpected error in create_appointment")
            return _error_result(
                StoreUnavailableError("An error occurred while creating the appointment.")
            )

        return {
            "success": True,
            "appointment_id": appointment.appointment_id,
            "appointment": serialize_appointment(appointment),
            "message": "Appointment created successfully",
        }

    async def update_appointment(self, arguments: object) -> dict[str, Any]:
        logger.debug("Action: update_appointment")
        try:
            request = _parse(StatusUpdateRequest, arguments)
            appointment = await self._appointments.update_appointment_status(
                request.appointment_id,
                request.action,
                actor_donor_id=request.actor_donor_id,
            )
        except BloodBankError as exc:
            return _error_result(exc)
        except Exception:
            logger.exception("Unexpected error in update_appointment")
            return _error_result(
                StoreUnavailableError("An error occurred while updating the appointment.")
            )

        return {
            "success": True,
            "appointment": serialize_appointment(appointment),
            "new_status": appointment.status.value,
            "message": f"Appointment {appointment.status.value}",
        }

    async def get_appointments(self, arguments: object) -> dict[str, Any]:
        logger.debug("Action: get_appointments")
        try:
            query = _parse(AppointmentQuery, arguments)
            listing = await self._appointments.list_appointments(
                donor_id=query.donor_id, hospital_id=query.hospital_id
            )
        except BloodBankError as exc:
            return _error_result(exc)
        except Exception:
            logger.exception("Unexpected error in get_appointments")
            return _error_result(
                StoreUnavailableError("An error occurred while fetching appointments.")
            )

        return {
            "success": True,
            "appointments": {
                "all": [serialize_appointment(a) for a in listing.all],
                "upcoming": [serialize_appointment(a) for a in listing.upcoming],
            },
            "stats": listing.stats,
            "message": "Appointments retrieved successfully",
        }

    async def find_donor(self, arguments: object) -> dict[str, Any]:
        logger.debug("Action: find_donor")
        try:
            lookup = _parse(DonorLookupRequest, arguments)
            donor = await self._directory.find_donor(lookup.identifier)
        except BloodBankError as exc:
            return _error_result(exc)
        except Exception:
            logger.exception("Unexpected error in find_donor")
            return _error_result(
                StoreUnavailableError("An error occurred while searching for donor.")
            )

        return {
            "success": True,
            "donor": donor.model_dump(mode="json"),
            "message": "Donor found successfully",
        }

    async def health(self) -> dict[str, Any]:
        healthy = await self._appointments.health_check()
        return {"success": healthy, "status": "ok" if healthy else "unavailable"}
