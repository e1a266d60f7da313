import datetime as dt
import re
from enum import Enum
from typing import Annotated

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    StringConstraints,
    field_validator,
    model_validator,
)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d:[0-5]\d$")


class BloodType(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class AppointmentStatus(str, Enum):
    """Possible states of a donation appointment."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentAction(str, Enum):
    CONFIRM = "confirm"
    COMPLETE = "complete"
    CANCEL = "cancel"


ACTIVE_STATUSES: frozenset[AppointmentStatus] = frozenset(
    {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED}
)


def parse_appointment_date(value: object) -> dt.date:
    """Accept a ``date`` or a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, dt.datetime):
        raise ValueError("Expected a calendar date, not a datetime.")
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD.")
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid calendar date: {value!r}.") from exc


def parse_appointment_time(value: object) -> dt.time:
    """Accept a ``time`` or a strict ``HH:MM:SS`` string.

    ``"16:30"`` is rejected: appointment times always carry seconds.
    """
    if isinstance(value, dt.time):
        if value.microsecond or value.tzinfo is not None:
            raise ValueError("Appointment time must be a naive time with second precision.")
        return value
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time format: {value!r}. Expected HH:MM:SS.")
    return dt.time.fromisoformat(value)


class Donor(BaseModel):
    """A donor record from the directory."""

    model_config = ConfigDict(frozen=True)

    donor_id: int
    username: str
    full_name: str
    email: str | None = None
    phone: str | None = None
    blood_type: BloodType | None = None
    is_active: bool = True
    is_eligible: bool = True


class Hospital(BaseModel):
    """A hospital record from the directory."""

    model_config = ConfigDict(frozen=True)

    hospital_id: int
    name: str
    city: str | None = None
    address: str | None = None
    contact_person: str | None = None
    contact_phone: str | None = None
    is_approved: bool = False
    is_active: bool = True

    @property
    def accepts_appointments(self) -> bool:
        return self.is_approved and self.is_active


class AppointmentRequest(BaseModel):
    """A request to book a donation slot."""

    model_config = ConfigDict(frozen=True)

    donor_id: PositiveInt
    hospital_id: PositiveInt
    appointment_date: dt.date
    appointment_time: dt.time
    blood_type: BloodType
    notes: str = Field(default="", max_length=1000)
    contact_person: str | None = Field(default=None, max_length=100)
    contact_phone: str | None = Field(default=None, max_length=20)

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _check_date(cls, value: object) -> dt.date:
        return parse_appointment_date(value)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _check_time(cls, value: object) -> dt.time:
        return parse_appointment_time(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _none_notes(cls, value: object) -> object:
        return "" if value is None else value


class StatusUpdateRequest(BaseModel):
    """A request to move an appointment through its lifecycle."""

    model_config = ConfigDict(frozen=True)

    appointment_id: PositiveInt
    action: AppointmentAction
    actor_donor_id: PositiveInt | None = Field(
        default=None, validation_alias=AliasChoices("actor_donor_id", "user_id")
    )


class AppointmentQuery(BaseModel):
    """Selects appointments by donor or by hospital, never both."""

    model_config = ConfigDict(frozen=True)

    donor_id: PositiveInt | None = None
    hospital_id: PositiveInt | None = None

    @model_validator(mode="after")
    def _exactly_one_filter(self) -> "AppointmentQuery":
        if (self.donor_id is None) == (self.hospital_id is None):
            raise ValueError("Provide exactly one of 'donor_id' or 'hospital_id'.")
        return self


class DonorLookupRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class Appointment(BaseModel):
    """A stored donation appointment."""

    model_config = ConfigDict(frozen=True)

    appointment_id: int
    donor_id: int
    hospital_id: int
    appointment_date: dt.date
    appointment_time: dt.time
    blood_type: BloodType
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str = ""
    contact_person: str | None = None
    contact_phone: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_upcoming(self, today: dt.date) -> bool:
        return self.is_active and self.appointment_date >= today


class AppointmentDetails(Appointment):
    """An appointment joined with donor and hospital display fields."""

    donor_name: str = ""
    donor_phone: str | None = None
    hospital_name: str = ""
    hospital_city: str | None = None


class AppointmentListing(BaseModel):
    """All appointments for one donor or hospital, plus the upcoming subset."""

    model_config = ConfigDict(frozen=True)

    all: list[AppointmentDetails] = Field(default_factory=list)
    upcoming: list[AppointmentDetails] = Field(default_factory=list)

    @property
    def stats(self) -> dict[str, int]:
        counts = {"total": len(self.all), "upcoming": len(self.upcoming)}
        for status in AppointmentStatus:
            counts[status.value] = sum(1 for a in self.all if a.status == status)
        return counts
