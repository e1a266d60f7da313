from loguru import logger

from bloodbank.appointments.ports import AppointmentStoreProtocol
from bloodbank.domain.exceptions import (
    BloodBankError,
    InvalidRequestError,
    NotFoundError,
    StoreUnavailableError,
)
from bloodbank.domain.models import Donor, Hospital


class DirectoryLookup:
    """Read-only access to donor and hospital identity data."""

    def __init__(self, store: AppointmentStoreProtocol) -> None:
        self._store = store

    async def find_donor(self, identifier: str) -> Donor:
        """Find an active donor by phone number, email or username."""
        identifier = identifier.strip()
        if not identifier:
            raise InvalidRequestError("Phone number, email or username is required.")

        logger.info("Searching for donor with provided identifier")
        try:
            async with self._store.transaction() as tx:
                donor = await tx.find_donor(identifier)
        except BloodBankError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Donor search failed: {exc}") from exc

        if donor is None:
            logger.info("No donor found for identifier")
            raise NotFoundError(
                "donor", identifier, "Donor not found with provided phone number, email or username"
            )
        logger.info("Found donor: id={}", donor.donor_id)
        return donor

    async def get_hospital(self, hospital_id: int) -> Hospital:
        try:
            async with self._store.transaction() as tx:
                hospital = await tx.get_hospital(hospital_id)
        except BloodBankError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Hospital lookup failed: {exc}") from exc

        if hospital is None:
            raise NotFoundError("hospital", hospital_id)
        return hospital
