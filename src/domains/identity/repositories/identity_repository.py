"""
Identity repository - read-only lookups across the directory tables
"""

from typing import Optional, Sequence
import logging

from ..models.identity import PersonRecord, ElectedRecord, OpdRecord, HospitalRecord
from core.config import DatabaseConfig
from core.exceptions import DataAccessFailure
from stores.base_store import BaseQueryStore


logger = logging.getLogger(__name__)

STAGE_PERSON = "person"
STAGE_ELECTED = "elected"
STAGE_OPD = "opd"
STAGE_HOSPITAL = "hospital"


class IdentityRepository:
    """Repository over the four tables that can own a phone number"""

    def __init__(self, store: BaseQueryStore, config: Optional[DatabaseConfig] = None):
        self.store = store
        self.config = config or DatabaseConfig()

    async def find_person(self, patterns: Sequence[str]) -> Optional[PersonRecord]:
        """First Members Table row whose Mobile contains any pattern"""
        try:
            rows = await self.store.find_containing(
                self.config.members_collection,
                "Mobile",
                patterns,
                limit=1
            )
        except DataAccessFailure as e:
            raise e.with_stage(STAGE_PERSON)

        return PersonRecord.from_row(rows[0]) if rows else None

    async def find_elected_exact(self, membership_number: str) -> Optional[ElectedRecord]:
        """elected_members row whose membership number equals the trimmed value"""
        number = (membership_number or "").strip()
        if not number:
            return None

        try:
            rows = await self.store.find_equal(
                self.config.elected_members_collection,
                "membership_number",
                number,
                limit=1
            )
        except DataAccessFailure as e:
            raise e.with_stage(STAGE_ELECTED)

        return ElectedRecord.from_row(rows[0]) if rows else None

    async def find_elected_containing(self, membership_number: str) -> Optional[ElectedRecord]:
        """elected_members row whose membership number contains the value, any case"""
        number = (membership_number or "").strip()
        if not number:
            return None

        try:
            rows = await self.store.find_containing(
                self.config.elected_members_collection,
                "membership_number",
                [number],
                limit=1
            )
        except DataAccessFailure as e:
            raise e.with_stage(STAGE_ELECTED)

        return ElectedRecord.from_row(rows[0]) if rows else None

    async def find_elected_by_membership_number(self, membership_number: str) -> Optional[ElectedRecord]:
        """
        Soft join from a member to the elected_members table.

        Exact match on the trimmed number first; the containing match is
        tried only when the exact one finds nothing.
        """
        elected = await self.find_elected_exact(membership_number)
        if elected is None:
            elected = await self.find_elected_containing(membership_number)
            if elected is not None:
                logger.debug("Elected member matched by containing membership number")
        return elected

    async def find_active_opd(self, patterns: Sequence[str]) -> Optional[OpdRecord]:
        """First active opd_schedule row whose mobile contains any pattern"""
        try:
            rows = await self.store.find_containing(
                self.config.opd_schedule_collection,
                "mobile",
                patterns,
                filters={"is_active": True},
                limit=1
            )
        except DataAccessFailure as e:
            raise e.with_stage(STAGE_OPD)

        return OpdRecord.from_row(rows[0]) if rows else None

    async def find_hospital(self, patterns: Sequence[str]) -> Optional[HospitalRecord]:
        """First hospitals row whose contact_phone contains any pattern"""
        try:
            rows = await self.store.find_containing(
                self.config.hospitals_collection,
                "contact_phone",
                patterns,
                limit=1
            )
        except DataAccessFailure as e:
            raise e.with_stage(STAGE_HOSPITAL)

        return HospitalRecord.from_row(rows[0]) if rows else None
