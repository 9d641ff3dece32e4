"""
Identity resolver - finds who owns a phone number
"""

from typing import Dict, Any, Optional
import logging
import time

from prometheus_client import Counter, Histogram

from ..models.identity import (
    IdentitySource,
    ResolvedIdentity,
    PersonRecord,
    ElectedRecord,
    OpdRecord,
    HospitalRecord
)
from ..repositories.identity_repository import IdentityRepository
from .phone import build_candidates


logger = logging.getLogger(__name__)

resolutions_total = Counter(
    'identity_resolutions_total',
    'Phone identity resolutions by outcome',
    ['source']
)
resolution_failures_total = Counter(
    'identity_resolution_failures_total',
    'Phone identity resolutions aborted by a store failure',
    ['stage']
)
resolution_duration = Histogram(
    'identity_resolution_duration_seconds',
    'Time spent resolving one phone number'
)


def merge_person(person: PersonRecord, elected: Optional[ElectedRecord] = None) -> Dict[str, Any]:
    """
    Merge a member with its elected_members row, if any.

    Stored fields keep their stored names; id, name, mobile and
    membership_number are repeated as lower-case aliases.
    """
    merged = person.to_row()
    merged["position"] = person.position or None

    if elected is not None:
        merged["position"] = elected.position or person.position or None
        merged["location"] = elected.location or None
        merged["elected_id"] = elected.id
        merged["is_elected_member"] = True
        merged["is_merged_with_elected"] = True

    merged["id"] = person.serial_no
    merged["name"] = person.name
    merged["mobile"] = person.mobile
    merged["membership_number"] = person.membership_number
    return merged


def opd_fields(opd: OpdRecord) -> Dict[str, Any]:
    return {
        "id": opd.id,
        "name": opd.consultant_name,
        "mobile": opd.mobile,
        "type": "Doctor",
        "department": opd.department,
        "designation": opd.designation,
    }


def hospital_fields(hospital: HospitalRecord) -> Dict[str, Any]:
    return {
        "id": hospital.id,
        "name": hospital.hospital_name,
        "mobile": hospital.contact_phone,
        "type": "Hospital",
        "trust_name": hospital.trust_name,
    }


class IdentityResolver:
    """
    Resolves a raw phone number to one identity.

    Tables are checked one after another (members, then on-call doctors,
    then hospitals) and the first hit wins. A store failure at any stage
    propagates as DataAccessFailure; it is never reported as not found.
    """

    def __init__(self, repository: IdentityRepository):
        self.repository = repository

    async def resolve_phone_identity(self, raw_phone: str) -> ResolvedIdentity:
        start_time = time.perf_counter()
        try:
            identity = await self._resolve(raw_phone)
        except Exception as e:
            resolution_failures_total.labels(stage=getattr(e, "stage", None) or "unknown").inc()
            raise
        finally:
            resolution_duration.observe(time.perf_counter() - start_time)

        resolutions_total.labels(source=identity.source.value).inc()
        return identity

    async def _resolve(self, raw_phone: str) -> ResolvedIdentity:
        candidates = build_candidates(raw_phone)

        if not candidates:
            logger.info("No usable phone patterns, skipping lookup")
            return ResolvedIdentity.not_found()

        logger.debug(f"Searching with {len(candidates)} phone patterns")
        patterns = list(candidates)

        person = await self.repository.find_person(patterns)
        if person is not None:
            elected = None
            if person.clean_membership_number:
                elected = await self.repository.find_elected_by_membership_number(
                    person.clean_membership_number
                )

            source = IdentitySource.PERSON_MERGED_WITH_ELECTED if elected is not None else IdentitySource.PERSON
            logger.info(f"Phone found in members table (elected={elected is not None})")
            return ResolvedIdentity.build(source, candidates.clean, merge_person(person, elected))

        opd = await self.repository.find_active_opd(patterns)
        if opd is not None:
            logger.info("Phone found in opd_schedule")
            return ResolvedIdentity.build(IdentitySource.OPD, candidates.clean, opd_fields(opd))

        hospital = await self.repository.find_hospital(patterns)
        if hospital is not None:
            logger.info("Phone found in hospitals")
            return ResolvedIdentity.build(IdentitySource.HOSPITAL, candidates.clean, hospital_fields(hospital))

        logger.info("Phone not found in any table")
        return ResolvedIdentity.not_found()
