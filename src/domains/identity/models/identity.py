"""
Identity domain models
"""

from typing import Optional, Dict, Any, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from pydantic import BaseModel, Field


# Stored column names of the Members Table, in their stored order
MEMBER_FIELDS = (
    "S. No.",
    "Membership number",
    "Name",
    "Address Home",
    "Company Name",
    "Address Office",
    "Resident Landline",
    "Office Landline",
    "Mobile",
    "Email",
    "type",
)


class IdentitySource(str, Enum):
    """Which table(s) a resolved identity came from"""
    PERSON = "person"
    PERSON_MERGED_WITH_ELECTED = "person_merged_with_elected"
    OPD = "opd"
    HOSPITAL = "hospital"
    NOT_FOUND = "not_found"


PROVENANCE = {
    IdentitySource.PERSON: "Members Table",
    IdentitySource.PERSON_MERGED_WITH_ELECTED: "Members Table + elected_members",
    IdentitySource.OPD: "opd_schedule",
    IdentitySource.HOSPITAL: "hospitals",
}


class LookupStatus(str, Enum):
    """Outcome of a sign-in phone check"""
    FOUND = "found"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"


@dataclass
class PersonRecord:
    """Row of the Members Table"""
    serial_no: Any
    membership_number: Optional[str]
    name: Optional[str]
    address_home: Optional[str] = None
    company_name: Optional[str] = None
    address_office: Optional[str] = None
    resident_landline: Optional[str] = None
    office_landline: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    type: Optional[str] = None
    position: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PersonRecord":
        return cls(
            serial_no=row.get("S. No."),
            membership_number=row.get("Membership number"),
            name=row.get("Name"),
            address_home=row.get("Address Home"),
            company_name=row.get("Company Name"),
            address_office=row.get("Address Office"),
            resident_landline=row.get("Resident Landline"),
            office_landline=row.get("Office Landline"),
            mobile=row.get("Mobile"),
            email=row.get("Email"),
            type=row.get("type"),
            position=row.get("position"),
        )

    def to_row(self) -> Dict[str, Any]:
        """Stored column names and values, in stored order"""
        values = (
            self.serial_no,
            self.membership_number,
            self.name,
            self.address_home,
            self.company_name,
            self.address_office,
            self.resident_landline,
            self.office_landline,
            self.mobile,
            self.email,
            self.type,
        )
        return dict(zip(MEMBER_FIELDS, values))

    @property
    def clean_membership_number(self) -> str:
        if self.membership_number is None:
            return ""
        return str(self.membership_number).strip()


@dataclass
class ElectedRecord:
    """Row of elected_members"""
    id: Any
    membership_number: Optional[str]
    position: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ElectedRecord":
        return cls(
            id=row.get("id"),
            membership_number=row.get("membership_number"),
            position=row.get("position"),
            location=row.get("location"),
        )


@dataclass
class OpdRecord:
    """Row of opd_schedule, one on-call doctor"""
    id: Any
    mobile: Optional[str]
    consultant_name: Optional[str]
    department: Optional[str] = None
    designation: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OpdRecord":
        return cls(
            id=row.get("id"),
            mobile=row.get("mobile"),
            consultant_name=row.get("consultant_name"),
            department=row.get("department"),
            designation=row.get("designation"),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass
class HospitalRecord:
    """Row of hospitals"""
    id: Any
    hospital_name: Optional[str]
    contact_phone: Optional[str]
    trust_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HospitalRecord":
        return cls(
            id=row.get("id"),
            hospital_name=row.get("hospital_name"),
            contact_phone=row.get("contact_phone"),
            trust_name=row.get("trust_name"),
        )


@dataclass(frozen=True)
class ResolvedIdentity:
    """
    Result of resolving one phone number.

    Exactly one source variant is populated; NOT_FOUND carries no fields
    and no provenance.
    """
    source: IdentitySource
    phone: str = ""
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    provenance: Optional[str] = None

    @classmethod
    def not_found(cls) -> "ResolvedIdentity":
        return cls(source=IdentitySource.NOT_FOUND)

    @classmethod
    def build(cls, source: IdentitySource, phone: str, fields: Dict[str, Any]) -> "ResolvedIdentity":
        return cls(
            source=source,
            phone=phone,
            fields=MappingProxyType(dict(fields)),
            provenance=PROVENANCE[source],
        )

    @property
    def found(self) -> bool:
        return self.source is not IdentitySource.NOT_FOUND

    @property
    def is_elected_member(self) -> bool:
        return bool(self.fields.get("is_elected_member", False))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exists": self.found,
            "table": self.provenance,
            "user": dict(self.fields) if self.found else None,
        }


@dataclass
class PhoneCheckResult:
    """Tagged outcome of a sign-in phone check"""
    status: LookupStatus
    identity: ResolvedIdentity
    phone_number: Optional[str] = None
    failed_stage: Optional[str] = None
    message: Optional[str] = None


class PhoneCheckRequest(BaseModel):
    """Sign-in phone check request"""
    phoneNumber: str = Field(..., min_length=1, max_length=32, description="Phone number in any format")


class PhoneCheckData(BaseModel):
    """Verified caller details"""
    phoneNumber: str = Field(..., description="Number in +91XXXXXXXXXX form")
    table: Optional[str] = Field(None, description="Table(s) the identity came from")
    user: Dict[str, Any] = Field(default_factory=dict, description="Merged identity fields")


class PhoneCheckResponse(BaseModel):
    """Sign-in phone check response"""
    success: bool
    message: str
    data: Optional[PhoneCheckData] = None
