#!/usr/bin/env python3
"""
Tests for multi-table phone identity resolution against the in-memory store
"""

import asyncio
import logging
import sys
import os
from contextlib import asynccontextmanager

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from core.config import DatabaseConfig, PostgrestConfig
from core.exceptions import DataAccessFailure, LookupTimeout
from domains.identity.models.identity import IdentitySource, LookupStatus
from domains.identity.repositories.identity_repository import IdentityRepository
from domains.identity.services.identity_service import IdentityResolver, merge_person
from domains.identity.services.auth_service import PhoneAuthService
from stores import InMemoryQueryStore, OrderPolicy, PostgrestQueryStore, QueryStoreConfig


MEMBER = {
    "S. No.": 7,
    "Membership number": "M-102",
    "Name": "Asha Mehta",
    "Address Home": "12 Park Road",
    "Company Name": "Mehta Textiles",
    "Address Office": "4 Mill Lane",
    "Resident Landline": "022-2345678",
    "Office Landline": "022-8765432",
    "Mobile": "+91 987-654-3210",
    "Email": "asha@example.com",
    "type": "Trustee",
    "position": "Member",
}

ELECTED = {"id": 3, "membership_number": "m-102 ", "position": "Treasurer", "location": "Mumbai"}

DOCTOR = {
    "id": 11,
    "mobile": "9123456780",
    "consultant_name": "Dr. Rao",
    "department": "Cardiology",
    "designation": "Consultant",
    "is_active": True,
}

HOSPITAL = {"id": 5, "hospital_name": "City Hospital", "contact_phone": "91234 56780", "trust_name": "City Trust"}


def make_store(rows, store_class=InMemoryQueryStore, **config_kwargs):
    db = DatabaseConfig()
    config = QueryStoreConfig(
        order_policies={
            db.members_collection: OrderPolicy("S. No."),
            db.elected_members_collection: OrderPolicy("id"),
            db.opd_schedule_collection: OrderPolicy("id"),
            db.hospitals_collection: OrderPolicy("id"),
        },
        **config_kwargs
    )
    store = store_class(rows, config=config)
    asyncio.run(store.initialize())
    return store


def make_resolver(store):
    return IdentityResolver(IdentityRepository(store, DatabaseConfig()))


def resolve(store, phone):
    return asyncio.run(make_resolver(store).resolve_phone_identity(phone))


class RecordingStore(InMemoryQueryStore):
    """In-memory store that records every backend call"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    async def _find_containing(self, collection, field_name, patterns, filters, order, limit):
        self.calls.append(("containing", collection, tuple(patterns)))
        return await super()._find_containing(collection, field_name, patterns, filters, order, limit)

    async def _find_equal(self, collection, field_name, value, order, limit):
        self.calls.append(("equal", collection, value))
        return await super()._find_equal(collection, field_name, value, order, limit)


class FailingStore(InMemoryQueryStore):
    """In-memory store whose queries on one collection raise"""

    fail_on = None

    async def _find_containing(self, collection, field_name, patterns, filters, order, limit):
        if collection == self.fail_on:
            raise ConnectionError("connection reset")
        return await super()._find_containing(collection, field_name, patterns, filters, order, limit)


class SlowStore(InMemoryQueryStore):
    async def _find_containing(self, collection, field_name, patterns, filters, order, limit):
        await asyncio.sleep(1)
        return []


def test_spaced_input_matches_punctuated_member_mobile():
    store = make_store({"Members Table": [MEMBER]})

    identity = resolve(store, "98765 43210")

    assert identity.source is IdentitySource.PERSON
    assert identity.fields["Name"] == "Asha Mehta"
    assert identity.phone == "9876543210"


def test_person_without_elected_row():
    store = make_store({"Members Table": [MEMBER]})

    identity = resolve(store, "9876543210")

    assert identity.source is IdentitySource.PERSON
    assert identity.provenance == "Members Table"
    assert identity.fields["position"] == "Member"
    assert "is_elected_member" not in identity.fields
    # stored names and lower-case aliases side by side
    assert identity.fields["S. No."] == 7
    assert identity.fields["id"] == 7
    assert identity.fields["Mobile"] == identity.fields["mobile"]
    assert identity.fields["membership_number"] == "M-102"


def test_elected_soft_join_falls_back_to_containing_match():
    store = RecordingStore({"Members Table": [MEMBER], "elected_members": [ELECTED]}, config=QueryStoreConfig())
    asyncio.run(store.initialize())

    identity = resolve(store, "9876543210")

    assert identity.source is IdentitySource.PERSON_MERGED_WITH_ELECTED
    assert identity.provenance == "Members Table + elected_members"
    assert identity.is_elected_member
    assert identity.fields["is_merged_with_elected"] is True
    assert identity.fields["position"] == "Treasurer"
    assert identity.fields["location"] == "Mumbai"
    assert identity.fields["elected_id"] == 3

    elected_calls = [c for c in store.calls if c[1] == "elected_members"]
    assert elected_calls == [
        ("equal", "elected_members", "M-102"),
        ("containing", "elected_members", ("M-102",)),
    ]


def test_elected_exact_match_skips_fallback():
    exact = dict(ELECTED, id=4, membership_number="M-102")
    store = RecordingStore({"Members Table": [MEMBER], "elected_members": [ELECTED, exact]}, config=QueryStoreConfig())
    asyncio.run(store.initialize())

    identity = resolve(store, "9876543210")

    assert identity.fields["elected_id"] == 4
    assert [c[0] for c in store.calls if c[1] == "elected_members"] == ["equal"]


def test_elected_position_falls_back_to_member_position():
    elected = dict(ELECTED, membership_number="M-102", position=None)
    store = make_store({"Members Table": [MEMBER], "elected_members": [elected]})

    identity = resolve(store, "9876543210")

    assert identity.fields["position"] == "Member"
    assert identity.fields["location"] == "Mumbai"


def test_blank_membership_number_skips_soft_join():
    member = dict(MEMBER, **{"Membership number": "   "})
    store = RecordingStore({"Members Table": [member], "elected_members": [ELECTED]}, config=QueryStoreConfig())
    asyncio.run(store.initialize())

    identity = resolve(store, "9876543210")

    assert identity.source is IdentitySource.PERSON
    assert not [c for c in store.calls if c[1] == "elected_members"]


def test_opd_match_maps_to_doctor():
    store = make_store({"opd_schedule": [DOCTOR]})

    identity = resolve(store, "+91 91234 56780")

    assert identity.source is IdentitySource.OPD
    assert identity.provenance == "opd_schedule"
    assert dict(identity.fields) == {
        "id": 11,
        "name": "Dr. Rao",
        "mobile": "9123456780",
        "type": "Doctor",
        "department": "Cardiology",
        "designation": "Consultant",
    }


def test_inactive_doctor_is_skipped():
    store = make_store({"opd_schedule": [dict(DOCTOR, is_active=False)], "hospitals": [HOSPITAL]})

    identity = resolve(store, "9123456780")

    assert identity.source is IdentitySource.HOSPITAL


def test_opd_wins_over_hospital():
    store = make_store({"opd_schedule": [DOCTOR], "hospitals": [HOSPITAL]})

    identity = resolve(store, "9123456780")

    assert identity.source is IdentitySource.OPD


def test_hospital_match():
    store = make_store({"hospitals": [HOSPITAL]})

    identity = resolve(store, "9123456780")

    assert identity.source is IdentitySource.HOSPITAL
    assert identity.fields["type"] == "Hospital"
    assert identity.fields["name"] == "City Hospital"
    assert identity.fields["trust_name"] == "City Trust"
    assert identity.fields["mobile"] == "91234 56780"


def test_person_wins_over_everything():
    member = dict(MEMBER, Mobile="9123456780")
    store = make_store({"Members Table": [member], "opd_schedule": [DOCTOR], "hospitals": [HOSPITAL]})

    identity = resolve(store, "9123456780")

    assert identity.source is IdentitySource.PERSON


def test_not_found_carries_no_data():
    store = make_store({"Members Table": [MEMBER], "opd_schedule": [DOCTOR], "hospitals": [HOSPITAL]})

    identity = resolve(store, "9000000000")

    assert identity.source is IdentitySource.NOT_FOUND
    assert not identity.found
    assert dict(identity.fields) == {}
    assert identity.provenance is None
    assert identity.to_dict() == {"exists": False, "table": None, "user": None}


def test_short_input_issues_no_queries():
    store = RecordingStore({"Members Table": [MEMBER]}, config=QueryStoreConfig())
    asyncio.run(store.initialize())

    identity = resolve(store, "123")

    assert identity.source is IdentitySource.NOT_FOUND
    assert store.calls == []


def test_first_match_follows_ordering_policy():
    first = dict(MEMBER, **{"S. No.": 2, "Name": "First", "Membership number": None})
    second = dict(MEMBER, **{"S. No.": 9, "Name": "Second", "Membership number": None})
    store = make_store({"Members Table": [second, first]})

    assert resolve(store, "9876543210").fields["Name"] == "First"

    store.set_order_policy("Members Table", OrderPolicy("S. No.", descending=True))
    assert resolve(store, "9876543210").fields["Name"] == "Second"


def test_resolved_identity_is_read_only():
    store = make_store({"Members Table": [MEMBER]})

    identity = resolve(store, "9876543210")

    with pytest.raises(TypeError):
        identity.fields["Name"] = "Changed"


@pytest.mark.parametrize("collection,stage", [
    ("Members Table", "person"),
    ("elected_members", "elected"),
    ("opd_schedule", "opd"),
    ("hospitals", "hospital"),
])
def test_store_failures_propagate_with_stage(collection, stage):
    rows = {"elected_members": [ELECTED]}
    if collection == "elected_members":
        rows["Members Table"] = [MEMBER]
    store = make_store(rows, store_class=FailingStore)
    store.fail_on = collection

    with pytest.raises(DataAccessFailure) as exc_info:
        resolve(store, "9876543210")

    assert exc_info.value.stage == stage
    assert exc_info.value.collection == collection


def test_slow_query_raises_lookup_timeout():
    store = make_store({}, store_class=SlowStore, timeout_seconds=0.05)

    with pytest.raises(LookupTimeout) as exc_info:
        resolve(store, "9876543210")

    assert exc_info.value.stage == "person"


def test_merge_person_aliases():
    from domains.identity.models.identity import PersonRecord

    merged = merge_person(PersonRecord.from_row(MEMBER))

    assert merged["id"] == 7
    assert merged["name"] == "Asha Mehta"
    assert merged["mobile"] == "+91 987-654-3210"
    assert merged["membership_number"] == "M-102"


# Sign-in check on top of the resolver

def check(store, phone):
    service = PhoneAuthService(make_resolver(store))
    return asyncio.run(service.check_phone(phone))


def test_check_phone_found_formats_number():
    store = make_store({"Members Table": [MEMBER]})

    result = check(store, "98765 43210")

    assert result.status is LookupStatus.FOUND
    assert result.phone_number == "+919876543210"
    assert result.identity.fields["Name"] == "Asha Mehta"


def test_check_phone_not_registered():
    store = make_store({})

    result = check(store, "9876543210")

    assert result.status is LookupStatus.NOT_FOUND
    assert result.phone_number is None
    assert result.message == "Phone number not registered in the system"


def test_check_phone_lookup_failed_is_not_not_found():
    store = make_store({}, store_class=FailingStore)
    store.fail_on = "Members Table"

    result = check(store, "9876543210")

    assert result.status is LookupStatus.LOOKUP_FAILED
    assert result.failed_stage == "person"
    assert not result.identity.found


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self.body = body

    async def read(self):
        return self.body


class FakeSession:
    """Answers every PostgREST request with one canned response"""

    def __init__(self, status, body):
        self.status = status
        self.body = body

    @asynccontextmanager
    async def get(self, url, params=None, headers=None):
        yield FakeResponse(self.status, self.body)


def test_postgrest_error_body_never_reaches_error_logs(caplog):
    body = b'{"code":"PGRST100","message":"failed to parse logic tree ((Mobile.ilike.\\"*9876543210*\\"))"}'
    store = PostgrestQueryStore(
        postgrest_config=PostgrestConfig(url="http://db.test", api_key="key"),
        config=QueryStoreConfig(),
        session=FakeSession(400, body)
    )
    asyncio.run(store.initialize())
    caplog.set_level(logging.DEBUG)

    result = check(store, "98765 43210")

    assert result.status is LookupStatus.LOOKUP_FAILED
    assert result.failed_stage == "person"

    errors = [r.getMessage() for r in caplog.records if r.levelno >= logging.ERROR]
    assert any("PGRST100" in message for message in errors)
    for message in caplog.records:
        assert "9876543210" not in message.getMessage()
        assert "98765 43210" not in message.getMessage()


def test_store_exception_text_is_masked(caplog):
    class LeakyStore(InMemoryQueryStore):
        async def _find_containing(self, collection, field_name, patterns, filters, order, limit):
            raise ValueError(f"bad filter {patterns[0]}")

    store = make_store({}, store_class=LeakyStore)
    caplog.set_level(logging.INFO)

    with pytest.raises(DataAccessFailure) as exc_info:
        resolve(store, "9876543210")

    assert "9876543210" not in exc_info.value.message
    assert "3210" in exc_info.value.message
    assert all("9876543210" not in r.getMessage() for r in caplog.records)


def test_numeric_membership_number_is_not_joined():
    member = dict(MEMBER, **{"Membership number": "102"})
    elected = dict(ELECTED, membership_number=102)
    store = make_store({"Members Table": [member], "elected_members": [elected]})

    identity = resolve(store, "9876543210")

    assert identity.source is IdentitySource.PERSON
    assert "elected_id" not in identity.fields
