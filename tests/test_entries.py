from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from frame.domain.account import Account, AccountName, AdminStamp, NoteEntry, StatusEntry
from frame.errors import ValidationError

FIXED = datetime(2024, 5, 23, 20, 19, 27, tzinfo=timezone.utc)
ADMIN = {"id": "admin-1", "name": "Ada Admin"}


def test_note_entry_uses_injected_clock():
    note = NoteEntry.create(data="hello", admin_created=ADMIN, clock=lambda: FIXED)

    assert note.time_created == FIXED
    assert note.admin_created == AdminStamp(id="admin-1", name="Ada Admin")


def test_explicit_time_wins_over_clock():
    earlier = datetime(2020, 1, 1, tzinfo=timezone.utc)

    note = NoteEntry.create(data="hello", admin_created=ADMIN, time_created=earlier, clock=lambda: FIXED)

    assert note.time_created == earlier


@pytest.mark.parametrize(
    "kwargs",
    [
        {"data": "", "admin_created": ADMIN},
        {"data": None, "admin_created": ADMIN},
        {"data": "hello", "admin_created": None},
        {"data": "hello", "admin_created": {"id": "admin-1"}},
        {"data": "hello", "admin_created": {"id": 7, "name": "Ada"}},
    ],
)
def test_note_entry_rejects_missing_fields(kwargs):
    with pytest.raises(ValidationError):
        NoteEntry.create(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"id": "", "name": "Happy", "admin_created": ADMIN},
        {"id": "account-happy", "name": " ", "admin_created": ADMIN},
        {"id": "account-happy", "name": "Happy", "admin_created": {"name": "Ada"}},
    ],
)
def test_status_entry_rejects_missing_fields(kwargs):
    with pytest.raises(ValidationError):
        StatusEntry.create(**kwargs)


def test_entries_are_frozen():
    entry = StatusEntry.create(id="account-happy", name="Happy", admin_created=ADMIN, clock=lambda: FIXED)

    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.name = "Sad"  # type: ignore[misc]


def test_status_entry_document_layout():
    entry = StatusEntry.create(id="account-happy", name="Happy", admin_created=ADMIN, clock=lambda: FIXED)

    doc = entry.to_document()

    assert doc == {
        "id": "account-happy",
        "name": "Happy",
        "timeCreated": "2024-05-23T20:19:27+00:00",
        "adminCreated": ADMIN,
    }
    assert StatusEntry.from_document(doc) == entry


def test_account_document_layout_omits_absent_link_and_status():
    account = Account(id="abc", name=AccountName(first="Jane", middle="Q", last="Doe"), time_created=FIXED)

    doc = account.to_document()

    assert doc == {
        "_id": "abc",
        "name": {"first": "Jane", "middle": "Q", "last": "Doe"},
        "notes": [],
        "status": {"log": []},
        "timeCreated": "2024-05-23T20:19:27+00:00",
    }
    assert Account.from_document(doc) == account


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Jane Q Doe", AccountName(first="Jane", middle="Q", last="Doe")),
        ("Jane Doe", AccountName(first="Jane", middle="", last="Doe")),
        ("Jane Q Van Doe", AccountName(first="Jane", middle="Q", last="Van Doe")),
        ("Cher", AccountName(first="Cher", middle="", last="")),
    ],
)
def test_account_name_parse(raw, expected):
    assert AccountName.parse(raw) == expected


def test_account_name_parse_rejects_blank():
    with pytest.raises(ValidationError):
        AccountName.parse("   ")
