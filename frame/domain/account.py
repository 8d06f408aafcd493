"""Account aggregate and the audited entries embedded in it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from ..errors import ValidationError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_time(value: datetime) -> str:
    """Serialise a timestamp as ISO-8601, assuming UTC for naive values."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value


@dataclass(frozen=True, slots=True)
class AdminStamp:
    """Who created an entry: the acting admin's id and display name."""

    id: str
    name: str

    @classmethod
    def coerce(cls, value: Any) -> "AdminStamp":
        """Accept an ``AdminStamp`` or a ``{"id", "name"}`` mapping."""
        if isinstance(value, AdminStamp):
            value = {"id": value.id, "name": value.name}
        if not isinstance(value, Mapping):
            raise ValidationError("adminCreated is required")
        return cls(
            id=_require_text(value.get("id"), "adminCreated.id"),
            name=_require_text(value.get("name"), "adminCreated.name"),
        )

    def to_document(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True, slots=True)
class NoteEntry:
    """A free-text note appended to an account by an admin."""

    admin_created: AdminStamp
    data: str
    time_created: datetime

    @classmethod
    def create(
        cls,
        *,
        data: Any,
        admin_created: Any,
        time_created: datetime | None = None,
        clock: Clock = utcnow,
    ) -> "NoteEntry":
        """Validate the inputs and stamp ``time_created`` from ``clock`` when omitted."""
        return cls(
            admin_created=AdminStamp.coerce(admin_created),
            data=_require_text(data, "data"),
            time_created=time_created if time_created is not None else clock(),
        )

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "NoteEntry":
        return cls(
            admin_created=AdminStamp.coerce(doc.get("adminCreated")),
            data=doc["data"],
            time_created=parse_time(doc["timeCreated"]),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "adminCreated": self.admin_created.to_document(),
            "data": self.data,
            "timeCreated": format_time(self.time_created),
        }


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A status assignment recorded in an account's status log."""

    id: str
    name: str
    time_created: datetime
    admin_created: AdminStamp

    @classmethod
    def create(
        cls,
        *,
        id: Any,
        name: Any,
        admin_created: Any,
        time_created: datetime | None = None,
        clock: Clock = utcnow,
    ) -> "StatusEntry":
        return cls(
            id=_require_text(id, "id"),
            name=_require_text(name, "name"),
            time_created=time_created if time_created is not None else clock(),
            admin_created=AdminStamp.coerce(admin_created),
        )

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "StatusEntry":
        return cls(
            id=doc["id"],
            name=doc["name"],
            time_created=parse_time(doc["timeCreated"]),
            admin_created=AdminStamp.coerce(doc.get("adminCreated")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "timeCreated": format_time(self.time_created),
            "adminCreated": self.admin_created.to_document(),
        }


@dataclass(frozen=True, slots=True)
class AccountName:
    first: str
    last: str
    middle: str = ""

    @classmethod
    def parse(cls, name: str) -> "AccountName":
        """Split a display name: first word, optional middle word, remaining words."""
        parts = name.strip().split()
        if not parts:
            raise ValidationError("name is required")
        first = parts.pop(0)
        middle = parts.pop(0) if len(parts) > 1 else ""
        return cls(first=first, middle=middle, last=" ".join(parts))

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "AccountName":
        return cls(first=doc.get("first", ""), middle=doc.get("middle", ""), last=doc.get("last", ""))

    def to_document(self) -> dict[str, str]:
        return {"first": self.first, "middle": self.middle, "last": self.last}


@dataclass(frozen=True, slots=True)
class UserLink:
    """Account-side half of the account/user link."""

    id: str | None
    username: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username}


@dataclass(frozen=True, slots=True)
class AccountStatus:
    current: StatusEntry | None = None
    log: tuple[StatusEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class Account:
    """Aggregate root owning a name, an optional user link and two append-only logs."""

    id: str
    name: AccountName
    time_created: datetime
    user: UserLink | None = None
    notes: tuple[NoteEntry, ...] = ()
    status: AccountStatus = field(default_factory=AccountStatus)

    def full_name(self) -> str:
        return f"{self.name.first} {self.name.last}".strip()

    @classmethod
    def new(cls, id: str, name: AccountName, clock: Clock = utcnow) -> "Account":
        return cls(id=id, name=name, time_created=clock())

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Account":
        user_doc = doc.get("user")
        status_doc = doc.get("status") or {}
        current = status_doc.get("current")
        return cls(
            id=doc["_id"],
            name=AccountName.from_document(doc.get("name") or {}),
            time_created=parse_time(doc["timeCreated"]),
            user=UserLink(id=user_doc.get("id"), username=user_doc.get("username")) if user_doc else None,
            notes=tuple(NoteEntry.from_document(note) for note in doc.get("notes", [])),
            status=AccountStatus(
                current=StatusEntry.from_document(current) if current else None,
                log=tuple(StatusEntry.from_document(entry) for entry in status_doc.get("log", [])),
            ),
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "_id": self.id,
            "name": self.name.to_document(),
            "notes": [note.to_document() for note in self.notes],
            "status": {"log": [entry.to_document() for entry in self.status.log]},
            "timeCreated": format_time(self.time_created),
        }
        if self.user is not None:
            doc["user"] = self.user.to_document()
        if self.status.current is not None:
            doc["status"]["current"] = self.status.current.to_document()
        return doc


@dataclass(frozen=True, slots=True)
class AccountSummary:
    """Reduced view of an account returned to its owner."""

    id: str
    name: AccountName
    time_created: datetime
    user: UserLink | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountSummary":
        return cls(id=account.id, name=account.name, time_created=account.time_created, user=account.user)
