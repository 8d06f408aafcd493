"""Read-only view of user documents plus the account link they carry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class AccountLink:
    """User-side half of the account/user link."""

    id: str
    name: str

    def to_document(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True, slots=True)
class User:
    """Authentication identity; only its account link is managed here."""

    id: str
    username: str
    account: AccountLink | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "User":
        roles = doc.get("roles") or {}
        link = roles.get("account")
        return cls(
            id=doc["_id"],
            username=doc["username"],
            account=AccountLink(id=link["id"], name=link.get("name", "")) if link and link.get("id") else None,
        )
