"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from ..pagination import DEFAULT_LIMIT, DEFAULT_PAGE
from .account import AdminStamp


@dataclass(frozen=True, slots=True)
class AdminCapability:
    """Caller authenticated with the admin scope."""

    admin_id: str
    name: str
    groups: frozenset[str] = frozenset()

    def in_group(self, group: str) -> bool:
        return group in self.groups

    def stamp(self) -> AdminStamp:
        """Audit stamp recorded on notes and status entries."""
        return AdminStamp(id=self.admin_id, name=self.name)


@dataclass(frozen=True, slots=True)
class AccountCapability:
    """Caller authenticated with the account scope, bound to their own account."""

    account_id: str
    user_id: str | None = None


Capability = Union[AdminCapability, AccountCapability]


@dataclass(slots=True)
class PagedQuery:
    """Validated inputs for a paged listing."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort: str = "_id"
    filter: dict[str, Any] = field(default_factory=dict)
