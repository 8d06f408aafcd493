"""Status catalog entries and the slug rule that derives their ids."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACES = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    """Lowercase, drop punctuation and join words with dashes."""
    cleaned = _SLUG_STRIP.sub("", text.strip().lower())
    return _SLUG_SPACES.sub("-", cleaned).strip("-")


@dataclass(frozen=True, slots=True)
class Status:
    """Catalog row naming a status an account can be placed in."""

    id: str
    name: str
    pivot: str

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Status":
        return cls(id=doc["_id"], name=doc["name"], pivot=doc.get("pivot", ""))

    def to_document(self) -> dict[str, str]:
        return {"_id": self.id, "name": self.name, "pivot": self.pivot}
