"""Helpers for JSON-like documents shared by every collection backend.

Documents are plain dictionaries keyed by ``_id``. Nested fields are
addressed with dotted paths (``"status.current"``). Updates use a small
subset of the familiar document-store operators:

``$set``
    Assign a value at each dotted path, creating intermediate objects.
``$unset``
    Remove each dotted path if present.
``$push``
    Append a value to the list at each dotted path, creating the list.
"""

from __future__ import annotations

import copy
import itertools
import os
import random
import threading
import time
from typing import Any, Iterable, Mapping, Sequence

Document = dict[str, Any]
SortSpec = Sequence[tuple[str, int]]

ASCENDING = 1
DESCENDING = -1

_MISSING = object()

_process_token = os.urandom(5).hex()
_counter = itertools.count(random.randint(0, 0x7FFFFF))
_counter_lock = threading.Lock()


def new_object_id() -> str:
    """Return a 24 character hex id that sorts by creation time.

    The layout follows the usual object id scheme: a 4 byte timestamp, a
    5 byte per-process token and a 3 byte counter.
    """
    with _counter_lock:
        count = next(_counter) & 0xFFFFFF
    return f"{int(time.time()):08x}{_process_token}{count:06x}"


def get_path(doc: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Return the value stored at a dotted path, or ``default``."""
    value = _lookup(doc, path)
    return default if value is _MISSING else value


def _lookup(doc: Mapping[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _parent_for_write(doc: Document, path: str) -> tuple[Document, str]:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    return current, parts[-1]


def apply_update(doc: Mapping[str, Any], update: Mapping[str, Mapping[str, Any]]) -> Document:
    """Return a copy of ``doc`` with the update operators applied.

    ``_id`` can never be changed through an update.
    """
    result: Document = copy.deepcopy(dict(doc))
    for operator, fields in update.items():
        for path, value in fields.items():
            if path == "_id" or path.startswith("_id."):
                raise ValueError("_id is immutable")
            if operator == "$set":
                parent, key = _parent_for_write(result, path)
                parent[key] = copy.deepcopy(value)
            elif operator == "$unset":
                parent, key = _parent_for_write(result, path)
                parent.pop(key, None)
            elif operator == "$push":
                parent, key = _parent_for_write(result, path)
                target = parent.setdefault(key, [])
                if not isinstance(target, list):
                    raise ValueError(f"cannot push to non-list field {path!r}")
                target.append(copy.deepcopy(value))
            else:
                raise ValueError(f"unsupported update operator {operator!r}")
    return result


def matches(doc: Mapping[str, Any], filter_: Mapping[str, Any] | None) -> bool:
    """Return ``True`` when every dotted path in ``filter_`` equals the document value."""
    if not filter_:
        return True
    return all(_lookup(doc, path) == expected for path, expected in filter_.items())


def sort_documents(docs: Iterable[Document], sort: SortSpec) -> list[Document]:
    """Sort documents by several dotted paths; missing values sort first."""
    ordered = list(docs)
    for path, direction in reversed(list(sort)):
        ordered.sort(key=lambda doc, p=path: _sort_key(doc, p), reverse=direction == DESCENDING)
    return ordered


def _sort_key(doc: Mapping[str, Any], path: str) -> tuple:
    value = _lookup(doc, path)
    if value is _MISSING or value is None:
        return (0, "")
    return (1, value)


def project(doc: Mapping[str, Any], fields: Iterable[str] | None) -> Document:
    """Keep ``_id`` plus the listed top-level fields; ``None`` keeps everything."""
    if fields is None:
        return copy.deepcopy(dict(doc))
    wanted = set(fields) | {"_id"}
    return {key: copy.deepcopy(value) for key, value in doc.items() if key in wanted}
