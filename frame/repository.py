"""Document persistence for accounts, users and statuses."""

from __future__ import annotations

import copy
import threading
from typing import Any, Generic, Iterable, Mapping, Protocol, TypeVar

from psycopg import errors as pg_errors, sql
from psycopg.rows import tuple_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .documents import (
    DESCENDING,
    Document,
    SortSpec,
    apply_update,
    matches,
    project,
    sort_documents,
)
from .domain.account import Account, AccountSummary
from .domain.status import Status
from .domain.user import AccountLink, User
from .errors import ConflictError, DuplicateIdError
from .pagination import Page, build_page

SUMMARY_FIELDS = ("user", "name", "timeCreated")


class DocumentCollection(Protocol):
    """Id-keyed document storage with single-document atomic updates."""

    def find_by_id(self, doc_id: str, fields: Iterable[str] | None = None) -> Document | None: ...

    def insert(self, doc: Document) -> Document: ...

    def find_by_id_and_update(self, doc_id: str, update: Mapping[str, Mapping[str, Any]]) -> Document | None: ...

    def find_by_id_and_delete(self, doc_id: str) -> Document | None: ...

    def find(
        self,
        filter_: Mapping[str, Any] | None = None,
        sort: SortSpec = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]: ...

    def count(self, filter_: Mapping[str, Any] | None = None) -> int: ...


class MemoryCollection:
    """Thread-safe in-process collection used for local runs and tests."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._docs: dict[str, Document] = {}
        self._lock = threading.Lock()

    def find_by_id(self, doc_id: str, fields: Iterable[str] | None = None) -> Document | None:
        with self._lock:
            doc = self._docs.get(doc_id)
            return project(doc, fields) if doc is not None else None

    def insert(self, doc: Document) -> Document:
        with self._lock:
            if doc["_id"] in self._docs:
                raise DuplicateIdError(f"duplicate _id {doc['_id']!r} in {self.name}")
            self._docs[doc["_id"]] = copy.deepcopy(doc)
            return copy.deepcopy(doc)

    def find_by_id_and_update(self, doc_id: str, update: Mapping[str, Mapping[str, Any]]) -> Document | None:
        with self._lock:
            doc = self._docs.get(doc_id)
            if doc is None:
                return None
            updated = apply_update(doc, update)
            self._docs[doc_id] = updated
            return copy.deepcopy(updated)

    def find_by_id_and_delete(self, doc_id: str) -> Document | None:
        with self._lock:
            return self._docs.pop(doc_id, None)

    def find(
        self,
        filter_: Mapping[str, Any] | None = None,
        sort: SortSpec = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        with self._lock:
            selected = [copy.deepcopy(doc) for doc in self._docs.values() if matches(doc, filter_)]
        ordered = sort_documents(selected, sort)
        end = None if limit is None else skip + limit
        return ordered[skip:end]

    def count(self, filter_: Mapping[str, Any] | None = None) -> int:
        with self._lock:
            return sum(1 for doc in self._docs.values() if matches(doc, filter_))


class PostgresCollection:
    """Collection stored as ``(id text, doc jsonb)`` rows in one Postgres table."""

    def __init__(self, pool: ConnectionPool, table: str) -> None:
        """Store the connection pool and the table backing this collection."""
        self._pool = pool
        self._table = sql.Identifier(table)

    def ensure_table(self) -> None:
        """Create the backing table when it does not exist yet."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("CREATE TABLE IF NOT EXISTS {} (id text PRIMARY KEY, doc jsonb NOT NULL)").format(
                        self._table
                    )
                )
                conn.commit()

    def find_by_id(self, doc_id: str, fields: Iterable[str] | None = None) -> Document | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(sql.SQL("SELECT doc FROM {} WHERE id = %s").format(self._table), (doc_id,))
                row = cur.fetchone()
        if not row:
            return None
        return project(row[0], fields)

    def insert(self, doc: Document) -> Document:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        sql.SQL("INSERT INTO {} (id, doc) VALUES (%s, %s) RETURNING doc").format(self._table),
                        (doc["_id"], Jsonb(doc)),
                    )
                except pg_errors.UniqueViolation as exc:
                    conn.rollback()
                    raise DuplicateIdError(f"duplicate _id {doc['_id']!r}") from exc
                row = cur.fetchone()
                conn.commit()
        return row[0]

    def find_by_id_and_update(self, doc_id: str, update: Mapping[str, Mapping[str, Any]]) -> Document | None:
        """Apply ``update`` to one document while holding its row lock."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    sql.SQL("SELECT doc FROM {} WHERE id = %s FOR UPDATE").format(self._table),
                    (doc_id,),
                )
                row = cur.fetchone()
                if not row:
                    conn.rollback()
                    return None
                updated = apply_update(row[0], update)
                cur.execute(
                    sql.SQL("UPDATE {} SET doc = %s WHERE id = %s").format(self._table),
                    (Jsonb(updated), doc_id),
                )
                conn.commit()
        return updated

    def find_by_id_and_delete(self, doc_id: str) -> Document | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    sql.SQL("DELETE FROM {} WHERE id = %s RETURNING doc").format(self._table),
                    (doc_id,),
                )
                row = cur.fetchone()
                conn.commit()
        return row[0] if row else None

    def find(
        self,
        filter_: Mapping[str, Any] | None = None,
        sort: SortSpec = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        where_sql, params = self._where(filter_)
        order_parts: list[sql.Composable] = []
        for path, direction in sort:
            if direction == DESCENDING:
                suffix = sql.SQL("DESC NULLS LAST")
            else:
                suffix = sql.SQL("ASC NULLS FIRST")
            if path == "_id":
                order_parts.append(sql.SQL("id {}").format(suffix))
            else:
                order_parts.append(sql.SQL("doc #> %s::text[] {}").format(suffix))
                params.append(path.split("."))
        query = sql.SQL("SELECT doc FROM {} WHERE {}").format(self._table, where_sql)
        if order_parts:
            query = sql.SQL("{} ORDER BY {}").format(query, sql.SQL(", ").join(order_parts))
        query = sql.SQL("{} OFFSET %s").format(query)
        params.append(skip)
        if limit is not None:
            query = sql.SQL("{} LIMIT %s").format(query)
            params.append(limit)

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                return [row[0] for row in cur.fetchall()]

    def count(self, filter_: Mapping[str, Any] | None = None) -> int:
        where_sql, params = self._where(filter_)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    sql.SQL("SELECT count(*) FROM {} WHERE {}").format(self._table, where_sql),
                    params,
                )
                row = cur.fetchone()
        return int(row[0])

    def _where(self, filter_: Mapping[str, Any] | None) -> tuple[sql.Composable, list[Any]]:
        clauses: list[sql.Composable] = [sql.SQL("TRUE")]
        params: list[Any] = []
        for path, expected in (filter_ or {}).items():
            if path == "_id":
                clauses.append(sql.SQL("id = %s"))
                params.append(expected)
            else:
                clauses.append(sql.SQL("doc #> %s::text[] = %s"))
                params.extend([path.split("."), Jsonb(expected)])
        return sql.SQL(" AND ").join(clauses), params


ModelT = TypeVar("ModelT")


class _DocumentRepository(Generic[ModelT]):
    """Maps documents of one collection to a domain model."""

    def __init__(self, collection: DocumentCollection) -> None:
        self._collection = collection

    def _map_document(self, doc: Document) -> ModelT:
        raise NotImplementedError

    def _map_optional(self, doc: Document | None) -> ModelT | None:
        return self._map_document(doc) if doc is not None else None

    def find_by_id(self, doc_id: str) -> ModelT | None:
        return self._map_optional(self._collection.find_by_id(doc_id))

    def update(self, doc_id: str, update: Mapping[str, Mapping[str, Any]]) -> ModelT | None:
        """Apply one atomic update and return the stored result, or ``None`` when missing."""
        return self._map_optional(self._collection.find_by_id_and_update(doc_id, update))

    def delete(self, doc_id: str) -> ModelT | None:
        return self._map_optional(self._collection.find_by_id_and_delete(doc_id))

    def find_page(
        self,
        filter_: Mapping[str, Any] | None,
        sort: SortSpec,
        page: int,
        limit: int,
    ) -> Page[ModelT]:
        """Return one page of results plus counters; pages past the end are empty."""
        total = self._collection.count(filter_)
        docs = self._collection.find(filter_, sort=sort, skip=(page - 1) * limit, limit=limit)
        return build_page([self._map_document(doc) for doc in docs], total, page, limit)


class AccountRepository(_DocumentRepository[Account]):
    def _map_document(self, doc: Document) -> Account:
        return Account.from_document(doc)

    def insert(self, account: Account) -> Account:
        return self._map_document(self._collection.insert(account.to_document()))

    def find_summary(self, account_id: str) -> AccountSummary | None:
        """Load only the fields an account holder may see about their account."""
        doc = self._collection.find_by_id(account_id, fields=SUMMARY_FIELDS)
        return AccountSummary.from_account(Account.from_document(doc)) if doc is not None else None


class UserRepository(_DocumentRepository[User]):
    """Linking contract of the externally managed user aggregate."""

    def _map_document(self, doc: Document) -> User:
        return User.from_document(doc)

    def find_by_username(self, username: str) -> User | None:
        docs = self._collection.find({"username": username.lower()}, limit=1)
        return self._map_document(docs[0]) if docs else None

    def link_account(self, user_id: str, account_id: str, account_name: str) -> User | None:
        link = AccountLink(id=account_id, name=account_name)
        return self.update(user_id, {"$set": {"roles.account": link.to_document()}})

    def unlink_account(self, user_id: str) -> User | None:
        return self.update(user_id, {"$unset": {"roles.account": True}})


class StatusRepository(_DocumentRepository[Status]):
    def _map_document(self, doc: Document) -> Status:
        return Status.from_document(doc)

    def insert(self, status: Status) -> Status:
        try:
            doc = self._collection.insert(status.to_document())
        except DuplicateIdError as exc:
            raise ConflictError("Status already exists.") from exc
        return self._map_document(doc)
