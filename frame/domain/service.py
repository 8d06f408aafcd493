"""Account and status catalog workflows on top of the document repositories."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from prometheus_client import Counter

from ..documents import new_object_id
from ..errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from ..pagination import Page, check_bounds, parse_sort
from ..repository import AccountRepository, StatusRepository, UserRepository
from .account import Account, AccountName, AccountSummary, Clock, NoteEntry, StatusEntry, UserLink, utcnow
from .contracts import AccountCapability, AdminCapability, PagedQuery
from .status import Status, slugify

logger = logging.getLogger(__name__)

ACCOUNT_OPERATIONS = Counter(
    "frame_account_operations_total",
    "Account service operations that completed successfully.",
    ["operation"],
)

ACCOUNT_SORT_FIELDS = {
    "_id": "_id",
    "timeCreated": "timeCreated",
    "name": "name.last",
    "status": "status.current.name",
}

STATUS_SORT_FIELDS = {
    "_id": "_id",
    "name": "name",
    "pivot": "pivot",
}

ACCOUNT_NOT_FOUND = "Account not found."
USER_NOT_FOUND = "User not found."
STATUS_NOT_FOUND = "Status not found."


def _run_both(first: Callable[[], Any], second: Callable[[], Any]) -> tuple[Any, Any]:
    """Run two independent writes concurrently.

    Both writes are always attempted. There is no rollback: when one fails
    the other may already be stored, and the first failure is re-raised.
    """
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = (pool.submit(first), pool.submit(second))
    return futures[0].result(), futures[1].result()


def _check_name(name: AccountName) -> AccountName:
    if not name.first.strip() or not name.last.strip():
        raise ValidationError("name.first and name.last are required")
    return name


class AccountService:
    """Account workflows: CRUD, user linking, notes and status log."""

    def __init__(
        self,
        accounts: AccountRepository,
        users: UserRepository,
        statuses: StatusRepository,
        *,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = new_object_id,
    ) -> None:
        self._accounts = accounts
        self._users = users
        self._statuses = statuses
        self._clock = clock
        self._id_factory = id_factory

    def create(self, name: str) -> Account:
        """Create an account from a display name, with empty logs and no user link."""
        account = Account.new(self._id_factory(), AccountName.parse(name), clock=self._clock)
        account = self._accounts.insert(account)
        ACCOUNT_OPERATIONS.labels(operation="create").inc()
        logger.info("account %s created", account.id)
        return account

    def find_by_id(self, account_id: str) -> Account:
        """Return the account or raise ``NotFoundError``."""
        account = self._accounts.find_by_id(account_id)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        return account

    def update(self, account_id: str, name: AccountName) -> Account:
        """Replace the account name; first and last must be non-blank."""
        update = {"$set": {"name": _check_name(name).to_document()}}
        account = self._accounts.update(account_id, update)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="update").inc()
        return account

    def delete(self, account_id: str) -> Account:
        """Remove the account document. Any linked user keeps its stale link."""
        account = self._accounts.delete(account_id)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="delete").inc()
        logger.info("account %s deleted", account_id)
        return account

    def paged_find(self, query: PagedQuery) -> Page[Account]:
        """Return one page of accounts; sort keys and bounds are checked before querying."""
        check_bounds(query.page, query.limit)
        sort = parse_sort(query.sort, ACCOUNT_SORT_FIELDS)
        return self._accounts.find_page(query.filter, sort, query.page, query.limit)

    def link_user(self, account_id: str, username: str) -> Account:
        """Link an account and a user to each other.

        Relinking the same pair is a no-op in effect. A user or account that
        is already linked elsewhere must be unlinked first.
        """
        username = username.lower()
        account = self.find_by_id(account_id)
        user = self._users.find_by_username(username)
        if user is None:
            raise NotFoundError(USER_NOT_FOUND)

        if user.account is not None and user.account.id != account_id:
            logger.warning("user %s already linked to account %s", user.id, user.account.id)
            raise ConflictError("User is linked to an account. Unlink first.")
        if account.user is not None and account.user.id and account.user.id != user.id:
            logger.warning("account %s already linked to user %s", account_id, account.user.id)
            raise ConflictError("Account is linked to a user. Unlink first.")

        updated, _ = _run_both(
            lambda: self._accounts.update(
                account_id, {"$set": {"user": UserLink(id=user.id, username=user.username).to_document()}}
            ),
            lambda: self._users.link_account(user.id, account_id, account.full_name()),
        )
        if updated is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="link_user").inc()
        logger.info("account %s linked to user %s", account_id, user.id)
        return updated

    def unlink_user(self, account_id: str) -> Account:
        """Clear the account/user link on both sides.

        An account with no linked user id is cleaned up without looking at
        users at all.
        """
        account = self.find_by_id(account_id)

        if account.user is None or not account.user.id:
            updated = self._accounts.update(account_id, {"$unset": {"user": True}})
            if updated is None:
                raise NotFoundError(ACCOUNT_NOT_FOUND)
            ACCOUNT_OPERATIONS.labels(operation="unlink_user").inc()
            logger.info("account %s had no user id; cleared link state", account_id)
            return updated

        user = self._users.find_by_id(account.user.id)
        if user is None:
            logger.warning("account %s links to missing user %s", account_id, account.user.id)
            raise IntegrityError(USER_NOT_FOUND)

        updated, _ = _run_both(
            lambda: self._accounts.update(account_id, {"$unset": {"user": True}}),
            lambda: self._users.unlink_account(user.id),
        )
        if updated is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="unlink_user").inc()
        logger.info("account %s unlinked from user %s", account_id, user.id)
        return updated

    def add_note(self, account_id: str, data: str, actor: AdminCapability) -> Account:
        """Append a note stamped with the acting admin."""
        note = NoteEntry.create(data=data, admin_created=actor.stamp(), clock=self._clock)
        account = self._accounts.update(account_id, {"$push": {"notes": note.to_document()}})
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="add_note").inc()
        return account

    def set_status(self, account_id: str, status_id: str, actor: AdminCapability) -> Account:
        """Record a new status: one write sets ``status.current`` and appends to ``status.log``."""
        status = self._statuses.find_by_id(status_id)
        if status is None:
            raise NotFoundError(STATUS_NOT_FOUND)

        entry = StatusEntry.create(
            id=status.id,
            name=status.name,
            admin_created=actor.stamp(),
            clock=self._clock,
        ).to_document()
        account = self._accounts.update(
            account_id,
            {"$set": {"status.current": entry}, "$push": {"status.log": entry}},
        )
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        ACCOUNT_OPERATIONS.labels(operation="set_status").inc()
        logger.info("account %s status set to %s by %s", account_id, status.id, actor.admin_id)
        return account

    def get_my_account(self, actor: AccountCapability) -> AccountSummary:
        """Return the caller's own account, reduced to its public fields."""
        summary = self._accounts.find_summary(actor.account_id)
        if summary is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND)
        return summary

    def update_my_account(self, actor: AccountCapability, name: AccountName) -> AccountSummary:
        """Rename the caller's own account."""
        return AccountSummary.from_account(self.update(actor.account_id, name))


class StatusService:
    """Maintains the catalog of statuses accounts can be placed in."""

    def __init__(self, statuses: StatusRepository) -> None:
        self._statuses = statuses

    def create(self, pivot: str, name: str) -> Status:
        """Add a status whose id is the slug of ``pivot`` and ``name``.

        A create that races another one for the same slug still ends in
        ``ConflictError``, raised by the repository insert.
        """
        if not pivot.strip() or not name.strip():
            raise ValidationError("pivot and name are required")
        status_id = slugify(f"{pivot} {name}")
        if not status_id:
            raise ValidationError("pivot and name must contain letters or digits")
        if self._statuses.find_by_id(status_id) is not None:
            raise ConflictError("Status already exists.")
        status = self._statuses.insert(Status(id=status_id, name=name, pivot=pivot))
        logger.info("status %s created", status.id)
        return status

    def find_by_id(self, status_id: str) -> Status:
        status = self._statuses.find_by_id(status_id)
        if status is None:
            raise NotFoundError(STATUS_NOT_FOUND)
        return status

    def paged_find(self, query: PagedQuery) -> Page[Status]:
        """Return one page of statuses."""
        check_bounds(query.page, query.limit)
        sort = parse_sort(query.sort, STATUS_SORT_FIELDS)
        return self._statuses.find_page(query.filter, sort, query.page, query.limit)

    def delete(self, status_id: str) -> Status:
        status = self._statuses.delete(status_id)
        if status is None:
            raise NotFoundError(STATUS_NOT_FOUND)
        logger.info("status %s deleted", status_id)
        return status
