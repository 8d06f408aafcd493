"""HTTP route definitions for accounts and the status catalog."""

from __future__ import annotations

import logging

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import get_settings
from ..domain.account import Account, AccountName, AccountSummary, AdminStamp, NoteEntry, StatusEntry, UserLink
from ..domain.contracts import AccountCapability, AdminCapability, PagedQuery
from ..domain.service import AccountService, StatusService
from ..domain.status import Status
from ..pagination import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT, MAX_PAGE, MIN_LIMIT, MIN_PAGE, Page
from ..security.capabilities import require_account, require_admin, require_root_admin
from ..security.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisFixedWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class DocumentModel(BaseModel):
    """Response body keyed the way documents are stored: ``_id`` and camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountNameModel(DocumentModel):
    first: str
    middle: str = ""
    last: str

    @classmethod
    def from_domain(cls, name: AccountName) -> "AccountNameModel":
        return cls(first=name.first, middle=name.middle, last=name.last)


class AccountNameInput(BaseModel):
    """Structured name; first and last are required, middle may be empty."""

    first: str = Field(..., min_length=1)
    middle: str = ""
    last: str = Field(..., min_length=1)

    def to_domain(self) -> AccountName:
        return AccountName(first=self.first, middle=self.middle, last=self.last)


class AdminStampModel(DocumentModel):
    id: str
    name: str

    @classmethod
    def from_domain(cls, stamp: AdminStamp) -> "AdminStampModel":
        return cls(id=stamp.id, name=stamp.name)


class NoteEntryModel(DocumentModel):
    admin_created: AdminStampModel
    data: str
    time_created: datetime

    @classmethod
    def from_domain(cls, note: NoteEntry) -> "NoteEntryModel":
        return cls(
            admin_created=AdminStampModel.from_domain(note.admin_created),
            data=note.data,
            time_created=note.time_created,
        )


class StatusEntryModel(DocumentModel):
    id: str
    name: str
    time_created: datetime
    admin_created: AdminStampModel

    @classmethod
    def from_domain(cls, entry: StatusEntry) -> "StatusEntryModel":
        return cls(
            id=entry.id,
            name=entry.name,
            time_created=entry.time_created,
            admin_created=AdminStampModel.from_domain(entry.admin_created),
        )


class UserLinkModel(DocumentModel):
    id: str | None = None
    username: str | None = None

    @classmethod
    def from_domain(cls, link: UserLink | None) -> "UserLinkModel | None":
        return cls(id=link.id, username=link.username) if link is not None else None


class AccountStatusModel(DocumentModel):
    current: StatusEntryModel | None = None
    log: list[StatusEntryModel] = Field(default_factory=list)


class AccountResponse(DocumentModel):
    """Serialised representation of an `Account` aggregate."""

    id: str = Field(alias="_id")
    name: AccountNameModel
    user: UserLinkModel | None = None
    notes: list[NoteEntryModel] = Field(default_factory=list)
    status: AccountStatusModel
    time_created: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        current = account.status.current
        return cls(
            id=account.id,
            name=AccountNameModel.from_domain(account.name),
            user=UserLinkModel.from_domain(account.user),
            notes=[NoteEntryModel.from_domain(note) for note in account.notes],
            status=AccountStatusModel(
                current=StatusEntryModel.from_domain(current) if current is not None else None,
                log=[StatusEntryModel.from_domain(entry) for entry in account.status.log],
            ),
            time_created=account.time_created,
        )


class MyAccountResponse(DocumentModel):
    """Fields an account holder may see about their own account."""

    id: str = Field(alias="_id")
    name: AccountNameModel
    user: UserLinkModel | None = None
    time_created: datetime

    @classmethod
    def from_domain(cls, summary: AccountSummary) -> "MyAccountResponse":
        return cls(
            id=summary.id,
            name=AccountNameModel.from_domain(summary.name),
            user=UserLinkModel.from_domain(summary.user),
            time_created=summary.time_created,
        )


class PageInfoModel(DocumentModel):
    current: int
    prev: int
    has_prev: bool
    next: int
    has_next: bool
    total: int


class ItemInfoModel(DocumentModel):
    limit: int
    begin: int
    end: int
    total: int


class AccountsPageResponse(DocumentModel):
    """Envelope for one page of accounts."""

    data: list[AccountResponse]
    pages: PageInfoModel
    items: ItemInfoModel


class StatusResponse(DocumentModel):
    id: str = Field(alias="_id")
    name: str
    pivot: str

    @classmethod
    def from_domain(cls, value: Status) -> "StatusResponse":
        return cls(id=value.id, name=value.name, pivot=value.pivot)


class StatusesPageResponse(DocumentModel):
    data: list[StatusResponse]
    pages: PageInfoModel
    items: ItemInfoModel


class CreateAccountRequest(BaseModel):
    name: str = Field(..., min_length=1)


class UpdateAccountRequest(BaseModel):
    name: AccountNameInput


class LinkUserRequest(BaseModel):
    username: str = Field(..., min_length=1)


class NoteRequest(BaseModel):
    data: str = Field(..., min_length=1)


class SetStatusRequest(BaseModel):
    status: str = Field(..., min_length=1)


class CreateStatusRequest(BaseModel):
    pivot: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    message: str


settings = get_settings()


def _build_rate_limiter() -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when configured."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis

        client = redis.from_url(settings.redis_url)
        logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
        return RedisFixedWindowRateLimiter(
            client,
            max_requests=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter: RateLimiter = _build_rate_limiter()


def get_account_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_status_service(request: Request) -> StatusService:
    service: StatusService = request.app.state.status_service
    return service


def limit_admin_writes(admin: AdminCapability = Depends(require_admin)) -> AdminCapability:
    """Apply the per-admin rate limit to mutating routes."""
    if not rate_limiter.allow(f"admin:{admin.admin_id}"):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")
    return admin


def _page_query(sort: str, limit: int, page: int) -> PagedQuery:
    return PagedQuery(page=page, limit=limit, sort=sort)


def _page_envelope(page: Page) -> dict:
    return {
        "pages": PageInfoModel(**asdict(page.pages)),
        "items": ItemInfoModel(**asdict(page.items)),
    }


@router.get("/accounts", response_model=AccountsPageResponse, tags=["accounts"])
def list_accounts(
    sort: str = Query(default="_id", description="Comma separated keys, prefix with - to descend."),
    limit: int = Query(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT),
    page: int = Query(default=DEFAULT_PAGE, ge=MIN_PAGE, le=MAX_PAGE),
    admin: AdminCapability = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
) -> AccountsPageResponse:
    """Return a page of accounts."""
    result = service.paged_find(_page_query(sort, limit, page))
    return AccountsPageResponse(
        data=[AccountResponse.from_domain(account) for account in result.data],
        **_page_envelope(result),
    )


@router.post(
    "/accounts",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["accounts"],
)
def create_account(
    payload: CreateAccountRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.create(payload.name))


@router.get("/accounts/my", response_model=MyAccountResponse, tags=["accounts"])
def get_my_account(
    owner: AccountCapability = Depends(require_account),
    service: AccountService = Depends(get_account_service),
) -> MyAccountResponse:
    """Return the caller's own account."""
    return MyAccountResponse.from_domain(service.get_my_account(owner))


@router.put("/accounts/my", response_model=MyAccountResponse, tags=["accounts"])
def update_my_account(
    payload: UpdateAccountRequest,
    owner: AccountCapability = Depends(require_account),
    service: AccountService = Depends(get_account_service),
) -> MyAccountResponse:
    return MyAccountResponse.from_domain(service.update_my_account(owner, payload.name.to_domain()))


@router.get("/accounts/{account_id}", response_model=AccountResponse, tags=["accounts"])
def get_account(
    account_id: str,
    admin: AdminCapability = Depends(require_admin),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.find_by_id(account_id))


@router.put("/accounts/{account_id}", response_model=AccountResponse, tags=["accounts"])
def update_account(
    account_id: str,
    payload: UpdateAccountRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.update(account_id, payload.name.to_domain()))


@router.delete("/accounts/{account_id}", response_model=MessageResponse, tags=["accounts"])
def delete_account(
    account_id: str,
    root: AdminCapability = Depends(require_root_admin),
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Delete an account; restricted to the root admin group."""
    service.delete(account_id)
    return MessageResponse(message="Success.")


@router.put("/accounts/{account_id}/user", response_model=AccountResponse, tags=["accounts"])
def link_user(
    account_id: str,
    payload: LinkUserRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Link a user (by username) to the account."""
    return AccountResponse.from_domain(service.link_user(account_id, payload.username))


@router.delete("/accounts/{account_id}/user", response_model=AccountResponse, tags=["accounts"])
def unlink_user(
    account_id: str,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.unlink_user(account_id))


@router.post("/accounts/{account_id}/notes", response_model=AccountResponse, tags=["accounts"])
def add_note(
    account_id: str,
    payload: NoteRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.add_note(account_id, payload.data, admin))


@router.post("/accounts/{account_id}/status", response_model=AccountResponse, tags=["accounts"])
def set_status(
    account_id: str,
    payload: SetStatusRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Set the account's current status and append it to the status log."""
    return AccountResponse.from_domain(service.set_status(account_id, payload.status, admin))


@router.get("/statuses", response_model=StatusesPageResponse, tags=["statuses"])
def list_statuses(
    sort: str = Query(default="_id"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT),
    page: int = Query(default=DEFAULT_PAGE, ge=MIN_PAGE, le=MAX_PAGE),
    admin: AdminCapability = Depends(require_admin),
    service: StatusService = Depends(get_status_service),
) -> StatusesPageResponse:
    result = service.paged_find(_page_query(sort, limit, page))
    return StatusesPageResponse(
        data=[StatusResponse.from_domain(item) for item in result.data],
        **_page_envelope(result),
    )


@router.post(
    "/statuses",
    response_model=StatusResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["statuses"],
)
def create_status(
    payload: CreateStatusRequest,
    admin: AdminCapability = Depends(limit_admin_writes),
    service: StatusService = Depends(get_status_service),
) -> StatusResponse:
    return StatusResponse.from_domain(service.create(payload.pivot, payload.name))


@router.get("/statuses/{status_id}", response_model=StatusResponse, tags=["statuses"])
def get_status(
    status_id: str,
    admin: AdminCapability = Depends(require_admin),
    service: StatusService = Depends(get_status_service),
) -> StatusResponse:
    return StatusResponse.from_domain(service.find_by_id(status_id))


@router.delete("/statuses/{status_id}", response_model=MessageResponse, tags=["statuses"])
def delete_status(
    status_id: str,
    root: AdminCapability = Depends(require_root_admin),
    service: StatusService = Depends(get_status_service),
) -> MessageResponse:
    service.delete(status_id)
    return MessageResponse(message="Success.")
