"""FastAPI dependencies turning bearer tokens into typed capabilities."""

from __future__ import annotations

import logging
from typing import Callable

import jwt
from fastapi import Depends, Header

from ..config import get_settings
from ..domain.contracts import AccountCapability, AdminCapability, Capability
from ..errors import ForbiddenError, UnauthorizedError
from .tokens import ACCOUNT_SCOPE, ADMIN_SCOPE, decode_access_token

logger = logging.getLogger(__name__)


def capability_from_claims(claims: dict) -> Capability:
    """Build the capability described by verified token claims."""
    scope = claims.get("scope")
    if scope == ADMIN_SCOPE:
        return AdminCapability(
            admin_id=str(claims["sub"]),
            name=claims.get("name") or str(claims["sub"]),
            groups=frozenset(claims.get("groups") or ()),
        )
    if scope == ACCOUNT_SCOPE:
        account_id = claims.get("account_id")
        if not account_id:
            raise UnauthorizedError("token has no linked account")
        return AccountCapability(account_id=str(account_id), user_id=str(claims["sub"]))
    raise UnauthorizedError("token has no recognised scope")


def get_capability(authorization: str | None = Header(default=None)) -> Capability:
    """Resolve the caller's capability from the ``Authorization`` header."""
    if not authorization:
        raise UnauthorizedError("missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("expected a bearer token")
    try:
        claims = decode_access_token(token.strip())
    except jwt.PyJWTError as exc:
        logger.info("rejected bearer token: %s", exc)
        raise UnauthorizedError("invalid token") from exc
    return capability_from_claims(claims)


def require_admin(capability: Capability = Depends(get_capability)) -> AdminCapability:
    if not isinstance(capability, AdminCapability):
        raise ForbiddenError("admin scope required")
    return capability


def require_admin_group(group: str) -> Callable[..., AdminCapability]:
    """Dependency factory requiring an admin who belongs to ``group``."""

    def _dependency(admin: AdminCapability = Depends(require_admin)) -> AdminCapability:
        if not admin.in_group(group):
            raise ForbiddenError(f"Missing required group membership: {group}.")
        return admin

    return _dependency


def require_root_admin(admin: AdminCapability = Depends(require_admin)) -> AdminCapability:
    """Require membership of the configured root admin group."""
    return require_admin_group(get_settings().root_group)(admin)


def require_account(capability: Capability = Depends(get_capability)) -> AccountCapability:
    if not isinstance(capability, AccountCapability):
        raise ForbiddenError("account scope required")
    return capability
