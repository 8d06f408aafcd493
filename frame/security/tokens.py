"""Utilities for issuing and validating bearer JWTs."""

from __future__ import annotations

import time
from typing import Any, Iterable

import jwt

from ..config import get_settings

ADMIN_SCOPE = "admin"
ACCOUNT_SCOPE = "account"


def issue_access_token(
    *,
    subject: str,
    scope: str,
    name: str = "",
    groups: Iterable[str] = (),
    account_id: str | None = None,
) -> tuple[str, int]:
    """Create a signed JWT describing an authenticated admin or account holder.

    Parameters
    ----------
    subject:
        Admin id for the admin scope, user id for the account scope.
    scope:
        Either ``"admin"`` or ``"account"``.
    name:
        Display name recorded on notes and status entries created by admins.
    groups:
        Admin groups the caller belongs to (for example ``"root"``).
    account_id:
        The caller's own linked account, required for the account scope.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    if scope not in (ADMIN_SCOPE, ACCOUNT_SCOPE):
        raise ValueError(f"unknown scope {scope!r}")
    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "scope": scope,
        "name": name,
        "iat": now,
        "exp": now + expires_in,
    }
    if scope == ADMIN_SCOPE:
        payload["groups"] = sorted(set(groups))
    else:
        payload["account_id"] = account_id

    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
