# app/auth/strategies.py
"""
Authentication strategies.

A closed set of credential shapes, each with exactly one strategy:

- PasswordCredentials  -> PasswordStrategy   (email + password)
- BearerCredentials    -> BearerStrategy     (Authorization: Bearer <access token>)
- DelegatedProfile     -> DelegatedStrategy  (identity asserted by Google/GitHub)

Every strategy exposes ``authenticate(db, credentials)`` and returns an
AuthenticatedIdentity or raises Unauthorized. ``authenticate()`` at module
level is the single dispatch point used by the session orchestrator and the
FastAPI dependencies.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from sqlalchemy.orm import Session

from app.auth.identity import AuthenticatedIdentity
from app.core.errors import TokenError, Unauthorized
from app.core.security import verify_password
from app.core.tokens import TokenCodec, TokenKind
from app.services.users import (
    DelegatedProfile,
    find_or_create_provider_user,
    get_user_by_email,
    get_user_by_id,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass(frozen=True)
class PasswordCredentials:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"PasswordCredentials(email={self.email!r}, password=***)"


@dataclass(frozen=True)
class BearerCredentials:
    token: str | None

    def __repr__(self) -> str:
        return "BearerCredentials(token=***)"


Credentials = Union[PasswordCredentials, BearerCredentials, DelegatedProfile]


class PasswordStrategy:
    def authenticate(self, db: Session, credentials: PasswordCredentials) -> AuthenticatedIdentity:
        user = get_user_by_email(db, credentials.email)
        # Same message for unknown email, passwordless account and wrong password.
        if not user or not user.password_hash:
            raise Unauthorized(INVALID_CREDENTIALS)
        if not verify_password(credentials.password, user.password_hash):
            raise Unauthorized(INVALID_CREDENTIALS)
        return AuthenticatedIdentity.from_user(user)


class BearerStrategy:
    """
    Verifies an access token and loads its subject.

    With ``optional=True`` a missing or invalid token yields ``None`` instead
    of an error, so the request proceeds unauthenticated.
    """

    def __init__(self, codec: TokenCodec, *, optional: bool = False) -> None:
        self.codec = codec
        self.optional = optional

    def authenticate(self, db: Session, credentials: BearerCredentials) -> AuthenticatedIdentity | None:
        token = (credentials.token or "").strip()
        if not token:
            if self.optional:
                return None
            raise Unauthorized("Missing Authorization header")

        try:
            claims = self.codec.verify(token, TokenKind.ACCESS)
        except TokenError:
            if self.optional:
                return None
            raise

        user = get_user_by_id(db, claims.user_id)
        if not user:
            if self.optional:
                return None
            raise Unauthorized("User not found")
        return AuthenticatedIdentity.from_user(user)


class DelegatedStrategy:
    """Find-or-create keyed by provider id. Never checks a password."""

    def authenticate(self, db: Session, credentials: DelegatedProfile) -> AuthenticatedIdentity:
        user = find_or_create_provider_user(db, credentials)
        return AuthenticatedIdentity.from_user(user)


def resolve_strategy(
    credentials: Credentials,
    *,
    codec: TokenCodec | None = None,
    optional: bool = False,
):
    if isinstance(credentials, PasswordCredentials):
        return PasswordStrategy()
    if isinstance(credentials, BearerCredentials):
        if codec is None:
            raise ValueError("Bearer authentication requires a token codec")
        return BearerStrategy(codec, optional=optional)
    if isinstance(credentials, DelegatedProfile):
        return DelegatedStrategy()
    raise TypeError(f"Unsupported credentials: {type(credentials).__name__}")


def authenticate(
    db: Session,
    credentials: Credentials,
    *,
    codec: TokenCodec | None = None,
    optional: bool = False,
) -> AuthenticatedIdentity | None:
    strategy = resolve_strategy(credentials, codec=codec, optional=optional)
    identity = strategy.authenticate(db, credentials)
    if identity is not None:
        logger.debug("Authenticated via %s: user_id=%s", type(strategy).__name__, identity.user_id)
    return identity
