# app/services/sessions.py
"""
Session lifecycle.

Composes the strategies, the token codec and the session store:

- Anonymous -> Authenticated: register / login / delegated login mint an
  access + refresh pair and persist the refresh token.
- refresh: the refresh token must be stored AND verify with the refresh
  secret; a new access token is minted (and, with rotation enabled, the
  refresh token is replaced).
- Authenticated -> Anonymous: delete one stored refresh token, or all of an
  account's tokens.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.auth.identity import AuthenticatedIdentity
from app.auth.strategies import PasswordCredentials, authenticate
from app.core.errors import Conflict, TokenError, Unauthorized
from app.core.security import hash_password
from app.core.tokens import TokenClaims, TokenCodec, TokenKind
from app.models.refresh_token import RefreshToken
from app.services.refresh_tokens import SessionStore
from app.services.users import DelegatedProfile, create_password_user, get_user_by_email

logger = logging.getLogger(__name__)

INVALID_REFRESH = "Invalid or expired refresh token"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    identity: AuthenticatedIdentity
    tokens: TokenPair


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    # Only set when rotation is enabled.
    refresh_token: str | None = None


class SessionLifecycle:
    def __init__(
        self,
        db: Session,
        *,
        store: SessionStore,
        codec: TokenCodec,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.db = db
        self.store = store
        self.codec = codec
        self.rotate_refresh_tokens = rotate_refresh_tokens

    # -----------------------------
    # Anonymous -> Authenticated
    # -----------------------------
    def start_session(self, identity: AuthenticatedIdentity) -> TokenPair:
        claims = TokenClaims(user_id=identity.user_id, email=identity.email)
        access = self.codec.sign_access(claims)
        refresh = self.codec.sign_refresh(claims)
        self.store.put(identity.user_id, refresh.token, refresh.expires_at)

        logger.info("Session started: %s", identity.to_log_dict())
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            access_expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
        )

    def register(self, *, email: str, name: str, password: str) -> AuthResult:
        if get_user_by_email(self.db, email):
            raise Conflict("Email already registered")

        user = create_password_user(
            self.db,
            email=email,
            name=name,
            password_hash=hash_password(password),
        )
        identity = AuthenticatedIdentity.from_user(user)
        return AuthResult(identity=identity, tokens=self.start_session(identity))

    def login(self, *, email: str, password: str) -> AuthResult:
        identity = authenticate(self.db, PasswordCredentials(email=email, password=password))
        return AuthResult(identity=identity, tokens=self.start_session(identity))

    def login_delegated(self, profile: DelegatedProfile) -> AuthResult:
        identity = authenticate(self.db, profile)
        return AuthResult(identity=identity, tokens=self.start_session(identity))

    # -----------------------------
    # Authenticated -> Authenticated (new access token)
    # -----------------------------
    def refresh(self, refresh_token: str) -> RefreshResult:
        if not refresh_token or not self.store.exists(refresh_token):
            raise Unauthorized(INVALID_REFRESH)

        try:
            claims = self.codec.verify(refresh_token, TokenKind.REFRESH)
        except TokenError:
            raise Unauthorized(INVALID_REFRESH)

        access = self.codec.sign_access(claims)
        if not self.rotate_refresh_tokens:
            return RefreshResult(access_token=access.token)

        # Rotation: the presented token must still be deletable by us; a
        # concurrent refresh that already consumed it loses.
        if not self.store.delete_one(refresh_token):
            raise Unauthorized(INVALID_REFRESH)
        new_refresh = self.codec.sign_refresh(claims)
        self.store.put(claims.user_id, new_refresh.token, new_refresh.expires_at)
        logger.info("Refresh token rotated: user_id=%s", claims.user_id)
        return RefreshResult(access_token=access.token, refresh_token=new_refresh.token)

    # -----------------------------
    # Authenticated -> Anonymous
    # -----------------------------
    def logout(self, refresh_token: str) -> None:
        # Idempotent: an unknown or already-deleted token is not an error.
        removed = self.store.delete_one(refresh_token)
        logger.info("Logout: session_removed=%s", removed)

    def logout_all(self, identity: AuthenticatedIdentity) -> int:
        removed = self.store.delete_all_for_user(identity.user_id)
        logger.info("Logout all devices: user_id=%s, sessions_removed=%d", identity.user_id, removed)
        return removed

    def list_sessions(self, identity: AuthenticatedIdentity) -> list[RefreshToken]:
        return self.store.list_for_user(identity.user_id)
