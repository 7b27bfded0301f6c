# app/core/tokens.py
"""
Access / refresh token codec.

Two independent signing contexts: access tokens are short-lived and signed
with JWT_ACCESS_SECRET, refresh tokens are long-lived and signed with
JWT_REFRESH_SECRET. A token signed in one context never verifies in the other
(different key and a ``type`` claim that is checked on decode).
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jose import JWTError, jwt

from app.core.config import Settings
from app.core.errors import TokenError


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Minimal claim set carried by both token kinds."""

    user_id: str
    email: str


@dataclass(frozen=True)
class SignedToken:
    token: str
    expires_at: datetime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ")
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: access_ttl,
            TokenKind.REFRESH: refresh_ttl,
        }
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            access_secret=settings.JWT_ACCESS_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
            algorithm=settings.JWT_ALGORITHM,
        )

    def ttl(self, kind: TokenKind) -> timedelta:
        return self._ttls[kind]

    def _sign(self, kind: TokenKind, claims: TokenClaims, now: datetime | None) -> SignedToken:
        issued = now or _now_utc()
        expires_at = issued + self._ttls[kind]
        payload: dict[str, Any] = {
            "sub": claims.user_id,
            "email": claims.email,
            "type": kind.value,
            "iat": int(issued.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if kind is TokenKind.REFRESH:
            # Refresh tokens are stored keyed by value; two logins in the same
            # second must still yield distinct tokens.
            payload["jti"] = secrets.token_urlsafe(16)
        token = jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)
        return SignedToken(token=token, expires_at=expires_at)

    def sign_access(self, claims: TokenClaims, *, now: datetime | None = None) -> SignedToken:
        return self._sign(TokenKind.ACCESS, claims, now)

    def sign_refresh(self, claims: TokenClaims, *, now: datetime | None = None) -> SignedToken:
        return self._sign(TokenKind.REFRESH, claims, now)

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        Returns the embedded claims or raises TokenError.

        Signature, structure, token type and expiry must all check out.
        """
        if not token or not isinstance(token, str):
            raise TokenError()
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except JWTError:
            raise TokenError()

        if payload.get("type") != kind.value:
            raise TokenError()

        user_id = payload.get("sub")
        email = payload.get("email")
        if not isinstance(user_id, str) or not isinstance(email, str) or not user_id or not email:
            raise TokenError()

        return TokenClaims(user_id=user_id, email=email)
