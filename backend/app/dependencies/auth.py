# app/dependencies/auth.py
from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.identity import AuthenticatedIdentity
from app.auth.strategies import BearerCredentials, authenticate
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import Unauthorized
from app.core.tokens import TokenCodec
from app.services.refresh_tokens import SessionStore
from app.services.sessions import SessionLifecycle

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_codec() -> TokenCodec:
    return TokenCodec.from_settings(settings)


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(db, hash_key=settings.JWT_REFRESH_SECRET)


def get_session_lifecycle(
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    codec: TokenCodec = Depends(get_token_codec),
) -> SessionLifecycle:
    return SessionLifecycle(
        db,
        store=store,
        codec=codec,
        rotate_refresh_tokens=settings.REFRESH_TOKEN_ROTATION,
    )


def _bearer_token(creds: HTTPAuthorizationCredentials | None) -> str | None:
    if not creds or creds.scheme.lower() != "bearer":
        return None
    return creds.credentials


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> AuthenticatedIdentity:
    """
    Validates:
      - Authorization: Bearer <access token>
      - token signature + type + exp (access secret)
      - subject account still exists
    Returns:
      - AuthenticatedIdentity (no password hash)
    """
    try:
        return authenticate(db, BearerCredentials(_bearer_token(creds)), codec=codec)
    except Unauthorized as exc:
        raise _unauthorized(exc.message)


def get_optional_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> AuthenticatedIdentity | None:
    """Same checks as get_current_user, but absent/invalid tokens yield None."""
    return authenticate(db, BearerCredentials(_bearer_token(creds)), codec=codec, optional=True)
