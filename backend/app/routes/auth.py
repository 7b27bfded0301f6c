# app/routes/auth.py
from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from app.auth import oauth
from app.auth.identity import AuthenticatedIdentity
from app.core.config import settings
from app.core.errors import AppError
from app.dependencies.auth import get_current_user, get_optional_user, get_session_lifecycle
from app.schemas.auth import (
    AuthData,
    AuthOut,
    LoginIn,
    MessageOut,
    RefreshData,
    RefreshOut,
    RefreshTokenIn,
    RegisterIn,
    SessionOut,
    SessionsData,
    SessionsOut,
    UserData,
    UserEnvelopeOut,
)
from app.schemas.user import UserOut
from app.services.sessions import AuthResult, SessionLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _auth_payload(result: AuthResult) -> AuthData:
    return AuthData(
        user=UserOut.from_identity(result.identity),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )


def _frontend_login_url(error: str) -> str:
    return f"{settings.FRONTEND_URL}/login?{urlencode({'error': error})}"


# -----------------------------
# Password flow
# -----------------------------
@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, sessions: SessionLifecycle = Depends(get_session_lifecycle)):
    if len(payload.password) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")

    result = sessions.register(email=payload.email, name=name, password=payload.password)
    return AuthOut(message="User created", data=_auth_payload(result))


@router.post("/login", response_model=AuthOut)
def login(payload: LoginIn, sessions: SessionLifecycle = Depends(get_session_lifecycle)):
    result = sessions.login(email=payload.email, password=payload.password)
    return AuthOut(message="Logged in", data=_auth_payload(result))


# -----------------------------
# Token lifecycle
# -----------------------------
@router.post("/refresh", response_model=RefreshOut, response_model_exclude_none=True)
def refresh(payload: RefreshTokenIn, sessions: SessionLifecycle = Depends(get_session_lifecycle)):
    result = sessions.refresh(payload.refresh_token)
    return RefreshOut(
        message="Token refreshed",
        data=RefreshData(access_token=result.access_token, refresh_token=result.refresh_token),
    )


@router.post("/logout", response_model=MessageOut)
def logout(payload: RefreshTokenIn, sessions: SessionLifecycle = Depends(get_session_lifecycle)):
    sessions.logout(payload.refresh_token)
    return MessageOut(message="Logged out")


@router.post("/logout-all", response_model=MessageOut)
def logout_all(
    user: AuthenticatedIdentity = Depends(get_current_user),
    sessions: SessionLifecycle = Depends(get_session_lifecycle),
):
    sessions.logout_all(user)
    return MessageOut(message="Logged out from all devices")


@router.get("/me", response_model=UserEnvelopeOut)
def me(user: AuthenticatedIdentity = Depends(get_current_user)):
    return UserEnvelopeOut(data=UserData(user=UserOut.from_identity(user)))


@router.get("/status")
def auth_status(user: AuthenticatedIdentity | None = Depends(get_optional_user)):
    return {
        "success": True,
        "data": {
            "authenticated": user is not None,
            "user": UserOut.from_identity(user).model_dump(by_alias=True, mode="json") if user else None,
        },
    }


@router.get("/sessions", response_model=SessionsOut)
def list_sessions(
    user: AuthenticatedIdentity = Depends(get_current_user),
    sessions: SessionLifecycle = Depends(get_session_lifecycle),
):
    rows = sessions.list_sessions(user)
    return SessionsOut(data=SessionsData(sessions=[SessionOut.model_validate(rt) for rt in rows]))


# -----------------------------
# Delegated identity (Google / GitHub)
# -----------------------------
@router.get("/{provider}")
def provider_login(provider: str):
    try:
        config = oauth.provider_config(settings, provider)
    except oauth.OAuthConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    cookie_value, state = oauth.issue_state(secret=settings.JWT_ACCESS_SECRET)
    response = RedirectResponse(
        url=oauth.authorization_url(config, state=state),
        status_code=status.HTTP_302_FOUND,
    )
    response.set_cookie(
        oauth.OAUTH_STATE_COOKIE,
        cookie_value,
        httponly=True,
        secure=settings.is_prod,
        samesite="lax",
        max_age=int(oauth.OAUTH_STATE_MAX_AGE.total_seconds()),
        path="/api/auth",
    )
    return response


@router.get("/{provider}/callback")
def provider_callback(
    provider: str,
    request: Request,
    sessions: SessionLifecycle = Depends(get_session_lifecycle),
):
    try:
        config = oauth.provider_config(settings, provider)
        oauth.verify_state(
            secret=settings.JWT_ACCESS_SECRET,
            cookie_value=request.cookies.get(oauth.OAUTH_STATE_COOKIE),
            returned_state=request.query_params.get("state"),
        )
        profile = oauth.complete_handshake(config, request.query_params.get("code") or "")
    except oauth.OAuthError as e:
        logger.warning("OAuth callback rejected: provider=%s reason=%s", provider, e)
        return RedirectResponse(_frontend_login_url("auth_failed"), status_code=status.HTTP_302_FOUND)

    try:
        result = sessions.login_delegated(profile)
    except AppError as e:
        logger.warning("OAuth login failed: provider=%s code=%s", provider, e.code)
        return RedirectResponse(_frontend_login_url("server_error"), status_code=status.HTTP_302_FOUND)

    query = urlencode(
        {
            "accessToken": result.tokens.access_token,
            "refreshToken": result.tokens.refresh_token,
        }
    )
    response = RedirectResponse(
        f"{settings.FRONTEND_URL}/auth/callback?{query}",
        status_code=status.HTTP_302_FOUND,
    )
    response.delete_cookie(oauth.OAUTH_STATE_COOKIE, path="/api/auth")
    return response
