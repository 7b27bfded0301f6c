# app/auth/oauth.py
"""
Google / GitHub OAuth2 handshake.

This module only turns a provider redirect (``code`` + ``state``) into a
verified DelegatedProfile. Account lookup and token issuance happen in the
session orchestrator.
"""
from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from app.core.config import Settings
from app.services.users import DelegatedProfile

OAUTH_TIMEOUT = 10.0
OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = timedelta(minutes=10)


class OAuthError(Exception):
    """Base exception for provider handshake failures."""


class OAuthConfigurationError(OAuthError):
    """Raised when a provider is not configured."""


class OAuthStateError(OAuthError):
    """Raised when the returned state does not match the issued one."""


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    authorize_url: str
    token_url: str
    scope: str
    client_id: str
    client_secret: str
    callback_url: str


def provider_config(settings: Settings, provider: str) -> ProviderConfig:
    provider = (provider or "").strip().lower()
    if provider not in ("google", "github") or not settings.provider_enabled(provider):
        raise OAuthConfigurationError(f"{provider or 'provider'} sign-in is not configured")

    prefix = provider.upper()
    callback_url = getattr(settings, f"{prefix}_CALLBACK_URL") or (
        f"{settings.PUBLIC_BASE_URL}/api/auth/{provider}/callback"
    )
    if provider == "google":
        return ProviderConfig(
            name="google",
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            scope="openid email profile",
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            callback_url=callback_url,
        )
    return ProviderConfig(
        name="github",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",  # noqa: S105
        scope="read:user user:email",
        client_id=settings.GITHUB_CLIENT_ID,
        client_secret=settings.GITHUB_CLIENT_SECRET,
        callback_url=callback_url,
    )


# -----------------------------
# CSRF state
# -----------------------------
def issue_state(*, secret: str) -> tuple[str, str]:
    """Returns (cookie_value, state). The cookie is a short-lived signed JWT."""
    state = secrets.token_urlsafe(24)
    now = datetime.now(timezone.utc)
    payload = {
        "state": state,
        "type": "oauth_state",
        "iat": int(now.timestamp()),
        "exp": int((now + OAUTH_STATE_MAX_AGE).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256"), state


def verify_state(*, secret: str, cookie_value: str | None, returned_state: str | None) -> None:
    if not cookie_value or not returned_state:
        raise OAuthStateError("Missing OAuth state")
    try:
        payload = jwt.decode(cookie_value, secret, algorithms=["HS256"])
    except JWTError as exc:
        raise OAuthStateError("Invalid or expired OAuth state") from exc
    if payload.get("type") != "oauth_state":
        raise OAuthStateError("Invalid OAuth state")
    if not hmac.compare_digest(str(payload.get("state") or ""), returned_state):
        raise OAuthStateError("OAuth state mismatch")


def authorization_url(config: ProviderConfig, *, state: str) -> str:
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.callback_url,
        "scope": config.scope,
        "state": state,
    }
    if config.name == "google":
        params["response_type"] = "code"
    return f"{config.authorize_url}?{urlencode(params)}"


# -----------------------------
# Code exchange + profile fetch
# -----------------------------
def exchange_code(config: ProviderConfig, code: str) -> str:
    data = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "code": code,
        "redirect_uri": config.callback_url,
    }
    if config.name == "google":
        data["grant_type"] = "authorization_code"

    try:
        response = httpx.post(
            config.token_url,
            data=data,
            headers={"Accept": "application/json"},
            timeout=OAUTH_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPError as exc:
        raise OAuthError(f"{config.name} token exchange failed") from exc
    except ValueError as exc:
        raise OAuthError(f"Invalid {config.name} token response") from exc

    token = payload.get("access_token")
    if not token:
        raise OAuthError(f"{config.name} did not return an access token")
    return str(token)


def _get_json(url: str, access_token: str):
    response = httpx.get(
        url,
        headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        timeout=OAUTH_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def fetch_google_profile(access_token: str) -> DelegatedProfile:
    info = _get_json("https://openidconnect.googleapis.com/v1/userinfo", access_token)
    return DelegatedProfile(
        provider="google",
        external_id=str(info.get("sub") or ""),
        email=info.get("email") if info.get("email_verified", True) else None,
        display_name=info.get("name"),
        avatar_url=info.get("picture"),
    )


def fetch_github_profile(access_token: str) -> DelegatedProfile:
    user = _get_json("https://api.github.com/user", access_token)
    email = user.get("email")
    if not email:
        emails = _get_json("https://api.github.com/user/emails", access_token)
        if isinstance(emails, list):
            for entry in emails:
                if entry.get("primary") and entry.get("verified"):
                    email = entry.get("email")
                    break
    return DelegatedProfile(
        provider="github",
        external_id=str(user.get("id") or ""),
        email=email,
        display_name=user.get("name"),
        avatar_url=user.get("avatar_url"),
        username=user.get("login"),
    )


def fetch_profile(config: ProviderConfig, access_token: str) -> DelegatedProfile:
    try:
        if config.name == "google":
            profile = fetch_google_profile(access_token)
        else:
            profile = fetch_github_profile(access_token)
    except httpx.HTTPError as exc:
        raise OAuthError(f"{config.name} profile request failed") from exc
    except ValueError as exc:
        raise OAuthError(f"Invalid {config.name} profile response") from exc

    if not profile.external_id:
        raise OAuthError(f"{config.name} profile is missing an id")
    return profile


def complete_handshake(config: ProviderConfig, code: str) -> DelegatedProfile:
    if not code:
        raise OAuthError("Missing authorization code")
    return fetch_profile(config, exchange_code(config, code))
