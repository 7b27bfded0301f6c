# app/services/users.py
"""
Account helpers.

Responsibilities:
- Lookup by id / email / provider-linked id
- Password-path account creation (registration)
- Provider-path find-or-create (delegated identities)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound, StorageUnavailable, ValidationFailed
from app.models.user import User

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("google", "github")

DEFAULT_PROVIDER_NAMES = {
    "google": "Google User",
    "github": "GitHub User",
}


@dataclass(frozen=True)
class DelegatedProfile:
    """Verified identity handed over by an external provider after its own flow."""

    provider: str
    external_id: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    username: str | None = None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _provider_column(provider: str):
    if provider == "google":
        return User.google_id
    if provider == "github":
        return User.github_id
    raise NotFound(f"Unsupported provider: {provider}")


def fallback_email(profile: DelegatedProfile) -> str:
    """Synthesized address for providers that do not disclose an email."""
    if profile.provider == "github":
        handle = (profile.username or "").strip() or profile.external_id
        return f"{handle}@github.com".lower()
    if profile.provider == "google":
        return f"{profile.external_id}@google.local".lower()
    raise NotFound(f"Unsupported provider: {profile.provider}")


def normalize_name(name: str | None, fallback: str) -> str:
    if name:
        clean = name.strip()
        if clean:
            return clean[:100]
    return fallback


def _first(db: Session, *criteria) -> Optional[User]:
    try:
        return db.query(User).filter(*criteria).first()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("User lookup failed")
        raise StorageUnavailable()


def _commit_or_conflict(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(conflict_message)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("User write failed")
        raise StorageUnavailable()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    if not user_id:
        return None
    return _first(db, User.id == str(user_id))


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    return _first(db, User.email == normalize_email(email))


def get_user_by_provider_id(db: Session, provider: str, external_id: str) -> Optional[User]:
    column = _provider_column(provider)
    return _first(db, column == str(external_id))


def create_password_user(db: Session, *, email: str, name: str, password_hash: str) -> User:
    """
    Insert a password-path account.

    The unique index on ``email`` is the final arbiter: a concurrent insert
    of the same email surfaces as Conflict even if the caller pre-checked.
    """
    user = User(
        email=normalize_email(email),
        name=normalize_name(name, fallback=normalize_email(email).split("@", 1)[0]),
        password_hash=password_hash,
    )
    db.add(user)
    _commit_or_conflict(db, "Email already registered")
    db.refresh(user)

    logger.info("Registered user: id=%s, email=%s", user.id, user.email)
    return user


def find_or_create_provider_user(db: Session, profile: DelegatedProfile) -> User:
    """
    Idempotent find-or-create keyed by the provider id.

    Order: provider id match → link onto a provider-only account with the same
    provider-asserted email → create a provider-only account.

    An email that belongs to a password account, or that had to be synthesized
    because the provider withheld one, is never linked: it raises Conflict.
    """
    if profile.provider not in SUPPORTED_PROVIDERS:
        raise NotFound(f"Unsupported provider: {profile.provider}")
    if not profile.external_id:
        raise ValidationFailed("Provider identity is missing an id")

    external_id = str(profile.external_id)
    user = get_user_by_provider_id(db, profile.provider, external_id)
    if user:
        return user

    asserted_email = normalize_email(profile.email or "")
    email = asserted_email or fallback_email(profile)
    column_name = f"{profile.provider}_id"

    existing = get_user_by_email(db, email)
    if existing:
        if existing.password_hash or not asserted_email:
            logger.warning(
                "Refused %s login onto existing account: id=%s, email=%s",
                profile.provider,
                existing.id,
                email,
            )
            raise Conflict("Email already registered")
        if getattr(existing, column_name):
            # Same email already linked to a different account at this provider.
            raise Conflict("Email already linked to another account")
        setattr(existing, column_name, external_id)
        if not existing.avatar and profile.avatar_url:
            existing.avatar = profile.avatar_url
        _commit_or_conflict(db, "Provider account already linked")
        db.refresh(existing)
        logger.info("Linked %s identity to user: id=%s", profile.provider, existing.id)
        return existing

    fallback_name = profile.username or DEFAULT_PROVIDER_NAMES[profile.provider]
    user = User(
        email=email,
        name=normalize_name(profile.display_name, fallback=fallback_name),
        avatar=profile.avatar_url,
    )
    setattr(user, column_name, external_id)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent first login for the same provider id.
        db.rollback()
        user = get_user_by_provider_id(db, profile.provider, external_id)
        if user is None:
            raise Conflict("Email already registered")
        return user
    except SQLAlchemyError:
        db.rollback()
        logger.exception("User write failed")
        raise StorageUnavailable()
    db.refresh(user)

    logger.info(
        "Provisioned new %s user: id=%s, email=%s",
        profile.provider,
        user.id,
        user.email,
    )
    return user
