# app/auth/identity.py
"""
Canonical authenticated identity model.

An AuthenticatedIdentity is the sanitized view of a ``User`` row that gets
attached to a request once one of the strategies in ``app.auth.strategies``
succeeds. It carries every account field except the password hash, so it is
safe to serialize back to clients.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.models.user import User


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """
    Attributes:
        user_id: Internal account id (also the ``sub`` claim of issued tokens).
        email: Normalized (lower-cased) email address.
        name: Display name, if any.
        avatar: Avatar URL, if any.
        google_id / github_id: Linked provider ids, if any.
        has_password: Whether the account can sign in with a password.
            The hash itself never leaves the model layer.
    """

    user_id: str
    email: str
    name: str | None = None
    avatar: str | None = None
    google_id: str | None = None
    github_id: str | None = None
    has_password: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> AuthenticatedIdentity:
        return cls(
            user_id=str(user.id),
            email=user.email,
            name=user.name,
            avatar=user.avatar,
            google_id=user.google_id,
            github_id=user.github_id,
            has_password=bool(user.password_hash),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    @property
    def linked_providers(self) -> list[str]:
        providers = []
        if self.google_id:
            providers.append("google")
        if self.github_id:
            providers.append("github")
        return providers

    def to_log_dict(self) -> dict[str, Any]:
        """Safe subset for log lines."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "providers": self.linked_providers,
        }
