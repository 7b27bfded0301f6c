from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.auth.identity import AuthenticatedIdentity


class UserOut(BaseModel):
    """Public account view. Never carries password material."""

    id: str
    email: str
    name: str | None = None
    avatar: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_identity(cls, identity: AuthenticatedIdentity) -> UserOut:
        return cls(
            id=identity.user_id,
            email=identity.email,
            name=identity.name,
            avatar=identity.avatar,
            created_at=identity.created_at,
        )
