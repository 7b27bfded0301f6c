# app/models/user.py
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, String, func
from sqlalchemy.orm import relationship

from app.core.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        # Every account needs at least one way to sign in.
        CheckConstraint(
            "password_hash IS NOT NULL OR google_id IS NOT NULL OR github_id IS NOT NULL",
            name="ck_users_has_auth_path",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=True)
    # NULL for provider-only accounts
    password_hash = Column(String(255), nullable=True)

    google_id = Column(String(255), unique=True, index=True, nullable=True)
    github_id = Column(String(255), unique=True, index=True, nullable=True)
    avatar = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # user → refresh tokens
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
