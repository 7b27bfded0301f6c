# app/core/security.py
from __future__ import annotations

import logging

from passlib.context import CryptContext

from app.core.config import settings

logger = logging.getLogger(__name__)


def _build_context() -> CryptContext:
    # Cost parameters come from settings only; the resulting hash string
    # embeds them, so verification never needs out-of-band metadata.
    return CryptContext(
        schemes=["argon2"],
        deprecated="auto",
        argon2__time_cost=settings.PASSWORD_HASH_TIME_COST,
        argon2__memory_cost=settings.PASSWORD_HASH_MEMORY_COST,
    )


pwd_context = _build_context()


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized or corrupted hash format.
        logger.warning("Stored password hash could not be identified")
        return False
