from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, StorageUnavailable
from app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite may round-trip tz-aware datetimes as naive. Treat naive as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_refresh_token(raw_token: str, key: str) -> str:
    """
    Store only a hash in DB.
    HMAC keyed by the refresh signing secret so DB leaks can't be brute-forced easily.
    """
    secret = (key or "").encode("utf-8")
    if not secret:
        raise RuntimeError("A hashing key is required to store refresh tokens.")
    return hmac.new(secret, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()


class SessionStore:
    """
    Durable record of issued refresh tokens, keyed by token value.

    Each method is its own transaction. A token is valid only while its row
    exists and ``expires_at`` is in the future; rows are never updated.
    """

    def __init__(self, db: Session, *, hash_key: str) -> None:
        self.db = db
        self._hash_key = hash_key

    def _hash(self, raw_token: str) -> str:
        return hash_refresh_token(raw_token, self._hash_key)

    def _lookup(self, raw_token: str) -> RefreshToken | None:
        if not raw_token:
            return None
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.token_hash == self._hash(raw_token))
            .first()
        )

    def _delete_where(self, action: str, *criteria) -> int:
        try:
            deleted = (
                self.db.query(RefreshToken)
                .filter(*criteria)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Session store %s failed", action)
            raise StorageUnavailable()
        return int(deleted or 0)

    def put(self, user_id: str, raw_token: str, expires_at: datetime) -> RefreshToken:
        rt = RefreshToken(
            user_id=user_id,
            token_hash=self._hash(raw_token),
            expires_at=expires_at,
        )
        self.db.add(rt)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Refresh token already exists")
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Session store put failed: user_id=%s", user_id)
            raise StorageUnavailable()
        return rt

    def exists(self, raw_token: str, *, now: datetime | None = None) -> bool:
        return self.get_valid(raw_token, now=now) is not None

    def get_valid(self, raw_token: str, *, now: datetime | None = None) -> RefreshToken | None:
        try:
            rt = self._lookup(raw_token)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Session store lookup failed")
            raise StorageUnavailable()
        if not rt or rt.expires_at is None:
            return None
        if _as_utc(rt.expires_at) <= (now or _now_utc()):
            return None
        return rt

    def get_owner(self, raw_token: str) -> str | None:
        rt = self.get_valid(raw_token)
        return rt.user_id if rt else None

    def list_for_user(self, user_id: str, *, now: datetime | None = None) -> list[RefreshToken]:
        try:
            rows = (
                self.db.query(RefreshToken)
                .filter(RefreshToken.user_id == user_id)
                .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
                .all()
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Session store list failed: user_id=%s", user_id)
            raise StorageUnavailable()
        cutoff = now or _now_utc()
        return [rt for rt in rows if _as_utc(rt.expires_at) > cutoff]

    def delete_one(self, raw_token: str) -> bool:
        """Delete by token value. Absent tokens are a no-op (returns False)."""
        if not raw_token:
            return False
        return bool(self._delete_where("delete_one", RefreshToken.token_hash == self._hash(raw_token)))

    def delete_all_for_user(self, user_id: str) -> int:
        return self._delete_where("delete_all_for_user", RefreshToken.user_id == user_id)

    def purge_expired(self, *, now: datetime | None = None) -> int:
        cutoff = now or _now_utc()
        return self._delete_where("purge_expired", RefreshToken.expires_at <= cutoff)
