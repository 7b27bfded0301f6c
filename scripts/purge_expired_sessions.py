"""
Delete expired refresh-token rows.

Optional maintenance sweep: request handling never relies on it, since
validity checks always re-test ``expires_at``. Safe to run from cron.

Usage:
    python scripts/purge_expired_sessions.py [--dry-run]
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path
import sys


# Allow `import app.*` from backend/
REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


from app.core.config import settings  # noqa: E402
from app.core.database import SessionLocal  # noqa: E402
from app.models.refresh_token import RefreshToken  # noqa: E402
from app.services.refresh_tokens import SessionStore  # noqa: E402

logger = logging.getLogger("purge_expired_sessions")


def count_expired(db, now: datetime) -> int:
    return db.query(RefreshToken).filter(RefreshToken.expires_at <= now).count()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Delete expired refresh tokens.")
    parser.add_argument("--dry-run", action="store_true", help="Only report how many rows would be deleted")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    now = datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        if args.dry_run:
            logger.info("Expired refresh tokens: %d", count_expired(db, now))
            return 0
        store = SessionStore(db, hash_key=settings.JWT_REFRESH_SECRET)
        deleted = store.purge_expired(now=now)
        logger.info("Deleted %d expired refresh tokens", deleted)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
