# app/core/config.py
import logging
import os
import re
from datetime import timedelta

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def parse_duration(value: str) -> timedelta:
    """
    Parse a compact duration like "15m", "7d", "12h" or "30s".

    Unknown units are rejected rather than guessed.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration {value!r}: expected <number><s|m|h|d>")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"Invalid duration {value!r}: must be positive")
    return amount * _DURATION_UNITS[match.group(2)]


class Settings:
    def __init__(self) -> None:
        # Only load .env for local/dev. In prod, env vars come from the service config.
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            load_dotenv()

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

        # ----------------------------
        # Database
        # ----------------------------
        default_db = "" if self.ENV == "prod" else "sqlite:///./app.db"
        self.DATABASE_URL = os.getenv("DATABASE_URL", default_db).strip()
        self.DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "10"))

        # ----------------------------
        # Password hashing
        # ----------------------------
        self.PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))
        self.PASSWORD_HASH_TIME_COST = int(os.getenv("PASSWORD_HASH_TIME_COST", "3"))
        # KiB
        self.PASSWORD_HASH_MEMORY_COST = int(os.getenv("PASSWORD_HASH_MEMORY_COST", "65536"))

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS")) + parse_csv(os.getenv("CORS_ORIGIN"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Auth / JWT
        # ----------------------------
        self.JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "")
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ACCESS_EXPIRES_IN = os.getenv("JWT_ACCESS_EXPIRES_IN", "15m").strip()
        self.JWT_REFRESH_EXPIRES_IN = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d").strip()
        self.REFRESH_TOKEN_ROTATION = str_to_bool(os.getenv("REFRESH_TOKEN_ROTATION"), default=False)

        # ----------------------------
        # URLs
        # ----------------------------
        if self.ENV == "prod":
            self.FRONTEND_URL = os.getenv("FRONTEND_URL", "").strip().rstrip("/")
            self.PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").strip().rstrip("/")
        else:
            self.FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").strip().rstrip("/")
            self.PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:4000").strip().rstrip("/")

        # ----------------------------
        # OAuth providers (active only when id + secret are both set)
        # ----------------------------
        self.GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
        self.GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
        self.GOOGLE_CALLBACK_URL = os.getenv("GOOGLE_CALLBACK_URL", "").strip()
        self.GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID", "")
        self.GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET", "")
        self.GITHUB_CALLBACK_URL = os.getenv("GITHUB_CALLBACK_URL", "").strip()

        # Final: fail fast in prod
        self._validate_prod()

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.JWT_ACCESS_SECRET:
            missing.append("JWT_ACCESS_SECRET")
        if not self.JWT_REFRESH_SECRET:
            missing.append("JWT_REFRESH_SECRET")
        if not self.DATABASE_URL:
            missing.append("DATABASE_URL")
        if not self.FRONTEND_URL:
            missing.append("FRONTEND_URL")
        if not self.PUBLIC_BASE_URL:
            missing.append("PUBLIC_BASE_URL")
        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if self.FRONTEND_URL and not self.FRONTEND_URL.startswith("https://"):
            raise RuntimeError("FRONTEND_URL should be https://... in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_ACCESS_EXPIRES_IN)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    def provider_enabled(self, provider: str) -> bool:
        prefix = provider.strip().upper()
        client_id = getattr(self, f"{prefix}_CLIENT_ID", "")
        client_secret = getattr(self, f"{prefix}_CLIENT_SECRET", "")
        return bool(client_id and client_secret)


settings = Settings()


def require_jwt_secrets() -> None:
    """
    Startup validation for the token signing configuration.

    Hard failures: missing secrets, identical access/refresh secrets, malformed
    durations. Short secrets are only warned about.
    """
    missing = [
        name
        for name in ("JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET")
        if not (getattr(settings, name) or "").strip()
    ]
    if missing:
        raise RuntimeError(f"{' and '.join(missing)} must be set")

    if settings.JWT_ACCESS_SECRET == settings.JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different")

    for name in ("JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET"):
        if len(getattr(settings, name).encode("utf-8")) < MIN_SECRET_LENGTH:
            logger.warning("%s should be at least %d bytes long", name, MIN_SECRET_LENGTH)

    for name in ("JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN"):
        try:
            parse_duration(getattr(settings, name))
        except ValueError as exc:
            raise RuntimeError(f"{name} is invalid: {exc}") from exc
