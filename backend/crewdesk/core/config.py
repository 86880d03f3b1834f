# backend/crewdesk/core/config.py
"""
Runtime settings, read from the environment (and .env when present).

Both database URLs are required. Everything else has a development default;
staging and production refuse to start with the development session secret.
"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev-secret-change-me"
MIN_JWT_SECRET_LENGTH = 32
SUPPORTED_JWT_ALGORITHMS = frozenset({"HS256"})
PRODUCTION_LIKE_ENVIRONMENTS = frozenset({"staging", "production"})

# libpq-style query options the asyncpg driver rejects as connect() kwargs.
_LIBPQ_ONLY_PARAMS = frozenset({"sslmode", "channel_binding"})


def _strip_asyncpg_unsupported_params(url: str) -> str:
    """Drop libpq-only options from a DSN so one URL serves both drivers."""
    parts = urlsplit(url)
    if not parts.query:
        return url

    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in _LIBPQ_ONLY_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept, doseq=True), parts.fragment))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # development | staging | production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # asyncpg URL for the app, plain postgresql URL for alembic
    DATABASE_URL_ASYNC: str
    DATABASE_URL_SYNC: str

    # Session JWTs only carry the AuthSession id; revocation and expiry are
    # decided by the stored row.
    JWT_SECRET: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60 * 24 * 7
    SESSION_COOKIE_NAME: str = "crewdesk_session"
    SESSION_COOKIE_SECURE: bool = False

    # Sign-in codes. The code is never echoed back in staging or production.
    MAGIC_CODE_EXPIRY_MINUTES: int = 10
    RETURN_MAGIC_CODE_IN_RESPONSE: bool = True

    @property
    def DATABASE_URL_ASYNC_CLEAN(self) -> str:
        return _strip_asyncpg_unsupported_params(self.DATABASE_URL_ASYNC)

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in PRODUCTION_LIKE_ENVIRONMENTS

    def model_post_init(self, __context) -> None:
        if self.is_production_like:
            secret = (self.JWT_SECRET or "").strip()
            if not secret or secret == DEV_JWT_SECRET:
                raise ValueError(f"JWT_SECRET must be set when ENVIRONMENT={self.ENVIRONMENT!r}.")
            if len(secret) < MIN_JWT_SECRET_LENGTH:
                raise ValueError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters.")

        if self.JWT_ALGORITHM not in SUPPORTED_JWT_ALGORITHMS:
            raise ValueError(
                f"Unsupported JWT_ALGORITHM={self.JWT_ALGORITHM!r}. Allowed: {sorted(SUPPORTED_JWT_ALGORITHMS)}"
            )
        if self.SESSION_EXPIRE_MINUTES <= 0:
            raise ValueError("SESSION_EXPIRE_MINUTES must be positive.")
        if self.MAGIC_CODE_EXPIRY_MINUTES <= 0:
            raise ValueError("MAGIC_CODE_EXPIRY_MINUTES must be positive.")


settings = Settings()
