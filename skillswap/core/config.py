from __future__ import annotations

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getint(name: str, default: str, *, minimum: int, maximum: int | None = None) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"in {minimum}..{maximum}"
        raise ValueError(f"{name} must be {bounds} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    creator_revenue_share_pct: int = 80
    storage_retry_attempts: int = 3
    storage_retry_backoff_ms: int = 50
    idempotency_ttl_seconds: int = 86400
    certificate_base_url: str = "https://certificates.skillswap.com"
    # PEM public key of the token issuer; None means an ephemeral dev key.
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def _load_public_key() -> str | None:
    inline = _getenv("JWT_PUBLIC_KEY", "")
    path = _getenv("JWT_PUBLIC_KEY_FILE", "")
    if inline and path:
        raise ValueError("set JWT_PUBLIC_KEY or JWT_PUBLIC_KEY_FILE, not both")
    if path:
        try:
            return Path(path).read_text()
        except OSError as exc:
            raise ValueError(
                f"JWT_PUBLIC_KEY_FILE cannot be read (got {path!r}): {exc.strerror}"
            ) from None
    # Env files often carry the PEM on one line with literal \n separators.
    return inline.replace("\\n", "\n") or None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    jwt_public_key = _load_public_key()
    if app_env_raw == "prod" and jwt_public_key is None:
        raise ValueError("JWT_PUBLIC_KEY or JWT_PUBLIC_KEY_FILE is required when APP_ENV=prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=_getint("PORT", "8000", minimum=1, maximum=65535),
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        creator_revenue_share_pct=_getint(
            "CREATOR_REVENUE_SHARE_PCT", "80", minimum=0, maximum=100
        ),
        storage_retry_attempts=_getint("STORAGE_RETRY_ATTEMPTS", "3", minimum=1),
        storage_retry_backoff_ms=_getint("STORAGE_RETRY_BACKOFF_MS", "50", minimum=0),
        idempotency_ttl_seconds=_getint("IDEMPOTENCY_TTL_SECONDS", "86400", minimum=1),
        certificate_base_url=_getenv(
            "CERTIFICATE_BASE_URL", "https://certificates.skillswap.com"
        ).rstrip("/"),
        jwt_public_key=jwt_public_key,
    )


SETTINGS = load_settings()
