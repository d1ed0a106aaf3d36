"""
Centralized configuration for the Workshop Messaging API.

- Frozen dataclass, loaded from OS env (and a .env file via python-dotenv).
- Validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _get_env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be a number")


def _get_env_json_map(key: str) -> Dict[str, str]:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return {}
    try:
        parsed = json.loads(v)
    except json.JSONDecodeError:
        raise ValueError(f"Env var {key} must be a JSON object")
    if not isinstance(parsed, dict):
        raise ValueError(f"Env var {key} must be a JSON object")
    return {str(k): str(val) for k, val in parsed.items()}


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


def _validate_postgres_dsn(value: Optional[str], *, key: str) -> Optional[str]:
    if not value:
        return None
    if not value.startswith("postgresql://") and not value.startswith("postgresql+asyncpg://"):
        raise ValueError(f"{key} must start with postgresql:// or postgresql+asyncpg://")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]
LogFormat = Literal["json", "console"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False
    is_testing: bool = False

    # Core services (both optional: in-memory adapters are used when unset)
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    redis_key_namespace: str = "wma"

    # WhatsApp / Provider
    wa_api_base_url: str = "https://graph.facebook.com/v19.0"
    wa_access_token: Optional[str] = None
    wa_phone_number_id: Optional[str] = None
    wa_app_secret: Optional[str] = None      # HMAC secret for inbound webhooks
    wa_verify_token: Optional[str] = None    # GET handshake token
    # phone_number_id -> tenant_id, used to attribute inbound traffic
    wa_phone_number_tenants: Dict[str, str] = field(default_factory=dict)

    # Admission control
    rate_limit_window_ms: int = 60_000
    rate_limit_max_requests: int = 600
    recipient_rate_limit_max: int = 70
    create_rate_limit_max: int = 100
    default_plan: str = "start"

    # Idempotency
    idempotency_ttl_seconds: int = 86_400
    idempotency_claim_ttl_seconds: int = 60

    # Dispatch
    dispatch_max_attempts: int = 5
    dispatch_backoff_base_seconds: float = 2.0
    dispatch_workers: int = 4
    provider_timeout_seconds: float = 15.0

    # Partner webhooks
    partner_webhook_timeout_seconds: float = 10.0

    # Observability
    log_level: str = "INFO"
    log_format: Optional[LogFormat] = None

    # Paths
    base_dir: Path = field(default_factory=lambda: Path(__file__).resolve().parent.parent)

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_staging: bool = field(init=False)
    is_dev: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )

        object.__setattr__(self, "database_url", _validate_postgres_dsn(self.database_url, key="DATABASE_URL"))
        if self.redis_url:
            _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss"))
        _validate_url(self.wa_api_base_url, key="WA_API_BASE_URL", allowed_schemes=("http", "https"))

        if self.wa_app_secret is not None and len(self.wa_app_secret) < 8:
            raise ValueError("WA_APP_SECRET looks too short")

        if self.log_format is not None:
            _validate_choice(self.log_format, choices=("json", "console"), key="LOG_FORMAT")

        # Admission / dispatch sanity
        if self.rate_limit_window_ms < 1000:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be >= 1000")
        for key, value in (
            ("RATE_LIMIT_MAX_REQUESTS", self.rate_limit_max_requests),
            ("RECIPIENT_RATE_LIMIT_MAX", self.recipient_rate_limit_max),
            ("CREATE_RATE_LIMIT_MAX", self.create_rate_limit_max),
            ("DISPATCH_MAX_ATTEMPTS", self.dispatch_max_attempts),
            ("DISPATCH_WORKERS", self.dispatch_workers),
            ("IDEMPOTENCY_TTL_SECONDS", self.idempotency_ttl_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{key} must be > 0")
        if self.dispatch_backoff_base_seconds < 0:
            raise ValueError("DISPATCH_BACKOFF_BASE_SECONDS must be >= 0")
        if self.provider_timeout_seconds <= 0 or self.partner_webhook_timeout_seconds <= 0:
            raise ValueError("HTTP timeouts must be > 0")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        env = self.environment
        object.__setattr__(self, "is_prod", env == "prod")
        object.__setattr__(self, "is_staging", env == "staging")
        object.__setattr__(self, "is_dev", env == "dev")
        object.__setattr__(self, "is_local", env == "local")

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "is_testing": self.is_testing,
            "database_url": "<masked>" if self.database_url else "<unset>",
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "wa_api_base_url": self.wa_api_base_url,
            "wa_access_token": _mask_secret(self.wa_access_token),
            "wa_phone_number_id": self.wa_phone_number_id or "<unset>",
            "wa_app_secret": _mask_secret(self.wa_app_secret),
            "wa_verify_token": _mask_secret(self.wa_verify_token),
            "wa_phone_number_tenants": len(self.wa_phone_number_tenants),
            "rate_limit_window_ms": self.rate_limit_window_ms,
            "rate_limit_max_requests": self.rate_limit_max_requests,
            "recipient_rate_limit_max": self.recipient_rate_limit_max,
            "dispatch_max_attempts": self.dispatch_max_attempts,
            "dispatch_backoff_base_seconds": self.dispatch_backoff_base_seconds,
            "log_level": self.log_level,
            "log_format": self.log_format or "<auto>",
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Build a fresh Settings from the current environment."""
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    return Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        is_testing=_get_env_bool("IS_TESTING", False),
        database_url=_get_env_str("DATABASE_URL", None) or None,
        redis_url=_get_env_str("REDIS_URL", None) or None,
        database_pool_size=_get_env_int("DATABASE_POOL_SIZE", 5),
        database_max_overflow=_get_env_int("DATABASE_MAX_OVERFLOW", 10),
        redis_key_namespace=_get_env_str("REDIS_KEY_NAMESPACE", "wma") or "wma",
        wa_api_base_url=_get_env_str("WA_API_BASE_URL", "https://graph.facebook.com/v19.0") or "https://graph.facebook.com/v19.0",
        wa_access_token=_get_env_str("WA_ACCESS_TOKEN", None),
        wa_phone_number_id=_get_env_str("WA_PHONE_NUMBER_ID", None),
        wa_app_secret=_get_env_str("WA_APP_SECRET", None),
        wa_verify_token=_get_env_str("WA_VERIFY_TOKEN", None),
        wa_phone_number_tenants=_get_env_json_map("WA_PHONE_NUMBER_TENANTS"),
        rate_limit_window_ms=_get_env_int("RATE_LIMIT_WINDOW_MS", 60_000),
        rate_limit_max_requests=_get_env_int("RATE_LIMIT_MAX_REQUESTS", 600),
        recipient_rate_limit_max=_get_env_int("RECIPIENT_RATE_LIMIT_MAX", 70),
        create_rate_limit_max=_get_env_int("CREATE_RATE_LIMIT_MAX", 100),
        default_plan=_get_env_str("DEFAULT_PLAN", "start") or "start",
        idempotency_ttl_seconds=_get_env_int("IDEMPOTENCY_TTL_SECONDS", 86_400),
        idempotency_claim_ttl_seconds=_get_env_int("IDEMPOTENCY_CLAIM_TTL_SECONDS", 60),
        dispatch_max_attempts=_get_env_int("DISPATCH_MAX_ATTEMPTS", 5),
        dispatch_backoff_base_seconds=_get_env_float("DISPATCH_BACKOFF_BASE_SECONDS", 2.0),
        dispatch_workers=_get_env_int("DISPATCH_WORKERS", 4),
        provider_timeout_seconds=_get_env_float("PROVIDER_TIMEOUT_SECONDS", 15.0),
        partner_webhook_timeout_seconds=_get_env_float("PARTNER_WEBHOOK_TIMEOUT_SECONDS", 10.0),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=cast(Optional[LogFormat], _get_env_str("LOG_FORMAT", None) or None),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
