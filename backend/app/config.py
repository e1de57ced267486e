"""
Service configuration.
Decision identifiers and Camunda connection settings, read once at startup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Deployment-level settings. Immutable once loaded."""
    dmn_decision_id: str = "dec_email_routing"
    dmn_requirements_id: str = "defs_email_routing"
    port: int = 3000
    zeebe_rest_address: str = "http://localhost:8080"
    zeebe_client_id: Optional[str] = None
    zeebe_client_secret: Optional[str] = None
    camunda_oauth_url: str = "https://login.cloud.camunda.io/oauth/token"
    zeebe_token_audience: str = "zeebe.camunda.io"
    camunda_tenant_id: Optional[str] = None
    request_timeout: float = 30.0
    max_workers: int = 1
    cors_origins: tuple[str, ...] = ()
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build Settings from environment variables (and .env, via load_dotenv).

        Raises ValueError when a numeric variable cannot be parsed.
        """
        cors_env = os.getenv("CORS_ORIGINS", "").strip()
        cors_origins = tuple(o.strip() for o in cors_env.split(",") if o.strip())

        max_workers = _get_int("EVALUATE_MAX_WORKERS", cls.max_workers)
        if max_workers < 1:
            raise ValueError("EVALUATE_MAX_WORKERS must be at least 1")

        return cls(
            dmn_decision_id=os.getenv("DMN_DECISION_ID") or cls.dmn_decision_id,
            dmn_requirements_id=os.getenv("DMN_REQUIREMENTS_ID") or cls.dmn_requirements_id,
            port=_get_int("PORT", cls.port),
            zeebe_rest_address=(
                os.getenv("ZEEBE_REST_ADDRESS") or cls.zeebe_rest_address
            ).rstrip("/"),
            zeebe_client_id=os.getenv("ZEEBE_CLIENT_ID") or None,
            zeebe_client_secret=os.getenv("ZEEBE_CLIENT_SECRET") or None,
            camunda_oauth_url=os.getenv("CAMUNDA_OAUTH_URL") or cls.camunda_oauth_url,
            zeebe_token_audience=os.getenv("ZEEBE_TOKEN_AUDIENCE") or cls.zeebe_token_audience,
            camunda_tenant_id=os.getenv("CAMUNDA_TENANT_ID") or None,
            request_timeout=_get_float("CAMUNDA_REQUEST_TIMEOUT", cls.request_timeout),
            max_workers=max_workers,
            cors_origins=cors_origins,
            log_level=(os.getenv("LOG_LEVEL") or cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, loading them on first use."""
    return Settings.from_env()
