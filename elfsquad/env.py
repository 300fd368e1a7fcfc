from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from authentication.options import AuthenticationOptions

from .constants import (
    DEFAULT_API_URL,
    DEFAULT_LOGIN_URL,
    DEFAULT_RESPONSE_MODE,
    DEFAULT_SCOPE,
    LOGGER,
)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_str(key: str) -> str | None:
    raw = os.getenv(key, "").strip()
    return raw or None


def get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a numeric value.")


def load_env(env_path: Path | None = None) -> None:
    path = env_path or Path.cwd() / ".env"
    if not path.exists():
        return
    load_dotenv(path, override=True)


def options_from_env() -> AuthenticationOptions:
    return AuthenticationOptions(
        client_id=_get_env_str("ELFSQUAD_CLIENT_ID"),
        redirect_uri=_get_env_str("ELFSQUAD_REDIRECT_URI"),
        scope=_get_env_str("ELFSQUAD_SCOPE") or DEFAULT_SCOPE,
        login_url=_get_env_str("ELFSQUAD_LOGIN_URL") or DEFAULT_LOGIN_URL,
        response_mode=_get_env_str("ELFSQUAD_RESPONSE_MODE") or DEFAULT_RESPONSE_MODE,
        tenant_id=_get_env_str("ELFSQUAD_TENANT_ID"),
        api_url=_get_env_str("ELFSQUAD_API_URL") or DEFAULT_API_URL,
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("ELFSQUAD_AUTH_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
