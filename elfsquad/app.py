from __future__ import annotations

import os

from authentication.context import AuthenticationContext
from authentication.location import Location, WebBrowserLocation
from authentication.token_store import FileStorage, TokenStore

from .env import get_env_float, get_env_int, load_env, options_from_env, setup_logging


def create_authentication_context(
    *,
    location: Location | None = None,
) -> AuthenticationContext:
    """Build a context configured from ``ELFSQUAD_*`` environment variables.

    Pass the URL the provider redirected back to as ``location`` (for example
    ``WebBrowserLocation(callback_url)``) to finish a sign in started earlier.
    """
    load_env()
    setup_logging()

    token_store = TokenStore(
        FileStorage(os.getenv("ELFSQUAD_TOKEN_STORE_PATH") or ".elfsquad_tokens.json")
    )
    return AuthenticationContext(
        options_from_env(),
        token_store=token_store,
        location=location or WebBrowserLocation(),
        http_timeout=get_env_float("ELFSQUAD_HTTP_TIMEOUT", 30.0),
        http_max_retries=get_env_int("ELFSQUAD_HTTP_MAX_RETRIES", 2),
    )
