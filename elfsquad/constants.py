from __future__ import annotations

import logging

LOGGER = logging.getLogger("elfsquad.authentication")
APP_VERSION = "0.1.0"

DEFAULT_LOGIN_URL = "https://login.elfsquad.io"
DEFAULT_API_URL = "https://api.elfsquad.io"
DEFAULT_SCOPE = "Elfskot.Api offline_access"
DEFAULT_RESPONSE_MODE = "fragment"
RESPONSE_MODES = {"query", "fragment"}

TENANT_HEADER = "x-elfsquad-id"

REFRESH_TOKEN_KEY = "elfsquad_refresh_token"
TOKEN_RESPONSE_KEY = "elfsquad_token_response"
PENDING_AUTHORIZATION_KEY = "elfsquad_pending_authorization"
STATE_KEY_PREFIX = "elfsquad-"

# Tokens are treated as expired this long before the server says so.
TOKEN_EXPIRY_BUFFER_SECONDS = 10 * 60

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}
