from __future__ import annotations

from dataclasses import dataclass, fields

from elfsquad.constants import (
    DEFAULT_API_URL,
    DEFAULT_LOGIN_URL,
    DEFAULT_RESPONSE_MODE,
    DEFAULT_SCOPE,
)


@dataclass(frozen=True)
class AuthenticationOptions:
    client_id: str | None = None
    redirect_uri: str | None = None
    scope: str = DEFAULT_SCOPE
    login_url: str = DEFAULT_LOGIN_URL
    response_mode: str = DEFAULT_RESPONSE_MODE
    tenant_id: str | None = None
    api_url: str = DEFAULT_API_URL

    def missing_fields(self) -> list[str]:
        """Names of the fields user authentication cannot work without."""
        missing = []
        if not self.client_id:
            missing.append("client_id")
        if not self.redirect_uri:
            missing.append("redirect_uri")
        return missing

    @property
    def uses_user_authentication(self) -> bool:
        return not self.missing_fields()


@dataclass
class OAuthOptions:
    """Extra parameters passed through to the authorization request.

    ``prompt="none"`` performs a silent login: the provider redirects back
    with an error instead of showing a login page when there is no session.
    ``login_hint`` pre-fills the username and ``max_age`` bounds the age of
    the provider session in seconds.
    """

    prompt: str | None = None
    nonce: str | None = None
    display: str | None = None
    max_age: int | None = None
    ui_locales: str | None = None
    id_token_hint: str | None = None
    login_hint: str | None = None
    acr_values: str | None = None

    def to_extras(self) -> dict[str, str]:
        extras: dict[str, str] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                extras[item.name] = str(value)
        return extras
