from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any

import jwt

from authentication.errors import (
    AuthorizationError,
    ServiceConfigurationError,
    TokenRequestError,
)
from elfsquad.constants import TOKEN_EXPIRY_BUFFER_SECONDS

GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"
GRANT_TYPE_REFRESH_TOKEN = "refresh_token"
RESPONSE_TYPE_CODE = "code"


@dataclass
class ServiceConfiguration:
    authorization_endpoint: str
    token_endpoint: str
    revocation_endpoint: str | None = None
    end_session_endpoint: str | None = None
    userinfo_endpoint: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ServiceConfiguration":
        authorization_endpoint = payload.get("authorization_endpoint")
        token_endpoint = payload.get("token_endpoint")
        if not isinstance(authorization_endpoint, str) or not authorization_endpoint:
            raise ServiceConfigurationError("Discovery document missing authorization_endpoint.")
        if not isinstance(token_endpoint, str) or not token_endpoint:
            raise ServiceConfigurationError("Discovery document missing token_endpoint.")

        return cls(
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            revocation_endpoint=payload.get("revocation_endpoint"),
            end_session_endpoint=payload.get("end_session_endpoint"),
            userinfo_endpoint=payload.get("userinfo_endpoint"),
        )


def decode_id_token_claims(id_token: str) -> dict[str, Any]:
    # Claims are informational only; the token endpoint is the trust anchor.
    try:
        decoded = jwt.decode(
            id_token,
            options={"verify_signature": False, "verify_aud": False},
        )
    except jwt.PyJWTError:
        return {}
    if not isinstance(decoded, dict):
        return {}
    return decoded


@dataclass
class TokenRecord:
    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "bearer"
    scope: str | None = None
    issued_at: float = field(default_factory=time.time)
    expires_in: int | None = None
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @property
    def expires_at(self) -> float | None:
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in

    def is_valid(
        self,
        buffer_seconds: float = TOKEN_EXPIRY_BUFFER_SECONDS,
        *,
        now: float | None = None,
    ) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return True
        current = time.time() if now is None else now
        return current < expires_at - buffer_seconds

    @classmethod
    def from_payload(cls, payload: dict, *, issued_at: float | None = None) -> "TokenRecord":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        id_token = payload.get("id_token")
        expires_in = payload.get("expires_in")

        if not isinstance(access_token, str) or not access_token:
            raise TokenRequestError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise TokenRequestError("Token response refresh_token must be a string.")
        if id_token is not None and not isinstance(id_token, str):
            raise TokenRequestError("Token response id_token must be a string.")
        if isinstance(expires_in, str) and expires_in.isdigit():
            expires_in = int(expires_in)
        if expires_in is not None and not isinstance(expires_in, int):
            raise TokenRequestError("Token response expires_in must be an integer.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            id_token=id_token or None,
            token_type=payload.get("token_type") or "bearer",
            scope=payload.get("scope"),
            issued_at=time.time() if issued_at is None else issued_at,
            expires_in=expires_in,
            raw_claims=decode_id_token_claims(id_token) if id_token else {},
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "TokenRecord":
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("Stored token response must be a JSON object.")
        return cls(**payload)


@dataclass
class AuthorizationRequest:
    client_id: str
    redirect_uri: str
    scope: str
    state: str
    response_type: str = RESPONSE_TYPE_CODE
    extras: dict[str, str] = field(default_factory=dict)
    code_verifier: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "AuthorizationRequest":
        return cls(**json.loads(raw))


@dataclass
class AuthorizationResponse:
    code: str | None
    state: str | None


@dataclass
class AuthorizationResult:
    request: AuthorizationRequest
    response: AuthorizationResponse | None = None
    error: AuthorizationError | None = None
    url: str = ""

    @property
    def state(self) -> str | None:
        if self.response is not None and self.response.state:
            return self.response.state
        if self.error is not None and self.error.state:
            return self.error.state
        return self.request.state


@dataclass
class TokenGrant:
    grant_type: str
    client_id: str
    redirect_uri: str
    code: str | None = None
    refresh_token: str | None = None
    extras: dict[str, str] = field(default_factory=dict)

    @classmethod
    def authorization_code(
        cls,
        *,
        client_id: str,
        redirect_uri: str,
        code: str,
        code_verifier: str | None = None,
    ) -> "TokenGrant":
        extras = {"code_verifier": code_verifier} if code_verifier else {}
        return cls(
            grant_type=GRANT_TYPE_AUTHORIZATION_CODE,
            client_id=client_id,
            redirect_uri=redirect_uri,
            code=code,
            extras=extras,
        )

    @classmethod
    def refresh(cls, *, client_id: str, redirect_uri: str, refresh_token: str) -> "TokenGrant":
        return cls(
            grant_type=GRANT_TYPE_REFRESH_TOKEN,
            client_id=client_id,
            redirect_uri=redirect_uri,
            refresh_token=refresh_token,
        )

    def to_form(self) -> dict[str, str]:
        form = {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }
        if self.code is not None:
            form["code"] = self.code
        if self.refresh_token is not None:
            form["refresh_token"] = self.refresh_token
        form.update(self.extras)
        return form
