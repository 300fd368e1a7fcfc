from __future__ import annotations

import base64
import dataclasses
import hashlib
import secrets
from abc import ABC, abstractmethod

import httpx

from authentication.errors import (
    AuthorizationError,
    RevocationError,
    ServiceConfigurationError,
    TokenRequestError,
)
from authentication.location import Location
from authentication.models import (
    AuthorizationRequest,
    AuthorizationResponse,
    AuthorizationResult,
    ServiceConfiguration,
    TokenGrant,
    TokenRecord,
)
from authentication.token_store import KeyValueStorage
from authentication.urls import append_query_params, redirect_params
from elfsquad.constants import DEFAULT_RESPONSE_MODE, LOGGER, PENDING_AUTHORIZATION_KEY

DISCOVERY_PATH = "/.well-known/openid-configuration"


def generate_code_verifier() -> str:
    while True:
        verifier = secrets.token_urlsafe(64)
        if 43 <= len(verifier) <= 128:
            return verifier


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def build_authorization_url(
    authorization_endpoint: str,
    request: AuthorizationRequest,
    code_challenge: str,
) -> str:
    query = {
        "client_id": request.client_id,
        "redirect_uri": request.redirect_uri,
        "scope": request.scope,
        "response_type": request.response_type,
        "state": request.state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    query.update(request.extras)
    return append_query_params(authorization_endpoint, query)


class ProtocolAdapter(ABC):
    @abstractmethod
    async def fetch_service_configuration(self, issuer_url: str) -> ServiceConfiguration:
        raise NotImplementedError

    @abstractmethod
    async def begin_authorization_redirect(
        self,
        configuration: ServiceConfiguration,
        request: AuthorizationRequest,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def complete_pending_authorization_redirect(self) -> AuthorizationResult | None:
        raise NotImplementedError

    @abstractmethod
    async def exchange_token(
        self,
        configuration: ServiceConfiguration,
        grant: TokenGrant,
    ) -> TokenRecord:
        raise NotImplementedError

    @abstractmethod
    async def revoke_token(
        self,
        configuration: ServiceConfiguration,
        token: str,
        token_type_hint: str,
        *,
        client_id: str,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def navigate(self, url: str) -> None:
        raise NotImplementedError


class OIDCClient(ProtocolAdapter):
    """Authorization code + PKCE over httpx, with the redirect kept in storage.

    While the browser is at the provider, the pending request (including its
    code verifier) lives in ``storage``; the next process start reads it back
    and matches it against the ``state`` on the redirect URI.
    """

    def __init__(
        self,
        *,
        storage: KeyValueStorage,
        location: Location,
        response_mode: str = DEFAULT_RESPONSE_MODE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._storage = storage
        self._location = location
        self._response_mode = response_mode
        self._client = client

    async def _send(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        own_client = self._client is None
        http_client = self._client or httpx.AsyncClient()

        try:
            response = await http_client.request(
                method,
                url,
                data=data,
                headers={"Accept": "application/json"},
            )
            await response.aread()
        finally:
            if own_client:
                await http_client.aclose()

        return response

    async def fetch_service_configuration(self, issuer_url: str) -> ServiceConfiguration:
        url = issuer_url.rstrip("/") + DISCOVERY_PATH
        try:
            response = await self._send("GET", url)
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            raise ServiceConfigurationError(
                f"Discovery request failed with status {error.response.status_code}: "
                f"{error.response.text}"
            ) from error
        except httpx.HTTPError as error:
            raise ServiceConfigurationError(f"Discovery request failed: {error}") from error

        try:
            payload = response.json()
        except ValueError as error:
            raise ServiceConfigurationError("Discovery document is not valid JSON.") from error
        if not isinstance(payload, dict):
            raise ServiceConfigurationError("Discovery document must be a JSON object.")

        LOGGER.info("Fetched service configuration from %s", url)
        return ServiceConfiguration.from_payload(payload)

    async def begin_authorization_redirect(
        self,
        configuration: ServiceConfiguration,
        request: AuthorizationRequest,
    ) -> None:
        verifier = generate_code_verifier()
        pending = dataclasses.replace(request, code_verifier=verifier)
        self._storage.set(PENDING_AUTHORIZATION_KEY, pending.to_json())

        url = build_authorization_url(
            configuration.authorization_endpoint,
            pending,
            generate_code_challenge(verifier),
        )
        LOGGER.info("Redirecting to authorization endpoint %s", configuration.authorization_endpoint)
        self.navigate(url)

    async def complete_pending_authorization_redirect(self) -> AuthorizationResult | None:
        raw = self._storage.get(PENDING_AUTHORIZATION_KEY)
        if not raw:
            return None

        request = AuthorizationRequest.from_json(raw)
        url = self._location.current_url()
        params = redirect_params(url, self._response_mode)
        state = params.get("state")
        if state is None:
            return None
        if state != request.state:
            LOGGER.warning("Ignoring authorization redirect with mismatched state.")
            return None

        self._storage.delete(PENDING_AUTHORIZATION_KEY)

        if "error" in params:
            error = AuthorizationError(
                params["error"],
                error_description=params.get("error_description"),
                error_uri=params.get("error_uri"),
                state=state,
            )
            return AuthorizationResult(request=request, error=error, url=url)

        response = AuthorizationResponse(code=params.get("code"), state=state)
        return AuthorizationResult(request=request, response=response, url=url)

    async def exchange_token(
        self,
        configuration: ServiceConfiguration,
        grant: TokenGrant,
    ) -> TokenRecord:
        try:
            response = await self._send("POST", configuration.token_endpoint, data=grant.to_form())
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            raise TokenRequestError(
                f"Token request failed with status {error.response.status_code}: "
                f"{error.response.text}",
                status_code=error.response.status_code,
            ) from error
        except httpx.HTTPError as error:
            raise TokenRequestError(f"Token request failed: {error}") from error

        try:
            payload = response.json()
        except ValueError as error:
            raise TokenRequestError("Token response is not valid JSON.") from error
        if not isinstance(payload, dict):
            raise TokenRequestError("Token response must be a JSON object.")
        return TokenRecord.from_payload(payload)

    async def revoke_token(
        self,
        configuration: ServiceConfiguration,
        token: str,
        token_type_hint: str,
        *,
        client_id: str,
    ) -> None:
        if not configuration.revocation_endpoint:
            raise RevocationError("Service configuration has no revocation_endpoint.")

        data = {
            "token": token,
            "token_type_hint": token_type_hint,
            "client_id": client_id,
        }
        try:
            response = await self._send("POST", configuration.revocation_endpoint, data=data)
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            raise RevocationError(
                f"Revoke request for {token_type_hint} failed with status "
                f"{error.response.status_code}: {error.response.text}",
                status_code=error.response.status_code,
            ) from error
        except httpx.HTTPError as error:
            raise RevocationError(f"Revoke request for {token_type_hint} failed: {error}") from error

    def navigate(self, url: str) -> None:
        self._location.navigate(url)
