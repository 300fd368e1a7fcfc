from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping
from typing import Any

import httpx

from authentication.errors import AuthorizationError, ConfigurationError
from authentication.location import Location, MemoryLocation
from authentication.models import (
    AuthorizationRequest,
    AuthorizationResult,
    ServiceConfiguration,
    TokenGrant,
    TokenRecord,
)
from authentication.oidc import OIDCClient, ProtocolAdapter, generate_state
from authentication.options import AuthenticationOptions, OAuthOptions
from authentication.resolver_queue import ResolverQueue
from authentication.token_store import TokenStore
from authentication.urls import append_query_params, extract_authorization_code
from elfsquad.constants import DEFAULT_RESPONSE_MODE, LOGGER, RESPONSE_MODES, TENANT_HEADER
from elfsquad.http import build_http_client


class AuthenticationContext:
    """One signed-in (or anonymous) Elfsquad session for this process.

    Construction starts initialization in the background: the service
    configuration is discovered, stored tokens are loaded and refreshed if
    needed, or a pending authorization redirect is completed. Accessors such
    as ``get_access_token`` and ``is_signed_in`` wait for that to finish.

    Without a client id and redirect uri the context runs anonymously: it
    never signs in and ``fetch`` tags requests with the tenant id instead.
    """

    def __init__(
        self,
        options: AuthenticationOptions | None = None,
        *,
        token_store: TokenStore | None = None,
        adapter: ProtocolAdapter | None = None,
        location: Location | None = None,
        http_client: httpx.AsyncClient | None = None,
        api_client: httpx.AsyncClient | None = None,
        http_timeout: float = 30.0,
        http_max_retries: int = 2,
    ) -> None:
        if options is None:
            LOGGER.error("No authentication options were provided")
            options = AuthenticationOptions()
        if options.response_mode not in RESPONSE_MODES:
            LOGGER.error(
                "Unknown response mode %r, falling back to %r",
                options.response_mode,
                DEFAULT_RESPONSE_MODE,
            )
            options = dataclasses.replace(options, response_mode=DEFAULT_RESPONSE_MODE)

        self.options = options
        self.token_store = token_store or TokenStore()

        self._http_timeout = http_timeout
        self._http_max_retries = http_max_retries
        self._owned_clients: list[httpx.AsyncClient] = []
        if adapter is None:
            if http_client is None:
                http_client = build_http_client(
                    timeout=http_timeout,
                    max_retries=http_max_retries,
                )
                self._owned_clients.append(http_client)
            adapter = OIDCClient(
                storage=self.token_store.storage,
                location=location or MemoryLocation(),
                response_mode=options.response_mode,
                client=http_client,
            )
        self._adapter = adapter

        self._api_client: httpx.AsyncClient | None = None
        if api_client is not None and api_client is http_client:
            # Token requests would wait on get_access_token, which waits on them.
            LOGGER.error(
                "api_client must not be the same client as http_client; "
                "using a separate API client"
            )
            api_client = None
        if api_client is not None:
            hooks = api_client.event_hooks
            hooks["request"] = [*hooks.get("request", []), self._decorate_request]
            api_client.event_hooks = hooks
            self._api_client = api_client

        self._configuration: ServiceConfiguration | None = None
        self._configuration_task: asyncio.Future[ServiceConfiguration] | None = None
        self._token_record: TokenRecord | None = None
        self._state: str | None = None
        self._state_data: Any | None = None
        self._refresh_task: asyncio.Future[TokenRecord] | None = None
        self._initialize_task: asyncio.Task[None] | None = None
        self._initialized = asyncio.Event()
        self._sign_in_waiters: ResolverQueue[None] = ResolverQueue()
        self._signed_in_waiters: ResolverQueue[bool] = ResolverQueue()

        self._user_authentication = options.uses_user_authentication
        if not self._user_authentication:
            if options.tenant_id:
                LOGGER.info("Using anonymous authentication for tenant %s", options.tenant_id)
            else:
                for field_name in options.missing_fields():
                    LOGGER.error("No %s provided", field_name)
            self._initialized.set()
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Started by the first awaited accessor instead.
            return
        self._start()

    # -- state -----------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized.is_set()

    @property
    def configuration(self) -> ServiceConfiguration | None:
        return self._configuration

    @property
    def token_record(self) -> TokenRecord | None:
        return self._token_record

    def clear_configuration(self) -> None:
        self._configuration = None

    def _is_token_valid(self) -> bool:
        return self._token_record is not None and self._token_record.is_valid()

    def _start(self) -> None:
        if self._initialize_task is None and not self._initialized.is_set():
            self._initialize_task = asyncio.create_task(self._initialize())

    async def _wait_until_initialized(self) -> None:
        self._start()
        await self._initialized.wait()

    def _mark_initialized(self) -> None:
        if self._initialized.is_set():
            return
        self._initialized.set()
        self._signed_in_waiters.drain_success(self._is_token_valid())

    # -- initialization ----------------------------------------------------------

    async def _initialize(self) -> None:
        try:
            configuration_error: Exception | None = None
            try:
                await self._fetch_configuration()
            except Exception as error:
                LOGGER.error("Failed to fetch service configuration: %s", error)
                configuration_error = error

            if self.token_store.has_token_response():
                self._token_record = self.token_store.get_token_response()

            if self._is_token_valid():
                self._sign_in_waiters.drain_success(None)
                return

            if configuration_error is not None:
                raise configuration_error

            if self.token_store.has_refresh_token():
                try:
                    await self._refresh()
                except Exception as error:
                    LOGGER.error("Failed to refresh access token: %s", error)
                else:
                    self._sign_in_waiters.drain_success(None)
                return

            result = await self._adapter.complete_pending_authorization_redirect()
            if result is not None:
                await self._on_authorization(result)
        except Exception as error:
            LOGGER.exception("Failed to initialize authentication context")
            self._sign_in_waiters.drain_failure(error)
        finally:
            self._mark_initialized()

    async def _on_authorization(self, result: AuthorizationResult) -> None:
        if result.state:
            self._state_data = self.token_store.get_state(result.state)
            self.token_store.delete_state(result.state)

        if result.error is not None:
            LOGGER.warning("Authorization failed: %s", result.error)
            self._sign_in_waiters.drain_failure(result.error)
            return

        if result.response is None:
            return

        code = result.response.code or extract_authorization_code(
            result.url, self.options.response_mode
        )
        if not code:
            raise AuthorizationError(
                "invalid_request",
                "Authorization response did not include a code.",
                state=result.state,
            )

        grant = TokenGrant.authorization_code(
            client_id=self.options.client_id,
            redirect_uri=self.options.redirect_uri,
            code=code,
            code_verifier=result.request.code_verifier,
        )
        configuration = await self._fetch_configuration()
        record = await self._adapter.exchange_token(configuration, grant)
        self._store_token_record(record)
        LOGGER.info("Signed in")
        self._sign_in_waiters.drain_success(None)

    async def _fetch_configuration(self) -> ServiceConfiguration:
        if self._configuration is not None:
            return self._configuration

        if self._configuration_task is None:
            self._configuration_task = asyncio.ensure_future(
                self._adapter.fetch_service_configuration(self.options.login_url)
            )
            self._configuration_task.add_done_callback(self._on_configuration_fetched)
        self._configuration = await asyncio.shield(self._configuration_task)
        return self._configuration

    def _on_configuration_fetched(self, task: asyncio.Future[ServiceConfiguration]) -> None:
        if self._configuration_task is task:
            self._configuration_task = None
        if task.cancelled() or task.exception() is not None:
            return
        self._configuration = task.result()

    # -- tokens ------------------------------------------------------------------

    def _store_token_record(
        self,
        record: TokenRecord,
        *,
        previous_refresh_token: str | None = None,
    ) -> None:
        if record.refresh_token is None and previous_refresh_token:
            record = dataclasses.replace(record, refresh_token=previous_refresh_token)

        self._token_record = record
        if record.refresh_token:
            self.token_store.save_refresh_token(record.refresh_token)
        self.token_store.save_token_response(record)

    def _delete_tokens(self) -> None:
        self._token_record = None
        self.token_store.delete_all()

    async def _refresh(self) -> TokenRecord:
        # One refresh exchange at a time; refresh tokens are single use.
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh_access_token())
            self._refresh_task.add_done_callback(self._clear_refresh_task)
        return await asyncio.shield(self._refresh_task)

    def _clear_refresh_task(self, task: asyncio.Future[TokenRecord]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh_access_token(self) -> TokenRecord:
        if self._configuration is None:
            raise ConfigurationError("No service configuration available for a token refresh.")
        refresh_token = self.token_store.get_refresh_token()
        if not refresh_token:
            raise ConfigurationError("No refresh token available for a token refresh.")

        grant = TokenGrant.refresh(
            client_id=self.options.client_id,
            redirect_uri=self.options.redirect_uri,
            refresh_token=refresh_token,
        )
        try:
            record = await self._adapter.exchange_token(self._configuration, grant)
        except Exception:
            LOGGER.warning("Refresh token was rejected; clearing the stored session")
            self._delete_tokens()
            raise

        self._store_token_record(record, previous_refresh_token=refresh_token)
        return record

    async def _valid_token_record(self) -> TokenRecord | None:
        await self._wait_until_initialized()

        if self._is_token_valid():
            return self._token_record
        if not self._user_authentication:
            return None
        if not self.token_store.has_refresh_token():
            LOGGER.info("No refresh token found")
            return None
        if self._configuration is None:
            try:
                await self._fetch_configuration()
            except Exception as error:
                LOGGER.error("No service configuration found: %s", error)
                return None
        return await self._refresh()

    async def get_access_token(self) -> str | None:
        """Access token for the current session, refreshed when expired.

        Resolves to ``None`` when nobody is signed in.
        """
        record = await self._valid_token_record()
        if record is None:
            return None
        return record.access_token

    async def get_id_token(self) -> str | None:
        record = await self._valid_token_record()
        if record is None:
            return None
        return record.id_token

    # -- sign in -----------------------------------------------------------------

    async def is_signed_in(self) -> bool:
        self._start()
        if self._initialized.is_set():
            return self._is_token_valid()
        return await self._signed_in_waiters.register()

    async def on_sign_in(self) -> None:
        """Wait until a user has signed in; returns at once if one already has.

        Raises the ``AuthorizationError`` the provider sent back when the
        login attempt failed.
        """
        self._start()
        if self._is_token_valid():
            return
        await self._sign_in_waiters.register()

    async def sign_in(self, options: OAuthOptions | Mapping[str, Any] | None = None) -> None:
        if not self._user_authentication:
            LOGGER.error("Cannot sign in without a client id and redirect uri")
            return

        configuration = await self._fetch_configuration()

        extras = {
            "access_type": "offline",
            "response_mode": self.options.response_mode,
        }
        if isinstance(options, OAuthOptions):
            extras.update(options.to_extras())
        elif options:
            extras.update({key: str(value) for key, value in options.items() if value is not None})

        request = AuthorizationRequest(
            client_id=self.options.client_id,
            redirect_uri=self.options.redirect_uri,
            scope=self.options.scope,
            state=self._state or generate_state(),
            extras=extras,
        )
        await self._adapter.begin_authorization_redirect(configuration, request)

    def set_state(self, data: Any) -> str:
        """Keep ``data`` until the user returns from the next sign in."""
        self._discard_state()
        self._state = self.token_store.create_state(data)
        self._state_data = data
        return self._state

    def get_state(self) -> Any | None:
        """Data passed to ``set_state`` before the sign in that just completed."""
        return self._state_data

    def _discard_state(self) -> None:
        if self._state is not None:
            self.token_store.delete_state(self._state)
        self._state = None
        self._state_data = None

    # -- sign out ----------------------------------------------------------------

    async def sign_out(self, post_logout_redirect_uri: str | None = None) -> None:
        try:
            id_token_hint = await self.get_id_token()
        except Exception as error:
            LOGGER.warning("Signing out without an id token hint: %s", error)
            id_token_hint = None

        configuration = await self._configuration_for_sign_out()
        if configuration is not None:
            await self._revoke_tokens(configuration)
            self._end_session(configuration, post_logout_redirect_uri, id_token_hint)

        self._delete_tokens()
        self._discard_state()
        LOGGER.info("Signed out")

    async def _configuration_for_sign_out(self) -> ServiceConfiguration | None:
        if not self._user_authentication:
            return None
        try:
            return await self._fetch_configuration()
        except Exception as error:
            LOGGER.error("Skipping remote sign out, no service configuration: %s", error)
            return None

    async def _revoke_tokens(self, configuration: ServiceConfiguration) -> None:
        pending: list[tuple[str, str]] = []
        refresh_token = self.token_store.get_refresh_token()
        if refresh_token:
            pending.append(("refresh_token", refresh_token))
        record = self._token_record or self.token_store.get_token_response()
        if record is not None:
            pending.append(("access_token", record.access_token))

        results = await asyncio.gather(
            *(
                self._adapter.revoke_token(
                    configuration,
                    token,
                    token_type_hint,
                    client_id=self.options.client_id,
                )
                for token_type_hint, token in pending
            ),
            return_exceptions=True,
        )
        for (token_type_hint, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                LOGGER.error(
                    "Revoke token request for token '%s' failed: %s",
                    token_type_hint,
                    result,
                )

    def _end_session(
        self,
        configuration: ServiceConfiguration,
        post_logout_redirect_uri: str | None,
        id_token_hint: str | None,
    ) -> None:
        if not configuration.end_session_endpoint:
            LOGGER.warning("Service configuration has no end_session_endpoint")
            return

        params: dict[str, str] = {}
        if post_logout_redirect_uri:
            params["post_logout_redirect_uri"] = post_logout_redirect_uri
        if id_token_hint:
            params["id_token_hint"] = id_token_hint
        self._adapter.navigate(append_query_params(configuration.end_session_endpoint, params))

    # -- outbound requests -------------------------------------------------------

    async def _decorate_request(self, request: httpx.Request) -> None:
        if self._user_authentication:
            access_token = await self.get_access_token()
            if access_token:
                request.headers["Authorization"] = f"Bearer {access_token}"
            return

        if self.options.tenant_id:
            request.headers[TENANT_HEADER] = self.options.tenant_id

    def _get_api_client(self) -> httpx.AsyncClient:
        if self._api_client is None:
            self._api_client = build_http_client(
                base_url=self.options.api_url,
                timeout=self._http_timeout,
                max_retries=self._http_max_retries,
                request_hooks=[self._decorate_request],
            )
            self._owned_clients.append(self._api_client)
        return self._api_client

    async def fetch(self, url: str, method: str = "GET", **kwargs: Any) -> httpx.Response:
        return await self._get_api_client().request(method, url, **kwargs)

    async def aclose(self) -> None:
        clients, self._owned_clients = self._owned_clients, []
        for client in clients:
            await client.aclose()
