import urllib.parse

import pytest

from authentication.context import AuthenticationContext
from authentication.errors import RevocationError, ServiceConfigurationError
from authentication.options import AuthenticationOptions
from tests.auth_helpers import FakeAdapter, make_configuration, make_record

OPTIONS = AuthenticationOptions(client_id="c", redirect_uri="r", login_url="https://login.example.com")


def _seed(token_store) -> None:
    token_store.save_token_response(make_record("access-1", refresh_token="refresh-1", id_token="id-1"))
    token_store.save_refresh_token("refresh-1")


@pytest.mark.asyncio
async def test_sign_out_revokes_ends_session_and_clears_tokens(token_store) -> None:
    _seed(token_store)
    adapter = FakeAdapter()
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)
    assert await context.is_signed_in() is True

    await context.sign_out("https://app.example.com/bye")

    assert await context.is_signed_in() is False
    assert token_store.has_refresh_token() is False
    assert token_store.has_token_response() is False
    assert adapter.revoked == [("refresh_token", "refresh-1"), ("access_token", "access-1")]

    assert len(adapter.navigations) == 1
    parsed = urllib.parse.urlparse(adapter.navigations[0])
    assert parsed.path == "/connect/endsession"
    assert urllib.parse.parse_qs(parsed.query) == {
        "post_logout_redirect_uri": ["https://app.example.com/bye"],
        "id_token_hint": ["id-1"],
    }


@pytest.mark.asyncio
async def test_failed_revocation_does_not_block_sign_out(token_store, auth_logs) -> None:
    _seed(token_store)
    adapter = FakeAdapter(revoke_errors={"refresh_token": RevocationError("already revoked")})
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)

    await context.sign_out()

    assert await context.is_signed_in() is False
    assert token_store.has_refresh_token() is False
    assert token_store.has_token_response() is False
    assert len(adapter.revoked) == 2
    assert "Revoke token request for token 'refresh_token' failed" in auth_logs.text


@pytest.mark.asyncio
async def test_sign_out_without_redirect_uri_sends_only_hint(token_store) -> None:
    _seed(token_store)
    adapter = FakeAdapter()
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)

    await context.sign_out()

    query = urllib.parse.parse_qs(urllib.parse.urlparse(adapter.navigations[0]).query)
    assert query == {"id_token_hint": ["id-1"]}


@pytest.mark.asyncio
async def test_sign_out_without_end_session_endpoint(token_store, auth_logs) -> None:
    _seed(token_store)
    adapter = FakeAdapter(configuration=make_configuration(end_session_endpoint=None))
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)

    await context.sign_out()

    assert adapter.navigations == []
    assert token_store.has_token_response() is False
    assert "no end_session_endpoint" in auth_logs.text


@pytest.mark.asyncio
async def test_sign_out_while_signed_out_revokes_nothing(token_store) -> None:
    adapter = FakeAdapter()
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)

    await context.sign_out()

    assert adapter.revoked == []
    assert len(adapter.navigations) == 1
    assert await context.is_signed_in() is False


@pytest.mark.asyncio
async def test_sign_out_without_configuration_still_clears_locally(token_store, auth_logs) -> None:
    _seed(token_store)
    adapter = FakeAdapter(configuration=ServiceConfigurationError("discovery down"))
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)

    await context.sign_out()

    assert adapter.revoked == []
    assert adapter.navigations == []
    assert token_store.has_refresh_token() is False
    assert token_store.has_token_response() is False
    assert "Skipping remote sign out" in auth_logs.text


@pytest.mark.asyncio
async def test_sign_out_discards_pending_state(token_store) -> None:
    _seed(token_store)
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=FakeAdapter())
    state = context.set_state({"url": "https://app.example.com/orders"})

    await context.sign_out()

    assert token_store.get_state(state) is None
    assert context.get_state() is None
