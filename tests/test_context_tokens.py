import asyncio

import pytest

from authentication.context import AuthenticationContext
from authentication.errors import TokenRequestError
from tests.auth_helpers import (
    OPTIONS,
    FakeAdapter,
    make_expired_record,
    make_record,
    raising,
    returning,
)


async def _signed_in_context(token_store, adapter: FakeAdapter) -> AuthenticationContext:
    token_store.save_token_response(make_record())
    token_store.save_refresh_token("refresh-1")
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)
    assert await context.is_signed_in() is True
    return context


def _expire(context: AuthenticationContext) -> None:
    context._token_record = make_expired_record()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(token_store) -> None:
    gate = asyncio.Event()
    adapter = FakeAdapter(exchange=returning(make_record("access-2"), gate=gate))
    context = await _signed_in_context(token_store, adapter)
    _expire(context)

    first = asyncio.create_task(context.get_access_token())
    second = asyncio.create_task(context.get_access_token())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    gate.set()

    assert await asyncio.gather(first, second) == ["access-2", "access-2"]
    assert len(adapter.exchange_calls) == 1


@pytest.mark.asyncio
async def test_concurrent_callers_during_initial_refresh_share_it(token_store) -> None:
    token_store.save_token_response(make_expired_record())
    token_store.save_refresh_token("refresh-1")
    adapter = FakeAdapter(exchange=returning(make_record("access-2")))

    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=adapter)
    results = await asyncio.gather(context.get_access_token(), context.get_access_token())

    assert results == ["access-2", "access-2"]
    assert len(adapter.exchange_calls) == 1


@pytest.mark.asyncio
async def test_refresh_slot_is_free_after_completion(token_store) -> None:
    adapter = FakeAdapter(exchange=returning(make_record("access-2")))
    context = await _signed_in_context(token_store, adapter)

    _expire(context)
    assert await context.get_access_token() == "access-2"
    _expire(context)
    assert await context.get_access_token() == "access-2"

    assert len(adapter.exchange_calls) == 2


@pytest.mark.asyncio
async def test_failed_refresh_rejects_callers_and_clears_session(token_store, auth_logs) -> None:
    adapter = FakeAdapter(exchange=raising(TokenRequestError("invalid_grant", status_code=400)))
    context = await _signed_in_context(token_store, adapter)
    _expire(context)

    results = await asyncio.gather(
        context.get_access_token(),
        context.get_access_token(),
        return_exceptions=True,
    )

    assert all(isinstance(result, TokenRequestError) for result in results)
    assert len(adapter.exchange_calls) == 1
    assert token_store.has_refresh_token() is False
    assert token_store.has_token_response() is False
    assert await context.is_signed_in() is False
    assert await context.get_access_token() is None
    assert "clearing the stored session" in auth_logs.text


@pytest.mark.asyncio
async def test_id_token_is_refreshed_with_access_token(token_store) -> None:
    adapter = FakeAdapter(exchange=returning(make_record("access-2", id_token="id-2")))
    context = await _signed_in_context(token_store, adapter)
    _expire(context)

    assert await context.get_id_token() == "id-2"
    assert await context.get_access_token() == "access-2"
    assert len(adapter.exchange_calls) == 1


@pytest.mark.asyncio
async def test_never_signed_in_resolves_none(token_store, auth_logs) -> None:
    context = AuthenticationContext(OPTIONS, token_store=token_store, adapter=FakeAdapter())

    assert await context.get_access_token() is None
    assert await context.get_id_token() is None
    assert "No refresh token found" in auth_logs.text


@pytest.mark.asyncio
async def test_signed_out_after_sign_in_resolves_none(token_store) -> None:
    adapter = FakeAdapter()
    context = await _signed_in_context(token_store, adapter)

    await context.sign_out()

    assert await context.get_access_token() is None
    assert await context.get_id_token() is None
    assert adapter.exchange_calls == []
