"""
Unit tests for token reuse, refresh and persistence.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

from netatmo_prometheus.netatmo import (
    ConfigWriteError,
    NetatmoTokenSource,
    PersistError,
    RefreshError,
    TokenStore,
)
from netatmo_prometheus.netatmo.const import TOKEN_URL
from tests.conftest import RecordingHandler, token_response

TOKEN_PATH = "/oauth2/token"


def _source(store: TokenStore, handler: RecordingHandler) -> NetatmoTokenSource:
    return NetatmoTokenSource(store, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_valid_token_is_reused_without_network(valid_store: TokenStore) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(valid_store, handler)
    seeded = source.token

    first = await source.get_token()
    second = await source.get_token()

    assert handler.requests == []
    assert first is seeded
    assert second is seeded
    assert first.access_token == "OLD_ACCESS"
    assert source.refresh_count == 0


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_persisted(expired_store: TokenStore,
                                                        monkeypatch: pytest.MonkeyPatch) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)

    saves = []
    original_save = expired_store.save

    def counting_save(record):
        saves.append(record)
        original_save(record)

    monkeypatch.setattr(expired_store, "save", counting_save)

    token = await source.get_token()

    assert len(handler.calls(TOKEN_PATH)) == 1
    assert len(saves) == 1
    assert token.access_token == "NEW_ACCESS"
    assert token.refresh_token == "NEW_REFRESH"
    assert token.expiry > datetime.now(timezone.utc)

    persisted = TokenStore(expired_store.path).load()
    assert persisted.access_token == token.access_token
    assert persisted.refresh_token == "NEW_REFRESH"
    assert persisted.client_id == "client-id"


@pytest.mark.asyncio
async def test_refresh_posts_refresh_grant_form(expired_store: TokenStore) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)

    await source.get_token()

    request = handler.requests[0]
    assert request.method == "POST"
    assert str(request.url) == TOKEN_URL
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form == {
        "grant_type": ["refresh_token"],
        "refresh_token": ["OLD_REFRESH"],
        "client_id": ["client-id"],
        "client_secret": ["client-secret"],
    }


@pytest.mark.asyncio
async def test_refresh_keeps_old_refresh_token_when_not_rotated(expired_store: TokenStore) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response(refresh=None)})
    source = _source(expired_store, handler)

    token = await source.get_token()

    assert token.refresh_token == "OLD_REFRESH"
    assert TokenStore(expired_store.path).load().refresh_token == "OLD_REFRESH"


@pytest.mark.asyncio
async def test_refreshed_token_is_reused(expired_store: TokenStore) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)

    first = await source.get_token()
    second = await source.get_token()

    assert first is second
    assert len(handler.requests) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"error": "invalid_grant"}),
        httpx.Response(500, text="oops"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"refresh_token": "x", "expires_in": 10}),
        httpx.Response(200, json={"access_token": "x", "expires_in": "soon"}),
        httpx.Response(200, json={"access_token": "x", "refresh_token": "y"}),
        httpx.Response(200, json={"access_token": "x", "expires_in": 0}),
        httpx.Response(200, json={"access_token": "x", "expires_in": -60}),
    ],
)
async def test_failed_refresh_leaves_token_and_file_unchanged(expired_store: TokenStore,
                                                              response: httpx.Response) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: response})
    source = _source(expired_store, handler)
    before = source.token
    file_before = expired_store.path.read_bytes()

    with pytest.raises(RefreshError):
        await source.get_token()

    assert source.token is before
    assert source.refresh_count == 0
    assert expired_store.path.read_bytes() == file_before


@pytest.mark.asyncio
async def test_transport_failure_raises_refresh_error(expired_store: TokenStore) -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = _source(expired_store, RecordingHandler({TOKEN_PATH: fail}))

    with pytest.raises(RefreshError) as exc:
        await source.get_token()
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_persist_failure_exposes_new_token(expired_store: TokenStore,
                                                 monkeypatch: pytest.MonkeyPatch) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)

    def broken_write(record):
        raise ConfigWriteError("disk full", expired_store.path)

    monkeypatch.setattr(expired_store, "_write", broken_write)

    with pytest.raises(PersistError) as exc:
        await source.get_token()

    assert exc.value.token is not None
    assert exc.value.token.access_token == "NEW_ACCESS"
    assert isinstance(exc.value.__cause__, ConfigWriteError)
    assert source.token.access_token == "NEW_ACCESS"
    assert expired_store.record.access_token == "OLD_ACCESS"


@pytest.mark.asyncio
async def test_unsaved_token_is_saved_on_next_call(expired_store: TokenStore,
                                                   monkeypatch: pytest.MonkeyPatch) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)
    real_write = expired_store._write

    def broken_write(record):
        raise ConfigWriteError("disk full", expired_store.path)

    monkeypatch.setattr(expired_store, "_write", broken_write)
    with pytest.raises(PersistError):
        await source.get_token()

    # still failing: the error is raised again, no second exchange
    with pytest.raises(PersistError) as exc:
        await source.get_token()
    assert exc.value.token.refresh_token == "NEW_REFRESH"
    assert TokenStore(expired_store.path).load().refresh_token == "OLD_REFRESH"

    monkeypatch.setattr(expired_store, "_write", real_write)
    token = await source.get_token()

    assert token.refresh_token == "NEW_REFRESH"
    assert len(handler.calls(TOKEN_PATH)) == 1
    assert source.refresh_count == 1
    persisted = TokenStore(expired_store.path).load()
    assert persisted.access_token == "NEW_ACCESS"
    assert persisted.refresh_token == "NEW_REFRESH"


@pytest.mark.asyncio
async def test_saved_token_is_not_written_again(expired_store: TokenStore,
                                                monkeypatch: pytest.MonkeyPatch) -> None:
    handler = RecordingHandler({TOKEN_PATH: lambda r: token_response()})
    source = _source(expired_store, handler)
    await source.get_token()

    writes = []
    monkeypatch.setattr(expired_store, "_write", writes.append)
    await source.get_token()
    await source.get_token()

    assert writes == []


@pytest.mark.asyncio
async def test_concurrent_callers_share_a_single_refresh(expired_store: TokenStore) -> None:
    calls = []

    async def slow_refresh(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return token_response(access=f"ACCESS-{len(calls)}")

    source = NetatmoTokenSource(expired_store, transport=httpx.MockTransport(slow_refresh))

    tokens = await asyncio.gather(*(source.get_token() for _ in range(5)))

    assert len(calls) == 1
    assert {t.access_token for t in tokens} == {"ACCESS-1"}
    assert source.refresh_count == 1


def test_token_source_loads_store_when_not_loaded(credentials_path: Path,
                                                  expired_store: TokenStore) -> None:
    store = TokenStore(credentials_path)
    source = NetatmoTokenSource(store)
    assert store.record is not None
    assert source.token.refresh_token == "OLD_REFRESH"
    assert not source.token.is_valid()
