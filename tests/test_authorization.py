"""
Tests for authorization URL building and pending-flow bookkeeping.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from wearables.errors import UnsupportedDialect, UnsupportedProvider
from wearables.models import PendingAuthState
from wearables.pkce import s256_challenge
from wearables.store import state_key


def _query(url: str) -> dict:
    return parse_qs(urlparse(url).query)


async def _pending(store, provider: str) -> PendingAuthState:
    return PendingAuthState.model_validate_json(await store.get(state_key(provider)))


class TestStartFlow:
    @pytest.mark.asyncio
    async def test_oura_url_carries_client_state_and_pkce(self, manager, store):
        url = await manager.start_flow("oura")

        assert url.startswith("https://cloud.ouraring.com/oauth/authorize?")
        q = _query(url)
        assert q["client_id"] == ["oura-client"]
        assert q["redirect_uri"] == [manager.redirect_uri]
        assert q["response_type"] == ["code"]
        assert q["scope"] == ["daily heartrate workout sleep personal"]
        assert q["code_challenge_method"] == ["S256"]

        pending = await _pending(store, "oura")
        assert q["state"] == [pending.state]
        assert q["code_challenge"] == [s256_challenge(pending.code_verifier)]

    @pytest.mark.asyncio
    async def test_plain_provider_has_no_pkce(self, manager, store):
        url = await manager.start_flow("whoop")

        q = _query(url)
        assert "code_challenge" not in q
        assert "code_challenge_method" not in q
        pending = await _pending(store, "whoop")
        assert pending.code_verifier is None
        assert q["state"] == [pending.state]

    @pytest.mark.asyncio
    async def test_client_secret_never_in_url(self, manager):
        url = await manager.start_flow("oura")
        assert "oura-secret" not in url

    @pytest.mark.asyncio
    async def test_new_flow_overwrites_pending_state(self, manager, store):
        first = _query(await manager.start_flow("oura"))["state"][0]
        second = _query(await manager.start_flow("oura"))["state"][0]

        assert first != second
        assert (await _pending(store, "oura")).state == second

    @pytest.mark.asyncio
    async def test_flows_for_different_providers_coexist(self, manager, store):
        await manager.start_flow("oura")
        await manager.start_flow("fitbit")
        assert await manager.pending_providers() == ["oura", "fitbit"]


class TestUnsupported:
    @pytest.mark.asyncio
    async def test_garmin_fails_closed_without_writing_state(self, manager, store, exchange):
        with pytest.raises(UnsupportedDialect):
            await manager.start_flow("garmin")
        assert store.keys() == []
        exchange.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sdk_provider_cannot_start_flow(self, manager, store):
        with pytest.raises(UnsupportedDialect):
            await manager.start_flow("apple_health")
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self, manager, store):
        with pytest.raises(UnsupportedProvider):
            await manager.start_flow("polar")
        assert store.keys() == []
