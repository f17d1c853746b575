"""
Shared fixtures: a configured registry, an in-memory store and a mocked
token exchange client wired into a CredentialLifecycleManager.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from config.settings import Settings
from wearables.registry import ProviderRegistry
from wearables.store import MemoryCredentialStore
from wearables.token_exchange import TokenExchangeClient
from wearables.token_manager import CredentialLifecycleManager

REDIRECT_URI = "mymacro://wearable-callback"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        oura_client_id="oura-client",
        oura_client_secret="oura-secret",
        whoop_client_id="whoop-client",
        whoop_client_secret="whoop-secret",
        fitbit_client_id="fitbit-client",
        google_fit_client_id="gfit-client",
        garmin_consumer_key="garmin-key",
        oauth_redirect_uri=REDIRECT_URI,
        token_encryption_key="",
    )


@pytest.fixture
def registry(settings) -> ProviderRegistry:
    return ProviderRegistry.from_settings(settings)


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def exchange() -> MagicMock:
    client = MagicMock(spec=TokenExchangeClient)
    client.exchange_code = AsyncMock()
    client.refresh = AsyncMock()
    client.revoke = AsyncMock(return_value=True)
    return client


@pytest.fixture
def manager(registry, store, exchange) -> CredentialLifecycleManager:
    return CredentialLifecycleManager(
        registry,
        store,
        exchange,
        redirect_uri=REDIRECT_URI,
    )
