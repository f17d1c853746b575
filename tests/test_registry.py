"""
Tests for the provider registry: scheme resolution and fail-fast lookups.
"""

import pytest
from pydantic import ValidationError

from config.settings import Settings
from wearables.errors import UnsupportedDialect, UnsupportedProvider
from wearables.models import AuthScheme
from wearables.registry import ProviderRegistry


class TestLookup:
    def test_known_pkce_provider(self, registry):
        conf = registry.lookup("oura")
        assert conf is not None
        assert conf.scheme is AuthScheme.OAUTH2_PKCE
        assert conf.dialect == "2.0"
        assert conf.uses_pkce
        assert conf.client_id == "oura-client"

    def test_plain_oauth2_provider(self, registry):
        conf = registry.lookup("whoop")
        assert conf.scheme is AuthScheme.OAUTH2_PLAIN
        assert not conf.uses_pkce

    def test_unknown_provider_is_none(self, registry):
        assert registry.lookup("polar") is None

    def test_oauth1a_provider_is_tagged(self, registry):
        conf = registry.lookup("garmin")
        assert conf.scheme is AuthScheme.OAUTH1A_UNSUPPORTED
        assert conf.dialect == "1.0a"

    def test_sdk_provider_has_no_dialect(self, registry):
        conf = registry.lookup("apple_health")
        assert conf.scheme is AuthScheme.NON_OAUTH
        assert conf.dialect is None
        assert not conf.supports_oauth


class TestResolve:
    def test_resolves_configured_provider(self, registry):
        assert registry.resolve("google_fit").client_id == "gfit-client"

    def test_garmin_is_unsupported_dialect(self, registry):
        with pytest.raises(UnsupportedDialect) as exc_info:
            registry.resolve("garmin")
        assert "1.0a" in str(exc_info.value)

    def test_sdk_provider_is_unsupported_dialect(self, registry):
        with pytest.raises(UnsupportedDialect):
            registry.resolve("samsung_health")

    def test_unknown_provider_is_unsupported_provider_not_dialect(self, registry):
        with pytest.raises(UnsupportedProvider) as exc_info:
            registry.resolve("polar")
        assert not isinstance(exc_info.value, UnsupportedDialect)

    def test_unconfigured_provider_is_unsupported(self):
        registry = ProviderRegistry.from_settings(Settings(_env_file=None))
        with pytest.raises(UnsupportedProvider):
            registry.resolve("whoop")


class TestListing:
    def test_oauth_provider_ids(self, registry):
        assert registry.oauth_provider_ids() == ["oura", "whoop", "fitbit", "google_fit"]

    def test_list_providers_exposes_no_secrets(self, registry):
        providers = registry.list_providers()
        assert len(providers) == 7
        for info in providers:
            assert "client_secret" not in info
            assert "client_id" not in info
        oura = next(p for p in providers if p["provider"] == "oura")
        assert oura["configured"] is True
        assert oura["display_name"] == "Oura Ring"

    def test_display_name_falls_back_to_id(self, registry):
        assert registry.display_name("whoop") == "WHOOP"
        assert registry.display_name("polar") == "polar"


class TestProviderConfig:
    def test_config_is_immutable(self, registry):
        conf = registry.lookup("oura")
        with pytest.raises(ValidationError):
            conf.client_id = "other"

    def test_secret_not_in_repr(self, registry):
        assert "oura-secret" not in repr(registry.lookup("oura"))
