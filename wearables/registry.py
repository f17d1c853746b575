"""
ProviderRegistry: static table of per-provider OAuth configuration.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from config.settings import Settings
from wearables.errors import UnsupportedDialect, UnsupportedProvider
from wearables.models import AuthScheme, ProviderConfig

logger = logging.getLogger(__name__)

# ── All known providers; add new ones here ───────────────────────────────
# Client credentials are filled in from settings by ``from_settings``.

_PROVIDER_TABLE: List[dict] = [
    {
        "provider_id": "oura",
        "display_name": "Oura Ring",
        "scheme": AuthScheme.OAUTH2_PKCE,
        "authorization_url": "https://cloud.ouraring.com/oauth/authorize",
        "token_url": "https://api.ouraring.com/oauth/token",
        "revocation_url": "https://api.ouraring.com/oauth/revoke",
        "scopes": ["daily", "heartrate", "workout", "sleep", "personal"],
    },
    {
        "provider_id": "whoop",
        "display_name": "WHOOP",
        "scheme": AuthScheme.OAUTH2_PLAIN,
        "authorization_url": "https://api.prod.whoop.com/oauth/oauth2/auth",
        "token_url": "https://api.prod.whoop.com/oauth/oauth2/token",
        "scopes": [
            "read:recovery",
            "read:cycles",
            "read:sleep",
            "read:workout",
            "read:profile",
            "read:body_measurement",
        ],
    },
    {
        "provider_id": "garmin",
        "display_name": "Garmin",
        "scheme": AuthScheme.OAUTH1A_UNSUPPORTED,
        "authorization_url": "https://connect.garmin.com/oauthConfirm",
        "token_url": "https://connect.garmin.com/oauthConfirm",
    },
    {
        "provider_id": "fitbit",
        "display_name": "Fitbit",
        "scheme": AuthScheme.OAUTH2_PKCE,
        "authorization_url": "https://www.fitbit.com/oauth2/authorize",
        "token_url": "https://api.fitbit.com/oauth2/token",
        "revocation_url": "https://api.fitbit.com/oauth2/revoke",
        "scopes": ["activity", "heartrate", "sleep", "weight", "profile"],
    },
    {
        "provider_id": "google_fit",
        "display_name": "Google Fit",
        "scheme": AuthScheme.OAUTH2_PKCE,
        "authorization_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "revocation_url": "https://oauth2.googleapis.com/revoke",
        "scopes": [
            "https://www.googleapis.com/auth/fitness.activity.read",
            "https://www.googleapis.com/auth/fitness.heart_rate.read",
            "https://www.googleapis.com/auth/fitness.sleep.read",
            "https://www.googleapis.com/auth/fitness.body.read",
        ],
    },
    {
        "provider_id": "samsung_health",
        "display_name": "Samsung Health",
        "scheme": AuthScheme.NON_OAUTH,
    },
    {
        "provider_id": "apple_health",
        "display_name": "Apple Health",
        "scheme": AuthScheme.NON_OAUTH,
    },
]


class ProviderRegistry:
    """Immutable lookup of provider configs keyed by provider slug."""

    def __init__(self, configs: Iterable[ProviderConfig]):
        self._configs: Dict[str, ProviderConfig] = {c.provider_id: c for c in configs}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """Build the registry from the built-in table plus client credentials."""
        configs = []
        for entry in _PROVIDER_TABLE:
            client_id, client_secret = settings.provider_credentials(entry["provider_id"])
            conf = ProviderConfig(client_id=client_id, client_secret=client_secret, **entry)
            if conf.scheme in (AuthScheme.OAUTH2_PKCE, AuthScheme.OAUTH2_PLAIN):
                if conf.is_configured:
                    logger.info("Provider registered: %s (%s)", conf.display_name, conf.provider_id)
                else:
                    logger.warning(
                        "Provider %s not configured: missing client_id", conf.provider_id
                    )
            configs.append(conf)
        return cls(configs)

    # ── Lookup ──────────────────────────────────────────────────────────

    def lookup(self, provider_id: str) -> Optional[ProviderConfig]:
        """Return the config for a provider, or None for an unknown id."""
        return self._configs.get(provider_id)

    def resolve(self, provider_id: str) -> ProviderConfig:
        """
        Return the config for a provider a flow can be started for.

        Raises
        ------
        UnsupportedProvider – unknown id, or OAuth 2.0 provider without client_id
        UnsupportedDialect  – OAuth 1.0a or native-SDK provider
        """
        conf = self._configs.get(provider_id)
        if conf is None:
            raise UnsupportedProvider(provider_id, "unknown provider")

        if conf.scheme is AuthScheme.OAUTH1A_UNSUPPORTED:
            raise UnsupportedDialect(
                provider_id, "OAuth 1.0a is not supported", display_name=conf.display_name
            )
        if conf.scheme is AuthScheme.NON_OAUTH:
            raise UnsupportedDialect(
                provider_id,
                "provider is integrated through a native SDK, not OAuth",
                display_name=conf.display_name,
            )
        if not conf.is_configured:
            raise UnsupportedProvider(
                provider_id, "no client_id configured", display_name=conf.display_name
            )
        return conf

    def display_name(self, provider_id: str) -> str:
        conf = self._configs.get(provider_id)
        return conf.display_name if conf else provider_id

    # ── Listing ─────────────────────────────────────────────────────────

    def provider_ids(self) -> List[str]:
        return list(self._configs.keys())

    def oauth_provider_ids(self) -> List[str]:
        """Providers a flow can actually be started for."""
        return [
            c.provider_id
            for c in self._configs.values()
            if c.scheme in (AuthScheme.OAUTH2_PKCE, AuthScheme.OAUTH2_PLAIN)
        ]

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all known providers (no secrets)."""
        return [
            {
                "provider": c.provider_id,
                "display_name": c.display_name,
                "scheme": c.scheme.value,
                "supports_oauth": c.supports_oauth,
                "configured": c.is_configured,
            }
            for c in self._configs.values()
        ]
