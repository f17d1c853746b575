"""
AuthorizationRequestBuilder: builds provider authorization URLs and records
the pending flow they belong to.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from wearables.models import PendingAuthState
from wearables.pkce import new_pkce_pair, new_state
from wearables.registry import ProviderRegistry
from wearables.store import CredentialStore, state_key

logger = logging.getLogger(__name__)


class AuthorizationRequestBuilder:
    """Composes the consent URL; opening it is the app shell's job."""

    def __init__(self, registry: ProviderRegistry, store: CredentialStore, redirect_uri: str):
        self._registry = registry
        self._store = store
        self.redirect_uri = redirect_uri

    async def build(self, provider_id: str) -> str:
        """
        Start an authorization attempt for ``provider_id``.

        Any earlier pending attempt for the same provider is overwritten, so
        a stray callback for it will no longer verify.

        Returns
        -------
        The full URL to open in the system browser.
        """
        conf = self._registry.resolve(provider_id)

        pending = PendingAuthState(state=new_state())
        params = {
            "client_id": conf.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(conf.scopes),
            "state": pending.state,
        }
        if conf.uses_pkce:
            pkce = new_pkce_pair()
            pending.code_verifier = pkce.verifier
            params["code_challenge"] = pkce.challenge
            params["code_challenge_method"] = "S256"

        async with self._store.lock(provider_id):
            await self._store.put(state_key(provider_id), pending.model_dump_json())

        logger.info("Starting OAuth flow for %s (pkce=%s)", provider_id, conf.uses_pkce)
        return f"{conf.authorization_url}?{urlencode(params)}"
