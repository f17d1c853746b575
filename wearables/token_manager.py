"""
Credential lifecycle manager: start / verify / refresh / disconnect wearable
provider connections.

This is the single interface the rest of the app uses to get an active
token for a provider.  Per-provider lifecycle:

    Disconnected → start_flow → Pending → handle_callback → Connected
    Connected → (near expiry, on access) → Refreshing → Connected | Disconnected
    Connected | Pending → disconnect → Disconnected

Pending flows time out lazily; there is no background timer.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from functools import partial
from typing import Dict, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from wearables.authorization import AuthorizationRequestBuilder
from wearables.errors import (
    NoPendingFlow,
    PendingFlowExpired,
    StateMismatch,
    StorageError,
    TokenExchangeFailed,
    reconnect_message,
)
from wearables.models import (
    AuthScheme,
    ConnectionState,
    ConnectionStatus,
    PendingAuthState,
    ProviderConfig,
    TokenRecord,
    utcnow,
)
from wearables.registry import ProviderRegistry
from wearables.store import CredentialStore, connection_key, state_key, token_key
from wearables.token_exchange import TokenExchangeClient

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

DEFAULT_PENDING_TTL_SECONDS = 600
DEFAULT_REFRESH_BUFFER_SECONDS = 300


class CredentialLifecycleManager:
    """Orchestrates OAuth connections for every registered wearable provider."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: CredentialStore,
        exchange_client: TokenExchangeClient,
        *,
        redirect_uri: str,
        pending_ttl_seconds: int = DEFAULT_PENDING_TTL_SECONDS,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
    ):
        self._registry = registry
        self._store = store
        self._exchange = exchange_client
        self._builder = AuthorizationRequestBuilder(registry, store, redirect_uri)
        self._pending_ttl = pending_ttl_seconds
        self._refresh_buffer = refresh_buffer_seconds
        self._inflight: Dict[str, asyncio.Task] = {}
        # bumped by disconnect; a callback whose exchange spans a bump is discarded
        self._generation: Dict[str, int] = {}

    @property
    def redirect_uri(self) -> str:
        return self._builder.redirect_uri

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def is_oauth_provider(self, provider_id: str) -> bool:
        conf = self._registry.lookup(provider_id)
        return conf is not None and conf.scheme in (AuthScheme.OAUTH2_PKCE, AuthScheme.OAUTH2_PLAIN)

    # ── Record I/O ──────────────────────────────────────────────────────

    async def _load(self, key: str, model: Type[_M]) -> Optional[_M]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            raise StorageError(key, f"stored {model.__name__} is unreadable") from exc

    async def get_tokens(self, provider_id: str) -> Optional[TokenRecord]:
        return await self._load(token_key(provider_id), TokenRecord)

    async def get_connection_status(self, provider_id: str) -> ConnectionStatus:
        status = await self._load(connection_key(provider_id), ConnectionStatus)
        return status or ConnectionStatus()

    async def list_connected_providers(self) -> Set[str]:
        connected = set()
        for provider_id in self._registry.provider_ids():
            if (await self.get_connection_status(provider_id)).connected:
                connected.add(provider_id)
        return connected

    async def connection_state(self, provider_id: str) -> ConnectionState:
        if provider_id in self._inflight:
            return ConnectionState.REFRESHING
        if await self.get_tokens(provider_id) is not None:
            return ConnectionState.CONNECTED
        pending = await self._load(state_key(provider_id), PendingAuthState)
        if pending is not None and not pending.is_expired(self._pending_ttl):
            return ConnectionState.PENDING
        return ConnectionState.DISCONNECTED

    # ── Authorization flow ──────────────────────────────────────────────

    async def start_flow(self, provider_id: str) -> str:
        """
        Return the provider consent URL and record the pending attempt.

        Raises ``UnsupportedProvider`` / ``UnsupportedDialect`` before any
        state is written.
        """
        return await self._builder.build(provider_id)

    async def cancel_flow(self, provider_id: str) -> None:
        """Forget a pending attempt (user closed the browser, provider denied consent)."""
        async with self._store.lock(provider_id):
            await self._store.delete(state_key(provider_id))
        logger.info("OAuth flow for %s abandoned", provider_id)

    async def pending_providers(self) -> List[str]:
        """Providers with a live pending attempt, oldest config order."""
        live = []
        for provider_id in self._registry.oauth_provider_ids():
            pending = await self._load(state_key(provider_id), PendingAuthState)
            if pending is not None and not pending.is_expired(self._pending_ttl):
                live.append(provider_id)
        return live

    async def handle_callback(self, provider_id: str, code: str, returned_state: str) -> TokenRecord:
        """
        Verify the redirect against the stored attempt and redeem the code.

        The pending attempt is consumed before the exchange, so a replayed
        callback fails with ``NoPendingFlow`` instead of re-redeeming.

        Raises
        ------
        NoPendingFlow / PendingFlowExpired – nothing (live) to verify against,
                                            or disconnected during the exchange
        StateMismatch                       – possible CSRF; pending flow kept
        TokenExchangeFailed                 – provider rejected the code
        """
        conf = self._registry.resolve(provider_id)
        name = conf.display_name

        async with self._store.lock(provider_id):
            pending = await self._load(state_key(provider_id), PendingAuthState)
            if pending is None:
                logger.warning("OAuth callback for %s with no pending flow (replayed or stale)", provider_id)
                raise NoPendingFlow(provider_id, "no pending authorization flow", display_name=name)

            if pending.is_expired(self._pending_ttl):
                await self._store.delete(state_key(provider_id))
                logger.warning("OAuth callback for %s arrived after the pending flow expired", provider_id)
                raise PendingFlowExpired(provider_id, "pending authorization flow expired", display_name=name)

            returned = (returned_state or "").encode("utf-8")
            if not hmac.compare_digest(pending.state.encode("utf-8"), returned):
                age = (utcnow() - pending.created_at).total_seconds()
                logger.warning(
                    "OAuth state mismatch for %s - possible CSRF attack "
                    "(flow age %.0fs, expected %d chars, got %d chars)",
                    provider_id,
                    age,
                    len(pending.state),
                    len(returned),
                )
                raise StateMismatch(provider_id, "returned state does not match", display_name=name)

            # single use
            await self._store.delete(state_key(provider_id))
            generation = self._generation.get(provider_id, 0)

        try:
            record = await self._exchange.exchange_code(
                conf, code, self.redirect_uri, pending.code_verifier
            )
        except TokenExchangeFailed:
            logger.error("OAuth callback failed for %s: code exchange rejected", provider_id)
            raise

        status = ConnectionStatus(connected=True, last_sync=utcnow(), expires_at=record.expires_at)
        async with self._store.lock(provider_id):
            disconnected = self._generation.get(provider_id, 0) != generation
            if not disconnected:
                await self._store.write(
                    {
                        token_key(provider_id): record.model_dump_json(),
                        connection_key(provider_id): status.model_dump_json(),
                    }
                )

        if disconnected:
            logger.info("Discarding exchanged %s token: disconnected during code exchange", provider_id)
            await self._revoke(conf, record)
            raise NoPendingFlow(
                provider_id, "disconnected while the authorization was completing", display_name=name
            )

        logger.info("Successfully authenticated with %s", provider_id)
        return record

    # ── Tokens ──────────────────────────────────────────────────────────

    async def get_valid_access_token(self, provider_id: str) -> Optional[str]:
        """
        Get a usable access token for the provider.

        1. No stored record → None (not connected).
        2. Record expiring within the refresh buffer → refresh; concurrent
           callers share a single in-flight refresh.
        3. Refresh failure → provider downgraded to disconnected, None.
        """
        record = await self.get_tokens(provider_id)
        if record is None:
            return None
        if not record.expires_within(self._refresh_buffer):
            return record.access_token

        task = self._inflight.get(provider_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh(provider_id))
            self._inflight[provider_id] = task
            task.add_done_callback(partial(self._clear_inflight, provider_id))
        return await asyncio.shield(task)

    def _clear_inflight(self, provider_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(provider_id) is task:
            del self._inflight[provider_id]
        # every waiter may have been cancelled; mark the outcome as observed
        if not task.cancelled():
            task.exception()

    async def _refresh(self, provider_id: str) -> Optional[str]:
        # Re-read: a refresh that completed just before this task started
        # already replaced the record.
        record = await self.get_tokens(provider_id)
        if record is None:
            return None
        if not record.expires_within(self._refresh_buffer):
            return record.access_token

        conf = self._registry.lookup(provider_id)
        if conf is None or conf.dialect != "2.0" or not record.refresh_token:
            logger.warning("Token for %s expired and cannot be refreshed", provider_id)
            await self._downgrade(provider_id, record)
            return None

        logger.info("Token expiring for %s, refreshing...", provider_id)
        try:
            fresh = await self._exchange.refresh(conf, record.refresh_token)
        except TokenExchangeFailed as exc:
            logger.warning("Token refresh failed for %s: %s", provider_id, exc.detail)
            await self._downgrade(provider_id, record)
            return None

        # Some providers rotate refresh tokens, others don't
        if fresh.refresh_token is None:
            fresh = fresh.model_copy(update={"refresh_token": record.refresh_token})

        async with self._store.lock(provider_id):
            current = await self.get_tokens(provider_id)
            if current is None or current.access_token != record.access_token:
                logger.info("Discarding refreshed %s token: credentials changed during refresh", provider_id)
                if current is not None and not current.expires_within(self._refresh_buffer):
                    return current.access_token
                return None

            status = await self.get_connection_status(provider_id)
            status = status.model_copy(
                update={"connected": True, "expires_at": fresh.expires_at, "error": None}
            )
            await self._store.write(
                {
                    token_key(provider_id): fresh.model_dump_json(),
                    connection_key(provider_id): status.model_dump_json(),
                }
            )

        logger.info("Refreshed %s token", provider_id)
        return fresh.access_token

    async def _downgrade(self, provider_id: str, stale: TokenRecord) -> None:
        """Drop a token that can no longer be refreshed, unless it was replaced meanwhile."""
        name = self._registry.display_name(provider_id)
        async with self._store.lock(provider_id):
            current = await self.get_tokens(provider_id)
            if current is None or current.access_token != stale.access_token:
                return
            status = ConnectionStatus(connected=False, error=reconnect_message(name))
            await self._store.write(
                {
                    token_key(provider_id): None,
                    connection_key(provider_id): status.model_dump_json(),
                }
            )
        logger.warning("%s downgraded to disconnected; user must reconnect", provider_id)

    # ── Disconnect / sync bookkeeping ───────────────────────────────────

    async def disconnect(self, provider_id: str) -> None:
        """
        Delete local credentials, then revoke at the provider (best effort).

        Local disconnection never waits for an in-flight refresh or code
        exchange; either one notices the disconnect and discards its result.
        """
        async with self._store.lock(provider_id):
            self._generation[provider_id] = self._generation.get(provider_id, 0) + 1
            try:
                record = await self.get_tokens(provider_id)
            except StorageError:
                logger.warning("Stored %s token unreadable; deleting without revocation", provider_id)
                record = None

            await self._store.write(
                {
                    token_key(provider_id): None,
                    state_key(provider_id): None,
                    connection_key(provider_id): ConnectionStatus(connected=False).model_dump_json(),
                }
            )
        logger.info("Disconnected from %s", provider_id)

        conf = self._registry.lookup(provider_id)
        if record is not None and conf is not None:
            await self._revoke(conf, record)

    async def _revoke(self, conf: ProviderConfig, record: TokenRecord) -> None:
        """Best-effort provider revocation; failures are logged, never raised."""
        if not conf.revocation_url:
            return
        try:
            revoked = await self._exchange.revoke(conf, record.refresh_token or record.access_token)
        except Exception:
            logger.warning("%s token revocation failed", conf.provider_id, exc_info=True)
            return
        if not revoked:
            logger.warning("%s did not confirm token revocation", conf.provider_id)

    async def mark_synced(self, provider_id: str) -> bool:
        """Record a successful data sync; returns False when not connected."""
        async with self._store.lock(provider_id):
            status = await self.get_connection_status(provider_id)
            if not status.connected:
                return False
            status = status.model_copy(update={"last_sync": utcnow()})
            await self._store.put(connection_key(provider_id), status.model_dump_json())
        return True
