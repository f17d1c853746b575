"""
Wearable Connect: application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from config.settings import Settings, config
from database.session import create_engine, create_session_factory, init_db
from wearables.encryption import TokenCipher
from wearables.errors import StorageError
from wearables.registry import ProviderRegistry
from wearables.routes import router as wearables_router
from wearables.routes import storage_error_handler
from wearables.store import SqlCredentialStore
from wearables.token_exchange import TokenExchangeClient
from wearables.token_manager import CredentialLifecycleManager

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "aiosqlite", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def build_manager(settings: Settings) -> CredentialLifecycleManager:
    """Wire registry, encrypted SQL store and exchange client from settings."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    store = SqlCredentialStore(create_session_factory(engine), TokenCipher.from_settings(settings))
    return CredentialLifecycleManager(
        ProviderRegistry.from_settings(settings),
        store,
        TokenExchangeClient(timeout=settings.http_timeout_seconds),
        redirect_uri=settings.oauth_redirect_uri,
        pending_ttl_seconds=settings.pending_state_ttl_seconds,
        refresh_buffer_seconds=settings.token_refresh_buffer_seconds,
    )


def create_app(manager: Optional[CredentialLifecycleManager] = None) -> FastAPI:
    app = FastAPI(
        title="Wearable Connect",
        version="1.0.0",
        description="OAuth credential manager for wearable health providers.",
    )
    app.state.credential_manager = manager

    app.include_router(wearables_router, prefix="/api/v1/wearables")
    app.add_exception_handler(StorageError, storage_error_handler)

    @app.on_event("startup")
    async def on_startup():
        if app.state.credential_manager is None:
            logger.info("Building credential manager...")
            app.state.credential_manager = await build_manager(config)
        connected = await app.state.credential_manager.list_connected_providers()
        logger.info("Application ready; connected providers: %s", sorted(connected) or "none")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
