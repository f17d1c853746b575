"""
Wearable connection API routes: provider list, auth URL, the fixed OAuth
callback target, status and disconnect.

Route prefix: /api/v1/wearables
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from wearables.errors import (
    NoPendingFlow,
    StateMismatch,
    StorageError,
    TokenExchangeFailed,
    UnsupportedDialect,
    UnsupportedProvider,
)
from wearables.token_manager import CredentialLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wearables"])


def get_manager(request: Request) -> CredentialLifecycleManager:
    """Dependency: the manager built at startup."""
    return request.app.state.credential_manager


def _status_dict(provider: str, display_name: str, conn) -> Dict[str, Any]:
    return {
        "provider": provider,
        "display_name": display_name,
        "connected": conn.connected,
        "last_sync": conn.last_sync.isoformat() if conn.last_sync else None,
        "expires_at": conn.expires_at.isoformat() if conn.expires_at else None,
        "error": conn.error,
    }


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> list[dict]:
    """List all known providers and whether they can be connected."""
    return manager.registry.list_providers()


@router.get("/connections")
async def list_connections(
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> list[dict]:
    """Connection projection for every provider (no tokens exposed)."""
    registry = manager.registry
    out = []
    for provider in registry.provider_ids():
        conn = await manager.get_connection_status(provider)
        out.append(_status_dict(provider, registry.display_name(provider), conn))
    return out


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> Dict[str, Any]:
    """
    Fixed redirect target shared by every provider.

    The redirect does not name the provider, so the app passes it as a
    ``provider`` hint; without one, the single live pending flow is used.
    """
    if provider is None:
        pending = await manager.pending_providers()
        if len(pending) != 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot tell which provider this callback belongs to",
            )
        provider = pending[0]

    name = manager.registry.display_name(provider)

    if error:
        await manager.cancel_flow(provider)
        logger.info("Provider %s returned error on callback: %s", provider, error)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not connect to {name}, please try again.",
        )
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Callback is missing code or state",
        )

    try:
        record = await manager.handle_callback(provider, code, state)
    except StateMismatch as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.user_message)
    except NoPendingFlow as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.user_message)
    except UnsupportedProvider as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message)
    except TokenExchangeFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.user_message)

    return {
        "provider": provider,
        "connected": True,
        "message": f"Connected {name}",
        "expires_at": record.expires_at.isoformat(),
    }


@router.get("/{provider}/auth-url")
async def get_auth_url(
    provider: str,
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> Dict[str, str]:
    """
    Get the OAuth authorization URL for a provider.

    The app opens this URL in the system browser.
    """
    try:
        auth_url = await manager.start_flow(provider)
    except UnsupportedDialect as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)
    except UnsupportedProvider:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider '{provider}' not found or not configured",
        )
    return {"auth_url": auth_url, "provider": provider}


@router.get("/{provider}/status")
async def get_status(
    provider: str,
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> Dict[str, Any]:
    if manager.registry.lookup(provider) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider '{provider}'")
    conn = await manager.get_connection_status(provider)
    body = _status_dict(provider, manager.registry.display_name(provider), conn)
    body["state"] = (await manager.connection_state(provider)).value
    return body


@router.delete("/{provider}")
async def delete_connection(
    provider: str,
    manager: CredentialLifecycleManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Disconnect and revoke a provider connection."""
    if manager.registry.lookup(provider) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider '{provider}'")
    await manager.disconnect(provider)
    return {"status": "disconnected", "provider": provider}


def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Credential store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Credential storage is unavailable"},
    )
