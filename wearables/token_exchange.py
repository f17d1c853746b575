"""
TokenExchangeClient: authorization-code and refresh-token exchanges against
a provider's token endpoint, plus best-effort revocation.

Each call performs exactly one POST.  Nothing is retried here: an
authorization code can only be redeemed once, so retry policy belongs to
the caller.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx

from wearables.errors import TokenExchangeFailed
from wearables.models import ProviderConfig, TokenRecord, utcnow

logger = logging.getLogger(__name__)

_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class TokenExchangeClient:
    """Talks to provider token endpoints over ``httpx``."""

    def __init__(self, *, timeout: float = 15.0, client: Optional[httpx.AsyncClient] = None):
        self._timeout = timeout
        self._client = client

    # ── Grants ──────────────────────────────────────────────────────────

    async def exchange_code(
        self,
        conf: ProviderConfig,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> TokenRecord:
        """Exchange an authorization code for a TokenRecord."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": conf.client_id,
        }
        if conf.client_secret:
            data["client_secret"] = conf.client_secret
        if code_verifier:
            data["code_verifier"] = code_verifier

        payload = await self._post_token(conf, data, action="code exchange")
        return _parse_token_response(conf, payload)

    async def refresh(self, conf: ProviderConfig, refresh_token: str) -> TokenRecord:
        """
        Use a refresh token to get a new access token.

        The returned record's ``refresh_token`` is None when the provider did
        not rotate it; carrying the old one forward is the caller's job.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": conf.client_id,
        }
        if conf.client_secret:
            data["client_secret"] = conf.client_secret

        payload = await self._post_token(conf, data, action="token refresh")
        return _parse_token_response(conf, payload)

    async def revoke(self, conf: ProviderConfig, token: str) -> bool:
        """
        Revoke a token at the provider (RFC 7009).
        Returns True on success, False if unsupported or the call failed.
        """
        if not conf.revocation_url:
            return False

        data = {"token": token, "client_id": conf.client_id}
        if conf.client_secret:
            data["client_secret"] = conf.client_secret
        try:
            resp = await self._post(conf.revocation_url, data)
        except httpx.HTTPError as exc:
            logger.warning("%s token revocation failed: %s", conf.provider_id, exc)
            return False

        if not resp.is_success:
            logger.warning(
                "%s token revocation rejected with status %s", conf.provider_id, resp.status_code
            )
            return False
        return True

    # ── Transport ───────────────────────────────────────────────────────

    async def _post(self, url: str, data: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, data=data, headers=_FORM_HEADERS)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, data=data, headers=_FORM_HEADERS)

    async def _post_token(self, conf: ProviderConfig, data: Dict[str, str], *, action: str) -> Dict[str, Any]:
        pid = conf.provider_id
        try:
            resp = await self._post(conf.token_url, data)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", pid, action, exc)
            raise TokenExchangeFailed(
                pid, f"{action} request failed: {exc}", display_name=conf.display_name
            ) from exc

        if not resp.is_success:
            logger.error("%s %s failed with status %s: %s", pid, action, resp.status_code, resp.text[:200])
            raise TokenExchangeFailed(
                pid,
                f"{action} rejected with status {resp.status_code}",
                status_code=resp.status_code,
                display_name=conf.display_name,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TokenExchangeFailed(
                pid, f"{action} returned a non-JSON body", display_name=conf.display_name
            ) from exc
        if not isinstance(payload, dict):
            raise TokenExchangeFailed(
                pid, f"{action} returned a non-object body", display_name=conf.display_name
            )

        if "error" in payload:
            raise TokenExchangeFailed(
                pid,
                f"{action} error: {payload.get('error_description', payload['error'])}",
                status_code=resp.status_code,
                display_name=conf.display_name,
            )
        return payload


def _parse_expires_in(conf: ProviderConfig, value: Any) -> int:
    """Seconds until expiry; a missing value means already expired."""
    if value is None:
        logger.warning(
            "%s token response has no expires_in; treating token as already expired",
            conf.provider_id,
        )
        return 0
    if isinstance(value, bool):
        raise TokenExchangeFailed(conf.provider_id, "malformed expires_in", display_name=conf.display_name)
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError) as exc:
        raise TokenExchangeFailed(
            conf.provider_id, f"malformed expires_in: {value!r}", display_name=conf.display_name
        ) from exc
    if seconds < 0:
        raise TokenExchangeFailed(
            conf.provider_id, f"negative expires_in: {seconds}", display_name=conf.display_name
        )
    return seconds


def _parse_token_response(conf: ProviderConfig, payload: Dict[str, Any]) -> TokenRecord:
    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise TokenExchangeFailed(
            conf.provider_id, "response has no access_token", display_name=conf.display_name
        )

    expires_in = _parse_expires_in(conf, payload.get("expires_in"))
    try:
        expires_at = utcnow() + timedelta(seconds=expires_in)
    except OverflowError as exc:
        raise TokenExchangeFailed(
            conf.provider_id, f"malformed expires_in: {expires_in}", display_name=conf.display_name
        ) from exc

    scope = payload.get("scope")
    if isinstance(scope, list):
        scope = " ".join(str(s) for s in scope)
    elif not isinstance(scope, str):
        # RFC 6749 §5.1: omitted scope means the requested scope was granted
        scope = " ".join(conf.scopes)

    refresh_token = payload.get("refresh_token")
    return TokenRecord(
        access_token=access_token,
        refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
        expires_at=expires_at,
        token_type=payload.get("token_type") or "Bearer",
        scope=scope,
    )
