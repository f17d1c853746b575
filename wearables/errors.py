"""
Typed failures raised by the credential manager.

Every error carries the provider slug it concerns and a ``user_message``
that the app shell can show verbatim.
"""

from __future__ import annotations

from typing import Optional


class WearableAuthError(Exception):
    """Base class for all credential-manager failures."""

    def __init__(self, provider_id: str, detail: str, *, display_name: Optional[str] = None):
        super().__init__(f"{provider_id}: {detail}")
        self.provider_id = provider_id
        self.detail = detail
        self.display_name = display_name or provider_id

    @property
    def user_message(self) -> str:
        return f"Could not connect to {self.display_name}, please try again."


# ── Flow cannot start ──────────────────────────────────────────────────


class UnsupportedProvider(WearableAuthError):
    """Unknown provider id, or an OAuth provider with no client configured."""


class UnsupportedDialect(UnsupportedProvider):
    """Known provider whose auth scheme this module does not speak (OAuth 1.0a, native SDK)."""

    @property
    def user_message(self) -> str:
        return f"{self.display_name} cannot be connected from here."


# ── Callback verification ──────────────────────────────────────────────


class NoPendingFlow(WearableAuthError):
    """Callback arrived with no stored authorization attempt for the provider."""


class PendingFlowExpired(NoPendingFlow):
    """The stored attempt is older than the pending-state timeout."""


class StateMismatch(WearableAuthError):
    """Returned ``state`` does not match the stored one (possible CSRF)."""

    @property
    def user_message(self) -> str:
        return (
            f"The {self.display_name} sign-in response could not be verified "
            "and was rejected. Start the connection again from this device."
        )


# ── Network / provider ─────────────────────────────────────────────────


class TokenExchangeFailed(WearableAuthError):
    """Token endpoint unreachable, rejected the request, or answered garbage."""

    def __init__(
        self,
        provider_id: str,
        detail: str,
        *,
        status_code: Optional[int] = None,
        display_name: Optional[str] = None,
    ):
        super().__init__(provider_id, detail, display_name=display_name)
        self.status_code = status_code


# ── Persistence ────────────────────────────────────────────────────────


class StorageError(Exception):
    """Credential store read/write/decrypt failure."""

    def __init__(self, key: str, detail: str):
        super().__init__(f"{key}: {detail}")
        self.key = key
        self.detail = detail


def reconnect_message(display_name: str) -> str:
    return f"Please reconnect {display_name}."
